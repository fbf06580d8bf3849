"""Shared API helpers: middleware, error mapping and the caller context."""

from alert_triage.shared.api.dependencies import get_container, get_current_actor
from alert_triage.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    STATUS_BY_CODE,
    application_exception_handler,
    global_exception_handler,
)

__all__ = [
    "get_container",
    "get_current_actor",
    "CorrelationIDMiddleware",
    "LoggingMiddleware",
    "STATUS_BY_CODE",
    "application_exception_handler",
    "global_exception_handler",
]
