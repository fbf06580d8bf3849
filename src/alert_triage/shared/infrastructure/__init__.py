"""
Shared Infrastructure
=====================

Logging, locking, caching and resilience helpers.
"""

from alert_triage.shared.infrastructure.logging import (
    setup_logging,
    get_logger,
    log_latency,
)
from alert_triage.shared.infrastructure.locks import KeyedLock
from alert_triage.shared.infrastructure.cache import QueryCache
from alert_triage.shared.infrastructure.resilience import (
    CircuitBreaker,
    CircuitState,
    retry_with_backoff,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "log_latency",
    "KeyedLock",
    "QueryCache",
    "CircuitBreaker",
    "CircuitState",
    "retry_with_backoff",
]
