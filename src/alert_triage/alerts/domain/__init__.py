"""
Alerts Domain Layer
===================

Entities (NormalizedAlert, Incident, AuditEntry, CorrelationCluster), the
transition table and indicator extraction. Pure Python.
"""

from alert_triage.alerts.domain.entities import (
    ALLOWED_TRANSITIONS,
    AuditEntry,
    CorrelationCluster,
    Incident,
    NormalizedAlert,
    can_transition,
    make_fingerprint,
    priority_for_severity,
)
from alert_triage.alerts.domain.indicators import extract_indicators

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AuditEntry",
    "CorrelationCluster",
    "Incident",
    "NormalizedAlert",
    "can_transition",
    "make_fingerprint",
    "priority_for_severity",
    "extract_indicators",
]
