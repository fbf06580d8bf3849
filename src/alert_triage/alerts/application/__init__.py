"""
Alerts Application Layer
========================

Contains:
- Services: Deduplicator, StormDetector, CorrelationService
- EscalationStateMachine: every alert status change
- Repository interfaces
- DTOs for the API
"""

from alert_triage.alerts.application.escalation import EscalationStateMachine
from alert_triage.alerts.application.repositories import (
    IAlertRepository,
    IAuditRepository,
    ICorrelationRepository,
    IIncidentRepository,
)
from alert_triage.alerts.application.services import (
    CorrelationService,
    Deduplicator,
    IngestOutcome,
    StormDetector,
)

__all__ = [
    "EscalationStateMachine",
    # Repository Interfaces
    "IAlertRepository",
    "IAuditRepository",
    "ICorrelationRepository",
    "IIncidentRepository",
    # Services
    "CorrelationService",
    "Deduplicator",
    "IngestOutcome",
    "StormDetector",
]
