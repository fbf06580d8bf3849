"""
Alerts Infrastructure Layer
===========================

- Models: SQLAlchemy ORM models
- Repositories: SQLAlchemy data access
- Memory: in-process repositories for tests and the memory backend
"""

from alert_triage.alerts.infrastructure.memory import (
    InMemoryAlertRepository,
    InMemoryAuditRepository,
    InMemoryCorrelationRepository,
    InMemoryIncidentRepository,
)
from alert_triage.alerts.infrastructure.models import (
    AlertModel,
    AuditEntryModel,
    CorrelationClusterModel,
    IncidentModel,
)
from alert_triage.alerts.infrastructure.repositories import (
    SQLAlchemyAlertRepository,
    SQLAlchemyAuditRepository,
    SQLAlchemyCorrelationRepository,
    SQLAlchemyIncidentRepository,
)

__all__ = [
    "InMemoryAlertRepository",
    "InMemoryAuditRepository",
    "InMemoryCorrelationRepository",
    "InMemoryIncidentRepository",
    "AlertModel",
    "AuditEntryModel",
    "CorrelationClusterModel",
    "IncidentModel",
    "SQLAlchemyAlertRepository",
    "SQLAlchemyAuditRepository",
    "SQLAlchemyCorrelationRepository",
    "SQLAlchemyIncidentRepository",
]
