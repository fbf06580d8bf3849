"""
Alert Repository Interfaces
===========================

Abstractions the alert services depend on (Dependency Inversion).
Concrete SQLAlchemy and in-memory implementations live in the
infrastructure layer.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from alert_triage.alerts.domain.entities import (
    AuditEntry,
    CorrelationCluster,
    Fingerprint,
    Incident,
    NormalizedAlert,
)


class IAlertRepository(ABC):
    """Interface for alert data access."""

    @abstractmethod
    async def get(self, alert_id: str) -> Optional[NormalizedAlert]:
        """Get alert by id."""

    @abstractmethod
    async def find_open_by_fingerprint(
        self,
        fingerprint: Fingerprint,
        seen_since: datetime,
    ) -> Optional[NormalizedAlert]:
        """Open alert with this fingerprint last seen at or after ``seen_since``."""

    @abstractmethod
    async def add(self, alert: NormalizedAlert) -> NormalizedAlert:
        """Persist a new alert."""

    @abstractmethod
    async def save(self, alert: NormalizedAlert) -> NormalizedAlert:
        """
        Persist changes to an existing alert.

        ``correlation_id`` is left as stored; only ``set_correlation_id``
        writes it.
        """

    @abstractmethod
    async def record_repeat(
        self,
        alert_id: str,
        metadata: Dict[str, Any],
        seen_at: datetime,
        suppressed_alert_type: Optional[str] = None,
    ) -> Optional[NormalizedAlert]:
        """
        Fold a repeat delivery into a stored alert.

        Touches only ``seen_count``, ``last_seen_at``, ``metadata`` and
        ``updated_at``, and only while the alert is open. Returns the
        updated alert, or None when it is missing or no longer open.
        """

    @abstractmethod
    async def assign_if_unassigned(
        self,
        alert_id: str,
        analyst_id: str,
        assigned_at: datetime,
    ) -> bool:
        """
        Check-and-set assignment.

        Sets ``assigned_to`` and moves NEW alerts to ASSIGNED only when the
        alert is still open and unassigned. Returns whether it was applied.
        """

    @abstractmethod
    async def list(
        self,
        tenant_id: Optional[str],
        statuses: Optional[Iterable[str]] = None,
        categories: Optional[Iterable[str]] = None,
        assigned_to: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[NormalizedAlert]:
        """List alerts, newest first. ``tenant_id=None`` lists all tenants."""

    @abstractmethod
    async def list_seen_between(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
    ) -> List[NormalizedAlert]:
        """Alerts whose ``last_seen_at`` falls in ``[start, end]``."""

    @abstractmethod
    async def open_counts_by_assignee(
        self,
        tenant_id: str,
        categories: Iterable[str],
    ) -> Dict[str, int]:
        """Open assigned alerts per analyst, restricted to ``categories``."""

    @abstractmethod
    async def set_correlation_id(self, alert_ids: Iterable[str], correlation_id: str) -> None:
        """Stamp ``correlation_id`` onto every listed alert."""


class IIncidentRepository(ABC):
    """Interface for incident data access."""

    @abstractmethod
    async def add(self, incident: Incident) -> Incident:
        """Persist a new incident."""

    @abstractmethod
    async def get(self, incident_id: str) -> Optional[Incident]:
        """Get incident by id."""

    @abstractmethod
    async def discard(self, incident_id: str) -> None:
        """Remove an incident whose escalation could not complete."""

    @abstractmethod
    async def list_for_alert(self, alert_id: str) -> List[Incident]:
        """Incidents opened from ``alert_id``."""

    @abstractmethod
    async def open_counts_by_assignee(
        self,
        tenant_id: str,
        categories: Iterable[str],
    ) -> Dict[str, int]:
        """Open incidents per assignee, restricted to ``categories``."""


class IAuditRepository(ABC):
    """Interface for the append-only audit trail."""

    @abstractmethod
    async def append(self, entry: AuditEntry) -> AuditEntry:
        """Record an entry."""

    @abstractmethod
    async def list_for(self, entity_type: str, entity_id: str) -> List[AuditEntry]:
        """Entries for one entity, oldest first."""


class ICorrelationRepository(ABC):
    """Interface for correlation cluster storage."""

    @abstractmethod
    async def get(self, correlation_id: str) -> Optional[CorrelationCluster]:
        """Get cluster by id."""

    @abstractmethod
    async def save(self, cluster: CorrelationCluster) -> CorrelationCluster:
        """Insert or replace a cluster."""

    @abstractmethod
    async def list(
        self,
        tenant_id: Optional[str],
        start: datetime,
        end: datetime,
        min_confidence: float = 0.0,
    ) -> List[CorrelationCluster]:
        """Clusters active within ``[start, end]`` at or above ``min_confidence``."""
