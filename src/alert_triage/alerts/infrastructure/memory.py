"""
In-Memory Alert Repositories
============================

Process-local implementations of the alert repository interfaces. Used
by the test-suite and by ``storage_backend=memory`` deployments.

Entities are copied on the way in and out so callers never share state
with the store, matching what a database round-trip would give them.
"""

import copy
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from alert_triage.alerts.application.repositories import (
    IAlertRepository,
    IAuditRepository,
    ICorrelationRepository,
    IIncidentRepository,
)
from alert_triage.alerts.domain.entities import (
    AuditEntry,
    CorrelationCluster,
    Fingerprint,
    Incident,
    NormalizedAlert,
)
from alert_triage.config import AlertStatus
from alert_triage.core import RepositoryException


class InMemoryAlertRepository(IAlertRepository):
    """Dict-backed alert store."""

    def __init__(self):
        self._alerts: Dict[str, NormalizedAlert] = {}

    async def get(self, alert_id: str) -> Optional[NormalizedAlert]:
        alert = self._alerts.get(alert_id)
        return copy.deepcopy(alert) if alert else None

    async def find_open_by_fingerprint(
        self,
        fingerprint: Fingerprint,
        seen_since: datetime,
    ) -> Optional[NormalizedAlert]:
        matches = [
            a for a in self._alerts.values()
            if a.fingerprint == fingerprint and a.is_open and a.last_seen_at >= seen_since
        ]
        if not matches:
            return None
        return copy.deepcopy(max(matches, key=lambda a: a.last_seen_at))

    async def add(self, alert: NormalizedAlert) -> NormalizedAlert:
        if alert.id in self._alerts:
            raise RepositoryException(f"Alert {alert.id} already exists")
        self._alerts[alert.id] = copy.deepcopy(alert)
        return alert

    async def save(self, alert: NormalizedAlert) -> NormalizedAlert:
        if alert.id not in self._alerts:
            raise RepositoryException(f"Alert {alert.id} not found")
        stored = copy.deepcopy(alert)
        stored.correlation_id = self._alerts[alert.id].correlation_id
        self._alerts[alert.id] = stored
        return alert

    async def record_repeat(
        self,
        alert_id: str,
        metadata: Dict[str, Any],
        seen_at: datetime,
        suppressed_alert_type: Optional[str] = None,
    ) -> Optional[NormalizedAlert]:
        alert = self._alerts.get(alert_id)
        if alert is None or not alert.is_open:
            return None
        alert.record_repeat(metadata, seen_at, suppressed_alert_type)
        return copy.deepcopy(alert)

    async def assign_if_unassigned(self, alert_id: str, analyst_id: str, assigned_at: datetime) -> bool:
        alert = self._alerts.get(alert_id)
        if alert is None or alert.assigned_to is not None or not alert.is_open:
            return False
        alert.assigned_to = analyst_id
        alert.assigned_at = assigned_at
        if alert.status == AlertStatus.NEW:
            alert.status = AlertStatus.ASSIGNED
        alert.updated_at = assigned_at
        return True

    async def list(
        self,
        tenant_id: Optional[str],
        statuses: Optional[Iterable[str]] = None,
        categories: Optional[Iterable[str]] = None,
        assigned_to: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[NormalizedAlert]:
        statuses = set(statuses) if statuses is not None else None
        categories = set(categories) if categories is not None else None
        rows = [
            a for a in self._alerts.values()
            if (tenant_id is None or a.tenant_id == tenant_id)
            and (statuses is None or a.status in statuses)
            and (categories is None or a.category in categories)
            and (assigned_to is None or a.assigned_to == assigned_to)
        ]
        rows.sort(key=lambda a: a.last_seen_at, reverse=True)
        return [copy.deepcopy(a) for a in rows[offset:offset + limit]]

    async def list_seen_between(self, tenant_id: str, start: datetime, end: datetime) -> List[NormalizedAlert]:
        return [
            copy.deepcopy(a) for a in self._alerts.values()
            if a.tenant_id == tenant_id and start <= a.last_seen_at <= end
        ]

    async def open_counts_by_assignee(self, tenant_id: str, categories: Iterable[str]) -> Dict[str, int]:
        categories = set(categories)
        counts: Dict[str, int] = {}
        for a in self._alerts.values():
            if a.tenant_id == tenant_id and a.is_open and a.assigned_to and a.category in categories:
                counts[a.assigned_to] = counts.get(a.assigned_to, 0) + 1
        return counts

    async def set_correlation_id(self, alert_ids: Iterable[str], correlation_id: str) -> None:
        for alert_id in alert_ids:
            alert = self._alerts.get(alert_id)
            if alert is not None:
                alert.correlation_id = correlation_id


class InMemoryIncidentRepository(IIncidentRepository):
    """Dict-backed incident store."""

    def __init__(self):
        self._incidents: Dict[str, Incident] = {}

    async def add(self, incident: Incident) -> Incident:
        self._incidents[incident.id] = copy.deepcopy(incident)
        return incident

    async def get(self, incident_id: str) -> Optional[Incident]:
        incident = self._incidents.get(incident_id)
        return copy.deepcopy(incident) if incident else None

    async def discard(self, incident_id: str) -> None:
        self._incidents.pop(incident_id, None)

    async def list_for_alert(self, alert_id: str) -> List[Incident]:
        return [copy.deepcopy(i) for i in self._incidents.values() if i.source_alert_id == alert_id]

    async def open_counts_by_assignee(self, tenant_id: str, categories: Iterable[str]) -> Dict[str, int]:
        categories = set(categories)
        counts: Dict[str, int] = {}
        for i in self._incidents.values():
            if i.tenant_id == tenant_id and i.is_open and i.assignee and i.category in categories:
                counts[i.assignee] = counts.get(i.assignee, 0) + 1
        return counts


class InMemoryAuditRepository(IAuditRepository):
    """List-backed audit trail."""

    def __init__(self):
        self._entries: List[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> AuditEntry:
        self._entries.append(entry)
        return entry

    async def list_for(self, entity_type: str, entity_id: str) -> List[AuditEntry]:
        rows = [e for e in self._entries if e.entity_type == entity_type and e.entity_id == entity_id]
        return sorted(rows, key=lambda e: e.occurred_at)


class InMemoryCorrelationRepository(ICorrelationRepository):
    """Dict-backed correlation cluster store."""

    def __init__(self):
        self._clusters: Dict[str, CorrelationCluster] = {}

    async def get(self, correlation_id: str) -> Optional[CorrelationCluster]:
        cluster = self._clusters.get(correlation_id)
        return copy.deepcopy(cluster) if cluster else None

    async def save(self, cluster: CorrelationCluster) -> CorrelationCluster:
        self._clusters[cluster.correlation_id] = copy.deepcopy(cluster)
        return cluster

    async def list(
        self,
        tenant_id: Optional[str],
        start: datetime,
        end: datetime,
        min_confidence: float = 0.0,
    ) -> List[CorrelationCluster]:
        rows = [
            c for c in self._clusters.values()
            if (tenant_id is None or c.tenant_id == tenant_id)
            and c.first_seen_at <= end and c.last_seen_at >= start
            and c.confidence >= min_confidence
        ]
        rows.sort(key=lambda c: c.confidence, reverse=True)
        return [copy.deepcopy(c) for c in rows]
