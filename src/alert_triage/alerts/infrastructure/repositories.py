"""
Alert Infrastructure Repositories
=================================

SQLAlchemy implementations of the alert repository interfaces.

Each call runs in its own transactional session from ``Database``, so a
repository instance is safe to share between concurrent tasks.
"""

import copy
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select, update

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
from alert_triage.alerts.infrastructure.models import (
    AlertModel,
    AuditEntryModel,
    CorrelationClusterModel,
    IncidentModel,
)
from alert_triage.config import AlertStatus, OPEN_INCIDENT_STATUSES, OPEN_STATUSES
from alert_triage.core import RepositoryException
from alert_triage.infrastructure.database import Database, as_utc


# ========== Mapping ==========

def _alert_to_entity(model: AlertModel) -> NormalizedAlert:
    return NormalizedAlert(
        id=model.id,
        tenant_id=model.tenant_id,
        source_system=model.source_system,
        source_id=model.source_id,
        alert_type=model.alert_type,
        classification=model.classification,
        severity=model.severity,
        title=model.title,
        description=model.description,
        device_identifier=model.device_identifier,
        category=model.category,
        detected_at=as_utc(model.detected_at),
        metadata=copy.deepcopy(model.metadata_json or {}),
        seen_count=model.seen_count,
        correlation_id=model.correlation_id,
        status=model.status,
        assigned_to=model.assigned_to,
        assigned_at=as_utc(model.assigned_at),
        resolution_outcome=model.resolution_outcome,
        analyst_notes=model.analyst_notes,
        resolved_at=as_utc(model.resolved_at),
        resolved_by=model.resolved_by,
        incident_id=model.incident_id,
        first_seen_at=as_utc(model.first_seen_at),
        last_seen_at=as_utc(model.last_seen_at),
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
    )


def _copy_alert(alert: NormalizedAlert, model: AlertModel, with_correlation: bool = True) -> AlertModel:
    model.tenant_id = alert.tenant_id
    model.source_system = alert.source_system
    model.source_id = alert.source_id
    model.alert_type = alert.alert_type
    model.classification = alert.classification
    model.severity = alert.severity
    model.title = alert.title
    model.description = alert.description
    model.device_identifier = alert.device_identifier
    model.category = alert.category
    model.detected_at = alert.detected_at
    model.metadata_json = dict(alert.metadata)
    model.seen_count = alert.seen_count
    if with_correlation:
        model.correlation_id = alert.correlation_id
    model.status = alert.status
    model.assigned_to = alert.assigned_to
    model.assigned_at = alert.assigned_at
    model.resolution_outcome = alert.resolution_outcome
    model.analyst_notes = alert.analyst_notes
    model.resolved_at = alert.resolved_at
    model.resolved_by = alert.resolved_by
    model.incident_id = alert.incident_id
    model.first_seen_at = alert.first_seen_at
    model.last_seen_at = alert.last_seen_at
    model.created_at = alert.created_at
    model.updated_at = alert.updated_at
    return model


def _incident_to_entity(model: IncidentModel) -> Incident:
    return Incident(
        id=model.id,
        tenant_id=model.tenant_id,
        title=model.title,
        description=model.description,
        severity=model.severity,
        priority=model.priority,
        category=model.category,
        status=model.status,
        source_alert_id=model.source_alert_id,
        created_by=model.created_by,
        assignee=model.assignee,
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
    )


def _cluster_to_entity(model: CorrelationClusterModel) -> CorrelationCluster:
    return CorrelationCluster(
        correlation_id=model.correlation_id,
        tenant_id=model.tenant_id,
        alert_ids=list(model.alert_ids or []),
        shared_indicators=list(model.shared_indicators or []),
        confidence=model.confidence,
        first_seen_at=as_utc(model.first_seen_at),
        last_seen_at=as_utc(model.last_seen_at),
    )


# ========== Repositories ==========

class SQLAlchemyAlertRepository(IAlertRepository):
    """
    SQLAlchemy implementation of the alert repository.

    Handles persistence of NormalizedAlert entities using async SQLAlchemy.
    """

    def __init__(self, database: Database):
        self._database = database

    async def get(self, alert_id: str) -> Optional[NormalizedAlert]:
        async with self._database.session() as session:
            model = await session.get(AlertModel, alert_id)
            return _alert_to_entity(model) if model else None

    async def find_open_by_fingerprint(
        self,
        fingerprint: Fingerprint,
        seen_since: datetime,
    ) -> Optional[NormalizedAlert]:
        tenant_id, device, alert_type, source_id = fingerprint
        source_clause = (
            AlertModel.source_id.is_(None) if source_id is None else AlertModel.source_id == source_id
        )
        stmt = (
            select(AlertModel)
            .where(
                AlertModel.tenant_id == tenant_id,
                AlertModel.device_identifier == device,
                AlertModel.alert_type == alert_type,
                source_clause,
                AlertModel.status.in_(OPEN_STATUSES),
                AlertModel.last_seen_at >= seen_since,
            )
            .order_by(AlertModel.last_seen_at.desc())
            .limit(1)
        )
        async with self._database.session() as session:
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _alert_to_entity(model) if model else None

    async def add(self, alert: NormalizedAlert) -> NormalizedAlert:
        async with self._database.session() as session:
            session.add(_copy_alert(alert, AlertModel(id=alert.id)))
            await session.flush()
        return alert

    async def save(self, alert: NormalizedAlert) -> NormalizedAlert:
        async with self._database.session() as session:
            model = await session.get(AlertModel, alert.id)
            if model is None:
                raise RepositoryException(f"Alert {alert.id} not found")
            _copy_alert(alert, model, with_correlation=False)
            await session.flush()
        return alert

    async def record_repeat(
        self,
        alert_id: str,
        metadata: Dict[str, Any],
        seen_at: datetime,
        suppressed_alert_type: Optional[str] = None,
    ) -> Optional[NormalizedAlert]:
        async with self._database.session() as session:
            model = await session.get(AlertModel, alert_id)
            if model is None or model.status not in OPEN_STATUSES:
                return None
            alert = _alert_to_entity(model)
            alert.record_repeat(metadata, seen_at, suppressed_alert_type)
            result = await session.execute(
                update(AlertModel)
                .where(
                    AlertModel.id == alert_id,
                    AlertModel.status.in_(OPEN_STATUSES),
                    AlertModel.seen_count == model.seen_count,
                )
                .values(
                    seen_count=alert.seen_count,
                    last_seen_at=alert.last_seen_at,
                    metadata_json=dict(alert.metadata),
                    updated_at=alert.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
        return alert

    async def assign_if_unassigned(self, alert_id: str, analyst_id: str, assigned_at: datetime) -> bool:
        base = (
            update(AlertModel)
            .where(
                AlertModel.id == alert_id,
                AlertModel.assigned_to.is_(None),
                AlertModel.status.in_(OPEN_STATUSES),
            )
        )
        async with self._database.session() as session:
            result = await session.execute(
                base.values(assigned_to=analyst_id, assigned_at=assigned_at, updated_at=assigned_at)
            )
            if result.rowcount != 1:
                return False
            await session.execute(
                update(AlertModel)
                .where(AlertModel.id == alert_id, AlertModel.status == AlertStatus.NEW)
                .values(status=AlertStatus.ASSIGNED)
            )
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
        stmt = select(AlertModel)
        if tenant_id is not None:
            stmt = stmt.where(AlertModel.tenant_id == tenant_id)
        if statuses is not None:
            stmt = stmt.where(AlertModel.status.in_(tuple(statuses)))
        if categories is not None:
            stmt = stmt.where(AlertModel.category.in_(tuple(categories)))
        if assigned_to is not None:
            stmt = stmt.where(AlertModel.assigned_to == assigned_to)
        stmt = stmt.order_by(AlertModel.last_seen_at.desc()).offset(offset).limit(limit)

        async with self._database.session() as session:
            result = await session.execute(stmt)
            return [_alert_to_entity(m) for m in result.scalars().all()]

    async def list_seen_between(self, tenant_id: str, start: datetime, end: datetime) -> List[NormalizedAlert]:
        stmt = select(AlertModel).where(
            AlertModel.tenant_id == tenant_id,
            AlertModel.last_seen_at >= start,
            AlertModel.last_seen_at <= end,
        )
        async with self._database.session() as session:
            result = await session.execute(stmt)
            return [_alert_to_entity(m) for m in result.scalars().all()]

    async def open_counts_by_assignee(self, tenant_id: str, categories: Iterable[str]) -> Dict[str, int]:
        stmt = (
            select(AlertModel.assigned_to, func.count(AlertModel.id))
            .where(
                AlertModel.tenant_id == tenant_id,
                AlertModel.assigned_to.is_not(None),
                AlertModel.status.in_(OPEN_STATUSES),
                AlertModel.category.in_(tuple(categories)),
            )
            .group_by(AlertModel.assigned_to)
        )
        async with self._database.session() as session:
            result = await session.execute(stmt)
            return {row[0]: row[1] for row in result.all()}

    async def set_correlation_id(self, alert_ids: Iterable[str], correlation_id: str) -> None:
        ids = tuple(alert_ids)
        if not ids:
            return
        async with self._database.session() as session:
            await session.execute(
                update(AlertModel).where(AlertModel.id.in_(ids)).values(correlation_id=correlation_id)
            )


class SQLAlchemyIncidentRepository(IIncidentRepository):
    """SQLAlchemy implementation for incidents."""

    def __init__(self, database: Database):
        self._database = database

    async def add(self, incident: Incident) -> Incident:
        async with self._database.session() as session:
            session.add(IncidentModel(
                id=incident.id,
                tenant_id=incident.tenant_id,
                title=incident.title,
                description=incident.description,
                severity=incident.severity,
                priority=incident.priority,
                category=incident.category,
                status=incident.status,
                source_alert_id=incident.source_alert_id,
                created_by=incident.created_by,
                assignee=incident.assignee,
                created_at=incident.created_at,
                updated_at=incident.updated_at,
            ))
            await session.flush()
        return incident

    async def get(self, incident_id: str) -> Optional[Incident]:
        async with self._database.session() as session:
            model = await session.get(IncidentModel, incident_id)
            return _incident_to_entity(model) if model else None

    async def discard(self, incident_id: str) -> None:
        async with self._database.session() as session:
            model = await session.get(IncidentModel, incident_id)
            if model is not None:
                await session.delete(model)

    async def list_for_alert(self, alert_id: str) -> List[Incident]:
        stmt = select(IncidentModel).where(IncidentModel.source_alert_id == alert_id)
        async with self._database.session() as session:
            result = await session.execute(stmt)
            return [_incident_to_entity(m) for m in result.scalars().all()]

    async def open_counts_by_assignee(self, tenant_id: str, categories: Iterable[str]) -> Dict[str, int]:
        stmt = (
            select(IncidentModel.assignee, func.count(IncidentModel.id))
            .where(
                IncidentModel.tenant_id == tenant_id,
                IncidentModel.assignee.is_not(None),
                IncidentModel.status.in_(OPEN_INCIDENT_STATUSES),
                IncidentModel.category.in_(tuple(categories)),
            )
            .group_by(IncidentModel.assignee)
        )
        async with self._database.session() as session:
            result = await session.execute(stmt)
            return {row[0]: row[1] for row in result.all()}


class SQLAlchemyAuditRepository(IAuditRepository):
    """SQLAlchemy implementation for the audit trail."""

    def __init__(self, database: Database):
        self._database = database

    async def append(self, entry: AuditEntry) -> AuditEntry:
        async with self._database.session() as session:
            session.add(AuditEntryModel(
                id=entry.id,
                tenant_id=entry.tenant_id,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                action=entry.action,
                actor_id=entry.actor_id,
                from_status=entry.from_status,
                to_status=entry.to_status,
                details=dict(entry.details),
                occurred_at=entry.occurred_at,
            ))
        return entry

    async def list_for(self, entity_type: str, entity_id: str) -> List[AuditEntry]:
        stmt = (
            select(AuditEntryModel)
            .where(AuditEntryModel.entity_type == entity_type, AuditEntryModel.entity_id == entity_id)
            .order_by(AuditEntryModel.occurred_at.asc())
        )
        async with self._database.session() as session:
            result = await session.execute(stmt)
            return [
                AuditEntry(
                    id=m.id,
                    tenant_id=m.tenant_id,
                    entity_type=m.entity_type,
                    entity_id=m.entity_id,
                    action=m.action,
                    actor_id=m.actor_id,
                    from_status=m.from_status,
                    to_status=m.to_status,
                    details=dict(m.details or {}),
                    occurred_at=as_utc(m.occurred_at),
                )
                for m in result.scalars().all()
            ]


class SQLAlchemyCorrelationRepository(ICorrelationRepository):
    """SQLAlchemy implementation for correlation clusters."""

    def __init__(self, database: Database):
        self._database = database

    async def get(self, correlation_id: str) -> Optional[CorrelationCluster]:
        async with self._database.session() as session:
            model = await session.get(CorrelationClusterModel, correlation_id)
            return _cluster_to_entity(model) if model else None

    async def save(self, cluster: CorrelationCluster) -> CorrelationCluster:
        async with self._database.session() as session:
            model = await session.get(CorrelationClusterModel, cluster.correlation_id)
            if model is None:
                model = CorrelationClusterModel(correlation_id=cluster.correlation_id)
                session.add(model)
            model.tenant_id = cluster.tenant_id
            model.alert_ids = list(cluster.alert_ids)
            model.shared_indicators = list(cluster.shared_indicators)
            model.confidence = cluster.confidence
            model.first_seen_at = cluster.first_seen_at
            model.last_seen_at = cluster.last_seen_at
        return cluster

    async def list(
        self,
        tenant_id: Optional[str],
        start: datetime,
        end: datetime,
        min_confidence: float = 0.0,
    ) -> List[CorrelationCluster]:
        stmt = select(CorrelationClusterModel).where(
            CorrelationClusterModel.first_seen_at <= end,
            CorrelationClusterModel.last_seen_at >= start,
            CorrelationClusterModel.confidence >= min_confidence,
        )
        if tenant_id is not None:
            stmt = stmt.where(CorrelationClusterModel.tenant_id == tenant_id)
        stmt = stmt.order_by(CorrelationClusterModel.confidence.desc())

        async with self._database.session() as session:
            result = await session.execute(stmt)
            return [_cluster_to_entity(m) for m in result.scalars().all()]
