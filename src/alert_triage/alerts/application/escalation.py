"""
Escalation State Machine
========================

Drives an alert from NEW through investigation to one terminal outcome:
resolved as benign, resolved as false positive, or escalated to an
incident.

Transitions on one alert are serialized by a per-alert lock, and every
transition is written to the audit trail.
"""

from typing import List, Optional

from alert_triage.alerts.application.repositories import (
    IAlertRepository,
    IAuditRepository,
    IIncidentRepository,
)
from alert_triage.alerts.domain.entities import (
    AuditEntry,
    Incident,
    NormalizedAlert,
    can_transition,
    priority_for_severity,
    utcnow,
)
from alert_triage.assignment.domain.policy import can_see
from alert_triage.config import AlertStatus, ResolutionOutcome, Role
from alert_triage.core import (
    Actor,
    ConflictException,
    PermissionDeniedException,
    ResourceNotFoundException,
    ValidationException,
)
from alert_triage.shared.infrastructure.locks import KeyedLock
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

ENTITY_ALERT = "alert"
ENTITY_INCIDENT = "incident"

_OUTCOME_STATUS = {
    ResolutionOutcome.BENIGN: AlertStatus.RESOLVED_BENIGN,
    ResolutionOutcome.FALSE_POSITIVE: AlertStatus.RESOLVED_FALSE_POSITIVE,
}


class EscalationStateMachine:
    """
    Alert lifecycle transitions.

    Usage:
        machine = EscalationStateMachine(alerts, incidents, audit)
        await machine.resolve(actor, alert_id, "benign", "Scheduled scan from IT")
    """

    def __init__(
        self,
        alert_repository: IAlertRepository,
        incident_repository: IIncidentRepository,
        audit_repository: IAuditRepository,
        notes_min_length: int = 10,
        locks: Optional[KeyedLock] = None,
    ):
        self._alerts = alert_repository
        self._incidents = incident_repository
        self._audit = audit_repository
        self.notes_min_length = notes_min_length
        self._locks = locks or KeyedLock("alert")

    @property
    def locks(self) -> KeyedLock:
        """Per-alert locks shared with anything else that writes alerts."""
        return self._locks

    # ========== Queries ==========

    async def get_alert(self, actor: Actor, alert_id: str) -> NormalizedAlert:
        """Load an alert the actor is allowed to see."""
        alert = await self._alerts.get(alert_id)
        if alert is None or not actor.can_access_tenant(alert.tenant_id):
            raise ResourceNotFoundException("Alert", alert_id)
        if not can_see(actor.role, alert.category):
            raise PermissionDeniedException(
                f"Role '{actor.role}' cannot access category '{alert.category}'",
                {"alert_id": alert_id, "category": alert.category}
            )
        return alert

    async def audit_trail(self, actor: Actor, alert_id: str) -> List[AuditEntry]:
        await self.get_alert(actor, alert_id)
        return await self._audit.list_for(ENTITY_ALERT, alert_id)

    # ========== Transitions ==========

    async def record_assignment(
        self,
        alert: NormalizedAlert,
        analyst_id: str,
        actor_id: str,
        previous_status: str,
        previous_assignee: Optional[str] = None,
    ) -> None:
        """Audit an assignment applied by the scheduler or a manual reassign."""
        await self._audit.append(AuditEntry(
            tenant_id=alert.tenant_id,
            entity_type=ENTITY_ALERT,
            entity_id=alert.id,
            action="assigned",
            actor_id=actor_id,
            from_status=previous_status,
            to_status=alert.status,
            details={"assigned_to": analyst_id, "previous_assignee": previous_assignee},
        ))

    async def start_investigation(self, actor: Actor, alert_id: str) -> NormalizedAlert:
        """NEW/ASSIGNED -> INVESTIGATING."""
        async with self._locks.hold(alert_id):
            alert = await self._load_for_action(actor, alert_id)
            if alert.status == AlertStatus.INVESTIGATING:
                raise ConflictException(
                    f"Alert {alert_id} is already under investigation",
                    {"alert_id": alert_id, "status": alert.status}
                )
            entry = self._begin_investigation(actor, alert, implicit=False)
            await self._alerts.save(alert)
            await self._audit.append(entry)
            return alert

    async def resolve(
        self,
        actor: Actor,
        alert_id: str,
        outcome: str,
        notes: str,
    ) -> NormalizedAlert:
        """Close an alert as benign or false positive."""
        if outcome not in _OUTCOME_STATUS:
            raise ValidationException(
                f"outcome must be one of {sorted(_OUTCOME_STATUS)}",
                {"outcome": outcome}
            )
        notes = (notes or "").strip()
        if len(notes) < self.notes_min_length:
            raise ValidationException(
                f"Analyst notes must be at least {self.notes_min_length} characters",
                {"min_length": self.notes_min_length}
            )

        async with self._locks.hold(alert_id):
            alert = await self._load_for_action(actor, alert_id)
            pending = []
            if alert.status != AlertStatus.INVESTIGATING:
                pending.append(self._begin_investigation(actor, alert, implicit=True))

            target = _OUTCOME_STATUS[outcome]
            previous = alert.status
            now = utcnow()
            alert.status = target
            alert.resolution_outcome = outcome
            alert.analyst_notes = notes
            alert.resolved_at = now
            alert.resolved_by = actor.user_id
            alert.updated_at = now
            await self._alerts.save(alert)

            for entry in pending:
                await self._audit.append(entry)
            await self._audit.append(AuditEntry(
                tenant_id=alert.tenant_id,
                entity_type=ENTITY_ALERT,
                entity_id=alert.id,
                action="resolved",
                actor_id=actor.user_id,
                from_status=previous,
                to_status=target,
                details={"outcome": outcome},
                occurred_at=now,
            ))
            logger.info(
                "Alert resolved",
                extra={"alert_id": alert.id, "outcome": outcome, "actor_id": actor.user_id}
            )
            return alert

    async def escalate(
        self,
        actor: Actor,
        alert_id: str,
        incident_title: Optional[str] = None,
        incident_description: Optional[str] = None,
    ) -> Incident:
        """Open exactly one incident for the alert and close it as ESCALATED."""
        async with self._locks.hold(alert_id):
            alert = await self._load_for_action(actor, alert_id)
            pending = []
            if alert.status != AlertStatus.INVESTIGATING:
                pending.append(self._begin_investigation(actor, alert, implicit=True))

            now = utcnow()
            incident = Incident(
                tenant_id=alert.tenant_id,
                title=(incident_title or "").strip() or alert.title,
                description=incident_description or alert.description,
                severity=alert.severity,
                priority=priority_for_severity(alert.severity),
                category=alert.category,
                source_alert_id=alert.id,
                created_by=actor.user_id,
                assignee=actor.user_id,
                created_at=now,
                updated_at=now,
            )
            await self._incidents.add(incident)

            previous = alert.status
            alert.status = AlertStatus.ESCALATED
            alert.incident_id = incident.id
            alert.resolved_at = now
            alert.resolved_by = actor.user_id
            alert.updated_at = now
            try:
                await self._alerts.save(alert)
            except Exception:
                await self._incidents.discard(incident.id)
                raise

            for entry in pending:
                await self._audit.append(entry)
            await self._audit.append(AuditEntry(
                tenant_id=alert.tenant_id,
                entity_type=ENTITY_ALERT,
                entity_id=alert.id,
                action="escalated",
                actor_id=actor.user_id,
                from_status=previous,
                to_status=AlertStatus.ESCALATED,
                details={"incident_id": incident.id, "priority": incident.priority},
                occurred_at=now,
            ))
            await self._audit.append(AuditEntry(
                tenant_id=incident.tenant_id,
                entity_type=ENTITY_INCIDENT,
                entity_id=incident.id,
                action="created",
                actor_id=actor.user_id,
                to_status=incident.status,
                details={"source_alert_id": alert.id},
                occurred_at=now,
            ))
            logger.info(
                "Alert escalated to incident",
                extra={
                    "alert_id": alert.id,
                    "incident_id": incident.id,
                    "priority": incident.priority,
                    "actor_id": actor.user_id,
                }
            )
            return incident

    # ========== Helpers ==========

    async def _load_for_action(self, actor: Actor, alert_id: str) -> NormalizedAlert:
        if actor.role == Role.USER:
            raise PermissionDeniedException("Users cannot act on alerts", {"role": actor.role})

        alert = await self.get_alert(actor, alert_id)

        if alert.is_terminal:
            raise ConflictException(
                f"Alert {alert_id} is already closed ({alert.status})",
                {"alert_id": alert_id, "status": alert.status}
            )
        if alert.assigned_to and alert.assigned_to != actor.user_id and not actor.is_admin:
            raise PermissionDeniedException(
                "Alert is assigned to another analyst",
                {"alert_id": alert_id, "assigned_to": alert.assigned_to}
            )
        return alert

    def _begin_investigation(self, actor: Actor, alert: NormalizedAlert, implicit: bool) -> AuditEntry:
        """Move to INVESTIGATING in memory; the caller saves and appends the entry."""
        if not can_transition(alert.status, AlertStatus.INVESTIGATING):
            raise ConflictException(
                f"Cannot start investigation from {alert.status}",
                {"alert_id": alert.id, "status": alert.status}
            )
        previous = alert.status
        now = utcnow()
        if alert.assigned_to is None:
            alert.assigned_to = actor.user_id
            alert.assigned_at = now
        alert.status = AlertStatus.INVESTIGATING
        alert.updated_at = now
        return AuditEntry(
            tenant_id=alert.tenant_id,
            entity_type=ENTITY_ALERT,
            entity_id=alert.id,
            action="investigation_started",
            actor_id=actor.user_id,
            from_status=previous,
            to_status=AlertStatus.INVESTIGATING,
            details={"implicit": implicit},
            occurred_at=now,
        )
