"""
Assignment Application Services
===============================

Least-loaded, role-aware routing of new alerts to analysts.

Open workload is counted per domain (security vs. helpdesk) across both
open alerts and open incidents. Ties go to whoever was assigned least
recently, never-assigned first, then to the lowest analyst id.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from alert_triage.alerts.application.escalation import EscalationStateMachine
from alert_triage.alerts.application.repositories import (
    IAlertRepository,
    IIncidentRepository,
)
from alert_triage.alerts.domain.entities import NormalizedAlert, utcnow
from alert_triage.assignment.domain.entities import Analyst
from alert_triage.assignment.domain.policy import (
    SECURITY_DOMAIN,
    domain_of,
    is_eligible,
    visible_categories,
)
from alert_triage.config import AlertStatus, HELPDESK_CATEGORIES, SECURITY_CATEGORIES
from alert_triage.core import (
    Actor,
    ConflictException,
    PermissionDeniedException,
    ResourceNotFoundException,
    SYSTEM_ACTOR_ID,
    ValidationException,
)
from alert_triage.shared.infrastructure.locks import KeyedLock
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class IAnalystDirectory(ABC):
    """Interface for analyst directory data access."""

    @abstractmethod
    async def get(self, analyst_id: str) -> Optional[Analyst]:
        """Get analyst by id."""

    @abstractmethod
    async def list_for_tenant(self, tenant_id: str) -> List[Analyst]:
        """Active analysts of one tenant."""

    @abstractmethod
    async def upsert(self, analyst: Analyst) -> Analyst:
        """Insert or replace a directory record."""

    @abstractmethod
    async def touch_last_assigned(self, analyst_id: str, assigned_at: datetime) -> None:
        """Record that the analyst just received work."""


# ========== Services ==========

class AssignmentScheduler:
    """
    Routes alerts to the least-loaded eligible analyst.

    Selection, the alert check-and-set and the ``last_assigned_at`` update
    run under one per-tenant lock, so two concurrent assignments in a
    tenant always see each other's load.
    """

    def __init__(
        self,
        directory: IAnalystDirectory,
        alert_repository: IAlertRepository,
        incident_repository: IIncidentRepository,
        state_machine: EscalationStateMachine,
        locks: Optional[KeyedLock] = None,
    ):
        self._directory = directory
        self._alerts = alert_repository
        self._incidents = incident_repository
        self._state_machine = state_machine
        self._locks = locks or KeyedLock("tenant")

    async def open_counts(self, tenant_id: str, domain: str) -> Dict[str, int]:
        """Open alerts plus open incidents per analyst in one domain."""
        categories = SECURITY_CATEGORIES if domain == SECURITY_DOMAIN else HELPDESK_CATEGORIES
        counts = await self._alerts.open_counts_by_assignee(tenant_id, categories)
        incident_counts = await self._incidents.open_counts_by_assignee(tenant_id, categories)
        for analyst_id, count in incident_counts.items():
            counts[analyst_id] = counts.get(analyst_id, 0) + count
        return counts

    async def select_analyst(self, tenant_id: str, category: str) -> Optional[Analyst]:
        """Pick the analyst who should receive an item in ``category``."""
        analysts = [
            a for a in await self._directory.list_for_tenant(tenant_id)
            if a.active and a.tenant_id == tenant_id and is_eligible(a.role, category)
        ]
        if not analysts:
            return None

        counts = await self.open_counts(tenant_id, domain_of(category))

        def rank(analyst: Analyst):
            never_assigned = analyst.last_assigned_at is None
            last = analyst.last_assigned_at.timestamp() if analyst.last_assigned_at else 0.0
            return (counts.get(analyst.id, 0), not never_assigned, last, analyst.id)

        return min(analysts, key=rank)

    async def assign(self, alert: NormalizedAlert) -> Optional[str]:
        """
        Assign a freshly created alert.

        Returns the chosen analyst id, or None when nobody is eligible or
        the alert was already taken.
        """
        async with self._state_machine.locks.hold(alert.id), self._locks.hold(alert.tenant_id):
            analyst = await self.select_analyst(alert.tenant_id, alert.category)
            if analyst is None:
                logger.warning(
                    "No eligible analyst; alert left unassigned",
                    extra={"alert_id": alert.id, "tenant_id": alert.tenant_id, "category": alert.category}
                )
                return None

            now = utcnow()
            previous_status = alert.status
            applied = await self._alerts.assign_if_unassigned(alert.id, analyst.id, now)
            if not applied:
                logger.info("Alert already assigned; skipping", extra={"alert_id": alert.id})
                return None
            await self._directory.touch_last_assigned(analyst.id, now)

        updated = await self._alerts.get(alert.id)
        await self._state_machine.record_assignment(
            updated or alert, analyst.id, SYSTEM_ACTOR_ID, previous_status
        )
        logger.info(
            "Alert assigned",
            extra={"alert_id": alert.id, "analyst_id": analyst.id, "category": alert.category}
        )
        if updated is not None:
            alert.assigned_to = updated.assigned_to
            alert.assigned_at = updated.assigned_at
            alert.status = updated.status
        return analyst.id

    async def assign_manually(self, actor: Actor, alert_id: str, analyst_id: str) -> NormalizedAlert:
        """
        Hand an alert to a specific analyst.

        Only tenant and super admins may reassign; the target must belong to
        the alert's tenant unless the actor is a super admin, and must be
        able to see the alert's category.
        """
        if not actor.is_admin:
            raise PermissionDeniedException("Only administrators can assign alerts", {"role": actor.role})

        analyst = await self._directory.get(analyst_id)
        if analyst is None or not analyst.active:
            raise ResourceNotFoundException("Analyst", analyst_id)

        async with self._state_machine.locks.hold(alert_id):
            alert = await self._state_machine.get_alert(actor, alert_id)
            if alert.is_terminal:
                raise ConflictException(
                    f"Alert {alert_id} is already closed ({alert.status})",
                    {"alert_id": alert_id, "status": alert.status}
                )
            if analyst.tenant_id != alert.tenant_id and not actor.is_super_admin:
                raise PermissionDeniedException(
                    "Cannot assign across tenants",
                    {"analyst_id": analyst_id, "tenant_id": alert.tenant_id}
                )
            if not is_eligible(analyst.role, alert.category):
                raise ValidationException(
                    f"Analyst role '{analyst.role}' cannot handle category '{alert.category}'",
                    {"analyst_id": analyst_id, "category": alert.category}
                )

            async with self._locks.hold(alert.tenant_id):
                previous_status, previous_assignee = alert.status, alert.assigned_to
                now = utcnow()
                alert.assigned_to = analyst.id
                alert.assigned_at = now
                alert.updated_at = now
                if alert.status != AlertStatus.INVESTIGATING:
                    alert.status = AlertStatus.ASSIGNED
                await self._alerts.save(alert)
                await self._directory.touch_last_assigned(analyst.id, now)

        await self._state_machine.record_assignment(
            alert, analyst.id, actor.user_id, previous_status, previous_assignee
        )
        logger.info(
            "Alert assigned manually",
            extra={"alert_id": alert.id, "analyst_id": analyst.id, "actor_id": actor.user_id}
        )
        return alert

    async def register_analyst(self, actor: Actor, analyst: Analyst) -> Analyst:
        """Sync a directory record from the identity provider."""
        if not actor.is_admin or not actor.can_access_tenant(analyst.tenant_id):
            raise PermissionDeniedException(
                "Only administrators of the tenant can manage analysts",
                {"tenant_id": analyst.tenant_id}
            )
        existing = await self._directory.get(analyst.id)
        if existing is not None:
            analyst.last_assigned_at = existing.last_assigned_at
        return await self._directory.upsert(analyst)

    @staticmethod
    def categories_for(actor: Actor) -> List[str]:
        return visible_categories(actor.role)
