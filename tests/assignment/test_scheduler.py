"""
Tests for the assignment scheduler.

Load is counted from the alert and incident stores; fixtures seed
assigned work directly into the in-memory repositories.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from alert_triage.alerts.domain.entities import Incident
from alert_triage.assignment.domain.entities import Analyst
from alert_triage.config import AlertStatus, Role
from alert_triage.core import (
    ConflictException,
    PermissionDeniedException,
    ResourceNotFoundException,
    ValidationException,
)

from factories import OTHER_TENANT, TENANT, make_actor, make_alert

ADMIN = make_actor(Role.TENANT_ADMIN, "admin-dave")


async def _give(alerts, analyst_id: str, count: int, classification: str = "malware") -> None:
    for _ in range(count):
        await alerts.add(make_alert(classification, assigned_to=analyst_id, status=AlertStatus.ASSIGNED))


async def _incident(incidents, assignee: str, category: str = "malware") -> None:
    await incidents.add(Incident(
        tenant_id=TENANT,
        title="Escalated",
        severity="high",
        priority="high",
        category=category,
        source_alert_id="alert-x",
        created_by=assignee,
        assignee=assignee,
    ))


class TestSelection:
    @pytest.mark.asyncio
    async def test_least_loaded_wins(self, scheduler, directory, alerts):
        await directory.upsert(Analyst(id="sec-erin", tenant_id=TENANT, role=Role.SECURITY_ANALYST))
        await _give(alerts, "sec-alice", 2)
        await _give(alerts, "sec-bob", 5)

        chosen = await scheduler.select_analyst(TENANT, "malware")
        assert chosen.id == "sec-erin"

    @pytest.mark.asyncio
    async def test_open_incidents_count_as_load(self, scheduler, alerts, incidents):
        await _give(alerts, "sec-alice", 1)
        for _ in range(3):
            await _incident(incidents, "sec-bob")
        assert (await scheduler.select_analyst(TENANT, "phishing")).id == "sec-alice"
        assert await scheduler.open_counts(TENANT, "security") == {"sec-alice": 1, "sec-bob": 3}

    @pytest.mark.asyncio
    async def test_load_is_counted_per_domain(self, scheduler, alerts):
        await _give(alerts, "sec-alice", 3, classification="connectivity")
        await _give(alerts, "sec-bob", 1)
        assert (await scheduler.select_analyst(TENANT, "malware")).id == "sec-alice"

    @pytest.mark.asyncio
    async def test_closed_work_is_not_load(self, scheduler, alerts):
        for _ in range(3):
            await alerts.add(make_alert(assigned_to="sec-alice", status=AlertStatus.RESOLVED_BENIGN))
        await _give(alerts, "sec-bob", 1)
        assert (await scheduler.select_analyst(TENANT, "malware")).id == "sec-alice"

    @pytest.mark.asyncio
    async def test_tie_prefers_never_assigned_then_oldest(self, scheduler, directory):
        now = datetime(2025, 3, 4, 10, 0, tzinfo=timezone.utc)
        await directory.touch_last_assigned("sec-alice", now)
        assert (await scheduler.select_analyst(TENANT, "malware")).id == "sec-bob"

        await directory.touch_last_assigned("sec-bob", now - timedelta(hours=1))
        assert (await scheduler.select_analyst(TENANT, "malware")).id == "sec-bob"

        await directory.touch_last_assigned("sec-bob", now + timedelta(hours=1))
        assert (await scheduler.select_analyst(TENANT, "malware")).id == "sec-alice"

    @pytest.mark.asyncio
    async def test_tie_without_history_uses_id(self, scheduler):
        assert (await scheduler.select_analyst(TENANT, "malware")).id == "sec-alice"

    @pytest.mark.asyncio
    async def test_role_gates_eligibility(self, scheduler):
        assert (await scheduler.select_analyst(TENANT, "network")).id == "help-carol"

    @pytest.mark.asyncio
    async def test_inactive_and_other_tenant_excluded(self, scheduler, directory):
        await directory.upsert(Analyst(id="help-zed", tenant_id=TENANT, role=Role.IT_HELPDESK_ANALYST, active=False))
        assert await scheduler.select_analyst(OTHER_TENANT, "network") is None
        assert (await scheduler.select_analyst(TENANT, "hardware")).id == "help-carol"


class TestAutomaticAssignment:
    @pytest.mark.asyncio
    async def test_assign_new_alert(self, scheduler, alerts, audit):
        alert = make_alert()
        await alerts.add(alert)

        assert await scheduler.assign(alert) == "sec-alice"
        assert alert.status == AlertStatus.ASSIGNED
        stored = await alerts.get(alert.id)
        assert stored.assigned_to == "sec-alice"

        entries = await audit.list_for("alert", alert.id)
        assert [(e.action, e.actor_id, e.from_status, e.to_status) for e in entries] == [
            ("assigned", "system", "new", "assigned"),
        ]

    @pytest.mark.asyncio
    async def test_no_eligible_analyst_leaves_alert_new(self, scheduler, alerts):
        alert = make_alert("connectivity", tenant_id=OTHER_TENANT)
        await alerts.add(alert)
        assert await scheduler.assign(alert) is None
        assert (await alerts.get(alert.id)).status == AlertStatus.NEW

    @pytest.mark.asyncio
    async def test_already_assigned_is_left_alone(self, scheduler, alerts):
        alert = make_alert(assigned_to="sec-bob", status=AlertStatus.ASSIGNED)
        await alerts.add(alert)
        assert await scheduler.assign(alert) is None
        assert (await alerts.get(alert.id)).assigned_to == "sec-bob"

    @pytest.mark.asyncio
    async def test_concurrent_assignments_spread_load(self, scheduler, alerts):
        batch = [make_alert() for _ in range(4)]
        for alert in batch:
            await alerts.add(alert)

        chosen = await asyncio.gather(*[scheduler.assign(alert) for alert in batch])
        assert sorted(chosen) == ["sec-alice", "sec-alice", "sec-bob", "sec-bob"]


class TestManualAssignment:
    @pytest.mark.asyncio
    async def test_admin_reassigns(self, scheduler, alerts, audit):
        alert = make_alert(assigned_to="sec-alice", status=AlertStatus.ASSIGNED)
        await alerts.add(alert)

        updated = await scheduler.assign_manually(ADMIN, alert.id, "sec-bob")
        assert updated.assigned_to == "sec-bob"
        assert updated.status == AlertStatus.ASSIGNED

        entry = (await audit.list_for("alert", alert.id))[-1]
        assert entry.actor_id == "admin-dave"
        assert entry.details == {"assigned_to": "sec-bob", "previous_assignee": "sec-alice"}

    @pytest.mark.asyncio
    async def test_investigating_status_is_kept(self, scheduler, alerts):
        alert = make_alert(assigned_to="sec-alice", status=AlertStatus.INVESTIGATING)
        await alerts.add(alert)
        updated = await scheduler.assign_manually(ADMIN, alert.id, "sec-bob")
        assert updated.status == AlertStatus.INVESTIGATING

    @pytest.mark.asyncio
    async def test_analyst_cannot_reassign(self, scheduler, alerts):
        alert = make_alert()
        await alerts.add(alert)
        with pytest.raises(PermissionDeniedException):
            await scheduler.assign_manually(make_actor(), alert.id, "sec-bob")

    @pytest.mark.asyncio
    async def test_role_must_match_category(self, scheduler, alerts):
        alert = make_alert()
        await alerts.add(alert)
        with pytest.raises(ValidationException):
            await scheduler.assign_manually(ADMIN, alert.id, "help-carol")

    @pytest.mark.asyncio
    async def test_cross_tenant_target_denied(self, scheduler, alerts):
        alert = make_alert()
        await alerts.add(alert)
        with pytest.raises(PermissionDeniedException):
            await scheduler.assign_manually(ADMIN, alert.id, "sec-gina")

    @pytest.mark.asyncio
    async def test_unknown_analyst(self, scheduler, alerts):
        alert = make_alert()
        await alerts.add(alert)
        with pytest.raises(ResourceNotFoundException):
            await scheduler.assign_manually(ADMIN, alert.id, "nobody")

    @pytest.mark.asyncio
    async def test_closed_alert_conflicts(self, scheduler, alerts):
        alert = make_alert(status=AlertStatus.ESCALATED)
        await alerts.add(alert)
        with pytest.raises(ConflictException):
            await scheduler.assign_manually(ADMIN, alert.id, "sec-bob")


class TestDirectoryManagement:
    @pytest.mark.asyncio
    async def test_register_keeps_assignment_history(self, scheduler, directory):
        stamp = datetime(2025, 3, 4, 10, 0, tzinfo=timezone.utc)
        await directory.touch_last_assigned("sec-alice", stamp)
        analyst = await scheduler.register_analyst(
            ADMIN, Analyst(id="sec-alice", tenant_id=TENANT, role=Role.SECURITY_ANALYST, display_name="Alice")
        )
        assert analyst.last_assigned_at == stamp
        assert (await directory.get("sec-alice")).display_name == "Alice"

    @pytest.mark.asyncio
    async def test_register_requires_admin_of_tenant(self, scheduler):
        with pytest.raises(PermissionDeniedException):
            await scheduler.register_analyst(
                ADMIN, Analyst(id="sec-hal", tenant_id=OTHER_TENANT, role=Role.SECURITY_ANALYST)
            )
        with pytest.raises(PermissionDeniedException):
            await scheduler.register_analyst(
                make_actor(), Analyst(id="sec-hal", tenant_id=TENANT, role=Role.SECURITY_ANALYST)
            )

    def test_categories_for(self, scheduler):
        assert scheduler.categories_for(make_actor(Role.IT_HELPDESK_ANALYST, "help-carol")) == [
            "hardware", "software", "network", "access", "general",
        ]
