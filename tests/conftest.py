"""Shared fixtures: in-memory repositories and wired services."""

import pytest

from alert_triage.alerts.application.escalation import EscalationStateMachine
from alert_triage.alerts.application.services import CorrelationService, Deduplicator
from alert_triage.alerts.infrastructure.memory import (
    InMemoryAlertRepository,
    InMemoryAuditRepository,
    InMemoryCorrelationRepository,
    InMemoryIncidentRepository,
)
from alert_triage.assignment.application.services import AssignmentScheduler
from alert_triage.assignment.domain.entities import Analyst
from alert_triage.assignment.infrastructure.memory import InMemoryAnalystDirectory
from alert_triage.config import Role, Settings
from alert_triage.intake.application.classifier import Classifier
from alert_triage.intake.infrastructure.config import StaticRulesProvider

from factories import OTHER_TENANT, RULES_FILE, TENANT


@pytest.fixture
def classifier() -> Classifier:
    return Classifier(StaticRulesProvider())


@pytest.fixture
def alerts() -> InMemoryAlertRepository:
    return InMemoryAlertRepository()


@pytest.fixture
def incidents() -> InMemoryIncidentRepository:
    return InMemoryIncidentRepository()


@pytest.fixture
def audit() -> InMemoryAuditRepository:
    return InMemoryAuditRepository()


@pytest.fixture
def correlations() -> InMemoryCorrelationRepository:
    return InMemoryCorrelationRepository()


@pytest.fixture
def directory() -> InMemoryAnalystDirectory:
    return InMemoryAnalystDirectory([
        Analyst(id="sec-alice", tenant_id=TENANT, role=Role.SECURITY_ANALYST),
        Analyst(id="sec-bob", tenant_id=TENANT, role=Role.SECURITY_ANALYST),
        Analyst(id="help-carol", tenant_id=TENANT, role=Role.IT_HELPDESK_ANALYST),
        Analyst(id="sec-gina", tenant_id=OTHER_TENANT, role=Role.SECURITY_ANALYST),
    ])


@pytest.fixture
def deduplicator(alerts) -> Deduplicator:
    return Deduplicator(alerts)


@pytest.fixture
def correlator(alerts, correlations) -> CorrelationService:
    return CorrelationService(alerts, correlations)


@pytest.fixture
def state_machine(alerts, incidents, audit) -> EscalationStateMachine:
    return EscalationStateMachine(alerts, incidents, audit, notes_min_length=10)


@pytest.fixture
def scheduler(directory, alerts, incidents, state_machine) -> AssignmentScheduler:
    return AssignmentScheduler(directory, alerts, incidents, state_machine)


@pytest.fixture
def memory_settings() -> Settings:
    return Settings(
        environment="test",
        storage_backend="memory",
        triage_rules_path=RULES_FILE,
        connectors_path=None,
        analysts_path=None,
    )
