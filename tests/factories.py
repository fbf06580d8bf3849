"""Builders for domain objects used across the test suite."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from alert_triage.alerts.domain.entities import NormalizedAlert
from alert_triage.assignment.domain.policy import category_for_classification
from alert_triage.config import Role
from alert_triage.core import Actor
from alert_triage.intake.domain.entities import AlertCandidate
from alert_triage.intake.domain.payloads import RawAlertIntake
from alert_triage.intake.infrastructure.connectors import ConnectorConfig

REPO_ROOT = Path(__file__).resolve().parent.parent
RULES_FILE = REPO_ROOT / "triage_rules.yaml"

TENANT = "acme"
OTHER_TENANT = "globex"
DETECTED_AT = datetime(2025, 3, 4, 10, 0, tzinfo=timezone.utc)

GUIDANCE = {
    "escalate_to_incident": "Escalate when the hash is confirmed malicious or lateral movement is seen.",
    "resolve_benign": "Resolve benign when the file is an approved internal tool.",
    "resolve_false_positive": "Resolve false positive when the detection signature misfired.",
}


def make_actor(role: str = Role.SECURITY_ANALYST, user_id: str = "sec-alice", tenant_id: str = TENANT) -> Actor:
    return Actor(user_id=user_id, role=role, tenant_id=tenant_id)


def make_candidate(
    alert_type: str = "malware_detected",
    classification: str = "malware",
    device: str = "C0EAE4B2C3F1",
    tenant_id: str = TENANT,
    severity: str = "high",
    source_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    title: str = "Malware detected on endpoint",
) -> AlertCandidate:
    return AlertCandidate(
        tenant_id=tenant_id,
        source_system="edr",
        alert_type=alert_type,
        classification=classification,
        severity=severity,
        title=title,
        device_identifier=device,
        detected_at=DETECTED_AT,
        source_id=source_id,
        metadata=dict(metadata or {}),
    )


def make_alert(
    classification: str = "malware",
    tenant_id: str = TENANT,
    assigned_to: Optional[str] = None,
    status: str = "new",
    device: str = "C0EAE4B2C3F1",
    **fields,
) -> NormalizedAlert:
    return NormalizedAlert(
        tenant_id=tenant_id,
        source_system=fields.pop("source_system", "edr"),
        alert_type=fields.pop("alert_type", "malware_detected"),
        classification=classification,
        severity=fields.pop("severity", "high"),
        title=fields.pop("title", "Trojan.GenericKD detected"),
        device_identifier=device,
        category=category_for_classification(classification),
        detected_at=DETECTED_AT,
        assigned_to=assigned_to,
        status=status,
        **fields,
    )


def email_intake(subject: str, body: str = "", tenant_id: str = TENANT) -> RawAlertIntake:
    return RawAlertIntake(
        tenant_id=tenant_id,
        payload={"source_system": "email", "subject": subject, "body": body},
    )


def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'triage.db'}"


class FakeConnector:
    """Scripted connector; each fetch pops the next outcome."""

    def __init__(self, connector_id: str, outcomes: List[Any], tenant_id: str = TENANT):
        self.config = ConnectorConfig(
            connector_id=connector_id,
            tenant_id=tenant_id,
            source_system="email",
            base_url="https://upstream.test",
        )
        self.outcomes = list(outcomes)
        self.fetch_calls = 0
        self.closed = False

    async def initialize(self) -> None:
        pass

    async def connect(self) -> None:
        pass

    async def test_connection(self) -> bool:
        return True

    async def fetch(self) -> List[Dict[str, Any]]:
        self.fetch_calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else []
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def process_incoming_data(self, records) -> List[RawAlertIntake]:
        return [
            RawAlertIntake(
                tenant_id=self.config.tenant_id,
                connector_id=self.config.connector_id,
                payload={"source_system": "email", "subject": r["subject"], "body": r.get("body", "")},
            )
            for r in records
        ]

    async def close(self) -> None:
        self.closed = True
