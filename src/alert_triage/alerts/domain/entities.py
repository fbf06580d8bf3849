"""
Alert Domain Entities
=====================

Pure Python domain entities for the alert lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from alert_triage.config import (
    AlertStatus,
    IncidentStatus,
    OPEN_INCIDENT_STATUSES,
    OPEN_STATUSES,
    Priority,
    Severity,
    TERMINAL_STATUSES,
)

Fingerprint = Tuple[str, str, str, Optional[str]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# ========== State machine table ==========

ALLOWED_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    AlertStatus.NEW: (AlertStatus.ASSIGNED, AlertStatus.INVESTIGATING),
    AlertStatus.ASSIGNED: (AlertStatus.ASSIGNED, AlertStatus.INVESTIGATING),
    AlertStatus.INVESTIGATING: (
        AlertStatus.RESOLVED_BENIGN,
        AlertStatus.RESOLVED_FALSE_POSITIVE,
        AlertStatus.ESCALATED,
    ),
    AlertStatus.RESOLVED_BENIGN: (),
    AlertStatus.RESOLVED_FALSE_POSITIVE: (),
    AlertStatus.ESCALATED: (),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, ())


@dataclass
class NormalizedAlert:
    """
    Canonical alert record.

    One open alert exists per fingerprint; repeat deliveries bump
    ``seen_count`` and ``last_seen_at`` instead of creating new rows.
    """

    tenant_id: str
    source_system: str
    alert_type: str
    classification: str
    severity: str
    title: str
    device_identifier: str
    category: str
    detected_at: datetime

    id: str = field(default_factory=new_id)
    source_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    seen_count: int = 1
    correlation_id: Optional[str] = None

    status: str = AlertStatus.NEW
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    resolution_outcome: Optional[str] = None
    analyst_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    incident_id: Optional[str] = None

    first_seen_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.seen_count < 1:
            raise ValueError("seen_count must be at least 1")
        if not self.device_identifier:
            raise ValueError("device_identifier is required")

    @property
    def fingerprint(self) -> Fingerprint:
        return make_fingerprint(self.tenant_id, self.device_identifier, self.alert_type, self.source_id)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def record_repeat(
        self,
        metadata: Dict[str, Any],
        seen_at: datetime,
        suppressed_alert_type: Optional[str] = None,
    ) -> None:
        """
        Fold a repeat delivery into this alert; existing metadata wins.

        ``suppressed_alert_type`` counts an alert folded into a storm
        meta-alert under ``metadata["suppressed_alert_types"]``.
        """
        self.seen_count += 1
        if seen_at > self.last_seen_at:
            self.last_seen_at = seen_at
        for key, value in metadata.items():
            self.metadata.setdefault(key, value)
        if suppressed_alert_type is not None:
            suppressed = self.metadata.setdefault("suppressed_alert_types", {})
            suppressed[suppressed_alert_type] = suppressed.get(suppressed_alert_type, 0) + 1
        self.updated_at = utcnow()


def make_fingerprint(
    tenant_id: str,
    device_identifier: str,
    alert_type: str,
    source_id: Optional[str] = None,
) -> Fingerprint:
    return (tenant_id, device_identifier, alert_type, source_id)


def priority_for_severity(severity: str) -> str:
    """Incident priority for an alert severity."""
    if severity == Severity.CRITICAL:
        return Priority.URGENT
    return {
        Severity.HIGH: Priority.HIGH,
        Severity.MEDIUM: Priority.MEDIUM,
        Severity.LOW: Priority.LOW,
        Severity.INFO: Priority.INFO,
    }[severity]


@dataclass
class Incident:
    """Ticket opened by escalating an alert."""

    tenant_id: str
    title: str
    severity: str
    priority: str
    category: str
    source_alert_id: str
    created_by: str

    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    assignee: Optional[str] = None
    status: str = IncidentStatus.OPEN
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_INCIDENT_STATUSES


@dataclass(frozen=True)
class AuditEntry:
    """Append-only record of a state change."""

    tenant_id: str
    entity_type: str
    entity_id: str
    action: str
    actor_id: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass
class CorrelationCluster:
    """Alerts that share indicators inside the correlation window."""

    correlation_id: str
    tenant_id: str
    alert_ids: List[str]
    shared_indicators: List[str]
    confidence: float
    first_seen_at: datetime
    last_seen_at: datetime
