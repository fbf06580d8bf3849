"""
Alert Application DTOs
======================

Data Transfer Objects for the alert API layer.

Pydantic models for request/response validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from alert_triage.alerts.domain.entities import (
    AuditEntry,
    CorrelationCluster,
    Incident,
    NormalizedAlert,
)


# ========== Type Aliases for Literals ==========
SeverityStr = Literal["critical", "high", "medium", "low", "info"]
ResolutionOutcomeStr = Literal["benign", "false_positive"]


# ========== Request DTOs ==========

class AssignAlertRequest(BaseModel):
    """Manual (re)assignment."""
    analyst_id: str = Field(..., min_length=1, description="Directory id of the analyst")


class ResolveAlertRequest(BaseModel):
    """Close an alert without an incident."""
    outcome: ResolutionOutcomeStr = Field(..., description="benign or false_positive")
    notes: str = Field(..., description="Analyst notes (at least 10 characters)")


class EscalateAlertRequest(BaseModel):
    """Open an incident from an alert."""
    incident_title: Optional[str] = Field(None, max_length=500, description="Defaults to the alert title")
    incident_description: Optional[str] = Field(None, description="Defaults to the alert description")


# ========== Response DTOs ==========

class PlaybookRef(BaseModel):
    """Playbook recommended for an alert."""
    id: str
    name: str
    version: str
    is_primary: bool


class AlertResponse(BaseModel):
    """A normalized alert."""
    id: str
    tenant_id: str
    source_system: str
    source_id: Optional[str] = None
    alert_type: str
    classification: str
    severity: SeverityStr
    category: str
    title: str
    description: Optional[str] = None
    device_identifier: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    seen_count: int
    correlation_id: Optional[str] = None
    status: str
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    resolution_outcome: Optional[str] = None
    analyst_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    incident_id: Optional[str] = None
    detected_at: datetime
    first_seen_at: datetime
    last_seen_at: datetime
    created_at: datetime
    updated_at: datetime
    playbooks: Optional[List[PlaybookRef]] = None
    decision_guidance: Optional[Dict[str, str]] = None

    @classmethod
    def from_entity(
        cls,
        alert: NormalizedAlert,
        playbooks: Optional[List[Dict[str, Any]]] = None,
        decision_guidance: Optional[Dict[str, str]] = None,
    ) -> "AlertResponse":
        return cls(
            id=alert.id,
            tenant_id=alert.tenant_id,
            source_system=alert.source_system,
            source_id=alert.source_id,
            alert_type=alert.alert_type,
            classification=alert.classification,
            severity=alert.severity,
            category=alert.category,
            title=alert.title,
            description=alert.description,
            device_identifier=alert.device_identifier,
            metadata=alert.metadata,
            seen_count=alert.seen_count,
            correlation_id=alert.correlation_id,
            status=alert.status,
            assigned_to=alert.assigned_to,
            assigned_at=alert.assigned_at,
            resolution_outcome=alert.resolution_outcome,
            analyst_notes=alert.analyst_notes,
            resolved_at=alert.resolved_at,
            resolved_by=alert.resolved_by,
            incident_id=alert.incident_id,
            detected_at=alert.detected_at,
            first_seen_at=alert.first_seen_at,
            last_seen_at=alert.last_seen_at,
            created_at=alert.created_at,
            updated_at=alert.updated_at,
            playbooks=[PlaybookRef(**p) for p in playbooks] if playbooks is not None else None,
            decision_guidance=decision_guidance,
        )


class AlertListResponse(BaseModel):
    """A page of alerts."""
    alerts: List[AlertResponse]
    count: int
    limit: int
    offset: int


class EscalationResponse(BaseModel):
    """Incident opened by an escalation."""
    alert_id: str
    incident_id: str
    priority: str
    severity: str
    assignee: Optional[str] = None

    @classmethod
    def from_incident(cls, incident: Incident) -> "EscalationResponse":
        return cls(
            alert_id=incident.source_alert_id,
            incident_id=incident.id,
            priority=incident.priority,
            severity=incident.severity,
            assignee=incident.assignee,
        )


class AuditEntryResponse(BaseModel):
    """One audit trail entry."""
    id: str
    action: str
    actor_id: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime

    @classmethod
    def from_entity(cls, entry: AuditEntry) -> "AuditEntryResponse":
        return cls(
            id=entry.id,
            action=entry.action,
            actor_id=entry.actor_id,
            from_status=entry.from_status,
            to_status=entry.to_status,
            details=entry.details,
            occurred_at=entry.occurred_at,
        )


class CorrelationClusterResponse(BaseModel):
    """Alerts grouped by shared indicators."""
    correlation_id: str
    tenant_id: str
    alert_ids: List[str]
    shared_indicators: List[str]
    confidence: float = Field(..., ge=0.0, le=1.0)
    first_seen_at: datetime
    last_seen_at: datetime

    @classmethod
    def from_entity(cls, cluster: CorrelationCluster) -> "CorrelationClusterResponse":
        return cls(
            correlation_id=cluster.correlation_id,
            tenant_id=cluster.tenant_id,
            alert_ids=list(cluster.alert_ids),
            shared_indicators=list(cluster.shared_indicators),
            confidence=round(cluster.confidence, 4),
            first_seen_at=cluster.first_seen_at,
            last_seen_at=cluster.last_seen_at,
        )
