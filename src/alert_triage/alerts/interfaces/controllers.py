"""
Alert Controllers (API Routes)
==============================

FastAPI routes for alert review, lifecycle transitions and correlation
queries.

Controllers delegate to application services.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from alert_triage.alerts.application.dto import (
    AlertListResponse,
    AlertResponse,
    AssignAlertRequest,
    AuditEntryResponse,
    CorrelationClusterResponse,
    EscalateAlertRequest,
    EscalationResponse,
    ResolveAlertRequest,
)
from alert_triage.assignment.domain.policy import require_categories, visible_categories
from alert_triage.config import OPEN_STATUSES, SECURITY_CATEGORIES, TERMINAL_STATUSES
from alert_triage.container import ServiceContainer
from alert_triage.core import Actor, PermissionDeniedException, ValidationException
from alert_triage.shared.api.dependencies import get_container, get_current_actor
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/alerts", tags=["Alerts"])
correlations_router = APIRouter(prefix="/correlations", tags=["Correlation"])

ALL_STATUSES = OPEN_STATUSES + TERMINAL_STATUSES


# ========== Helpers ==========

async def _with_playbooks(container: ServiceContainer, alert) -> AlertResponse:
    attached = await container.playbooks.attach_to_alert(alert)
    guidance = attached.recommendation.decision_guidance
    return AlertResponse.from_entity(
        alert,
        playbooks=attached.playbook_summaries(),
        decision_guidance=guidance.to_dict() if guidance else None,
    )


# ========== Route Handlers ==========

@router.get(
    "",
    response_model=AlertListResponse,
    summary="List alerts",
    description="Alerts in the caller's tenant, restricted to the categories the caller's role can see.",
)
async def list_alerts(
    status: Optional[List[str]] = Query(None, description="Filter by status (repeatable)"),
    category: Optional[List[str]] = Query(None, description="Filter by category (repeatable)"),
    assigned_to: Optional[str] = Query(None, description="Filter by assignee"),
    tenant_id: Optional[str] = Query(None, description="Tenant to list (super admins only)"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> AlertListResponse:
    if status:
        unknown = [s for s in status if s not in ALL_STATUSES]
        if unknown:
            raise ValidationException(f"Unknown status: {', '.join(unknown)}", {"status": unknown})

    categories = require_categories(actor.role, category) if category else visible_categories(actor.role)

    if actor.is_super_admin:
        scope = tenant_id
    else:
        if tenant_id is not None and tenant_id != actor.tenant_id:
            raise PermissionDeniedException("Cannot list another tenant's alerts", {"tenant_id": tenant_id})
        scope = actor.tenant_id

    alerts = await container.alerts.list(
        scope,
        statuses=status or None,
        categories=categories,
        assigned_to=assigned_to,
        limit=limit,
        offset=offset,
    )
    return AlertListResponse(
        alerts=[AlertResponse.from_entity(a) for a in alerts],
        count=len(alerts),
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{alert_id}",
    response_model=AlertResponse,
    summary="Get alert with recommended playbooks",
)
async def get_alert(
    alert_id: str,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> AlertResponse:
    alert = await container.state_machine.get_alert(actor, alert_id)
    return await _with_playbooks(container, alert)


@router.post(
    "/{alert_id}/assign",
    response_model=AlertResponse,
    summary="Assign alert to an analyst",
)
async def assign_alert(
    alert_id: str,
    request: AssignAlertRequest,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> AlertResponse:
    alert = await container.scheduler.assign_manually(actor, alert_id, request.analyst_id)
    return AlertResponse.from_entity(alert)


@router.post(
    "/{alert_id}/investigate",
    response_model=AlertResponse,
    summary="Start investigating an alert",
)
async def investigate_alert(
    alert_id: str,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> AlertResponse:
    alert = await container.state_machine.start_investigation(actor, alert_id)
    return AlertResponse.from_entity(alert)


@router.post(
    "/{alert_id}/resolve",
    response_model=AlertResponse,
    summary="Resolve alert as benign or false positive",
)
async def resolve_alert(
    alert_id: str,
    request: ResolveAlertRequest,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> AlertResponse:
    alert = await container.state_machine.resolve(actor, alert_id, request.outcome, request.notes)
    return AlertResponse.from_entity(alert)


@router.post(
    "/{alert_id}/escalate",
    response_model=EscalationResponse,
    status_code=201,
    summary="Escalate alert to an incident",
)
async def escalate_alert(
    alert_id: str,
    request: Optional[EscalateAlertRequest] = None,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> EscalationResponse:
    request = request or EscalateAlertRequest()
    incident = await container.state_machine.escalate(
        actor,
        alert_id,
        incident_title=request.incident_title,
        incident_description=request.incident_description,
    )
    return EscalationResponse.from_incident(incident)


@router.get(
    "/{alert_id}/audit",
    response_model=List[AuditEntryResponse],
    summary="Audit trail of an alert",
)
async def alert_audit_trail(
    alert_id: str,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> List[AuditEntryResponse]:
    entries = await container.state_machine.audit_trail(actor, alert_id)
    return [AuditEntryResponse.from_entity(e) for e in entries]


@correlations_router.get(
    "",
    response_model=List[CorrelationClusterResponse],
    summary="Query correlated alert clusters",
)
async def list_correlations(
    start: Optional[datetime] = Query(None, description="Window start (default: 24h ago)"),
    end: Optional[datetime] = Query(None, description="Window end (default: now)"),
    min_confidence: float = Query(0.0, ge=0.0, le=1.0),
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> List[CorrelationClusterResponse]:
    if not any(c in SECURITY_CATEGORIES for c in visible_categories(actor.role)):
        raise PermissionDeniedException("Role cannot view security correlations", {"role": actor.role})

    end = _aware(end) or datetime.now(timezone.utc)
    start = _aware(start) or end - timedelta(hours=24)
    if start > end:
        raise ValidationException("start must not be after end", {"start": start.isoformat(), "end": end.isoformat()})

    clusters = await container.correlator.query(
        None if actor.is_super_admin else actor.tenant_id,
        start,
        end,
        min_confidence,
    )
    return [CorrelationClusterResponse.from_entity(c) for c in clusters]


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
