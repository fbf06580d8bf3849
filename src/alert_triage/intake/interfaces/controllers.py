"""
Intake Controllers (API Routes)
===============================

Webhook endpoint for sources that push alerts instead of being polled.
"""

from fastapi import APIRouter, Depends, Path
from pydantic import ValidationError

from alert_triage.config import Role, SOURCE_SYSTEMS
from alert_triage.container import ServiceContainer
from alert_triage.core import Actor, PermissionDeniedException, ValidationException
from alert_triage.intake.application.dto import IngestResultResponse, WebhookIntakeRequest
from alert_triage.intake.domain.payloads import RawAlertIntake
from alert_triage.shared.api.dependencies import get_container, get_current_actor
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/intake", tags=["Intake"])


# ========== Example payloads for Swagger ==========

INGEST_RESPONSE_EXAMPLE = {
    "alert_id": "5b0f7c2e-8d7a-4a51-9a43-0c1f3e2d9b10",
    "created": True,
    "merged": False,
    "suppressed": False,
    "storm_triggered": False,
    "needs_review": False,
    "seen_count": 1,
    "alert_type": "vpn_down",
    "classification": "connectivity",
    "severity": "critical",
    "device_identifier": "C0EAE4B2C3F1",
    "status": "assigned",
    "assigned_to": "analyst-7",
    "correlation_id": None,
}


# ========== Route Handlers ==========

@router.post(
    "/{source_system}",
    response_model=IngestResultResponse,
    summary="Push one alert into triage",
    description=(
        "Classifies, deduplicates, correlates and assigns the alert. "
        "Repeat deliveries merge into the open alert and return created=false."
    ),
    responses={
        200: {
            "description": "Alert triaged",
            "content": {"application/json": {"example": INGEST_RESPONSE_EXAMPLE}},
        },
        422: {"description": "Unknown source system or invalid payload"},
    },
)
async def ingest_alert(
    request: WebhookIntakeRequest,
    source_system: str = Path(..., description=f"One of {SOURCE_SYSTEMS}"),
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> IngestResultResponse:
    if source_system not in SOURCE_SYSTEMS:
        raise ValidationException(
            f"Unknown source system '{source_system}'",
            {"source_system": source_system, "allowed": SOURCE_SYSTEMS}
        )
    if actor.role == Role.USER:
        raise PermissionDeniedException("Users cannot submit alerts", {"role": actor.role})

    tenant_id = actor.tenant_id
    if request.tenant_id and request.tenant_id != actor.tenant_id:
        if not actor.is_super_admin:
            raise PermissionDeniedException(
                "Cannot submit alerts for another tenant",
                {"tenant_id": request.tenant_id}
            )
        tenant_id = request.tenant_id

    try:
        intake = RawAlertIntake(
            tenant_id=tenant_id,
            source_id=request.source_id,
            connector_id=request.connector_id,
            payload={**request.payload, "source_system": source_system},
        )
    except ValidationError as e:
        raise ValidationException(
            f"Invalid {source_system} payload",
            {"errors": e.errors(include_url=False, include_context=False)}
        ) from e

    result = await container.pipeline.ingest(intake)
    logger.info(
        "Webhook alert ingested",
        extra={
            "alert_id": result.alert.id,
            "source_system": source_system,
            "new_alert": result.created,
            "actor_id": actor.user_id,
        }
    )
    return IngestResultResponse(**result.to_dict())
