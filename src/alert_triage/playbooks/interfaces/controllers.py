"""
Playbook Controllers (API Routes)
=================================

FastAPI routes for playbook management and classification guidance.

Reads are open to every authenticated role; writes require super admin,
which the service enforces.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response

from alert_triage.container import ServiceContainer
from alert_triage.core import Actor
from alert_triage.playbooks.application.dto import (
    ClassificationSummaryRow,
    CreatePlaybookRequest,
    GuidanceResponse,
    PlaybookResponse,
    UpdatePlaybookRequest,
)
from alert_triage.shared.api.dependencies import get_container, get_current_actor

router = APIRouter(prefix="/playbooks", tags=["Playbooks"])


@router.get("", response_model=List[PlaybookResponse], summary="List playbooks")
async def list_playbooks(
    status: Optional[str] = Query(None, description="draft, active or retired"),
    classification: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> List[PlaybookResponse]:
    playbooks = await container.playbooks.list(status=status, classification=classification)
    return [PlaybookResponse.from_entity(p) for p in playbooks]


@router.post("", response_model=PlaybookResponse, status_code=201, summary="Create playbook")
async def create_playbook(
    request: CreatePlaybookRequest,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> PlaybookResponse:
    playbook = await container.playbooks.create(
        actor,
        name=request.name,
        version=request.version,
        purpose=request.purpose,
        decision_guidance=request.decision_guidance.to_domain(),
        classifications=[c.to_domain() for c in request.classifications],
        status=request.status,
        quick_response_guide=request.quick_response_guide,
        initial_validation_steps=request.initial_validation_steps,
        source_investigation_steps=request.source_investigation_steps,
        containment_checks=request.containment_checks,
    )
    return PlaybookResponse.from_entity(playbook)


@router.get(
    "/guidance/{classification}",
    response_model=GuidanceResponse,
    summary="Playbooks and decision guidance for a classification",
)
async def get_guidance(
    classification: str,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> GuidanceResponse:
    recommendation = await container.playbooks.resolve(classification)
    return GuidanceResponse.from_recommendation(recommendation)


@router.get(
    "/classifications/summary",
    response_model=Dict[str, ClassificationSummaryRow],
    summary="Active playbook coverage per classification",
)
async def classification_summary(
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, ClassificationSummaryRow]:
    summary = await container.playbooks.classification_summary()
    return {k: ClassificationSummaryRow(**v) for k, v in summary.items()}


@router.get("/versions/{name}", response_model=List[PlaybookResponse], summary="All versions of a playbook")
async def playbook_versions(
    name: str,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> List[PlaybookResponse]:
    return [PlaybookResponse.from_entity(p) for p in await container.playbooks.versions(name)]


@router.get("/{playbook_id}", response_model=PlaybookResponse, summary="Get playbook")
async def get_playbook(
    playbook_id: str,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> PlaybookResponse:
    return PlaybookResponse.from_entity(await container.playbooks.get(playbook_id))


@router.put("/{playbook_id}", response_model=PlaybookResponse, summary="Update playbook")
async def update_playbook(
    playbook_id: str,
    request: UpdatePlaybookRequest,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> PlaybookResponse:
    playbook = await container.playbooks.update(actor, playbook_id, request.to_changes())
    return PlaybookResponse.from_entity(playbook)


@router.delete("/{playbook_id}", status_code=204, summary="Delete playbook")
async def delete_playbook(
    playbook_id: str,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> Response:
    await container.playbooks.delete(actor, playbook_id)
    return Response(status_code=204)


@router.post("/{playbook_id}/activate", response_model=PlaybookResponse, summary="Activate playbook")
async def activate_playbook(
    playbook_id: str,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> PlaybookResponse:
    return PlaybookResponse.from_entity(await container.playbooks.activate(actor, playbook_id))


@router.post("/{playbook_id}/retire", response_model=PlaybookResponse, summary="Retire playbook")
async def retire_playbook(
    playbook_id: str,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> PlaybookResponse:
    return PlaybookResponse.from_entity(await container.playbooks.retire(actor, playbook_id))
