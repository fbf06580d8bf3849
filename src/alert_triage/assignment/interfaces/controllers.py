"""
Assignment Controllers (API Routes)
===================================

Category visibility checks and analyst directory sync.
"""

from fastapi import APIRouter, Depends

from alert_triage.assignment.application.dto import (
    AnalystResponse,
    CategoryAccessResponse,
    CategoryCheckRequest,
    RegisterAnalystRequest,
)
from alert_triage.assignment.domain.policy import require_categories
from alert_triage.container import ServiceContainer
from alert_triage.core import Actor, ValidationException
from alert_triage.shared.api.dependencies import get_container, get_current_actor

router = APIRouter(prefix="/assignment", tags=["Assignment"])


@router.get("/categories", response_model=CategoryAccessResponse, summary="Categories visible to the caller")
async def get_categories(
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> CategoryAccessResponse:
    return CategoryAccessResponse(role=actor.role, categories=container.scheduler.categories_for(actor))


@router.post(
    "/categories/check",
    response_model=CategoryAccessResponse,
    summary="Validate a category filter",
    responses={403: {"description": "A category is outside the caller's role"}},
)
async def check_categories(
    request: CategoryCheckRequest,
    actor: Actor = Depends(get_current_actor),
) -> CategoryAccessResponse:
    return CategoryAccessResponse(role=actor.role, categories=require_categories(actor.role, request.categories))


@router.put("/analysts", response_model=AnalystResponse, summary="Create or update an analyst record")
async def register_analyst(
    request: RegisterAnalystRequest,
    actor: Actor = Depends(get_current_actor),
    container: ServiceContainer = Depends(get_container),
) -> AnalystResponse:
    try:
        analyst = request.to_domain()
    except ValueError as e:
        raise ValidationException(str(e), {"role": request.role}) from e
    return AnalystResponse.from_entity(await container.scheduler.register_analyst(actor, analyst))
