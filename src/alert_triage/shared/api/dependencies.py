"""
API Dependencies
================

FastAPI dependencies for the service container and the calling user.

The caller's identity is established upstream; this service trusts the
``X-User-Id``, ``X-User-Role`` and ``X-Tenant-Id`` headers it forwards.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from alert_triage.container import ServiceContainer
from alert_triage.core import Actor


def get_container(request: Request) -> ServiceContainer:
    """Service container from app state."""
    container = getattr(request.app.state, "container", None)
    if container is None or not container.started:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services not initialized"
        )
    return container


def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_tenant_id: Optional[str] = Header(None),
) -> Actor:
    """Authenticated caller from the forwarded identity headers."""
    if not x_user_id or not x_user_role or not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers (X-User-Id, X-User-Role, X-Tenant-Id)"
        )
    try:
        return Actor(user_id=x_user_id, role=x_user_role, tenant_id=x_tenant_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e
