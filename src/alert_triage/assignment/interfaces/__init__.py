"""Assignment routes."""

from alert_triage.assignment.interfaces.controllers import router as assignment_router

__all__ = ["assignment_router"]
