"""Playbook management routes."""

from alert_triage.playbooks.interfaces.controllers import router as playbooks_router

__all__ = ["playbooks_router"]
