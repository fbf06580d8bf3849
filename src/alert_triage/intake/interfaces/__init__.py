"""
Intake Interfaces Layer
=======================

Webhook route for push-based sources.
"""

from alert_triage.intake.interfaces.controllers import router as intake_router

__all__ = ["intake_router"]
