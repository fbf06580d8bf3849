"""
Alerts Interfaces Layer
=======================

Alert review and lifecycle routes, plus the correlation query.
"""

from alert_triage.alerts.interfaces.controllers import correlations_router, router as alerts_router

__all__ = ["alerts_router", "correlations_router"]
