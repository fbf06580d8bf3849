"""Assignment application layer."""

from alert_triage.assignment.application.services import AssignmentScheduler, IAnalystDirectory

__all__ = ["AssignmentScheduler", "IAnalystDirectory"]
