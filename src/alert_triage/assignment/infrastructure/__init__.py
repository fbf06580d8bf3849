"""
Assignment Infrastructure Layer
===============================

Analyst directory backed by SQLAlchemy or process memory.
"""

from alert_triage.assignment.infrastructure.memory import InMemoryAnalystDirectory
from alert_triage.assignment.infrastructure.models import AnalystModel
from alert_triage.assignment.infrastructure.repositories import SQLAlchemyAnalystDirectory

__all__ = ["InMemoryAnalystDirectory", "AnalystModel", "SQLAlchemyAnalystDirectory"]
