"""Playbook persistence: SQLAlchemy models and repositories, plus the in-memory store."""

from alert_triage.playbooks.infrastructure.memory import InMemoryPlaybookRepository
from alert_triage.playbooks.infrastructure.models import PlaybookClassificationLinkModel, PlaybookModel
from alert_triage.playbooks.infrastructure.repositories import SQLAlchemyPlaybookRepository

__all__ = [
    "InMemoryPlaybookRepository",
    "PlaybookClassificationLinkModel",
    "PlaybookModel",
    "SQLAlchemyPlaybookRepository",
]
