"""Playbook entities and recommendation value objects."""

from alert_triage.playbooks.domain.entities import (
    AlertWithPlaybooks,
    ClassificationLink,
    DecisionGuidance,
    Playbook,
    PlaybookRecommendation,
)

__all__ = [
    "AlertWithPlaybooks",
    "ClassificationLink",
    "DecisionGuidance",
    "Playbook",
    "PlaybookRecommendation",
]
