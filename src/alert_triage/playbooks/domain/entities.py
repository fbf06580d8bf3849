"""
Playbook Domain Entities
========================

Investigation playbooks and their links to alert classifications.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from alert_triage.alerts.domain.entities import NormalizedAlert, new_id, utcnow
from alert_triage.config import PlaybookStatus
from alert_triage.core import ValidationException


@dataclass
class DecisionGuidance:
    """When to escalate, and when each resolution outcome applies."""

    escalate_to_incident: str
    resolve_benign: str
    resolve_false_positive: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "escalate_to_incident": self.escalate_to_incident,
            "resolve_benign": self.resolve_benign,
            "resolve_false_positive": self.resolve_false_positive,
        }


@dataclass
class ClassificationLink:
    """Associates a playbook with one alert classification."""

    classification: str
    is_primary: bool = False


@dataclass
class Playbook:
    """Versioned investigation procedure."""

    name: str
    version: str
    purpose: str
    decision_guidance: DecisionGuidance
    created_by: str

    id: str = field(default_factory=new_id)
    status: str = PlaybookStatus.DRAFT
    quick_response_guide: List[str] = field(default_factory=list)
    initial_validation_steps: List[str] = field(default_factory=list)
    source_investigation_steps: List[str] = field(default_factory=list)
    containment_checks: List[str] = field(default_factory=list)
    classifications: List[ClassificationLink] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == PlaybookStatus.ACTIVE

    @property
    def primary_classifications(self) -> List[str]:
        return [link.classification for link in self.classifications if link.is_primary]

    def validate(self) -> None:
        """
        Check required content.

        Raises:
            ValidationException: on a missing field or link
        """
        for name in ("name", "version", "purpose"):
            if not (getattr(self, name) or "").strip():
                raise ValidationException(f"Playbook {name} is required", {"field": name})

        guidance = self.decision_guidance.to_dict()
        missing = [key for key, text in guidance.items() if not (text or "").strip()]
        if missing:
            raise ValidationException(
                "Decision guidance must cover escalation and both resolution outcomes",
                {"missing": missing}
            )

        if not self.classifications:
            raise ValidationException("At least one classification must be linked to the playbook")
        if not self.primary_classifications:
            raise ValidationException("At least one classification must be marked as primary")

        seen = set()
        for link in self.classifications:
            if not link.classification.strip():
                raise ValidationException("Classification names cannot be empty")
            if link.classification in seen:
                raise ValidationException(
                    f"Classification '{link.classification}' is linked more than once",
                    {"classification": link.classification}
                )
            seen.add(link.classification)


@dataclass
class PlaybookRecommendation:
    """Playbooks that apply to one classification."""

    classification: str
    primary: Optional[Playbook] = None
    secondary: List[Playbook] = field(default_factory=list)

    @property
    def decision_guidance(self) -> Optional[DecisionGuidance]:
        return self.primary.decision_guidance if self.primary else None


@dataclass
class AlertWithPlaybooks:
    """An alert together with the playbooks recommended for it."""

    alert: NormalizedAlert
    recommendation: PlaybookRecommendation

    def playbook_summaries(self) -> List[Dict[str, Any]]:
        rows = []
        if self.recommendation.primary:
            rows.append(_summary(self.recommendation.primary, True))
        rows.extend(_summary(p, False) for p in self.recommendation.secondary)
        return rows


def _summary(playbook: Playbook, is_primary: bool) -> Dict[str, Any]:
    return {
        "id": playbook.id,
        "name": playbook.name,
        "version": playbook.version,
        "is_primary": is_primary,
    }
