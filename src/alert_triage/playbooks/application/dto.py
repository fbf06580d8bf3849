"""
Playbook Application DTOs
=========================

Data Transfer Objects for the playbook API layer.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from alert_triage.playbooks.domain.entities import (
    ClassificationLink,
    DecisionGuidance,
    Playbook,
    PlaybookRecommendation,
)


# ========== Type Aliases for Literals ==========
PlaybookStatusStr = Literal["draft", "active", "retired"]


# ========== Shared ==========

class DecisionGuidanceModel(BaseModel):
    """Escalation and resolution criteria."""
    escalate_to_incident: str
    resolve_benign: str
    resolve_false_positive: str

    def to_domain(self) -> DecisionGuidance:
        return DecisionGuidance(**self.model_dump())


class ClassificationLinkModel(BaseModel):
    """Link from a playbook to an alert classification."""
    classification: str = Field(..., min_length=1)
    is_primary: bool = False

    def to_domain(self) -> ClassificationLink:
        return ClassificationLink(classification=self.classification, is_primary=self.is_primary)


# ========== Request DTOs ==========

class CreatePlaybookRequest(BaseModel):
    """New playbook."""
    name: str
    version: str
    purpose: str
    status: Literal["draft", "active"] = "draft"
    quick_response_guide: List[str] = Field(default_factory=list)
    initial_validation_steps: List[str] = Field(default_factory=list)
    source_investigation_steps: List[str] = Field(default_factory=list)
    containment_checks: List[str] = Field(default_factory=list)
    decision_guidance: DecisionGuidanceModel
    classifications: List[ClassificationLinkModel] = Field(default_factory=list)


class UpdatePlaybookRequest(BaseModel):
    """Partial playbook update; omitted fields are left unchanged."""
    name: Optional[str] = None
    version: Optional[str] = None
    purpose: Optional[str] = None
    quick_response_guide: Optional[List[str]] = None
    initial_validation_steps: Optional[List[str]] = None
    source_investigation_steps: Optional[List[str]] = None
    containment_checks: Optional[List[str]] = None
    decision_guidance: Optional[DecisionGuidanceModel] = None
    classifications: Optional[List[ClassificationLinkModel]] = None

    def to_changes(self) -> Dict[str, object]:
        changes: Dict[str, object] = self.model_dump(
            exclude_unset=True,
            exclude={"decision_guidance", "classifications"},
        )
        if self.decision_guidance is not None:
            changes["decision_guidance"] = self.decision_guidance.to_domain()
        if self.classifications is not None:
            changes["classifications"] = [c.to_domain() for c in self.classifications]
        return changes


# ========== Response DTOs ==========

class PlaybookResponse(BaseModel):
    """A playbook with its classification links."""
    id: str
    name: str
    version: str
    status: PlaybookStatusStr
    purpose: str
    quick_response_guide: List[str]
    initial_validation_steps: List[str]
    source_investigation_steps: List[str]
    containment_checks: List[str]
    decision_guidance: DecisionGuidanceModel
    classifications: List[ClassificationLinkModel]
    created_by: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, playbook: Playbook) -> "PlaybookResponse":
        return cls(
            id=playbook.id,
            name=playbook.name,
            version=playbook.version,
            status=playbook.status,
            purpose=playbook.purpose,
            quick_response_guide=playbook.quick_response_guide,
            initial_validation_steps=playbook.initial_validation_steps,
            source_investigation_steps=playbook.source_investigation_steps,
            containment_checks=playbook.containment_checks,
            decision_guidance=DecisionGuidanceModel(**playbook.decision_guidance.to_dict()),
            classifications=[
                ClassificationLinkModel(classification=c.classification, is_primary=c.is_primary)
                for c in playbook.classifications
            ],
            created_by=playbook.created_by,
            created_at=playbook.created_at,
            updated_at=playbook.updated_at,
        )


class GuidanceResponse(BaseModel):
    """Playbooks recommended for one classification."""
    classification: str
    primary: Optional[PlaybookResponse] = None
    secondary: List[PlaybookResponse] = Field(default_factory=list)
    decision_guidance: Optional[DecisionGuidanceModel] = None

    @classmethod
    def from_recommendation(cls, recommendation: PlaybookRecommendation) -> "GuidanceResponse":
        guidance = recommendation.decision_guidance
        return cls(
            classification=recommendation.classification,
            primary=PlaybookResponse.from_entity(recommendation.primary) if recommendation.primary else None,
            secondary=[PlaybookResponse.from_entity(p) for p in recommendation.secondary],
            decision_guidance=DecisionGuidanceModel(**guidance.to_dict()) if guidance else None,
        )


class ClassificationSummaryRow(BaseModel):
    """Coverage of one classification by active playbooks."""
    primary_playbook_id: Optional[str] = None
    playbook_count: int
