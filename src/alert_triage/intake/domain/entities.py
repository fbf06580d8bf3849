"""
Intake Domain Entities
======================

Output of classification: a candidate alert that has not been persisted
or deduplicated yet.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from alert_triage.config import SEVERITIES

UNKNOWN_DEVICE = "unknown"
NEEDS_REVIEW = "needs_review"


@dataclass
class AlertCandidate:
    """
    Normalized view of one raw alert.

    ``device_identifier`` is never empty; ``UNKNOWN_DEVICE`` is used when
    nothing identifying could be extracted.
    """

    tenant_id: str
    source_system: str
    alert_type: str
    classification: str
    severity: str
    title: str
    device_identifier: str
    detected_at: datetime
    description: Optional[str] = None
    source_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    matched_rule: Optional[str] = None

    def __post_init__(self):
        if self.severity not in SEVERITIES:
            raise ValueError(f"invalid severity '{self.severity}'")
        if not self.device_identifier:
            self.device_identifier = UNKNOWN_DEVICE

    @property
    def needs_review(self) -> bool:
        return self.classification == NEEDS_REVIEW
