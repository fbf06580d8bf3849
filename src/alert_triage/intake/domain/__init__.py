"""
Intake Domain Layer
===================

Source payloads, classification rule tables and the classified candidate.
No I/O here.
"""

from alert_triage.intake.domain.entities import AlertCandidate, NEEDS_REVIEW, UNKNOWN_DEVICE
from alert_triage.intake.domain.payloads import (
    EdrPayload,
    EmailPayload,
    FirewallPayload,
    RawAlertIntake,
    SiemPayload,
)
from alert_triage.intake.domain.rules import (
    ClassificationRuleConfig,
    SeverityTableConfig,
    TriageRulesConfig,
    UtilizationThresholds,
)

__all__ = [
    # Entities
    "AlertCandidate",
    "NEEDS_REVIEW",
    "UNKNOWN_DEVICE",
    # Payloads
    "EdrPayload",
    "EmailPayload",
    "FirewallPayload",
    "RawAlertIntake",
    "SiemPayload",
    # Rules
    "ClassificationRuleConfig",
    "SeverityTableConfig",
    "TriageRulesConfig",
    "UtilizationThresholds",
]
