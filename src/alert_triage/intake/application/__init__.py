"""Intake application layer: the classifier and webhook DTOs."""

from alert_triage.intake.application.classifier import Classifier, ITriageRulesProvider
from alert_triage.intake.application.dto import IngestResultResponse, WebhookIntakeRequest

__all__ = [
    "Classifier",
    "ITriageRulesProvider",
    "IngestResultResponse",
    "WebhookIntakeRequest",
]
