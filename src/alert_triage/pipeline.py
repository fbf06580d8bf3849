"""
Triage Pipeline
===============

Single entry point for an incoming alert, whether it was polled from a
connector or pushed to the webhook:

    classify -> deduplicate -> correlate -> assign

Correlation is advisory: its failures are logged and never block the
alert. Assignment only runs for newly created alerts.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from alert_triage.alerts.application.services import (
    CorrelationService,
    Deduplicator,
)
from alert_triage.alerts.domain.entities import NormalizedAlert
from alert_triage.assignment.application.services import AssignmentScheduler
from alert_triage.intake.application.classifier import Classifier
from alert_triage.intake.domain.payloads import RawAlertIntake
from alert_triage.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)


@dataclass
class IngestResult:
    """What happened to one intake."""
    alert: NormalizedAlert
    created: bool
    suppressed: bool = False
    storm_triggered: bool = False
    needs_review: bool = False
    assigned_to: Optional[str] = None

    @property
    def merged(self) -> bool:
        return not self.created

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert.id,
            "created": self.created,
            "merged": self.merged,
            "suppressed": self.suppressed,
            "storm_triggered": self.storm_triggered,
            "needs_review": self.needs_review,
            "seen_count": self.alert.seen_count,
            "alert_type": self.alert.alert_type,
            "classification": self.alert.classification,
            "severity": self.alert.severity,
            "device_identifier": self.alert.device_identifier,
            "status": self.alert.status,
            "assigned_to": self.alert.assigned_to,
            "correlation_id": self.alert.correlation_id,
        }


class TriagePipeline:
    """Runs one intake through the triage stages."""

    def __init__(
        self,
        classifier: Classifier,
        deduplicator: Deduplicator,
        correlator: Optional[CorrelationService] = None,
        scheduler: Optional[AssignmentScheduler] = None,
    ):
        self.classifier = classifier
        self.deduplicator = deduplicator
        self.correlator = correlator
        self.scheduler = scheduler

    async def ingest(self, intake: RawAlertIntake) -> IngestResult:
        with log_latency(logger, "triage_ingest", source_system=intake.source_system):
            candidate = self.classifier.classify(intake)
            outcome = await self.deduplicator.ingest(candidate)
            alert = outcome.alert

            if self.correlator is not None:
                try:
                    await self.correlator.correlate(alert)
                except Exception as e:
                    logger.error(
                        "Correlation failed",
                        extra={"alert_id": alert.id, "error": str(e)},
                        exc_info=True,
                    )

            assigned_to = None
            if outcome.created and self.scheduler is not None:
                assigned_to = await self.scheduler.assign(alert)

            return IngestResult(
                alert=alert,
                created=outcome.created,
                suppressed=outcome.suppressed,
                storm_triggered=outcome.storm_triggered,
                needs_review=candidate.needs_review,
                assigned_to=assigned_to,
            )
