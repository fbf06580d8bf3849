"""
Alert Application Services
==========================

Deduplication, alert storm suppression and indicator correlation.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional, Set, Tuple

from alert_triage.alerts.application.repositories import (
    IAlertRepository,
    ICorrelationRepository,
)
from alert_triage.alerts.domain.entities import (
    CorrelationCluster,
    NormalizedAlert,
    make_fingerprint,
    new_id,
    utcnow,
)
from alert_triage.alerts.domain.indicators import extract_indicators
from alert_triage.assignment.domain.policy import category_for_classification
from alert_triage.config import Severity
from alert_triage.intake.domain.entities import AlertCandidate
from alert_triage.shared.infrastructure.locks import KeyedLock
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

STORM_ALERT_TYPE = "alert_storm_detected"
STORM_CLASSIFICATION = "alert_storm"


@dataclass
class IngestOutcome:
    """What the deduplicator did with one candidate."""
    alert: NormalizedAlert
    created: bool
    suppressed: bool = False
    storm_triggered: bool = False

    @property
    def merged(self) -> bool:
        return not self.created


# ========== Storm detection ==========

class StormDetector:
    """
    Sliding-window counter of new alerts per device.

    More than ``threshold`` new alerts for one device inside ``window``
    opens a suppression period of ``suppression`` during which further new
    alerts for that device fold into the storm meta-alert.
    """

    def __init__(
        self,
        threshold: int = 10,
        window: timedelta = timedelta(minutes=5),
        suppression: timedelta = timedelta(minutes=15),
    ):
        self.threshold = threshold
        self.window = window
        self.suppression = suppression
        self._arrivals: Dict[Tuple[str, str], Deque[datetime]] = {}
        self._suppressed: Dict[Tuple[str, str], Tuple[datetime, str]] = {}

    def active_storm(self, tenant_id: str, device: str, now: datetime) -> Optional[str]:
        """Storm alert id while ``device`` is suppressed, else None."""
        key = (tenant_id, device)
        entry = self._suppressed.get(key)
        if entry is None:
            return None
        until, storm_alert_id = entry
        if now >= until:
            del self._suppressed[key]
            return None
        return storm_alert_id

    def record_arrival(self, tenant_id: str, device: str, now: datetime) -> bool:
        """Count one new alert; True when this arrival crosses the threshold."""
        key = (tenant_id, device)
        arrivals = self._arrivals.setdefault(key, deque())
        arrivals.append(now)
        cutoff = now - self.window
        while arrivals and arrivals[0] <= cutoff:
            arrivals.popleft()
        return len(arrivals) > self.threshold

    def begin_suppression(self, tenant_id: str, device: str, storm_alert_id: str, now: datetime) -> None:
        key = (tenant_id, device)
        self._suppressed[key] = (now + self.suppression, storm_alert_id)
        self._arrivals.pop(key, None)

    def end_suppression(self, tenant_id: str, device: str) -> None:
        self._suppressed.pop((tenant_id, device), None)


# ========== Deduplicator ==========

class Deduplicator:
    """
    Match-or-create for classified candidates.

    A candidate whose fingerprint matches an open alert last seen inside
    the dedup window is merged into it. Otherwise a new alert is created,
    unless the device is in an alert storm, in which case it is folded
    into the storm meta-alert.

    The whole step runs under a per-device lock, which also serializes
    every fingerprint on that device. Writes to an existing alert also
    take that alert's lock, shared with the state machine, so a merge
    never interleaves with a transition.
    """

    def __init__(
        self,
        alert_repository: IAlertRepository,
        window: timedelta = timedelta(hours=24),
        storm_detector: Optional[StormDetector] = None,
        locks: Optional[KeyedLock] = None,
        alert_locks: Optional[KeyedLock] = None,
    ):
        self._alerts = alert_repository
        self.window = window
        self._storms = storm_detector
        self._locks = locks or KeyedLock("device")
        self._alert_locks = alert_locks or KeyedLock("alert")

    async def ingest(self, candidate: AlertCandidate, now: Optional[datetime] = None) -> IngestOutcome:
        now = now or utcnow()
        async with self._locks.hold((candidate.tenant_id, candidate.device_identifier)):
            existing = await self._alerts.find_open_by_fingerprint(
                make_fingerprint(
                    candidate.tenant_id,
                    candidate.device_identifier,
                    candidate.alert_type,
                    candidate.source_id,
                ),
                seen_since=now - self.window,
            )
            if existing is not None:
                merged = await self._merge(existing.id, candidate, now)
                if merged is not None:
                    logger.info(
                        "Duplicate alert merged",
                        extra={
                            "alert_id": merged.id,
                            "tenant_id": merged.tenant_id,
                            "seen_count": merged.seen_count,
                        }
                    )
                    return IngestOutcome(alert=merged, created=False)
                logger.info(
                    "Matched alert closed before merge",
                    extra={"alert_id": existing.id, "tenant_id": existing.tenant_id}
                )

            if self._storms is not None:
                outcome = await self._apply_storm_rules(candidate, now)
                if outcome is not None:
                    return outcome

            alert = self._new_alert(candidate, now)
            await self._alerts.add(alert)
            logger.info(
                "Alert created",
                extra={
                    "alert_id": alert.id,
                    "tenant_id": alert.tenant_id,
                    "alert_type": alert.alert_type,
                    "severity": alert.severity,
                    "device": alert.device_identifier,
                }
            )
            return IngestOutcome(alert=alert, created=True)

    async def _merge(
        self,
        alert_id: str,
        candidate: AlertCandidate,
        now: datetime,
        suppressed: bool = False,
    ) -> Optional[NormalizedAlert]:
        """Repeat onto a stored alert; None once it has left the open states."""
        async with self._alert_locks.hold(alert_id):
            return await self._alerts.record_repeat(
                alert_id,
                {} if suppressed else candidate.metadata,
                now,
                suppressed_alert_type=candidate.alert_type if suppressed else None,
            )

    async def _apply_storm_rules(self, candidate: AlertCandidate, now: datetime) -> Optional[IngestOutcome]:
        tenant_id, device = candidate.tenant_id, candidate.device_identifier

        storm_id = self._storms.active_storm(tenant_id, device, now)
        if storm_id is not None:
            storm = await self._merge(storm_id, candidate, now, suppressed=True)
            if storm is not None:
                return IngestOutcome(alert=storm, created=False, suppressed=True)
            self._storms.end_suppression(tenant_id, device)

        if not self._storms.record_arrival(tenant_id, device, now):
            return None

        storm_fingerprint = make_fingerprint(tenant_id, device, STORM_ALERT_TYPE)
        existing = await self._alerts.find_open_by_fingerprint(storm_fingerprint, now - self.window)
        storm = None
        if existing is not None:
            storm = await self._merge(existing.id, candidate, now, suppressed=True)
        created = storm is None
        if storm is None:
            storm = NormalizedAlert(
                tenant_id=tenant_id,
                source_system=candidate.source_system,
                alert_type=STORM_ALERT_TYPE,
                classification=STORM_CLASSIFICATION,
                severity=Severity.HIGH,
                title=f"Alert storm detected on {device}",
                description=(
                    f"More than {self._storms.threshold} alerts from {device} within "
                    f"{int(self._storms.window.total_seconds() // 60)} minutes; further alerts "
                    f"are folded into this one for "
                    f"{int(self._storms.suppression.total_seconds() // 60)} minutes."
                ),
                device_identifier=device,
                category=category_for_classification(STORM_CLASSIFICATION),
                detected_at=now,
                metadata={"suppressed_alert_types": {candidate.alert_type: 1}},
                first_seen_at=now,
                last_seen_at=now,
            )
            await self._alerts.add(storm)

        self._storms.begin_suppression(tenant_id, device, storm.id, now)
        logger.warning(
            "Alert storm detected",
            extra={"tenant_id": tenant_id, "device": device, "storm_alert_id": storm.id}
        )
        return IngestOutcome(alert=storm, created=created, suppressed=True, storm_triggered=True)

    @staticmethod
    def _new_alert(candidate: AlertCandidate, now: datetime) -> NormalizedAlert:
        return NormalizedAlert(
            tenant_id=candidate.tenant_id,
            source_system=candidate.source_system,
            source_id=candidate.source_id,
            alert_type=candidate.alert_type,
            classification=candidate.classification,
            severity=candidate.severity,
            title=candidate.title,
            description=candidate.description,
            device_identifier=candidate.device_identifier,
            category=category_for_classification(candidate.classification),
            detected_at=candidate.detected_at,
            metadata=dict(candidate.metadata),
            first_seen_at=now,
            last_seen_at=now,
        )


# ========== Correlation ==========

class CorrelationService:
    """
    Groups alerts that share indicators within a time window.

    Advisory only: the result never gates alert creation or escalation.
    """

    def __init__(
        self,
        alert_repository: IAlertRepository,
        correlation_repository: ICorrelationRepository,
        window: timedelta = timedelta(minutes=60),
        overlap_weight: float = 0.6,
        time_weight: float = 0.4,
        saturation: int = 3,
    ):
        self._alerts = alert_repository
        self._clusters = correlation_repository
        self.window = window
        self.overlap_weight = overlap_weight
        self.time_weight = time_weight
        self.saturation = saturation

    def confidence(self, shared_count: int, delta: timedelta) -> float:
        """Score for two alerts sharing ``shared_count`` indicators ``delta`` apart."""
        window_seconds = self.window.total_seconds()
        overlap = min(1.0, shared_count / self.saturation)
        closeness = 1.0 - min(1.0, abs(delta.total_seconds()) / window_seconds)
        score = self.overlap_weight * overlap + self.time_weight * closeness
        return max(0.0, min(1.0, score))

    async def correlate(self, alert: NormalizedAlert) -> Optional[CorrelationCluster]:
        """Attach ``alert`` to a cluster of related alerts, if any."""
        indicators = extract_indicators(alert)
        if not indicators:
            return None

        candidates = await self._alerts.list_seen_between(
            alert.tenant_id,
            alert.last_seen_at - self.window,
            alert.last_seen_at + self.window,
        )

        related: List[Tuple[NormalizedAlert, Set[str]]] = []
        for other in candidates:
            if other.id == alert.id:
                continue
            shared = indicators & extract_indicators(other)
            if shared:
                related.append((other, shared))

        if not related:
            return None

        best = max(
            self.confidence(len(shared), alert.last_seen_at - other.last_seen_at)
            for other, shared in related
        )
        shared_all = sorted(set().union(*(shared for _, shared in related)))
        members = [alert] + [other for other, _ in related]

        correlation_id = alert.correlation_id or next(
            (other.correlation_id for other, _ in related if other.correlation_id),
            None,
        )
        cluster = await self._clusters.get(correlation_id) if correlation_id else None

        if cluster is None:
            cluster = CorrelationCluster(
                correlation_id=correlation_id or new_id(),
                tenant_id=alert.tenant_id,
                alert_ids=[m.id for m in members],
                shared_indicators=shared_all,
                confidence=best,
                first_seen_at=min(m.first_seen_at for m in members),
                last_seen_at=max(m.last_seen_at for m in members),
            )
        else:
            cluster.alert_ids = list(dict.fromkeys(cluster.alert_ids + [m.id for m in members]))
            cluster.shared_indicators = sorted(set(cluster.shared_indicators) | set(shared_all))
            cluster.confidence = max(cluster.confidence, best)
            cluster.first_seen_at = min([cluster.first_seen_at] + [m.first_seen_at for m in members])
            cluster.last_seen_at = max([cluster.last_seen_at] + [m.last_seen_at for m in members])

        await self._clusters.save(cluster)
        await self._alerts.set_correlation_id(cluster.alert_ids, cluster.correlation_id)
        alert.correlation_id = cluster.correlation_id

        logger.info(
            "Alerts correlated",
            extra={
                "correlation_id": cluster.correlation_id,
                "alert_count": len(cluster.alert_ids),
                "confidence": round(cluster.confidence, 3),
            }
        )
        return cluster

    async def query(
        self,
        tenant_id: Optional[str],
        start: datetime,
        end: datetime,
        min_confidence: float = 0.0,
    ) -> List[CorrelationCluster]:
        return await self._clusters.list(tenant_id, start, end, min_confidence)
