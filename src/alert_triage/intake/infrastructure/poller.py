"""
Connector Poller
================

APScheduler wrapper that polls every enabled connector on its own job.

Each poll is bounded by a timeout, retried with exponential backoff and
guarded by a per-connector circuit breaker, so a slow or failing source
never delays the others.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from alert_triage.core import ApplicationException, UpstreamException
from alert_triage.intake.domain.payloads import RawAlertIntake
from alert_triage.intake.infrastructure.connectors import SourceConnector
from alert_triage.shared.infrastructure.logging import get_logger
from alert_triage.shared.infrastructure.resilience import CircuitBreaker, retry_with_backoff

logger = get_logger(__name__)

IngestCallback = Callable[[RawAlertIntake], Awaitable[object]]


@dataclass
class PollResult:
    """Outcome of a single poll of one connector."""
    connector_id: str
    fetched: int = 0
    ingested: int = 0
    failed: int = 0
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class _Registration:
    connector: SourceConnector
    breaker: CircuitBreaker
    history: List[PollResult] = field(default_factory=list)


class ConnectorPoller:
    """
    Lifecycle owner for the connector poll jobs.

    ``start`` initializes every connector and schedules its job;
    ``stop`` shuts the scheduler down and closes the connectors.
    """

    def __init__(
        self,
        ingest: IngestCallback,
        interval_seconds: int = 60,
        timeout_seconds: float = 10.0,
        max_retries: int = 3,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        retry_base_delay: float = 1.0,
    ):
        self._ingest = ingest
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.retry_base_delay = retry_base_delay
        self._registrations: Dict[str, _Registration] = {}
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def register(self, connector: SourceConnector) -> None:
        connector_id = connector.config.connector_id
        if connector_id in self._registrations:
            raise ValueError(f"connector '{connector_id}' already registered")
        self._registrations[connector_id] = _Registration(
            connector=connector,
            breaker=CircuitBreaker(
                name=connector_id,
                failure_threshold=self.failure_threshold,
                recovery_timeout=self.recovery_timeout,
            ),
        )

    @property
    def connector_ids(self) -> List[str]:
        return list(self._registrations)

    def breaker_for(self, connector_id: str) -> CircuitBreaker:
        return self._registrations[connector_id].breaker

    async def start(self) -> None:
        """Initialize connectors and schedule one job each."""
        if self._running:
            logger.warning("Connector poller already running")
            return

        self._scheduler = AsyncIOScheduler()
        for connector_id, registration in self._registrations.items():
            connector = registration.connector
            if not connector.config.enabled:
                continue
            await connector.initialize()
            if not await connector.test_connection():
                logger.warning(
                    "Connector unreachable at startup, polling anyway",
                    extra={"connector_id": connector_id}
                )
            self._scheduler.add_job(
                self.poll_once,
                "interval",
                args=[connector_id],
                seconds=self.interval_seconds,
                id=f"poll:{connector_id}",
                name=f"Poll {connector_id}",
                misfire_grace_time=self.interval_seconds,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        self._scheduler.start()
        self._running = True
        logger.info(
            "Connector poller started",
            extra={"interval_seconds": self.interval_seconds, "connectors": len(self._registrations)}
        )

    async def stop(self) -> None:
        """Stop the scheduler and close all connectors."""
        if self._scheduler is not None and self._running:
            self._scheduler.shutdown(wait=False)
        self._running = False

        for registration in self._registrations.values():
            await registration.connector.close()
        logger.info("Connector poller stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def poll_once(self, connector_id: str) -> PollResult:
        """Fetch from one connector and ingest what it returned."""
        registration = self._registrations[connector_id]
        connector = registration.connector
        breaker = registration.breaker
        result = PollResult(connector_id=connector_id)

        if not breaker.allow_request():
            result.skipped = True
            logger.info("Circuit open, skipping poll", extra={"connector_id": connector_id})
            self._record(registration, result)
            return result

        try:
            records = await retry_with_backoff(
                connector.fetch,
                max_retries=self.max_retries,
                timeout=self.timeout_seconds,
                base_delay=self.retry_base_delay,
                description=f"poll {connector_id}",
            )
        except Exception as e:
            breaker.record_failure()
            error = e if isinstance(e, UpstreamException) else UpstreamException(
                connector_id, str(e) or type(e).__name__
            )
            result.error = error.message
            logger.error(
                "Connector poll failed",
                extra={
                    "connector_id": connector_id,
                    "source_system": connector.config.source_system,
                    "error_code": error.code,
                    "error": error.message,
                }
            )
            self._record(registration, result)
            return result

        breaker.record_success()
        result.fetched = len(records)

        for intake in connector.process_incoming_data(records):
            try:
                await self._ingest(intake)
                result.ingested += 1
            except ApplicationException as e:
                result.failed += 1
                logger.error(
                    "Failed to ingest polled alert",
                    extra={"connector_id": connector_id, "error_code": e.code, "error": e.message}
                )
            except Exception as e:
                # the connector has already moved past this batch; keep going
                result.failed += 1
                logger.error(
                    "Unexpected error ingesting polled alert",
                    extra={"connector_id": connector_id, "error": str(e) or type(e).__name__},
                    exc_info=True,
                )

        self._record(registration, result)
        return result

    @staticmethod
    def _record(registration: _Registration, result: PollResult) -> None:
        registration.history.append(result)
        del registration.history[:-20]

    def last_result(self, connector_id: str) -> Optional[PollResult]:
        history = self._registrations[connector_id].history
        return history[-1] if history else None
