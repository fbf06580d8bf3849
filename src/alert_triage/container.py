"""
Service Container
=================

Builds every service once from ``Settings`` and owns their lifecycle.

Startup order:
1. Load classification rules and start the file watcher
2. Connect the database (sqlalchemy backend) and create tables
3. Wire repositories, services and the triage pipeline
4. Seed the analyst directory
5. Register connectors and start the poller

Shutdown runs the reverse.
"""

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from alert_triage.alerts.application.escalation import EscalationStateMachine
from alert_triage.alerts.application.repositories import (
    IAlertRepository,
    IAuditRepository,
    ICorrelationRepository,
    IIncidentRepository,
)
from alert_triage.alerts.application.services import (
    CorrelationService,
    Deduplicator,
    StormDetector,
)
from alert_triage.assignment.application.services import AssignmentScheduler, IAnalystDirectory
from alert_triage.assignment.domain.entities import Analyst
from alert_triage.config import Settings
from alert_triage.core import ConfigurationException
from alert_triage.infrastructure.database import Database
from alert_triage.intake.application.classifier import Classifier
from alert_triage.intake.infrastructure.config import TriageRulesManager
from alert_triage.intake.infrastructure.connectors import ConnectorConfig, SourceConnector, build_connector
from alert_triage.intake.infrastructure.poller import ConnectorPoller
from alert_triage.pipeline import TriagePipeline
from alert_triage.playbooks.application.services import IPlaybookRepository, PlaybookService
from alert_triage.shared.infrastructure.cache import QueryCache
from alert_triage.shared.infrastructure.locks import KeyedLock
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _read_yaml(path: Path, key: str) -> List[Dict[str, Any]]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationException(f"Cannot read {path}: {e}", {"path": str(path)}) from e

    rows = data.get(key, []) if isinstance(data, dict) else None
    if not isinstance(rows, list):
        raise ConfigurationException(f"'{key}' in {path} must be a list", {"path": str(path)})
    return rows


def load_connector_configs(path: Path) -> List[ConnectorConfig]:
    """Parse the ``connectors:`` list of a connectors YAML file."""
    configs = []
    for row in _read_yaml(path, "connectors"):
        try:
            configs.append(ConnectorConfig(**row))
        except (TypeError, ValidationError) as e:
            raise ConfigurationException(f"Invalid connector entry in {path}: {e}", {"path": str(path)}) from e
    return configs


def load_analysts(path: Path) -> List[Analyst]:
    """Parse the ``analysts:`` list of a directory YAML file."""
    analysts = []
    for row in _read_yaml(path, "analysts"):
        try:
            analysts.append(Analyst(**row))
        except (TypeError, ValueError) as e:
            raise ConfigurationException(f"Invalid analyst entry in {path}: {e}", {"path": str(path)}) from e
    return analysts


class ServiceContainer:
    """
    Holds the application's services.

    Usage:
        container = ServiceContainer(get_settings())
        await container.start()
        result = await container.pipeline.ingest(intake)
        await container.stop()
    """

    def __init__(
        self,
        settings: Settings,
        connectors: Optional[List[SourceConnector]] = None,
        analysts: Optional[List[Analyst]] = None,
        watch_rules: bool = True,
    ):
        self.settings = settings
        self._extra_connectors = list(connectors or [])
        self._seed_analysts = list(analysts or [])
        self._watch_rules = watch_rules

        self.database: Optional[Database] = None
        self.rules: Optional[TriageRulesManager] = None
        self.alerts: Optional[IAlertRepository] = None
        self.incidents: Optional[IIncidentRepository] = None
        self.audit: Optional[IAuditRepository] = None
        self.correlations: Optional[ICorrelationRepository] = None
        self.playbook_repository: Optional[IPlaybookRepository] = None
        self.directory: Optional[IAnalystDirectory] = None

        self.classifier: Optional[Classifier] = None
        self.deduplicator: Optional[Deduplicator] = None
        self.correlator: Optional[CorrelationService] = None
        self.state_machine: Optional[EscalationStateMachine] = None
        self.scheduler: Optional[AssignmentScheduler] = None
        self.playbooks: Optional[PlaybookService] = None
        self.pipeline: Optional[TriagePipeline] = None
        self.poller: Optional[ConnectorPoller] = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        settings = self.settings

        self.rules = TriageRulesManager()
        self.rules.load(settings.triage_rules_path)
        if self._watch_rules:
            self.rules.start_watching()

        await self._build_repositories()
        self._build_services()

        analysts = list(self._seed_analysts)
        if settings.analysts_path is not None:
            analysts.extend(load_analysts(settings.analysts_path))
        for analyst in analysts:
            await self.directory.upsert(analyst)

        self.poller = ConnectorPoller(
            ingest=self.pipeline.ingest,
            interval_seconds=settings.connector_poll_interval,
            timeout_seconds=settings.connector_timeout_seconds,
            max_retries=settings.connector_max_retries,
            failure_threshold=settings.connector_failure_threshold,
            recovery_timeout=settings.connector_recovery_timeout,
        )
        connectors = list(self._extra_connectors)
        if settings.connectors_path is not None:
            connectors.extend(
                build_connector(config, timeout=settings.connector_timeout_seconds)
                for config in load_connector_configs(settings.connectors_path)
            )
        for connector in connectors:
            self.poller.register(connector)
        if connectors:
            await self.poller.start()

        self._started = True
        logger.info(
            "Service container started",
            extra={
                "storage_backend": settings.storage_backend,
                "connectors": len(connectors),
                "analysts": len(analysts),
            }
        )

    async def stop(self) -> None:
        if self.poller is not None:
            await self.poller.stop()
        if self.rules is not None:
            self.rules.stop_watching()
        if self.database is not None:
            await self.database.dispose()
        self._started = False
        logger.info("Service container stopped")

    # ========== Wiring ==========

    async def _build_repositories(self) -> None:
        settings = self.settings
        if settings.storage_backend == "sqlalchemy":
            from alert_triage.alerts.infrastructure.repositories import (
                SQLAlchemyAlertRepository,
                SQLAlchemyAuditRepository,
                SQLAlchemyCorrelationRepository,
                SQLAlchemyIncidentRepository,
            )
            from alert_triage.assignment.infrastructure.repositories import SQLAlchemyAnalystDirectory
            from alert_triage.playbooks.infrastructure.repositories import SQLAlchemyPlaybookRepository

            self.database = Database(
                settings.database_url,
                echo=settings.debug,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
            )
            self.database.connect()
            if settings.create_tables_on_startup:
                await self.database.create_tables()

            self.alerts = SQLAlchemyAlertRepository(self.database)
            self.incidents = SQLAlchemyIncidentRepository(self.database)
            self.audit = SQLAlchemyAuditRepository(self.database)
            self.correlations = SQLAlchemyCorrelationRepository(self.database)
            self.playbook_repository = SQLAlchemyPlaybookRepository(self.database)
            self.directory = SQLAlchemyAnalystDirectory(self.database)
        else:
            from alert_triage.alerts.infrastructure.memory import (
                InMemoryAlertRepository,
                InMemoryAuditRepository,
                InMemoryCorrelationRepository,
                InMemoryIncidentRepository,
            )
            from alert_triage.assignment.infrastructure.memory import InMemoryAnalystDirectory
            from alert_triage.playbooks.infrastructure.memory import InMemoryPlaybookRepository

            self.alerts = InMemoryAlertRepository()
            self.incidents = InMemoryIncidentRepository()
            self.audit = InMemoryAuditRepository()
            self.correlations = InMemoryCorrelationRepository()
            self.playbook_repository = InMemoryPlaybookRepository()
            self.directory = InMemoryAnalystDirectory()

    def _build_services(self) -> None:
        settings = self.settings
        alert_locks = KeyedLock("alert")
        self.classifier = Classifier(self.rules)
        self.deduplicator = Deduplicator(
            self.alerts,
            window=timedelta(hours=settings.dedup_window_hours),
            storm_detector=StormDetector(
                threshold=settings.storm_threshold,
                window=timedelta(minutes=settings.storm_window_minutes),
                suppression=timedelta(minutes=settings.storm_suppression_minutes),
            ),
            locks=KeyedLock("device"),
            alert_locks=alert_locks,
        )
        self.correlator = CorrelationService(
            self.alerts,
            self.correlations,
            window=timedelta(minutes=settings.correlation_window_minutes),
            overlap_weight=settings.correlation_overlap_weight,
            time_weight=settings.correlation_time_weight,
            saturation=settings.correlation_saturation,
        )
        self.state_machine = EscalationStateMachine(
            self.alerts,
            self.incidents,
            self.audit,
            notes_min_length=settings.resolution_notes_min_length,
            locks=alert_locks,
        )
        self.scheduler = AssignmentScheduler(
            self.directory,
            self.alerts,
            self.incidents,
            self.state_machine,
            locks=KeyedLock("tenant"),
        )
        self.playbooks = PlaybookService(
            self.playbook_repository,
            QueryCache("playbooks", ttl_seconds=settings.playbook_cache_ttl_seconds),
        )
        self.pipeline = TriagePipeline(
            self.classifier,
            self.deduplicator,
            correlator=self.correlator,
            scheduler=self.scheduler,
        )
