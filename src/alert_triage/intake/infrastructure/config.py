"""
Triage Rules Configuration
==========================

YAML-backed provider for the classifier's rule table and severity
tables, with watchdog hot-reload so analysts can tune keywords and
thresholds without restarting the service.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from alert_triage.core import ConfigurationException
from alert_triage.intake.application.classifier import ITriageRulesProvider
from alert_triage.intake.domain.rules import TriageRulesConfig
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class StaticRulesProvider(ITriageRulesProvider):
    """Fixed configuration, used when no rules file is configured and in tests."""

    def __init__(self, config: Optional[TriageRulesConfig] = None):
        self._config = config or TriageRulesConfig()

    def get_config(self) -> TriageRulesConfig:
        return self._config


class RulesFileHandler(FileSystemEventHandler):
    """Watchdog event handler for rules file changes."""

    def __init__(self, manager: "TriageRulesManager", path: Path):
        self.manager = manager
        self.path = path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.path.resolve():
            logger.info("Triage rules file changed", extra={"path": str(event.src_path)})
            self.manager.reload()

    on_created = on_modified


class TriageRulesManager(ITriageRulesProvider):
    """
    Thread-safe rules provider with hot-reload support.

    A reload that fails to parse or validate keeps the previous
    configuration in place.
    """

    def __init__(self):
        self._config: Optional[TriageRulesConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer: Optional[Observer] = None

    def load(self, path: Path) -> TriageRulesConfig:
        """Initial load; raises ConfigurationException on an invalid file."""
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, ValueError) as e:
            raise ConfigurationException(
                f"Invalid triage rules file {self._path}",
                {"error": str(e)}
            ) from e
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> TriageRulesConfig:
        if not path.exists():
            logger.warning("Triage rules file not found, using defaults", extra={"path": str(path)})
            return TriageRulesConfig()

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError("rules file must contain a mapping")
        return TriageRulesConfig(**data)

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, ValueError) as e:
            logger.error(
                "Failed to reload triage rules, keeping previous configuration",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info(
            "Triage rules reloaded",
            extra={"rule_count": len(new_config.rules)}
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching the rules file for changes.

        Skipped when the file doesn't exist or the platform has no
        usable file notification backend.
        """
        if self._path is None:
            raise RuntimeError("Rules not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("Rules file doesn't exist, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                RulesFileHandler(self, self._path),
                str(self._path.parent.resolve()),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching triage rules", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static rules", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_config(self) -> TriageRulesConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("Triage rules not loaded")
            return self._config
