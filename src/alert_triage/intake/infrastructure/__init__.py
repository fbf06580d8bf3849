"""
Intake Infrastructure Layer
===========================

- Config: YAML rule loading with watchdog hot-reload
- Connectors: httpx-based pull connectors, one per source system
- Poller: APScheduler loop with retries and a circuit breaker per connector
"""

from alert_triage.intake.infrastructure.config import StaticRulesProvider, TriageRulesManager
from alert_triage.intake.infrastructure.connectors import (
    ConnectorConfig,
    EdrConnector,
    EmailConnector,
    FirewallConnector,
    SiemConnector,
    SourceConnector,
    build_connector,
)
from alert_triage.intake.infrastructure.poller import ConnectorPoller, PollResult

__all__ = [
    "StaticRulesProvider",
    "TriageRulesManager",
    "ConnectorConfig",
    "EdrConnector",
    "EmailConnector",
    "FirewallConnector",
    "SiemConnector",
    "SourceConnector",
    "build_connector",
    "ConnectorPoller",
    "PollResult",
]
