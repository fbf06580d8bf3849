"""
Source Connectors
=================

One connector per upstream source system. Each pulls raw records over
HTTP with httpx and turns them into ``RawAlertIntake`` objects; the
poller drives them and hands the result to the triage pipeline.

Connectors share a capability surface (``SourceConnector``) rather than a
base class. ``build_connector`` picks the implementation for a
configured source.
"""

from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Optional, Protocol, Set, runtime_checkable

import httpx
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from alert_triage.config import SOURCE_SYSTEMS, Severity, SourceSystem
from alert_triage.core import ConfigurationException, UpstreamException
from alert_triage.intake.domain.payloads import (
    EdrPayload,
    EmailPayload,
    FirewallPayload,
    RawAlertIntake,
    SiemPayload,
)
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Configuration ==========

class ConnectorConfig(BaseModel):
    """One configured source instance."""
    connector_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    source_system: str
    base_url: str = Field(..., min_length=1, description="Root URL of the upstream API")
    api_key: Optional[SecretStr] = None
    enabled: bool = True
    verify_tls: bool = True
    field_mappings: Dict[str, str] = Field(
        default_factory=dict,
        description="Upstream field name overrides keyed by payload field (SIEM)"
    )
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("source_system")
    @classmethod
    def validate_source_system(cls, v: str) -> str:
        if v not in SOURCE_SYSTEMS:
            raise ValueError(f"source_system must be one of {SOURCE_SYSTEMS}")
        return v


# ========== Capability Interface ==========

@runtime_checkable
class SourceConnector(Protocol):
    """Capabilities every source connector provides."""

    config: ConnectorConfig

    async def initialize(self) -> None:
        """Allocate clients; no network traffic."""

    async def connect(self) -> None:
        """Verify reachability; raises UpstreamException on failure."""

    async def test_connection(self) -> bool:
        """Health probe that never raises."""

    async def fetch(self) -> List[Dict[str, Any]]:
        """Pull new raw records from upstream."""

    def process_incoming_data(self, records: Iterable[Dict[str, Any]]) -> List[RawAlertIntake]:
        """Convert raw records (pulled or pushed) into intake objects."""

    async def close(self) -> None:
        """Release clients."""


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class _HttpSource:
    """httpx plumbing shared by the concrete connectors through composition."""

    def __init__(
        self,
        config: ConnectorConfig,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.api_key is not None:
            headers["Authorization"] = f"Bearer {self.config.api_key.get_secret_value()}"
        return headers

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=self.headers(),
                timeout=self.timeout,
                verify=self.config.verify_tls,
                transport=self._transport,
            )

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if self._client is None:
            await self.open()
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamException(
                self.config.connector_id,
                f"HTTP {e.response.status_code} from {path}",
                {"source_system": self.config.source_system},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamException(
                self.config.connector_id,
                f"request to {path} failed: {e}",
                {"source_system": self.config.source_system},
            ) from e

    async def probe(self, path: str) -> bool:
        try:
            await self.get_json(path)
            return True
        except UpstreamException as e:
            logger.warning(
                "Connector health probe failed",
                extra={"connector_id": self.config.connector_id, "error": e.message}
            )
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _records(body: Any, key: str) -> List[Dict[str, Any]]:
    """Accept either a bare list or an envelope ``{key: [...]}``."""
    if isinstance(body, list):
        items = body
    elif isinstance(body, dict):
        items = body.get(key) or []
    else:
        items = []
    return [item for item in items if isinstance(item, dict)]


def _intake(config: ConnectorConfig, payload, source_id: Optional[str] = None) -> RawAlertIntake:
    return RawAlertIntake(
        tenant_id=config.tenant_id,
        connector_id=config.connector_id,
        source_id=source_id,
        payload=payload,
    )


def _log_skipped(config: ConnectorConfig, record: Dict[str, Any], error: Exception) -> None:
    logger.warning(
        "Skipping malformed record",
        extra={
            "connector_id": config.connector_id,
            "source_system": config.source_system,
            "error": str(error),
            "record_keys": sorted(record.keys()),
        }
    )


# ========== Email ==========

class EmailConnector:
    """
    Pulls alert notification emails from a mail relay's JSON API.

    Expected record shape: ``{"id", "subject", "body"|"text", "from", "date"}``.

    Remembers the last ``seen_ids_limit`` message ids (option, default
    10000) so a message left unread upstream is delivered once.
    """

    def __init__(self, config: ConnectorConfig, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._http = _HttpSource(config, timeout, transport)
        self._seen_limit = int(config.options.get("seen_ids_limit", 10000))
        self._seen_ids: Set[str] = set()
        self._seen_order: Deque[str] = deque()

    async def initialize(self) -> None:
        await self._http.open()

    async def connect(self) -> None:
        await self._http.get_json(self.config.options.get("health_path", "/health"))

    async def test_connection(self) -> bool:
        return await self._http.probe(self.config.options.get("health_path", "/health"))

    async def fetch(self) -> List[Dict[str, Any]]:
        body = await self._http.get_json(
            self.config.options.get("messages_path", "/messages"),
            params={"unread": "true"},
        )
        records = []
        for record in _records(body, "messages"):
            message_id = record.get("id")
            if message_id is not None and message_id in self._seen_ids:
                continue
            if message_id is not None:
                self._remember(message_id)
            records.append(record)
        return records

    def _remember(self, message_id: str) -> None:
        self._seen_ids.add(message_id)
        self._seen_order.append(message_id)
        while len(self._seen_order) > self._seen_limit:
            self._seen_ids.discard(self._seen_order.popleft())

    def process_incoming_data(self, records: Iterable[Dict[str, Any]]) -> List[RawAlertIntake]:
        intakes = []
        for record in records:
            try:
                payload = EmailPayload(
                    subject=record.get("subject") or "",
                    body=record.get("body") or record.get("text") or "",
                    sender=record.get("from") or record.get("sender"),
                    sent_at=_parse_time(record.get("date") or record.get("sent_at")),
                )
                intakes.append(_intake(self.config, payload))
            except ValidationError as e:
                _log_skipped(self.config, record, e)
        return intakes

    async def close(self) -> None:
        await self._http.close()


# ========== EDR ==========

class EdrConnector:
    """
    Pulls detections from an EDR management API.

    Uses a ``since`` cursor so each detection is delivered once per
    connector lifetime; redeliveries after restart are folded in by the
    deduplicator through the stable alert id.
    """

    def __init__(self, config: ConnectorConfig, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._http = _HttpSource(config, timeout, transport)
        self._cursor: Optional[str] = None

    async def initialize(self) -> None:
        await self._http.open()

    async def connect(self) -> None:
        await self._http.get_json(self.config.options.get("health_path", "/health"))

    async def test_connection(self) -> bool:
        return await self._http.probe(self.config.options.get("health_path", "/health"))

    async def fetch(self) -> List[Dict[str, Any]]:
        params = {"since": self._cursor} if self._cursor else None
        body = await self._http.get_json(self.config.options.get("alerts_path", "/alerts"), params=params)
        records = _records(body, "alerts")
        timestamps = [r.get("timestamp") or r.get("detected_at") for r in records]
        timestamps = [str(t) for t in timestamps if t]
        if timestamps:
            self._cursor = max(timestamps)
        return records

    def process_incoming_data(self, records: Iterable[Dict[str, Any]]) -> List[RawAlertIntake]:
        intakes = []
        for record in records:
            try:
                threat = record.get("threat") or {}
                device = record.get("device") or record.get("endpoint") or {}
                file_info = record.get("file") or {}
                known = {"id", "alert_id", "title", "description", "severity", "threat",
                         "device", "endpoint", "user", "file", "timestamp", "detected_at"}
                payload = EdrPayload(
                    alert_id=str(record.get("id") or record.get("alert_id") or "") or None,
                    title=record.get("title") or threat.get("name") or "EDR detection",
                    description=record.get("description"),
                    severity=record.get("severity"),
                    threat_name=threat.get("name"),
                    threat_category=threat.get("category"),
                    device_name=device.get("hostname") or device.get("name"),
                    device_serial=device.get("serial"),
                    device_ip=device.get("ip_address") or device.get("ip"),
                    user=record.get("user") or device.get("user"),
                    file_hash=file_info.get("sha256") or file_info.get("hash"),
                    detected_at=_parse_time(record.get("timestamp") or record.get("detected_at")),
                    extra={k: v for k, v in record.items() if k not in known},
                )
                intakes.append(_intake(self.config, payload, payload.alert_id))
            except (ValidationError, AttributeError) as e:
                _log_skipped(self.config, record, e)
        return intakes

    async def close(self) -> None:
        await self._http.close()


# ========== Firewall ==========

_COUNTER_ALERT_TYPES = {
    "ips_blocks": "ips_alert",
    "gav_blocks": "gav_alert",
    "botnet_blocks": "botnet_alert",
    "atp_verdicts": "atp_alert",
}

# Counter increase since the last poll, checked largest first
_COUNTER_SEVERITY_STEPS = (
    (100, Severity.CRITICAL),
    (50, Severity.HIGH),
    (10, Severity.MEDIUM),
    (1, Severity.LOW),
)


def counter_severity(delta: int) -> Optional[str]:
    for threshold, severity in _COUNTER_SEVERITY_STEPS:
        if delta >= threshold:
            return severity
    return None


class FirewallConnector:
    """
    Polls a firewall's status API and derives alerts from state changes.

    Derived alerts: utilization above the alert threshold, WAN/VPN going
    down, and security counter increases. Pushed appliance events (the
    ``events`` list) are passed through unchanged.
    """

    def __init__(self, config: ConnectorConfig, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._http = _HttpSource(config, timeout, transport)
        self._last_counters: Optional[Dict[str, int]] = None
        self._last_links: Dict[str, str] = {}

    @property
    def cpu_alert_percent(self) -> float:
        return float(self.config.options.get("cpu_alert_percent", 80))

    @property
    def ram_alert_percent(self) -> float:
        return float(self.config.options.get("ram_alert_percent", 90))

    async def initialize(self) -> None:
        await self._http.open()

    async def connect(self) -> None:
        await self._http.get_json(self.config.options.get("status_path", "/status"))

    async def test_connection(self) -> bool:
        return await self._http.probe(self.config.options.get("status_path", "/status"))

    async def fetch(self) -> List[Dict[str, Any]]:
        status = await self._http.get_json(self.config.options.get("status_path", "/status"))
        if not isinstance(status, dict):
            raise UpstreamException(self.config.connector_id, "status response is not an object")
        return self.derive_events(status)

    def derive_events(self, status: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Turn one status snapshot into zero or more event records."""
        serial = status.get("serial")
        ip = status.get("ip") or status.get("ip_address")
        base = {"device_serial": serial, "device_ip": ip, "detected_at": status.get("timestamp")}
        events: List[Dict[str, Any]] = list(_records(status, "events"))

        cpu = status.get("cpu_percent")
        if cpu is not None and float(cpu) > self.cpu_alert_percent:
            events.append({
                **base,
                "alert_type": "high_cpu",
                "message": f"CPU usage is {float(cpu):.1f}% (threshold: {self.cpu_alert_percent:.0f}%)",
                "metrics": {"cpu_percent": float(cpu)},
            })

        ram = status.get("ram_percent")
        if ram is not None and float(ram) > self.ram_alert_percent:
            events.append({
                **base,
                "alert_type": "high_memory",
                "message": f"RAM usage is {float(ram):.1f}% (threshold: {self.ram_alert_percent:.0f}%)",
                "metrics": {"ram_percent": float(ram)},
            })

        for link, alert_type, severity in (
            ("wan_status", "wan_down", Severity.CRITICAL),
            ("vpn_status", "vpn_down", Severity.HIGH),
        ):
            current = status.get(link)
            if current is None:
                continue
            previous = self._last_links.get(link)
            if current == "down" and previous != "down":
                events.append({
                    **base,
                    "alert_type": alert_type,
                    "severity": severity,
                    "message": f"{link.split('_')[0].upper()} link is down",
                })
            self._last_links[link] = current

        counters = status.get("counters") or {}
        if self._last_counters is not None:
            for name, alert_type in _COUNTER_ALERT_TYPES.items():
                if name not in counters or name not in self._last_counters:
                    continue
                delta = int(counters[name]) - int(self._last_counters[name])
                severity = counter_severity(delta)
                if severity is None:
                    continue
                events.append({
                    **base,
                    "alert_type": alert_type,
                    "severity": severity,
                    "message": f"{name.replace('_', ' ')} increased by {delta}",
                    "extra": {"counter": name, "delta": delta},
                })
        self._last_counters = {k: int(v) for k, v in counters.items()}
        return events

    def process_incoming_data(self, records: Iterable[Dict[str, Any]]) -> List[RawAlertIntake]:
        intakes = []
        for record in records:
            try:
                payload = FirewallPayload(
                    alert_type=record.get("alert_type") or record.get("type"),
                    message=record.get("message") or "",
                    severity=record.get("severity"),
                    device_serial=record.get("device_serial") or record.get("serial"),
                    device_ip=record.get("device_ip") or record.get("ip"),
                    src_ip=record.get("src_ip"),
                    dest_ip=record.get("dest_ip"),
                    metrics=record.get("metrics") or {},
                    detected_at=_parse_time(record.get("detected_at") or record.get("timestamp")),
                    extra=record.get("extra") or {},
                )
                intakes.append(_intake(self.config, payload))
            except ValidationError as e:
                _log_skipped(self.config, record, e)
        return intakes

    async def close(self) -> None:
        await self._http.close()


# ========== SIEM ==========

_SIEM_DEFAULT_FIELDS = {
    "event_id": "id",
    "title": "title",
    "description": "description",
    "category": "category",
    "severity": "severity",
    "priority": "priority",
    "source": "source",
    "hostname": "hostname",
    "src_ip": "src_ip",
    "dest_ip": "dest_ip",
    "user": "user",
    "domain": "domain",
    "file_hash": "file_hash",
    "detected_at": "timestamp",
}


class SiemConnector:
    """
    Pulls correlated events from a SIEM search API.

    Upstream field names vary per product; ``field_mappings`` renames them
    onto ``SiemPayload`` fields.
    """

    def __init__(self, config: ConnectorConfig, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._http = _HttpSource(config, timeout, transport)
        self._fields = {**_SIEM_DEFAULT_FIELDS, **config.field_mappings}
        self._cursor: Optional[str] = None

    async def initialize(self) -> None:
        await self._http.open()

    async def connect(self) -> None:
        await self._http.get_json(self.config.options.get("health_path", "/health"))

    async def test_connection(self) -> bool:
        return await self._http.probe(self.config.options.get("health_path", "/health"))

    async def fetch(self) -> List[Dict[str, Any]]:
        params = {"since": self._cursor} if self._cursor else None
        body = await self._http.get_json(self.config.options.get("events_path", "/events"), params=params)
        records = _records(body, "events")
        stamps = [str(r.get(self._fields["detected_at"])) for r in records if r.get(self._fields["detected_at"])]
        if stamps:
            self._cursor = max(stamps)
        return records

    def process_incoming_data(self, records: Iterable[Dict[str, Any]]) -> List[RawAlertIntake]:
        intakes = []
        mapped_names = set(self._fields.values())
        for record in records:
            try:
                values = {field: record.get(name) for field, name in self._fields.items()}
                event_id = values.pop("event_id")
                payload = SiemPayload(
                    event_id=str(event_id) if event_id is not None else None,
                    title=values.pop("title") or values.get("category") or "SIEM event",
                    detected_at=_parse_time(values.pop("detected_at")),
                    extra={k: v for k, v in record.items() if k not in mapped_names},
                    **values,
                )
                intakes.append(_intake(self.config, payload, payload.event_id))
            except ValidationError as e:
                _log_skipped(self.config, record, e)
        return intakes

    async def close(self) -> None:
        await self._http.close()


# ========== Factory ==========

_CONNECTOR_TYPES = {
    SourceSystem.EMAIL: EmailConnector,
    SourceSystem.EDR: EdrConnector,
    SourceSystem.FIREWALL: FirewallConnector,
    SourceSystem.SIEM: SiemConnector,
}


def build_connector(
    config: ConnectorConfig,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SourceConnector:
    """Instantiate the connector implementation for ``config.source_system``."""
    connector_type = _CONNECTOR_TYPES.get(config.source_system)
    if connector_type is None:
        raise ConfigurationException(
            f"No connector for source system '{config.source_system}'",
            {"connector_id": config.connector_id}
        )
    return connector_type(config, timeout=timeout, transport=transport)
