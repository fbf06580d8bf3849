"""
Tests for the source connectors.

Upstream APIs are replaced with ``httpx.MockTransport`` handlers.
"""

import httpx
import pytest

from alert_triage.core import ConfigurationException, UpstreamException
from alert_triage.intake.domain.payloads import EdrPayload, FirewallPayload, SiemPayload
from alert_triage.intake.infrastructure.connectors import (
    ConnectorConfig,
    EdrConnector,
    EmailConnector,
    FirewallConnector,
    SiemConnector,
    SourceConnector,
    build_connector,
    counter_severity,
)

from factories import TENANT


def _config(source_system: str, **overrides) -> ConnectorConfig:
    values = {
        "connector_id": f"{source_system}-{TENANT}",
        "tenant_id": TENANT,
        "source_system": source_system,
        "base_url": "https://upstream.test",
    }
    values.update(overrides)
    return ConnectorConfig(**values)


class TestConnectorFactory:
    @pytest.mark.parametrize("source_system,expected", [
        ("email", EmailConnector),
        ("edr", EdrConnector),
        ("firewall", FirewallConnector),
        ("siem", SiemConnector),
    ])
    def test_build_connector(self, source_system, expected):
        connector = build_connector(_config(source_system))
        assert isinstance(connector, expected)
        assert isinstance(connector, SourceConnector)

    def test_unknown_source_rejected_by_config(self):
        with pytest.raises(ValueError):
            _config("syslog")

    def test_factory_rejects_unmapped_source(self):
        config = _config("edr").model_copy(update={"source_system": "syslog"})
        with pytest.raises(ConfigurationException):
            build_connector(config)


class TestEmailConnector:
    @pytest.mark.asyncio
    async def test_fetch_skips_seen_messages(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/messages"
            return httpx.Response(200, json={"messages": [
                {"id": "m1", "subject": "VPN Down - Critical", "body": "C0EAE4B2C3F1"},
                {"id": "m2", "subject": "License expiring", "text": "renew soon"},
            ]})

        connector = EmailConnector(_config("email"), transport=httpx.MockTransport(handler))
        first = await connector.fetch()
        second = await connector.fetch()
        await connector.close()

        assert [r["id"] for r in first] == ["m1", "m2"]
        assert second == []

        intakes = connector.process_incoming_data(first)
        assert intakes[0].payload.subject == "VPN Down - Critical"
        assert intakes[1].payload.body == "renew soon"
        assert intakes[0].connector_id == "email-acme"
        assert intakes[0].tenant_id == TENANT

    @pytest.mark.asyncio
    async def test_seen_ids_are_bounded(self):
        batches = [["m1", "m2"], ["m3"], ["m1", "m3"]]

        def handler(request: httpx.Request) -> httpx.Response:
            ids = batches.pop(0)
            return httpx.Response(200, json={"messages": [{"id": i, "subject": "WAN down"} for i in ids]})

        connector = EmailConnector(
            _config("email", options={"seen_ids_limit": 2}),
            transport=httpx.MockTransport(handler),
        )
        await connector.fetch()
        await connector.fetch()
        third = await connector.fetch()
        await connector.close()

        # m1 was evicted once m3 arrived; m3 is still remembered
        assert [r["id"] for r in third] == ["m1"]
        assert len(connector._seen_ids) == 2

    @pytest.mark.asyncio
    async def test_http_error_raises_upstream(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        connector = EmailConnector(_config("email"), transport=transport)
        with pytest.raises(UpstreamException) as exc_info:
            await connector.fetch()
        await connector.close()
        assert "HTTP 500" in exc_info.value.message
        assert exc_info.value.service_name == "email-acme"

    @pytest.mark.asyncio
    async def test_probe_reports_false_instead_of_raising(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        connector = EmailConnector(_config("email"), transport=transport)
        assert await connector.test_connection() is False
        await connector.close()


class TestEdrConnector:
    @pytest.mark.asyncio
    async def test_cursor_advances(self):
        seen_params = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_params.append(request.url.params.get("since"))
            return httpx.Response(200, json=[
                {"id": "d1", "title": "Trojan found", "timestamp": "2025-03-04T10:00:00Z"},
                {"id": "d2", "title": "Ransomware blocked", "timestamp": "2025-03-04T10:05:00Z"},
            ])

        connector = EdrConnector(
            _config("edr", api_key="s3cret"),
            transport=httpx.MockTransport(handler),
        )
        await connector.fetch()
        await connector.fetch()
        await connector.close()
        assert seen_params == [None, "2025-03-04T10:05:00Z"]

    def test_process_maps_nested_fields(self):
        connector = EdrConnector(_config("edr"))
        intakes = connector.process_incoming_data([{
            "id": 4411,
            "title": "Suspicious PowerShell",
            "severity": "high",
            "threat": {"name": "PS.Obfuscated", "category": "malware"},
            "device": {"hostname": "LAPTOP-042", "serial": "PF3XK2LM9Q1Z", "ip_address": "10.1.4.22"},
            "file": {"sha256": "a" * 64},
            "timestamp": "2025-03-04T10:00:00Z",
            "tactic": "execution",
        }])
        assert len(intakes) == 1
        payload = intakes[0].payload
        assert isinstance(payload, EdrPayload)
        assert payload.alert_id == "4411"
        assert payload.device_serial == "PF3XK2LM9Q1Z"
        assert payload.device_ip == "10.1.4.22"
        assert payload.file_hash == "a" * 64
        assert payload.extra == {"tactic": "execution"}
        assert intakes[0].stable_source_id == "4411"

    def test_malformed_record_is_skipped(self):
        connector = EdrConnector(_config("edr"))
        intakes = connector.process_incoming_data([
            {"id": "ok", "title": "Trojan found"},
            {"id": "bad", "title": "Trojan found", "threat": "not-a-mapping"},
        ])
        assert [i.source_id for i in intakes] == ["ok"]


class TestFirewallConnector:
    def test_utilization_above_threshold(self):
        connector = FirewallConnector(_config("firewall"))
        events = connector.derive_events({
            "serial": "C0EAE4B2C3F1",
            "cpu_percent": 85,
            "ram_percent": 60,
        })
        assert [e["alert_type"] for e in events] == ["high_cpu"]
        assert events[0]["metrics"] == {"cpu_percent": 85.0}
        assert events[0]["device_serial"] == "C0EAE4B2C3F1"

    def test_threshold_options(self):
        connector = FirewallConnector(_config("firewall", options={"cpu_alert_percent": 90}))
        assert connector.derive_events({"cpu_percent": 85}) == []

    def test_link_down_reported_once(self):
        connector = FirewallConnector(_config("firewall"))
        first = connector.derive_events({"wan_status": "down", "vpn_status": "up"})
        second = connector.derive_events({"wan_status": "down", "vpn_status": "up"})
        recovered = connector.derive_events({"wan_status": "up"})
        again = connector.derive_events({"wan_status": "down"})

        assert [e["alert_type"] for e in first] == ["wan_down"]
        assert first[0]["severity"] == "critical"
        assert second == []
        assert recovered == []
        assert [e["alert_type"] for e in again] == ["wan_down"]

    def test_counter_deltas(self):
        connector = FirewallConnector(_config("firewall"))
        assert connector.derive_events({"counters": {"ips_blocks": 100, "gav_blocks": 5}}) == []
        events = connector.derive_events({"counters": {"ips_blocks": 160, "gav_blocks": 5}})
        assert len(events) == 1
        assert events[0]["alert_type"] == "ips_alert"
        assert events[0]["severity"] == "high"
        assert events[0]["extra"] == {"counter": "ips_blocks", "delta": 60}

    @pytest.mark.parametrize("delta,expected", [
        (0, None), (1, "low"), (10, "medium"), (50, "high"), (250, "critical"),
    ])
    def test_counter_severity(self, delta, expected):
        assert counter_severity(delta) == expected

    @pytest.mark.asyncio
    async def test_fetch_passes_through_pushed_events(self):
        status = {
            "serial": "C0EAE4B2C3F1",
            "events": [{"alert_type": "ips", "message": "IPS Alert: exploit attempt"}],
        }
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=status))
        connector = FirewallConnector(_config("firewall"), transport=transport)
        records = await connector.fetch()
        await connector.close()

        intakes = connector.process_incoming_data(records)
        assert len(intakes) == 1
        assert isinstance(intakes[0].payload, FirewallPayload)
        assert intakes[0].payload.message == "IPS Alert: exploit attempt"

    @pytest.mark.asyncio
    async def test_non_object_status_is_upstream_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=["nope"]))
        connector = FirewallConnector(_config("firewall"), transport=transport)
        with pytest.raises(UpstreamException):
            await connector.fetch()
        await connector.close()


class TestSiemConnector:
    def test_field_mappings(self):
        connector = SiemConnector(_config(
            "siem",
            field_mappings={"title": "rule_name", "severity": "urgency", "event_id": "_id"},
        ))
        intakes = connector.process_incoming_data([{
            "_id": "evt-9",
            "rule_name": "Impossible travel sign-in",
            "urgency": "high",
            "user": "j.doe@acme.test",
            "timestamp": "2025-03-04T10:00:00+00:00",
            "index": "auth",
        }])
        payload = intakes[0].payload
        assert isinstance(payload, SiemPayload)
        assert payload.event_id == "evt-9"
        assert payload.title == "Impossible travel sign-in"
        assert payload.severity == "high"
        assert payload.user == "j.doe@acme.test"
        assert payload.extra == {"index": "auth"}
        assert intakes[0].source_id == "evt-9"

    @pytest.mark.asyncio
    async def test_fetch_uses_events_envelope(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer token-1"
            return httpx.Response(200, json={"events": [{"id": 1, "title": "Port scan"}]})

        connector = SiemConnector(_config("siem", api_key="token-1"), transport=httpx.MockTransport(handler))
        records = await connector.fetch()
        await connector.close()
        assert records == [{"id": 1, "title": "Port scan"}]
