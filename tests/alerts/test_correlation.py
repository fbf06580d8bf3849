"""Tests for indicator extraction and correlation clustering."""

from datetime import datetime, timedelta, timezone

import pytest

from alert_triage.alerts.domain.indicators import extract_indicators

from factories import OTHER_TENANT, make_alert

T0 = datetime(2025, 3, 4, 10, 0, tzinfo=timezone.utc)
HASH = "44d88612fea8a8f36de82e1278abb02f"


def _seen(at: datetime) -> dict:
    return {"first_seen_at": at, "last_seen_at": at}


class TestIndicatorExtraction:
    def test_metadata_and_text(self):
        alert = make_alert(
            title="Beacon to evil-c2.ru from 10.1.4.22",
            description=f"Dropped file {HASH.upper()}",
            metadata={"user": "J.Doe", "src_ip": "198.51.100.23", "device_ip": "not-an-ip"},
        )
        assert extract_indicators(alert) == {
            "ip:10.1.4.22",
            "ip:198.51.100.23",
            f"hash:{HASH}",
            "user:j.doe",
            "domain:evil-c2.ru",
        }

    def test_no_indicators(self):
        assert extract_indicators(make_alert(title="Interface down")) == set()


class TestCorrelationService:
    def test_confidence_scoring(self, correlator):
        assert correlator.confidence(3, timedelta(0)) == pytest.approx(1.0)
        assert correlator.confidence(9, timedelta(0)) == pytest.approx(1.0)
        assert correlator.confidence(1, timedelta(minutes=30)) == pytest.approx(0.6 / 3 + 0.4 * 0.5)
        assert correlator.confidence(1, timedelta(minutes=90)) == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_shared_ip_across_devices_clusters(self, correlator, alerts, correlations):
        first = make_alert(device="C0EAE4B2C3F1", metadata={"src_ip": "198.51.100.23"}, **_seen(T0))
        second = make_alert(
            device="PF3XK2LM9Q1Z",
            alert_type="network_anomaly",
            classification="network_anomaly",
            metadata={"dest_ip": "198.51.100.23"},
            **_seen(T0 + timedelta(minutes=10)),
        )
        await alerts.add(first)
        await alerts.add(second)

        cluster = await correlator.correlate(second)
        assert cluster is not None
        assert set(cluster.alert_ids) == {first.id, second.id}
        assert cluster.shared_indicators == ["ip:198.51.100.23"]
        assert cluster.confidence == pytest.approx(0.2 + 0.4 * (1 - 10 / 60))
        assert cluster.first_seen_at == T0
        assert cluster.last_seen_at == T0 + timedelta(minutes=10)

        assert (await alerts.get(first.id)).correlation_id == cluster.correlation_id
        assert (await alerts.get(second.id)).correlation_id == cluster.correlation_id
        assert (await correlations.get(cluster.correlation_id)) is not None

    @pytest.mark.asyncio
    async def test_later_alert_joins_existing_cluster(self, correlator, alerts):
        first = make_alert(metadata={"src_ip": "198.51.100.23"}, **_seen(T0))
        second = make_alert(
            device="PF3XK2LM9Q1Z",
            metadata={"src_ip": "198.51.100.23", "file_hash": HASH},
            **_seen(T0 + timedelta(minutes=5)),
        )
        third = make_alert(device="LAPTOP-042", metadata={"file_hash": HASH}, **_seen(T0 + timedelta(minutes=8)))
        for alert in (first, second):
            await alerts.add(alert)
        cluster = await correlator.correlate(second)

        await alerts.add(third)
        merged = await correlator.correlate(third)
        assert merged.correlation_id == cluster.correlation_id
        assert set(merged.alert_ids) == {first.id, second.id, third.id}
        assert merged.shared_indicators == [f"hash:{HASH}", "ip:198.51.100.23"]

    @pytest.mark.asyncio
    async def test_outside_window_not_correlated(self, correlator, alerts):
        first = make_alert(metadata={"src_ip": "198.51.100.23"}, **_seen(T0))
        second = make_alert(
            device="PF3XK2LM9Q1Z",
            metadata={"src_ip": "198.51.100.23"},
            **_seen(T0 + timedelta(minutes=61)),
        )
        await alerts.add(first)
        await alerts.add(second)
        assert await correlator.correlate(second) is None

    @pytest.mark.asyncio
    async def test_other_tenant_not_correlated(self, correlator, alerts):
        first = make_alert(tenant_id=OTHER_TENANT, metadata={"src_ip": "198.51.100.23"}, **_seen(T0))
        second = make_alert(metadata={"src_ip": "198.51.100.23"}, **_seen(T0))
        await alerts.add(first)
        await alerts.add(second)
        assert await correlator.correlate(second) is None

    @pytest.mark.asyncio
    async def test_alert_without_indicators(self, correlator, alerts):
        alert = make_alert(title="Interface down", **_seen(T0))
        await alerts.add(alert)
        assert await correlator.correlate(alert) is None

    @pytest.mark.asyncio
    async def test_query_filters_by_confidence(self, correlator, alerts):
        close_a = make_alert(metadata={"user": "j.doe"}, **_seen(T0))
        close_b = make_alert(device="PF3XK2LM9Q1Z", metadata={"user": "j.doe"}, **_seen(T0))
        far_a = make_alert(metadata={"src_ip": "203.0.113.9"}, **_seen(T0 + timedelta(hours=3)))
        far_b = make_alert(
            device="LAPTOP-042",
            metadata={"src_ip": "203.0.113.9"},
            **_seen(T0 + timedelta(hours=3, minutes=50)),
        )
        for alert in (close_a, close_b, far_a, far_b):
            await alerts.add(alert)
        await correlator.correlate(close_b)
        await correlator.correlate(far_b)

        window = (T0 - timedelta(hours=1), T0 + timedelta(hours=5))
        everything = await correlator.query("acme", *window)
        confident = await correlator.query("acme", *window, min_confidence=0.5)
        assert len(everything) == 2
        assert [set(c.alert_ids) for c in confident] == [{close_a.id, close_b.id}]
        assert await correlator.query(OTHER_TENANT, *window) == []
