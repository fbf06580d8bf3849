"""
Tests for the rule-driven alert classifier.

Covers rule matching order, severity precedence and device extraction
for each source system, and the needs_review fallbacks.
"""

from datetime import datetime, timezone

import pytest

from alert_triage.config import Severity
from alert_triage.intake.application.classifier import (
    Classifier,
    ITriageRulesProvider,
    extract_device_identifier,
    extract_percentage,
    extract_timestamp,
)
from alert_triage.intake.domain.payloads import (
    EdrPayload,
    FirewallPayload,
    RawAlertIntake,
    SiemPayload,
)
from alert_triage.intake.domain.rules import (
    ClassificationRuleConfig,
    SeverityTableConfig,
    TriageRulesConfig,
)
from alert_triage.intake.infrastructure.config import StaticRulesProvider

from factories import TENANT, email_intake


class _BrokenProvider(ITriageRulesProvider):
    def get_config(self) -> TriageRulesConfig:
        raise RuntimeError("rules store unavailable")


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------

class TestEmailClassification:
    def test_vpn_down_critical_with_serial(self, classifier):
        candidate = classifier.classify(email_intake(
            "VPN Down - Critical",
            "Site-to-site tunnel to HQ lost.\nSerial: C0EAE4B2C3F1\n",
        ))
        assert candidate.alert_type == "vpn_down"
        assert candidate.classification == "connectivity"
        assert candidate.severity == Severity.CRITICAL
        assert candidate.device_identifier == "C0EAE4B2C3F1"
        assert not candidate.needs_review

    def test_license_expiring_uses_rule_hint(self, classifier):
        candidate = classifier.classify(email_intake(
            "License expiring in 5 days",
            "The support subscription for C0EAE4B2C3F1 ends on 2025-04-01.",
        ))
        assert candidate.alert_type == "license_expiring"
        assert candidate.classification == "license"
        assert candidate.severity == Severity.MEDIUM

    def test_unmatched_subject_needs_review(self, classifier):
        candidate = classifier.classify(email_intake(
            "Notification",
            "Appliance C0EAE4B2C3F1 reported an event.",
        ))
        assert candidate.alert_type == "email_alert"
        assert candidate.classification == "needs_review"
        assert candidate.severity == Severity.INFO
        assert candidate.device_identifier == "C0EAE4B2C3F1"
        assert candidate.needs_review

    def test_ip_only_message_uses_ip_as_device(self, classifier):
        candidate = classifier.classify(email_intake(
            "WAN down on branch router",
            "Link lost on 203.0.113.7",
        ))
        assert candidate.alert_type == "wan_down"
        assert candidate.device_identifier == "203.0.113.7"
        assert candidate.severity == Severity.HIGH

    def test_nothing_identifying_gives_unknown_device(self, classifier):
        candidate = classifier.classify(email_intake("Interface down", "Port 3 lost carrier"))
        assert candidate.alert_type == "interface_down"
        assert candidate.device_identifier == "unknown"

    def test_subject_is_searched_before_body(self, classifier):
        # malware_detected precedes security_alert in the table, but the
        # subject is searched with the whole table first
        candidate = classifier.classify(email_intake(
            "Security alert",
            "Malware detected on C0EAE4B2C3F1",
        ))
        assert candidate.alert_type == "security_alert"

    def test_memory_percentage_above_ninety_is_critical(self, classifier):
        candidate = classifier.classify(email_intake(
            "Memory usage alert",
            "RAM at 92% on C0EAE4B2C3F1",
        ))
        assert candidate.alert_type == "high_memory"
        assert candidate.severity == Severity.CRITICAL

    def test_cpu_percentage_beats_keywords(self, classifier):
        candidate = classifier.classify(email_intake(
            "CPU usage warning",
            "CPU at 87% on C0EAE4B2C3F1",
        ))
        assert candidate.alert_type == "high_cpu"
        assert candidate.severity == Severity.HIGH

    def test_cpu_at_threshold_is_medium(self, classifier):
        candidate = classifier.classify(email_intake("High CPU usage", "CPU at 75%"))
        assert candidate.severity == Severity.MEDIUM

    def test_body_timestamp_sets_detected_at(self, classifier):
        candidate = classifier.classify(email_intake(
            "IPS Alert",
            "Time: 2025-03-04 10:15:00\nDevice: fw-branch-01",
        ))
        assert candidate.alert_type == "ips_alert"
        assert candidate.detected_at == datetime(2025, 3, 4, 10, 15, tzinfo=timezone.utc)
        assert candidate.device_identifier == "fw-branch-01"

    def test_date_header_wins_over_body_timestamp(self, classifier):
        candidate = classifier.classify(RawAlertIntake(tenant_id=TENANT, payload={
            "source_system": "email",
            "subject": "IPS Alert",
            "body": "Time: 2025-03-04 10:15:00",
            "sent_at": "2025-03-04T10:20:00Z",
        }))
        assert candidate.detected_at == datetime(2025, 3, 4, 10, 20, tzinfo=timezone.utc)

    def test_naive_date_header_taken_as_utc(self, classifier):
        candidate = classifier.classify(RawAlertIntake(tenant_id=TENANT, payload={
            "source_system": "email",
            "subject": "VPN down",
            "sent_at": "2025-03-04T09:00:00",
        }))
        assert candidate.detected_at == datetime(2025, 3, 4, 9, 0, tzinfo=timezone.utc)

    def test_email_has_no_stable_source_id(self, classifier):
        intake = RawAlertIntake(
            tenant_id=TENANT,
            source_id="msg-1",
            payload={"source_system": "email", "subject": "VPN down"},
        )
        assert classifier.classify(intake).source_id is None


# ---------------------------------------------------------------------------
# Structured sources
# ---------------------------------------------------------------------------

class TestStructuredClassification:
    def test_edr_explicit_severity_wins(self, classifier):
        intake = RawAlertIntake(tenant_id=TENANT, payload=EdrPayload(
            alert_id="edr-991",
            title="Trojan.GenericKD quarantined",
            severity="Low",
            device_serial="C0EAE4B2C3F1",
            file_hash="44d88612fea8a8f36de82e1278abb02f",
        ))
        candidate = classifier.classify(intake)
        assert candidate.alert_type == "malware_detected"
        assert candidate.severity == Severity.LOW
        assert candidate.source_id == "edr-991"
        assert candidate.device_identifier == "C0EAE4B2C3F1"
        assert candidate.metadata["file_hash"] == "44d88612fea8a8f36de82e1278abb02f"

    def test_edr_without_severity_uses_hint(self, classifier):
        intake = RawAlertIntake(tenant_id=TENANT, payload=EdrPayload(
            title="Ransomware behaviour blocked",
            device_name="LAPTOP-042",
        ))
        candidate = classifier.classify(intake)
        assert candidate.severity == Severity.HIGH
        assert candidate.device_identifier == "LAPTOP-042"

    def test_siem_numeric_priority(self, classifier):
        intake = RawAlertIntake(tenant_id=TENANT, payload=SiemPayload(
            event_id="evt-17",
            title="Port scan detected",
            priority=5,
            hostname="web-01",
            src_ip="198.51.100.23",
        ))
        candidate = classifier.classify(intake)
        assert candidate.alert_type == "network_anomaly"
        assert candidate.severity == Severity.CRITICAL
        assert candidate.device_identifier == "web-01"
        assert candidate.source_id == "evt-17"
        assert candidate.metadata["src_ip"] == "198.51.100.23"

    def test_siem_unknown_priority_falls_through_to_hint(self, classifier):
        intake = RawAlertIntake(tenant_id=TENANT, payload=SiemPayload(
            title="Brute force against VPN portal",
            priority=9,
        ))
        candidate = classifier.classify(intake)
        assert candidate.alert_type == "suspicious_login"
        assert candidate.severity == Severity.MEDIUM

    def test_firewall_metrics_grade_utilization(self, classifier):
        intake = RawAlertIntake(tenant_id=TENANT, payload=FirewallPayload(
            alert_type="high_cpu",
            message="CPU utilization above threshold",
            device_serial="C0EAE4B2C3F1",
            metrics={"cpu_percent": 91.5},
        ))
        candidate = classifier.classify(intake)
        assert candidate.alert_type == "high_cpu"
        assert candidate.severity == Severity.CRITICAL
        assert candidate.metadata["metrics"] == {"cpu_percent": 91.5}

    def test_unmatched_structured_alert_is_generic(self, classifier):
        intake = RawAlertIntake(tenant_id=TENANT, payload=SiemPayload(title="Heartbeat"))
        candidate = classifier.classify(intake)
        assert candidate.alert_type == "generic_alert"
        assert candidate.classification == "needs_review"

    def test_custom_severity_table(self):
        config = TriageRulesConfig(
            rules=[ClassificationRuleConfig(
                alert_type="beacon", classification="botnet_activity", patterns=["beacon"]
            )],
            severity_tables={"siem": SeverityTableConfig(field_values={"p1": "critical"})},
        )
        classifier = Classifier(StaticRulesProvider(config))
        intake = RawAlertIntake(tenant_id=TENANT, payload=SiemPayload(title="Beacon seen", severity="P1"))
        candidate = classifier.classify(intake)
        assert candidate.alert_type == "beacon"
        assert candidate.severity == Severity.CRITICAL


class TestClassifierFallback:
    def test_provider_failure_routes_to_review(self):
        classifier = Classifier(_BrokenProvider())
        candidate = classifier.classify(email_intake("VPN Down - Critical", "C0EAE4B2C3F1"))
        assert candidate.classification == "needs_review"
        assert candidate.alert_type == "email_alert"
        assert candidate.severity == Severity.INFO
        assert candidate.device_identifier == "unknown"
        assert "rules store unavailable" in candidate.metadata["classification_error"]


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------

class TestExtraction:
    def test_serial_preferred_over_ip(self):
        assert extract_device_identifier("10.0.0.1 behind C0EAE4B2C3F1") == "C0EAE4B2C3F1"

    def test_mac_address(self):
        assert extract_device_identifier("client 00:1a:2b:3c:4d:5e dropped") == "00:1a:2b:3c:4d:5e"

    def test_hostname_label(self):
        assert extract_device_identifier("Hostname: core-sw-2.") == "core-sw-2"

    def test_nothing_found(self):
        assert extract_device_identifier(None, "") == "unknown"

    @pytest.mark.parametrize("text,expected", [
        ("Time: 2025-03-04 10:15:00", datetime(2025, 3, 4, 10, 15, tzinfo=timezone.utc)),
        ("Date: 03/04/2025 08:00:01", datetime(2025, 3, 4, 8, 0, 1, tzinfo=timezone.utc)),
        ("timestamp: March 4, 2025 23:59:59", datetime(2025, 3, 4, 23, 59, 59, tzinfo=timezone.utc)),
        ("no timestamp here", None),
    ])
    def test_extract_timestamp(self, text, expected):
        assert extract_timestamp(text) == expected

    def test_extract_percentage_skips_out_of_range(self):
        assert extract_percentage("burst 150% then 97.5% sustained") == 97.5
        assert extract_percentage(None, "no numbers") is None
