"""
Alert Classifier
================

Turns a ``RawAlertIntake`` into an ``AlertCandidate``.

Severity precedence, first hit wins:
1. explicit severity/priority field on a structured payload
2. utilization percentage for resource alert types
3. severity keywords in the alert text
4. the matched rule's severity hint
5. info

Classification never rejects input: when nothing matches, or when
classification itself fails, a generic candidate marked ``needs_review``
is produced.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from alert_triage.config import Severity, SourceSystem
from alert_triage.intake.domain.entities import AlertCandidate, NEEDS_REVIEW, UNKNOWN_DEVICE
from alert_triage.intake.domain.payloads import (
    EdrPayload,
    EmailPayload,
    FirewallPayload,
    RawAlertIntake,
    SiemPayload,
)
from alert_triage.intake.domain.rules import (
    ClassificationRuleConfig,
    RESOURCE_METRIC_KEYS,
    SeverityTableConfig,
    TriageRulesConfig,
)
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

EMAIL_FALLBACK_TYPE = "email_alert"
GENERIC_FALLBACK_TYPE = "generic_alert"

# ========== Extraction patterns ==========

# 12+ upper-case alphanumerics with at least one digit and one letter
SERIAL_RE = re.compile(r"\b(?=[A-Z0-9]*\d)(?=[A-Z0-9]*[A-Z])[A-Z0-9]{12,}\b")
MAC_RE = re.compile(r"\b(?:[0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}\b")
IPV4_RE = re.compile(
    r"\b(?:(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)\.){3}(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)\b"
)
HOSTNAME_RE = re.compile(r"(?:hostname|device|firewall|host):\s*([A-Za-z0-9][A-Za-z0-9\-.]*)", re.IGNORECASE)
PERCENT_RE = re.compile(r"(\d{1,3}(?:\.\d+)?)\s*%")

_TIMESTAMP_PATTERNS: Tuple[Tuple[re.Pattern, Tuple[str, ...]], ...] = (
    (
        re.compile(r"(?:time|timestamp|date):\s*(\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2})", re.IGNORECASE),
        ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S"),
    ),
    (
        re.compile(r"(?:time|timestamp|date):\s*(\d{1,2}/\d{1,2}/\d{4}\s+\d{2}:\d{2}:\d{2})", re.IGNORECASE),
        ("%m/%d/%Y %H:%M:%S",),
    ),
    (
        re.compile(r"(?:time|timestamp|date):\s*([A-Za-z]+\s+\d{1,2},\s+\d{4}\s+\d{2}:\d{2}:\d{2})", re.IGNORECASE),
        ("%B %d, %Y %H:%M:%S", "%b %d, %Y %H:%M:%S"),
    ),
)


def extract_device_identifier(*texts: Optional[str]) -> str:
    """
    Best device identifier found in ``texts``.

    Serial number or MAC address, then IPv4 address, then a
    ``hostname:``/``device:`` label. Returns ``"unknown"`` otherwise.
    """
    combined = "\n".join(t for t in texts if t)
    if not combined:
        return UNKNOWN_DEVICE

    for pattern in (SERIAL_RE, MAC_RE, IPV4_RE):
        match = pattern.search(combined)
        if match:
            return match.group(0)

    match = HOSTNAME_RE.search(combined)
    if match:
        return match.group(1).rstrip(".")
    return UNKNOWN_DEVICE


def extract_percentage(*texts: Optional[str]) -> Optional[float]:
    """First ``NN%`` value in ``texts`` within 0..100."""
    for text in texts:
        if not text:
            continue
        for match in PERCENT_RE.finditer(text):
            value = float(match.group(1))
            if 0 <= value <= 100:
                return value
    return None


def extract_timestamp(text: Optional[str]) -> Optional[datetime]:
    """Labelled event timestamp in an email body, as aware UTC."""
    if not text:
        return None
    for pattern, formats in _TIMESTAMP_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        raw = re.sub(r"\s+", " ", match.group(1))
        for fmt in formats:
            try:
                return datetime.strptime(raw, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue
    return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ========== Provider Interface ==========

class ITriageRulesProvider(ABC):
    """Interface for classifier configuration access."""

    @abstractmethod
    def get_config(self) -> TriageRulesConfig:
        """Get current classification rules."""


# ========== Classifier ==========

class Classifier:
    """
    Rule-driven alert classifier.

    Stateless apart from the rules provider, so one instance is shared by
    the webhook intake and every connector.
    """

    def __init__(self, rules_provider: ITriageRulesProvider):
        self._rules_provider = rules_provider

    def classify(self, intake: RawAlertIntake) -> AlertCandidate:
        """Classify a raw alert; never raises for bad content."""
        try:
            config = self._rules_provider.get_config()
            payload = intake.payload
            if isinstance(payload, EmailPayload):
                return self._classify_email(intake, payload, config)
            if isinstance(payload, EdrPayload):
                return self._classify_edr(intake, payload, config)
            if isinstance(payload, FirewallPayload):
                return self._classify_firewall(intake, payload, config)
            if isinstance(payload, SiemPayload):
                return self._classify_siem(intake, payload, config)
            raise TypeError(f"unsupported payload {type(payload).__name__}")
        except Exception as e:
            logger.error(
                "Classification failed, routing to review",
                extra={
                    "tenant_id": intake.tenant_id,
                    "source_system": intake.source_system,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return self._fallback(intake, str(e))

    # ---------- per source ----------

    def _classify_email(
        self,
        intake: RawAlertIntake,
        payload: EmailPayload,
        config: TriageRulesConfig,
    ) -> AlertCandidate:
        table = config.table_for(SourceSystem.EMAIL)
        rule = self._match_rule(config, SourceSystem.EMAIL, [payload.subject, payload.body])

        severity = self._grade(
            config,
            table,
            rule,
            explicit=None,
            metric=self._percent_for(rule, config, {}, [payload.subject, payload.body]),
            texts=[payload.subject, payload.body],
        )

        detected_at = (
            (payload.sent_at and _as_utc(payload.sent_at))
            or extract_timestamp(payload.body)
            or _as_utc(intake.received_at)
        )

        metadata: Dict[str, Any] = {"subject": payload.subject}
        if payload.sender:
            metadata["sender"] = payload.sender
        if intake.connector_id:
            metadata["connector_id"] = intake.connector_id

        return self._candidate(
            intake,
            rule,
            fallback_type=EMAIL_FALLBACK_TYPE,
            severity=severity,
            title=payload.subject.strip() or "(no subject)",
            description=payload.body or None,
            device_identifier=extract_device_identifier(payload.subject, payload.body),
            detected_at=detected_at,
            metadata=metadata,
        )

    def _classify_edr(
        self,
        intake: RawAlertIntake,
        payload: EdrPayload,
        config: TriageRulesConfig,
    ) -> AlertCandidate:
        table = config.table_for(SourceSystem.EDR)
        headline = " ".join(
            t for t in (payload.title, payload.threat_name, payload.threat_category) if t
        )
        texts = [headline, payload.description]
        rule = self._match_rule(config, SourceSystem.EDR, texts)

        severity = self._grade(
            config,
            table,
            rule,
            explicit=payload.severity,
            metric=self._percent_for(rule, config, {}, texts),
            texts=texts,
        )

        device = (
            payload.device_serial
            or payload.device_ip
            or payload.device_name
            or extract_device_identifier(payload.title, payload.description)
        )

        metadata = dict(payload.extra)
        metadata.update({
            k: v for k, v in {
                "threat_name": payload.threat_name,
                "threat_category": payload.threat_category,
                "device_name": payload.device_name,
                "device_ip": payload.device_ip,
                "user": payload.user,
                "file_hash": payload.file_hash,
                "connector_id": intake.connector_id,
            }.items() if v
        })

        return self._candidate(
            intake,
            rule,
            fallback_type=GENERIC_FALLBACK_TYPE,
            severity=severity,
            title=payload.title,
            description=payload.description,
            device_identifier=device,
            detected_at=_as_utc(payload.detected_at or intake.received_at),
            metadata=metadata,
        )

    def _classify_firewall(
        self,
        intake: RawAlertIntake,
        payload: FirewallPayload,
        config: TriageRulesConfig,
    ) -> AlertCandidate:
        table = config.table_for(SourceSystem.FIREWALL)
        headline = (payload.alert_type or "").replace("_", " ")
        texts = [headline, payload.message]
        rule = self._match_rule(config, SourceSystem.FIREWALL, texts)

        severity = self._grade(
            config,
            table,
            rule,
            explicit=payload.severity,
            metric=self._percent_for(rule, config, payload.metrics, texts),
            texts=texts,
        )

        device = (
            payload.device_serial
            or payload.device_ip
            or extract_device_identifier(payload.message)
        )

        metadata = dict(payload.extra)
        if payload.metrics:
            metadata["metrics"] = dict(payload.metrics)
        metadata.update({
            k: v for k, v in {
                "device_ip": payload.device_ip,
                "src_ip": payload.src_ip,
                "dest_ip": payload.dest_ip,
                "connector_id": intake.connector_id,
            }.items() if v
        })

        title = payload.message.splitlines()[0].strip() if payload.message.strip() else headline
        return self._candidate(
            intake,
            rule,
            fallback_type=GENERIC_FALLBACK_TYPE,
            severity=severity,
            title=title or "Firewall alert",
            description=payload.message or None,
            device_identifier=device,
            detected_at=_as_utc(payload.detected_at or intake.received_at),
            metadata=metadata,
        )

    def _classify_siem(
        self,
        intake: RawAlertIntake,
        payload: SiemPayload,
        config: TriageRulesConfig,
    ) -> AlertCandidate:
        table = config.table_for(SourceSystem.SIEM)
        headline = " ".join(t for t in (payload.title, payload.category) if t)
        texts = [headline, payload.description]
        rule = self._match_rule(config, SourceSystem.SIEM, texts)

        explicit = payload.severity if payload.severity is not None else payload.priority
        severity = self._grade(
            config,
            table,
            rule,
            explicit=explicit,
            metric=self._percent_for(rule, config, {}, texts),
            texts=texts,
        )

        device = (
            payload.hostname
            or payload.src_ip
            or extract_device_identifier(payload.title, payload.description)
        )

        metadata = dict(payload.extra)
        metadata.update({
            k: v for k, v in {
                "category": payload.category,
                "siem_source": payload.source,
                "src_ip": payload.src_ip,
                "dest_ip": payload.dest_ip,
                "user": payload.user,
                "domain": payload.domain,
                "file_hash": payload.file_hash,
                "connector_id": intake.connector_id,
            }.items() if v
        })

        return self._candidate(
            intake,
            rule,
            fallback_type=GENERIC_FALLBACK_TYPE,
            severity=severity,
            title=payload.title,
            description=payload.description,
            device_identifier=device,
            detected_at=_as_utc(payload.detected_at or intake.received_at),
            metadata=metadata,
        )

    # ---------- shared steps ----------

    @staticmethod
    def _match_rule(
        config: TriageRulesConfig,
        source_system: str,
        texts: Iterable[Optional[str]],
    ) -> Optional[ClassificationRuleConfig]:
        """Whole rule table against each text in turn (subject before body)."""
        rules = config.rules_for(source_system)
        for text in texts:
            if not text:
                continue
            for rule in rules:
                if rule.matches(text):
                    return rule
        return None

    @staticmethod
    def _percent_for(
        rule: Optional[ClassificationRuleConfig],
        config: TriageRulesConfig,
        metrics: Dict[str, float],
        texts: List[Optional[str]],
    ) -> Optional[float]:
        if rule is None or rule.alert_type not in config.resource_alert_types:
            return None
        for key in RESOURCE_METRIC_KEYS.get(rule.alert_type, ()):
            if key in metrics:
                return float(metrics[key])
        return extract_percentage(*texts)

    @staticmethod
    def _grade(
        config: TriageRulesConfig,
        table: SeverityTableConfig,
        rule: Optional[ClassificationRuleConfig],
        explicit: Any,
        metric: Optional[float],
        texts: List[Optional[str]],
    ) -> str:
        severity = table.grade_field(explicit)
        if severity:
            return severity
        if metric is not None:
            return config.utilization.grade(metric)
        for text in texts:
            severity = table.grade_text(text or "")
            if severity:
                return severity
        if rule is not None and rule.severity_hint:
            return rule.severity_hint
        return Severity.INFO

    @staticmethod
    def _candidate(
        intake: RawAlertIntake,
        rule: Optional[ClassificationRuleConfig],
        fallback_type: str,
        **fields,
    ) -> AlertCandidate:
        if rule is None:
            alert_type, classification = fallback_type, NEEDS_REVIEW
        else:
            alert_type, classification = rule.alert_type, rule.classification

        return AlertCandidate(
            tenant_id=intake.tenant_id,
            source_system=intake.source_system,
            source_id=intake.stable_source_id,
            alert_type=alert_type,
            classification=classification,
            matched_rule=rule.alert_type if rule else None,
            **fields,
        )

    def _fallback(self, intake: RawAlertIntake, reason: str) -> AlertCandidate:
        payload = intake.payload
        title = getattr(payload, "subject", None) or getattr(payload, "title", None) or "Unclassified alert"
        fallback_type = EMAIL_FALLBACK_TYPE if intake.source_system == SourceSystem.EMAIL else GENERIC_FALLBACK_TYPE
        return AlertCandidate(
            tenant_id=intake.tenant_id,
            source_system=intake.source_system,
            source_id=intake.stable_source_id,
            alert_type=fallback_type,
            classification=NEEDS_REVIEW,
            severity=Severity.INFO,
            title=str(title),
            device_identifier=UNKNOWN_DEVICE,
            detected_at=_as_utc(intake.received_at),
            metadata={"classification_error": reason},
        )
