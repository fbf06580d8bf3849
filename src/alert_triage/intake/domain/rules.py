"""
Classification Rules
====================

Value objects describing how raw alerts are typed and graded.

The whole table is data: an ordered list of pattern rules plus one
severity table per source system. ``TriageRulesConfig`` is what the
YAML rules file deserializes into; when the file is absent the built-in
defaults below apply.
"""

import re
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, PrivateAttr, field_validator

from alert_triage.config import Severity, SEVERITIES, SOURCE_SYSTEMS

ANY_SOURCE = "any"


class ClassificationRuleConfig(BaseModel):
    """
    One ordered pattern rule.

    A rule matches when every pattern matches the searched text
    (case-insensitive).
    """
    alert_type: str = Field(..., min_length=1)
    classification: str = Field(..., min_length=1)
    patterns: List[str] = Field(..., min_length=1)
    severity_hint: Optional[str] = None
    sources: List[str] = Field(default_factory=lambda: [ANY_SOURCE])

    _compiled: Tuple[re.Pattern[str], ...] = PrivateAttr(default=())

    def model_post_init(self, __context) -> None:
        self._compiled = tuple(re.compile(p, re.IGNORECASE) for p in self.patterns)

    @field_validator("severity_hint")
    @classmethod
    def validate_severity_hint(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in SEVERITIES:
            raise ValueError(f"severity_hint must be one of {SEVERITIES}")
        return v

    @field_validator("sources")
    @classmethod
    def validate_sources(cls, v: List[str]) -> List[str]:
        for source in v:
            if source != ANY_SOURCE and source not in SOURCE_SYSTEMS:
                raise ValueError(f"unknown source system '{source}'")
        return v

    def applies_to(self, source_system: str) -> bool:
        return ANY_SOURCE in self.sources or source_system in self.sources

    def matches(self, text: str) -> bool:
        return bool(text) and all(p.search(text) for p in self._compiled)


class SeverityTableConfig(BaseModel):
    """
    Per-source severity vocabulary.

    ``field_values`` grades an explicit severity/priority field from a
    structured payload; ``keywords`` grades free text (word-boundary
    match, checked most severe first); ``numeric_levels`` grades integer
    priorities.
    """
    field_values: Dict[str, str] = Field(default_factory=dict)
    keywords: Dict[str, List[str]] = Field(default_factory=dict)
    numeric_levels: Dict[int, str] = Field(default_factory=dict)

    _keyword_patterns: List[Tuple[str, re.Pattern[str]]] = PrivateAttr(default_factory=list)

    def model_post_init(self, __context) -> None:
        patterns = []
        for severity in SEVERITIES:
            words = self.keywords.get(severity) or []
            if words:
                alternation = "|".join(re.escape(w) for w in words)
                patterns.append((severity, re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)))
        self._keyword_patterns = patterns

    @field_validator("field_values", "numeric_levels")
    @classmethod
    def validate_mapped_severities(cls, v: dict) -> dict:
        for severity in v.values():
            if severity not in SEVERITIES:
                raise ValueError(f"unknown severity '{severity}'")
        return {k.lower() if isinstance(k, str) else k: s for k, s in v.items()}

    @field_validator("keywords")
    @classmethod
    def validate_keyword_severities(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for severity in v:
            if severity not in SEVERITIES:
                raise ValueError(f"unknown severity '{severity}'")
        return v

    def grade_field(self, value) -> Optional[str]:
        """Map an explicit severity/priority field value, or None."""
        if value is None:
            return None
        if isinstance(value, bool):
            return None
        if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
            return self.numeric_levels.get(int(value))
        text = str(value).strip().lower()
        if not text:
            return None
        if text in self.field_values:
            return self.field_values[text]
        return self.grade_text(text)

    def grade_text(self, text: str) -> Optional[str]:
        """Most severe keyword found in ``text``, or None."""
        if not text:
            return None
        for severity, pattern in self._keyword_patterns:
            if pattern.search(text):
                return severity
        return None


class UtilizationThresholds(BaseModel):
    """Percent gauges graded strictly above each threshold."""
    critical_above: float = Field(default=90.0, ge=0, le=100)
    high_above: float = Field(default=75.0, ge=0, le=100)

    def grade(self, percent: float) -> str:
        if percent > self.critical_above:
            return Severity.CRITICAL
        if percent > self.high_above:
            return Severity.HIGH
        return Severity.MEDIUM


# ========== Built-in defaults ==========

_DEFAULT_KEYWORDS: Dict[str, List[str]] = {
    Severity.CRITICAL: ["critical", "emergency", "severe"],
    Severity.HIGH: ["high", "urgent", "major"],
    Severity.MEDIUM: ["medium", "moderate", "warning"],
    Severity.LOW: ["low", "minor"],
    Severity.INFO: ["info", "informational", "notice"],
}

_DEFAULT_FIELD_VALUES: Dict[str, str] = {
    "critical": Severity.CRITICAL,
    "emergency": Severity.CRITICAL,
    "high": Severity.HIGH,
    "urgent": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "warning": Severity.MEDIUM,
    "low": Severity.LOW,
    "informational": Severity.INFO,
    "info": Severity.INFO,
}

_DEFAULT_NUMERIC_LEVELS: Dict[int, str] = {
    5: Severity.CRITICAL,
    4: Severity.HIGH,
    3: Severity.MEDIUM,
    2: Severity.LOW,
    1: Severity.INFO,
}


def default_severity_tables() -> Dict[str, SeverityTableConfig]:
    return {
        source: SeverityTableConfig(
            field_values=dict(_DEFAULT_FIELD_VALUES),
            keywords={k: list(v) for k, v in _DEFAULT_KEYWORDS.items()},
            numeric_levels=dict(_DEFAULT_NUMERIC_LEVELS),
        )
        for source in SOURCE_SYSTEMS
    }


def default_rules() -> List[ClassificationRuleConfig]:
    """Ordered rule table; first match wins."""
    rule = ClassificationRuleConfig
    return [
        rule(alert_type="ips_alert", classification="intrusion_attempt",
             patterns=[r"\bIPS\s+Alert"], severity_hint=Severity.HIGH),
        rule(alert_type="vpn_down", classification="connectivity",
             patterns=[r"\bVPN\b", r"\bdown\b"], severity_hint=Severity.HIGH),
        rule(alert_type="license_expiring", classification="license",
             patterns=[r"\blicen[cs]e", r"expir"], severity_hint=Severity.MEDIUM),
        rule(alert_type="wan_down", classification="connectivity",
             patterns=[r"\bWAN\b", r"\bdown\b"], severity_hint=Severity.HIGH),
        rule(alert_type="interface_down", classification="connectivity",
             patterns=[r"\binterface\b", r"\bdown\b"], severity_hint=Severity.MEDIUM),
        rule(alert_type="high_cpu", classification="resource_utilization",
             patterns=[r"high\s+CPU|\bCPU\s+(?:usage|utili[sz]ation|load)"],
             severity_hint=Severity.MEDIUM),
        rule(alert_type="high_memory", classification="resource_utilization",
             patterns=[r"high\s+(?:memory|RAM)|\b(?:memory|RAM)\s+(?:usage|utili[sz]ation)"],
             severity_hint=Severity.MEDIUM),
        rule(alert_type="high_disk", classification="resource_utilization",
             patterns=[r"high\s+disk|\bdisk\s+(?:usage|utili[sz]ation|full|space)"],
             severity_hint=Severity.MEDIUM),
        rule(alert_type="gav_alert", classification="malware",
             patterns=[r"gateway\s+AV|anti-?virus"], severity_hint=Severity.HIGH),
        rule(alert_type="malware_detected", classification="malware",
             patterns=[r"malware|ransomware|trojan|virus"], severity_hint=Severity.HIGH),
        rule(alert_type="phishing_detected", classification="phishing",
             patterns=[r"phish"], severity_hint=Severity.HIGH),
        rule(alert_type="botnet_alert", classification="botnet_activity",
             patterns=[r"botnet|command\s+and\s+control|\bC2\b"], severity_hint=Severity.HIGH),
        rule(alert_type="atp_alert", classification="suspicious_activity",
             patterns=[r"\bATP\b"], severity_hint=Severity.HIGH),
        rule(alert_type="ips_alert", classification="intrusion_attempt",
             patterns=[r"intrusion|\bexploit"], severity_hint=Severity.HIGH),
        rule(alert_type="web_filtering", classification="web_filtering",
             patterns=[r"content\s+filter|web\s+filter|blocked\s+(?:site|url)"],
             severity_hint=Severity.LOW),
        rule(alert_type="data_exfiltration", classification="data_loss",
             patterns=[r"exfiltrat|data\s+(?:leak|loss)"], severity_hint=Severity.HIGH),
        rule(alert_type="suspicious_login", classification="access_anomaly",
             patterns=[r"(?:failed|suspicious|impossible)\s+(?:login|logon|sign-?in|travel)|brute\s*force"],
             severity_hint=Severity.MEDIUM),
        rule(alert_type="network_anomaly", classification="network_anomaly",
             patterns=[r"port\s+scan|network\s+anomal|unusual\s+traffic"],
             severity_hint=Severity.MEDIUM),
        rule(alert_type="security_alert", classification="security_alert",
             patterns=[r"security\s+alert"], severity_hint=Severity.MEDIUM),
    ]


RESOURCE_METRIC_KEYS: Dict[str, Tuple[str, ...]] = {
    "high_cpu": ("cpu_percent", "cpu"),
    "high_memory": ("ram_percent", "memory_percent", "memory", "ram"),
    "high_disk": ("disk_percent", "disk"),
}


class TriageRulesConfig(BaseModel):
    """
    Classifier configuration loaded from YAML.

    This is a value object - replaced wholesale on hot reload.
    """
    rules: List[ClassificationRuleConfig] = Field(default_factory=default_rules)
    severity_tables: Dict[str, SeverityTableConfig] = Field(default_factory=default_severity_tables)
    utilization: UtilizationThresholds = Field(default_factory=UtilizationThresholds)
    resource_alert_types: List[str] = Field(
        default_factory=lambda: list(RESOURCE_METRIC_KEYS.keys())
    )

    @field_validator("severity_tables")
    @classmethod
    def fill_missing_sources(cls, v: Dict[str, SeverityTableConfig]) -> Dict[str, SeverityTableConfig]:
        """Sources without a table fall back to the defaults."""
        defaults = default_severity_tables()
        for source in SOURCE_SYSTEMS:
            if source not in v:
                v[source] = defaults[source]
        return v

    def table_for(self, source_system: str) -> SeverityTableConfig:
        return self.severity_tables[source_system]

    def rules_for(self, source_system: str) -> List[ClassificationRuleConfig]:
        return [r for r in self.rules if r.applies_to(source_system)]
