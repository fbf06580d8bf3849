"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="alert-triage", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Storage ==========
    storage_backend: str = Field(
        default="memory",
        description="Repository backend: 'memory' or 'sqlalchemy'"
    )
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/alert_triage",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    create_tables_on_startup: bool = Field(
        default=True,
        description="Create tables at startup (development; use migrations in production)"
    )

    # ========== Classification Rules ==========
    triage_rules_path: Path = Field(
        default=Path("triage_rules.yaml"),
        description="Path to the classification rules / severity tables YAML file"
    )

    # ========== Deduplication & Correlation ==========
    dedup_window_hours: int = Field(
        default=24,
        description="Window in which a repeat delivery merges into an open alert",
        ge=1
    )
    correlation_window_minutes: int = Field(
        default=60,
        description="Time window for indicator-based correlation",
        ge=1
    )
    correlation_overlap_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    correlation_time_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    correlation_saturation: int = Field(
        default=3,
        description="Shared indicator count at which overlap score saturates",
        ge=1
    )

    # ========== Alert Storm Detection ==========
    storm_threshold: int = Field(
        default=10,
        description="New alerts per device within the storm window that trigger a storm",
        ge=1
    )
    storm_window_minutes: int = Field(default=5, ge=1)
    storm_suppression_minutes: int = Field(default=15, ge=1)

    # ========== Escalation ==========
    resolution_notes_min_length: int = Field(
        default=10,
        description="Minimum length of analyst notes when resolving an alert",
        ge=1
    )

    # ========== Connectors ==========
    connector_poll_interval: int = Field(
        default=60,
        description="Seconds between connector polls",
        ge=5
    )
    connector_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single connector fetch",
        ge=0.1,
        le=120
    )
    connector_max_retries: int = Field(default=3, ge=1, le=10)
    connector_failure_threshold: int = Field(
        default=5,
        description="Consecutive failures before a connector circuit opens",
        ge=1
    )
    connector_recovery_timeout: float = Field(default=60.0, ge=1.0)
    connectors_path: Optional[Path] = Field(
        default=None,
        description="YAML file listing connector instances to poll"
    )

    # ========== Analyst Directory ==========
    analysts_path: Optional[Path] = Field(
        default=None,
        description="YAML file seeding the analyst directory at startup"
    )

    # ========== Caching ==========
    playbook_cache_ttl_seconds: float = Field(default=300.0, ge=0.0)

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        allowed = {"memory", "sqlalchemy"}
        if v not in allowed:
            raise ValueError(f"storage_backend must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class SourceSystem(str):
    """Upstream alert sources."""
    EMAIL = "email"
    EDR = "edr"
    FIREWALL = "firewall"
    SIEM = "siem"


class Severity(str):
    """Normalized alert severity."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class AlertStatus(str):
    """Escalation state machine states."""
    NEW = "new"
    ASSIGNED = "assigned"
    INVESTIGATING = "investigating"
    RESOLVED_BENIGN = "resolved_benign"
    RESOLVED_FALSE_POSITIVE = "resolved_false_positive"
    ESCALATED = "escalated"


class ResolutionOutcome(str):
    """Outcomes accepted when resolving an alert without escalation."""
    BENIGN = "benign"
    FALSE_POSITIVE = "false_positive"


class Role(str):
    """Authenticated user roles."""
    SUPER_ADMIN = "super_admin"
    TENANT_ADMIN = "tenant_admin"
    SECURITY_ANALYST = "security_analyst"
    IT_HELPDESK_ANALYST = "it_helpdesk_analyst"
    USER = "user"


class TicketCategory(str):
    """Work item categories used for role-gated routing."""
    # Security
    SECURITY_INCIDENT = "security_incident"
    MALWARE = "malware"
    PHISHING = "phishing"
    INTRUSION = "intrusion"
    DATA_BREACH = "data_breach"
    POLICY_VIOLATION = "policy_violation"
    VULNERABILITY = "vulnerability"
    COMPLIANCE = "compliance"
    # Help desk
    HARDWARE = "hardware"
    SOFTWARE = "software"
    NETWORK = "network"
    ACCESS = "access"
    GENERAL = "general"


class Priority(str):
    """Incident priority levels."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class IncidentStatus(str):
    """Incident lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class PlaybookStatus(str):
    """Playbook lifecycle statuses."""
    DRAFT = "draft"
    ACTIVE = "active"
    RETIRED = "retired"


# ========== Lists for validation ==========

SOURCE_SYSTEMS = [
    SourceSystem.EMAIL, SourceSystem.EDR,
    SourceSystem.FIREWALL, SourceSystem.SIEM
]
SEVERITIES = [
    Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM,
    Severity.LOW, Severity.INFO
]
TERMINAL_STATUSES = [
    AlertStatus.RESOLVED_BENIGN,
    AlertStatus.RESOLVED_FALSE_POSITIVE,
    AlertStatus.ESCALATED
]
OPEN_STATUSES = [
    AlertStatus.NEW, AlertStatus.ASSIGNED, AlertStatus.INVESTIGATING
]
VALID_ROLES = [
    Role.SUPER_ADMIN, Role.TENANT_ADMIN, Role.SECURITY_ANALYST,
    Role.IT_HELPDESK_ANALYST, Role.USER
]
SECURITY_CATEGORIES = [
    TicketCategory.SECURITY_INCIDENT, TicketCategory.MALWARE,
    TicketCategory.PHISHING, TicketCategory.INTRUSION,
    TicketCategory.DATA_BREACH, TicketCategory.POLICY_VIOLATION,
    TicketCategory.VULNERABILITY, TicketCategory.COMPLIANCE
]
HELPDESK_CATEGORIES = [
    TicketCategory.HARDWARE, TicketCategory.SOFTWARE,
    TicketCategory.NETWORK, TicketCategory.ACCESS,
    TicketCategory.GENERAL
]
ALL_CATEGORIES = SECURITY_CATEGORIES + HELPDESK_CATEGORIES
OPEN_INCIDENT_STATUSES = [IncidentStatus.OPEN, IncidentStatus.IN_PROGRESS]
