"""
Intake Payloads
===============

Typed raw payloads, one variant per source system, discriminated by the
``source_system`` field. Connectors and the webhook build these; the
classifier dispatches on the variant type.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field


class EmailPayload(BaseModel):
    """Alert notification email sent by a firewall or monitoring appliance."""
    source_system: Literal["email"] = "email"
    subject: str = Field(..., description="Email subject line")
    body: str = Field(default="", description="Plain-text body")
    sender: Optional[str] = None
    sent_at: Optional[datetime] = Field(None, description="Date header, when present")


class EdrPayload(BaseModel):
    """Endpoint detection and response alert."""
    source_system: Literal["edr"] = "edr"
    alert_id: Optional[str] = Field(None, description="Native EDR alert id")
    title: str
    description: Optional[str] = None
    severity: Optional[str] = None
    threat_name: Optional[str] = None
    threat_category: Optional[str] = None
    device_name: Optional[str] = None
    device_serial: Optional[str] = None
    device_ip: Optional[str] = None
    user: Optional[str] = None
    file_hash: Optional[str] = None
    detected_at: Optional[datetime] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class FirewallPayload(BaseModel):
    """Firewall event pushed by the appliance or derived by polling."""
    source_system: Literal["firewall"] = "firewall"
    alert_type: Optional[str] = Field(None, description="Appliance event type, e.g. 'ips', 'wan_down'")
    message: str = Field(default="")
    severity: Optional[str] = None
    device_serial: Optional[str] = None
    device_ip: Optional[str] = None
    src_ip: Optional[str] = None
    dest_ip: Optional[str] = None
    metrics: Dict[str, float] = Field(
        default_factory=dict,
        description="Utilization gauges such as cpu_percent, ram_percent, disk_percent"
    )
    detected_at: Optional[datetime] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class SiemPayload(BaseModel):
    """Correlated event forwarded by a SIEM."""
    source_system: Literal["siem"] = "siem"
    event_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    severity: Optional[str] = None
    priority: Optional[Union[int, str]] = None
    source: Optional[str] = None
    hostname: Optional[str] = None
    src_ip: Optional[str] = None
    dest_ip: Optional[str] = None
    user: Optional[str] = None
    domain: Optional[str] = None
    file_hash: Optional[str] = None
    detected_at: Optional[datetime] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


AlertPayload = Annotated[
    Union[EmailPayload, EdrPayload, FirewallPayload, SiemPayload],
    Field(discriminator="source_system"),
]


class RawAlertIntake(BaseModel):
    """One alert as delivered by a source, before classification."""
    tenant_id: str = Field(..., min_length=1)
    source_id: Optional[str] = Field(
        None,
        description="Stable upstream alert id; EDR and SIEM ids are taken from the payload when omitted"
    )
    connector_id: Optional[str] = Field(
        None,
        description="Configured source instance that delivered the alert"
    )
    payload: AlertPayload
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def source_system(self) -> str:
        return self.payload.source_system

    @property
    def stable_source_id(self) -> Optional[str]:
        """Upstream id usable for deduplication, or None for email/firewall."""
        if isinstance(self.payload, EdrPayload):
            return self.source_id or self.payload.alert_id
        if isinstance(self.payload, SiemPayload):
            return self.source_id or self.payload.event_id
        return None
