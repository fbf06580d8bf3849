"""
Intake Application DTOs
=======================

Request/response models for the webhook intake endpoint.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class WebhookIntakeRequest(BaseModel):
    """A pushed alert in the source's payload shape."""
    payload: Dict[str, Any] = Field(..., description="Source-specific alert fields")
    source_id: Optional[str] = Field(None, description="Stable upstream alert id")
    connector_id: Optional[str] = Field(None, description="Configured source instance")
    tenant_id: Optional[str] = Field(None, description="Target tenant (super admins only)")


class IngestResultResponse(BaseModel):
    """Outcome of running one alert through triage."""
    alert_id: str
    created: bool
    merged: bool
    suppressed: bool
    storm_triggered: bool
    needs_review: bool
    seen_count: int
    alert_type: str
    classification: str
    severity: str
    device_identifier: str
    status: str
    assigned_to: Optional[str] = None
    correlation_id: Optional[str] = None
