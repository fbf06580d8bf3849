"""
Assignment Application DTOs
===========================
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from alert_triage.assignment.domain.entities import Analyst


class CategoryAccessResponse(BaseModel):
    """Categories the caller's role may view and be assigned."""
    role: str
    categories: List[str]


class CategoryCheckRequest(BaseModel):
    categories: List[str] = Field(..., min_length=1)


class RegisterAnalystRequest(BaseModel):
    """Directory record pushed by the identity provider."""
    id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    role: str
    display_name: Optional[str] = None
    active: bool = True

    def to_domain(self) -> Analyst:
        return Analyst(
            id=self.id,
            tenant_id=self.tenant_id,
            role=self.role,
            display_name=self.display_name,
            active=self.active,
        )


class AnalystResponse(BaseModel):
    id: str
    tenant_id: str
    role: str
    display_name: Optional[str] = None
    last_assigned_at: Optional[datetime] = None
    active: bool

    @classmethod
    def from_entity(cls, analyst: Analyst) -> "AnalystResponse":
        return cls(
            id=analyst.id,
            tenant_id=analyst.tenant_id,
            role=analyst.role,
            display_name=analyst.display_name,
            last_assigned_at=analyst.last_assigned_at,
            active=analyst.active,
        )
