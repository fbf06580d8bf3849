"""
Caller Identity
===============

The authenticated caller as supplied by the upstream auth layer.
"""

from dataclasses import dataclass

from alert_triage.config import Role, VALID_ROLES


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation."""

    user_id: str
    role: str
    tenant_id: str

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"unknown role '{self.role}'")
        if not self.user_id:
            raise ValueError("user_id is required")

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.SUPER_ADMIN, Role.TENANT_ADMIN)

    def can_access_tenant(self, tenant_id: str) -> bool:
        return self.is_super_admin or self.tenant_id == tenant_id


SYSTEM_ACTOR_ID = "system"
