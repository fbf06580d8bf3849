"""
Assignment Domain Entities
==========================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from alert_triage.config import VALID_ROLES


@dataclass
class Analyst:
    """
    Directory record for someone who can be handed work.

    Open workload is always derived from the alert and incident stores;
    only ``last_assigned_at`` is kept here, for tie-breaking.
    """

    id: str
    tenant_id: str
    role: str
    display_name: Optional[str] = None
    last_assigned_at: Optional[datetime] = None
    active: bool = True

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"Invalid role: {self.role}")
