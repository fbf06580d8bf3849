"""
In-Memory Analyst Directory
===========================
"""

import copy
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from alert_triage.assignment.application.services import IAnalystDirectory
from alert_triage.assignment.domain.entities import Analyst


class InMemoryAnalystDirectory(IAnalystDirectory):
    """Dict-backed analyst directory."""

    def __init__(self, analysts: Optional[Iterable[Analyst]] = None):
        self._analysts: Dict[str, Analyst] = {}
        for analyst in analysts or ():
            self._analysts[analyst.id] = copy.deepcopy(analyst)

    async def get(self, analyst_id: str) -> Optional[Analyst]:
        analyst = self._analysts.get(analyst_id)
        return copy.deepcopy(analyst) if analyst else None

    async def list_for_tenant(self, tenant_id: str) -> List[Analyst]:
        return [
            copy.deepcopy(a) for a in self._analysts.values()
            if a.tenant_id == tenant_id and a.active
        ]

    async def upsert(self, analyst: Analyst) -> Analyst:
        self._analysts[analyst.id] = copy.deepcopy(analyst)
        return analyst

    async def touch_last_assigned(self, analyst_id: str, assigned_at: datetime) -> None:
        analyst = self._analysts.get(analyst_id)
        if analyst is not None:
            analyst.last_assigned_at = assigned_at
