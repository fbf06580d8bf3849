"""
In-Memory Playbook Repository
=============================
"""

import copy
from typing import Dict, List, Optional

from alert_triage.core import RepositoryException
from alert_triage.playbooks.application.services import IPlaybookRepository
from alert_triage.playbooks.domain.entities import Playbook


class InMemoryPlaybookRepository(IPlaybookRepository):
    """Dict-backed playbook store."""

    def __init__(self):
        self._playbooks: Dict[str, Playbook] = {}

    async def get(self, playbook_id: str) -> Optional[Playbook]:
        playbook = self._playbooks.get(playbook_id)
        return copy.deepcopy(playbook) if playbook else None

    async def find_by_name_version(self, name: str, version: str) -> Optional[Playbook]:
        for playbook in self._playbooks.values():
            if playbook.name == name and playbook.version == version:
                return copy.deepcopy(playbook)
        return None

    async def add(self, playbook: Playbook) -> Playbook:
        if playbook.id in self._playbooks:
            raise RepositoryException(f"Playbook {playbook.id} already exists")
        self._playbooks[playbook.id] = copy.deepcopy(playbook)
        return playbook

    async def save(self, playbook: Playbook) -> Playbook:
        if playbook.id not in self._playbooks:
            raise RepositoryException(f"Playbook {playbook.id} not found")
        self._playbooks[playbook.id] = copy.deepcopy(playbook)
        return playbook

    async def delete(self, playbook_id: str) -> None:
        self._playbooks.pop(playbook_id, None)

    async def list(
        self,
        status: Optional[str] = None,
        classification: Optional[str] = None,
        name: Optional[str] = None,
    ) -> List[Playbook]:
        rows = [
            p for p in self._playbooks.values()
            if (status is None or p.status == status)
            and (name is None or p.name == name)
            and (classification is None or any(c.classification == classification for c in p.classifications))
        ]
        rows.sort(key=lambda p: (p.name, p.version))
        return [copy.deepcopy(p) for p in rows]
