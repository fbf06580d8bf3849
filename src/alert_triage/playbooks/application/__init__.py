"""
Playbooks Application Layer
===========================

PlaybookService (lifecycle and guidance lookup) and its repository
interface.
"""

from alert_triage.playbooks.application.services import IPlaybookRepository, PlaybookService

__all__ = ["IPlaybookRepository", "PlaybookService"]
