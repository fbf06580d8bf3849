"""
Playbook Application Services
=============================

Playbook management (super admin only) and lookup of the playbooks that
apply to an alert classification.

Lookups are advisory: they never gate resolution or escalation.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from alert_triage.alerts.domain.entities import NormalizedAlert, utcnow
from alert_triage.config import PlaybookStatus
from alert_triage.core import (
    Actor,
    ConflictException,
    PermissionDeniedException,
    ResourceNotFoundException,
    ValidationException,
)
from alert_triage.playbooks.domain.entities import (
    AlertWithPlaybooks,
    ClassificationLink,
    DecisionGuidance,
    Playbook,
    PlaybookRecommendation,
)
from alert_triage.shared.infrastructure.cache import QueryCache
from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_UPDATABLE_FIELDS = (
    "name",
    "version",
    "purpose",
    "quick_response_guide",
    "initial_validation_steps",
    "source_investigation_steps",
    "containment_checks",
)


# ========== Repository Interfaces ==========

class IPlaybookRepository(ABC):
    """Interface for playbook data access."""

    @abstractmethod
    async def get(self, playbook_id: str) -> Optional[Playbook]:
        """Get playbook by id, links included."""

    @abstractmethod
    async def find_by_name_version(self, name: str, version: str) -> Optional[Playbook]:
        """Get playbook by its unique (name, version)."""

    @abstractmethod
    async def add(self, playbook: Playbook) -> Playbook:
        """Persist a new playbook and its links."""

    @abstractmethod
    async def save(self, playbook: Playbook) -> Playbook:
        """Persist changes, replacing the link set."""

    @abstractmethod
    async def delete(self, playbook_id: str) -> None:
        """Remove a playbook and its links."""

    @abstractmethod
    async def list(
        self,
        status: Optional[str] = None,
        classification: Optional[str] = None,
        name: Optional[str] = None,
    ) -> List[Playbook]:
        """List playbooks, optionally filtered."""


# ========== Services ==========

class PlaybookService:
    """
    Playbook CRUD plus classification lookup.

    Usage:
        service = PlaybookService(repository, QueryCache("playbooks"))
        recommendation = await service.resolve("malware")
    """

    def __init__(self, repository: IPlaybookRepository, cache: Optional[QueryCache] = None):
        self._repository = repository
        self._cache = cache or QueryCache("playbooks")
        self._write_lock = asyncio.Lock()

    # ========== Queries ==========

    async def list(
        self,
        status: Optional[str] = None,
        classification: Optional[str] = None,
    ) -> List[Playbook]:
        if status is not None and status not in (PlaybookStatus.DRAFT, PlaybookStatus.ACTIVE, PlaybookStatus.RETIRED):
            raise ValidationException(f"Invalid playbook status: {status}", {"status": status})
        return await self._repository.list(status=status, classification=classification)

    async def get(self, playbook_id: str) -> Playbook:
        playbook = await self._repository.get(playbook_id)
        if playbook is None:
            raise ResourceNotFoundException("Playbook", playbook_id)
        return playbook

    async def versions(self, name: str) -> List[Playbook]:
        """Every version of a named playbook, oldest first."""
        rows = await self._repository.list(name=name)
        return sorted(rows, key=lambda p: p.created_at)

    async def resolve(self, classification: str) -> PlaybookRecommendation:
        """Active primary and secondary playbooks for ``classification``."""
        return await self._cache.get_or_load(
            classification,
            lambda: self._load_recommendation(classification),
        )

    async def attach_to_alert(self, alert: NormalizedAlert) -> AlertWithPlaybooks:
        return AlertWithPlaybooks(alert=alert, recommendation=await self.resolve(alert.classification))

    async def classification_summary(self) -> Dict[str, Dict[str, Any]]:
        """Per classification: primary playbook id and count of active playbooks."""
        summary: Dict[str, Dict[str, Any]] = {}
        for playbook in await self._repository.list(status=PlaybookStatus.ACTIVE):
            for link in playbook.classifications:
                row = summary.setdefault(
                    link.classification,
                    {"primary_playbook_id": None, "playbook_count": 0},
                )
                row["playbook_count"] += 1
                if link.is_primary:
                    row["primary_playbook_id"] = playbook.id
        return dict(sorted(summary.items()))

    async def _load_recommendation(self, classification: str) -> PlaybookRecommendation:
        recommendation = PlaybookRecommendation(classification=classification)
        active = await self._repository.list(status=PlaybookStatus.ACTIVE, classification=classification)
        for playbook in sorted(active, key=lambda p: (p.name, p.version)):
            link = next(c for c in playbook.classifications if c.classification == classification)
            if link.is_primary and recommendation.primary is None:
                recommendation.primary = playbook
            else:
                recommendation.secondary.append(playbook)
        return recommendation

    # ========== Commands ==========

    async def create(
        self,
        actor: Actor,
        name: str,
        version: str,
        purpose: str,
        decision_guidance: DecisionGuidance,
        classifications: List[ClassificationLink],
        status: str = PlaybookStatus.DRAFT,
        **content: List[str],
    ) -> Playbook:
        self._require_super_admin(actor, "create")
        if status not in (PlaybookStatus.DRAFT, PlaybookStatus.ACTIVE):
            raise ValidationException("New playbooks must be draft or active", {"status": status})

        playbook = Playbook(
            name=(name or "").strip(),
            version=(version or "").strip(),
            purpose=purpose,
            decision_guidance=decision_guidance,
            classifications=list(classifications),
            status=status,
            created_by=actor.user_id,
            **content,
        )
        playbook.validate()

        async with self._write_lock:
            await self._ensure_unique_name_version(playbook)
            if playbook.is_active:
                await self._ensure_no_active_primary(playbook)
            await self._repository.add(playbook)
            self._cache.invalidate()

        logger.info(
            "Playbook created",
            extra={
                "playbook_id": playbook.id,
                "playbook_name": playbook.name,
                "version": playbook.version,
                "status": status,
            }
        )
        return playbook

    async def update(self, actor: Actor, playbook_id: str, changes: Dict[str, Any]) -> Playbook:
        """
        Apply a partial update.

        ``changes`` may carry any of the content fields plus
        ``decision_guidance`` and ``classifications``; status changes go
        through ``activate`` and ``retire``.
        """
        self._require_super_admin(actor, "update")

        async with self._write_lock:
            playbook = await self.get(playbook_id)
            for key in _UPDATABLE_FIELDS:
                if key in changes and changes[key] is not None:
                    setattr(playbook, key, changes[key])
            if changes.get("decision_guidance") is not None:
                playbook.decision_guidance = changes["decision_guidance"]
            if changes.get("classifications") is not None:
                playbook.classifications = list(changes["classifications"])
            playbook.name = playbook.name.strip()
            playbook.version = playbook.version.strip()
            playbook.validate()

            await self._ensure_unique_name_version(playbook)
            if playbook.is_active:
                await self._ensure_no_active_primary(playbook)

            playbook.updated_at = utcnow()
            await self._repository.save(playbook)
            self._cache.invalidate()

        logger.info("Playbook updated", extra={"playbook_id": playbook.id, "fields": sorted(changes)})
        return playbook

    async def delete(self, actor: Actor, playbook_id: str) -> None:
        self._require_super_admin(actor, "delete")
        async with self._write_lock:
            await self.get(playbook_id)
            await self._repository.delete(playbook_id)
            self._cache.invalidate()
        logger.info("Playbook deleted", extra={"playbook_id": playbook_id})

    async def activate(self, actor: Actor, playbook_id: str) -> Playbook:
        self._require_super_admin(actor, "activate")
        async with self._write_lock:
            playbook = await self.get(playbook_id)
            if playbook.is_active:
                raise ConflictException("Playbook is already active", {"playbook_id": playbook_id})
            await self._ensure_no_active_primary(playbook)
            playbook.status = PlaybookStatus.ACTIVE
            playbook.updated_at = utcnow()
            await self._repository.save(playbook)
            self._cache.invalidate()
        logger.info("Playbook activated", extra={"playbook_id": playbook_id})
        return playbook

    async def retire(self, actor: Actor, playbook_id: str) -> Playbook:
        self._require_super_admin(actor, "retire")
        async with self._write_lock:
            playbook = await self.get(playbook_id)
            if playbook.status == PlaybookStatus.RETIRED:
                raise ConflictException("Playbook is already retired", {"playbook_id": playbook_id})
            playbook.status = PlaybookStatus.RETIRED
            playbook.updated_at = utcnow()
            await self._repository.save(playbook)
            self._cache.invalidate()
        logger.info("Playbook retired", extra={"playbook_id": playbook_id})
        return playbook

    # ========== Helpers ==========

    @staticmethod
    def _require_super_admin(actor: Actor, action: str) -> None:
        if not actor.is_super_admin:
            raise PermissionDeniedException(
                f"Only super admins can {action} playbooks",
                {"role": actor.role}
            )

    async def _ensure_unique_name_version(self, playbook: Playbook) -> None:
        existing = await self._repository.find_by_name_version(playbook.name, playbook.version)
        if existing is not None and existing.id != playbook.id:
            raise ConflictException(
                f"Playbook with name '{playbook.name}' and version '{playbook.version}' already exists",
                {"name": playbook.name, "version": playbook.version}
            )

    async def _ensure_no_active_primary(self, playbook: Playbook) -> None:
        for classification in playbook.primary_classifications:
            active = await self._repository.list(status=PlaybookStatus.ACTIVE, classification=classification)
            for other in active:
                if other.id == playbook.id:
                    continue
                if classification in other.primary_classifications:
                    raise ConflictException(
                        f"Classification '{classification}' already has an active primary playbook",
                        {"classification": classification, "playbook_id": other.id}
                    )
