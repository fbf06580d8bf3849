"""
Playbook Infrastructure Repositories
====================================

SQLAlchemy implementation of the playbook repository.
"""

from typing import List, Optional

from sqlalchemy import select

from alert_triage.core import RepositoryException
from alert_triage.infrastructure.database import Database, as_utc
from alert_triage.playbooks.application.services import IPlaybookRepository
from alert_triage.playbooks.domain.entities import (
    ClassificationLink,
    DecisionGuidance,
    Playbook,
)
from alert_triage.playbooks.infrastructure.models import (
    PlaybookClassificationLinkModel,
    PlaybookModel,
)


def _to_entity(model: PlaybookModel) -> Playbook:
    guidance = model.decision_guidance or {}
    return Playbook(
        id=model.id,
        name=model.name,
        version=model.version,
        status=model.status,
        purpose=model.purpose,
        quick_response_guide=list(model.quick_response_guide or []),
        initial_validation_steps=list(model.initial_validation_steps or []),
        source_investigation_steps=list(model.source_investigation_steps or []),
        containment_checks=list(model.containment_checks or []),
        decision_guidance=DecisionGuidance(
            escalate_to_incident=guidance.get("escalate_to_incident", ""),
            resolve_benign=guidance.get("resolve_benign", ""),
            resolve_false_positive=guidance.get("resolve_false_positive", ""),
        ),
        classifications=[
            ClassificationLink(classification=link.classification, is_primary=link.is_primary)
            for link in sorted(model.links, key=lambda m: (not m.is_primary, m.classification))
        ],
        created_by=model.created_by,
        created_at=as_utc(model.created_at),
        updated_at=as_utc(model.updated_at),
    )


def _copy_fields(playbook: Playbook, model: PlaybookModel) -> None:
    model.name = playbook.name
    model.version = playbook.version
    model.status = playbook.status
    model.purpose = playbook.purpose
    model.quick_response_guide = list(playbook.quick_response_guide)
    model.initial_validation_steps = list(playbook.initial_validation_steps)
    model.source_investigation_steps = list(playbook.source_investigation_steps)
    model.containment_checks = list(playbook.containment_checks)
    model.decision_guidance = playbook.decision_guidance.to_dict()
    model.created_by = playbook.created_by
    model.created_at = playbook.created_at
    model.updated_at = playbook.updated_at


class SQLAlchemyPlaybookRepository(IPlaybookRepository):
    """
    SQLAlchemy implementation of the playbook repository.

    Links are loaded eagerly with the playbook (selectin) and replaced as
    a set on save.
    """

    def __init__(self, database: Database):
        self._database = database

    async def get(self, playbook_id: str) -> Optional[Playbook]:
        async with self._database.session() as session:
            model = await session.get(PlaybookModel, playbook_id)
            return _to_entity(model) if model else None

    async def find_by_name_version(self, name: str, version: str) -> Optional[Playbook]:
        stmt = select(PlaybookModel).where(PlaybookModel.name == name, PlaybookModel.version == version)
        async with self._database.session() as session:
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            return _to_entity(model) if model else None

    async def add(self, playbook: Playbook) -> Playbook:
        async with self._database.session() as session:
            model = PlaybookModel(id=playbook.id)
            _copy_fields(playbook, model)
            model.links = [
                PlaybookClassificationLinkModel(
                    playbook_id=playbook.id,
                    classification=link.classification,
                    is_primary=link.is_primary,
                )
                for link in playbook.classifications
            ]
            session.add(model)
            await session.flush()
        return playbook

    async def save(self, playbook: Playbook) -> Playbook:
        async with self._database.session() as session:
            model = await session.get(PlaybookModel, playbook.id)
            if model is None:
                raise RepositoryException(f"Playbook {playbook.id} not found")
            _copy_fields(playbook, model)

            wanted = {link.classification: link.is_primary for link in playbook.classifications}
            for link in list(model.links):
                if link.classification in wanted:
                    link.is_primary = wanted.pop(link.classification)
                else:
                    model.links.remove(link)
            for classification, is_primary in wanted.items():
                model.links.append(PlaybookClassificationLinkModel(
                    playbook_id=playbook.id,
                    classification=classification,
                    is_primary=is_primary,
                ))
            await session.flush()
        return playbook

    async def delete(self, playbook_id: str) -> None:
        async with self._database.session() as session:
            model = await session.get(PlaybookModel, playbook_id)
            if model is not None:
                await session.delete(model)

    async def list(
        self,
        status: Optional[str] = None,
        classification: Optional[str] = None,
        name: Optional[str] = None,
    ) -> List[Playbook]:
        stmt = select(PlaybookModel)
        if status is not None:
            stmt = stmt.where(PlaybookModel.status == status)
        if name is not None:
            stmt = stmt.where(PlaybookModel.name == name)
        if classification is not None:
            stmt = stmt.where(
                PlaybookModel.links.any(PlaybookClassificationLinkModel.classification == classification)
            )
        stmt = stmt.order_by(PlaybookModel.name, PlaybookModel.version)

        async with self._database.session() as session:
            result = await session.execute(stmt)
            return [_to_entity(m) for m in result.scalars().all()]
