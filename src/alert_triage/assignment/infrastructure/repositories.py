"""
Assignment Infrastructure Repositories
======================================

SQLAlchemy implementation of the analyst directory.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update

from alert_triage.assignment.application.services import IAnalystDirectory
from alert_triage.assignment.domain.entities import Analyst
from alert_triage.assignment.infrastructure.models import AnalystModel
from alert_triage.infrastructure.database import Database, as_utc


def _to_entity(model: AnalystModel) -> Analyst:
    return Analyst(
        id=model.id,
        tenant_id=model.tenant_id,
        role=model.role,
        display_name=model.display_name,
        active=model.active,
        last_assigned_at=as_utc(model.last_assigned_at),
    )


class SQLAlchemyAnalystDirectory(IAnalystDirectory):
    """SQLAlchemy implementation of the analyst directory."""

    def __init__(self, database: Database):
        self._database = database

    async def get(self, analyst_id: str) -> Optional[Analyst]:
        async with self._database.session() as session:
            model = await session.get(AnalystModel, analyst_id)
            return _to_entity(model) if model else None

    async def list_for_tenant(self, tenant_id: str) -> List[Analyst]:
        stmt = select(AnalystModel).where(
            AnalystModel.tenant_id == tenant_id,
            AnalystModel.active.is_(True),
        )
        async with self._database.session() as session:
            result = await session.execute(stmt)
            return [_to_entity(m) for m in result.scalars().all()]

    async def upsert(self, analyst: Analyst) -> Analyst:
        async with self._database.session() as session:
            model = await session.get(AnalystModel, analyst.id)
            if model is None:
                model = AnalystModel(id=analyst.id)
                session.add(model)
            model.tenant_id = analyst.tenant_id
            model.role = analyst.role
            model.display_name = analyst.display_name
            model.active = analyst.active
            model.last_assigned_at = analyst.last_assigned_at
        return analyst

    async def touch_last_assigned(self, analyst_id: str, assigned_at: datetime) -> None:
        async with self._database.session() as session:
            await session.execute(
                update(AnalystModel)
                .where(AnalystModel.id == analyst_id)
                .values(last_assigned_at=assigned_at)
            )
