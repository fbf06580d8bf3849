"""
Playbook Infrastructure Models
==============================

SQLAlchemy ORM models for playbooks and their classification links.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from alert_triage.config import PlaybookStatus
from alert_triage.infrastructure.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PlaybookModel(Base):
    """
    Database model for Playbook.

    Maps to the 'playbooks' table.
    """
    __tablename__ = "playbooks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    version: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PlaybookStatus.DRAFT, index=True)
    purpose: Mapped[str] = mapped_column(Text, nullable=False)

    # Ordered step lists
    quick_response_guide: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    initial_validation_steps: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    source_investigation_steps: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    containment_checks: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    decision_guidance: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    links: Mapped[List["PlaybookClassificationLinkModel"]] = relationship(
        back_populates="playbook",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("name", "version", name="uq_playbooks_name_version"),
    )


class PlaybookClassificationLinkModel(Base):
    """
    Database model for ClassificationLink.

    Maps to the 'playbook_classification_links' table.
    """
    __tablename__ = "playbook_classification_links"

    playbook_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("playbooks.id", ondelete="CASCADE"), primary_key=True
    )
    classification: Mapped[str] = mapped_column(String(100), primary_key=True, index=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    playbook: Mapped[PlaybookModel] = relationship(back_populates="links")
