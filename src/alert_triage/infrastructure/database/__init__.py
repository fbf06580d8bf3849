"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations. The
engine is owned by a ``Database`` service object created at startup and
disposed at shutdown; nothing is held in module globals.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime read back from the database to aware UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Database:
    """
    Async engine + session factory with an explicit lifecycle.

    Usage:
        database = Database(settings.database_url)
        database.connect()
        async with database.session() as session:
            ...
        await database.dispose()
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        # asyncpg wants ssl= rather than libpq's sslmode=
        self.url = url.replace("sslmode=", "ssl=")
        self.echo = echo
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database engine not initialized. Call connect() first.")
        return self._engine

    def connect(self) -> AsyncEngine:
        """Create the engine and session maker."""
        if self._engine is not None:
            return self._engine

        options = {"echo": self.echo, "pool_pre_ping": True}
        if not self.url.startswith("sqlite"):
            options.update(pool_size=self.pool_size, max_overflow=self.max_overflow)

        self._engine = create_async_engine(self.url, **options)
        self._session_maker = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database engine created", extra={"dialect": self._engine.dialect.name})
        return self._engine

    async def dispose(self) -> None:
        """Close the engine and release pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None
            logger.info("Database engine disposed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Transactional session scope.

        Commits when the block exits normally, rolls back and re-raises
        otherwise.
        """
        if self._session_maker is None:
            raise RuntimeError("Database not initialized. Call connect() first.")

        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """
        Create all database tables.

        This should only be used for development/testing.
        Production should use migrations (Alembic).
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
