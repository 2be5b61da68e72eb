"""Database connection and session management.

This module provides the async engine, session factory and schema
bootstrap for the storage layer.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from polydiction.storage.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


def to_async_database_url(database_url: str) -> str:
    """Swap a sync PostgreSQL URL for its asyncpg form; other URLs pass through."""
    if database_url.startswith("postgresql://"):
        logger.warning(
            "Database URL uses sync dialect 'postgresql://'; using async driver 'postgresql+asyncpg://'."
        )
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def create_async_db_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an asynchronous SQLAlchemy engine.

    Args:
        database_url: Database connection URL (e.g., postgresql+asyncpg://...).
        **kwargs: Additional engine options.

    Returns:
        SQLAlchemy AsyncEngine instance.
    """
    return create_async_engine(to_async_database_url(database_url), **kwargs)


def create_async_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an asynchronous session factory.

    Args:
        engine: SQLAlchemy AsyncEngine instance.

    Returns:
        Async session factory.
    """
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def init_async_db(engine: AsyncEngine) -> None:
    """Initialize the database schema asynchronously.

    Creates all tables defined in the models. Production deployments use the
    alembic migrations instead.

    Args:
        engine: SQLAlchemy AsyncEngine instance.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized (async)")


class DatabaseManager:
    """Manages database connections and sessions.

    Each ``session()`` context is one unit of work: it commits on success
    and rolls back on any exception.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ) -> None:
        """Initialize database manager.

        Args:
            database_url: Database connection URL.
            pool_size: Connection pool size (ignored for sqlite).
            max_overflow: Maximum overflow connections (ignored for sqlite).
            echo: Echo SQL statements for debugging.
        """
        self.database_url = database_url
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo

        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Get or create the asynchronous engine."""
        if self._engine is None:
            kwargs: dict[str, Any] = {"echo": self._echo}
            if not self.database_url.startswith("sqlite"):
                kwargs["pool_size"] = self._pool_size
                kwargs["max_overflow"] = self._max_overflow
            self._engine = create_async_db_engine(self.database_url, **kwargs)
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an asynchronous session as a context manager.

        Yields:
            SQLAlchemy AsyncSession instance.
        """
        if self._session_factory is None:
            self._session_factory = create_async_session_factory(self.engine)

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def init_schema(self) -> None:
        """Initialize database schema asynchronously."""
        await init_async_db(self.engine)

    async def dispose(self) -> None:
        """Dispose of all async database connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
        logger.info("Async database connections disposed")
