"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from polydiction.config import clear_settings_cache
from polydiction.storage.database import DatabaseManager
from polydiction.storage.models import Base


@pytest.fixture
def sample_market_id() -> str:
    """Sample market ID for testing."""
    return "0x1234567890abcdef1234567890abcdef12345678"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Reload settings for every test so env overrides do not leak."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
async def async_engine():
    """Create an async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncSession:
    """Create an async session for testing."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def db_manager(tmp_path: Path):
    """File-backed sqlite database manager with the schema created."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'polydiction.db'}")
    await manager.init_schema()
    yield manager
    await manager.dispose()
