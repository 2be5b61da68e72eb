"""Tests for database URL handling and session management."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from polydiction.ingestor.models import Trade
from polydiction.storage.database import DatabaseManager, to_async_database_url
from polydiction.storage.repos import TradeDTO, TradeRepository


def make_trade() -> Trade:
    return Trade(
        trade_id="t1",
        market_id="m1",
        token_id="tok1",
        maker="0xmaker",
        taker="0xtaker",
        side="BUY",
        size=Decimal("10"),
        price=Decimal("0.5"),
        timestamp=datetime(2026, 1, 1, tzinfo=UTC),
    )


class TestToAsyncDatabaseUrl:
    def test_sync_postgres_url_upgraded(self) -> None:
        assert to_async_database_url("postgresql://u:p@db/x") == "postgresql+asyncpg://u:p@db/x"

    @pytest.mark.parametrize("url", ["postgresql+asyncpg://u:p@db/x", "sqlite+aiosqlite:///polydiction.db"])
    def test_async_urls_unchanged(self, url: str) -> None:
        assert to_async_database_url(url) == url


class TestDatabaseManager:
    async def test_session_commits(self, db_manager: DatabaseManager) -> None:
        async with db_manager.session() as session:
            await TradeRepository(session).upsert(TradeDTO.from_trade(make_trade()))

        async with db_manager.session() as session:
            assert await TradeRepository(session).get_by_trade_id("t1") is not None

    async def test_session_rolls_back_on_error(self, db_manager: DatabaseManager) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            async with db_manager.session() as session:
                await TradeRepository(session).upsert(TradeDTO.from_trade(make_trade()))
                raise RuntimeError("boom")

        async with db_manager.session() as session:
            assert await TradeRepository(session).get_by_trade_id("t1") is None
