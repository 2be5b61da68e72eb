"""Tests for the storage-backed scoring and position sync pipeline."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from polydiction.config import Settings
from polydiction.ingestor.models import MarketState, Trade
from polydiction.ingestor.normalizer import NormalizationError
from polydiction.pipeline import PositionSync, ScoringPipeline
from polydiction.storage.database import DatabaseManager
from polydiction.storage.repos import AlertRepository, TradeDTO, TradeRepository, WalletPositionRepository

T0 = datetime(2026, 1, 1, 12, tzinfo=UTC)


def make_trade(
    trade_id: str,
    *,
    maker: str = "0xmm",
    taker: str = "0xwhale",
    side: str = "BUY",
    size: str = "100",
    price: str = "0.60",
    minutes: int = 0,
) -> Trade:
    return Trade(
        trade_id=trade_id,
        market_id="m1",
        token_id="tok1",
        maker=maker,
        taker=taker,
        side=side,  # type: ignore[arg-type]
        size=Decimal(size),
        price=Decimal(price),
        timestamp=T0 + timedelta(minutes=minutes),
    )


def raw_record(trade_id: str, *, size: str = "50000", minutes: int = 0) -> dict:
    return {
        "id": trade_id,
        "market": "m1",
        "asset_id": "tok1",
        "maker_address": "0xmm",
        "owner": "0xwhale",
        "side": "buy",
        "size": size,
        "price": "0.60",
        "match_time": str(int((T0 + timedelta(minutes=minutes)).timestamp())),
    }


@pytest.fixture
def market() -> MarketState:
    return MarketState(
        market_id="m1",
        token_id="tok1",
        best_bid=Decimal("0.58"),
        best_ask=Decimal("0.60"),
        bid_depth=Decimal("500000"),
        ask_depth=Decimal("500000"),
        end_date=T0 + timedelta(days=60),
        timestamp=T0,
    )


@pytest.fixture
def pipeline(db_manager: DatabaseManager) -> ScoringPipeline:
    return ScoringPipeline(db_manager, settings=Settings())


class TestScoringPipeline:
    """Tests for ScoringPipeline."""

    async def test_evaluate_persists_trade_and_alert(
        self, pipeline: ScoringPipeline, db_manager: DatabaseManager, market: MarketState
    ) -> None:
        # 50,000 shares at 0.60 is a 30,000 USD trade
        trade = make_trade("big", size="50000")

        evaluation = await pipeline.evaluate(trade, market)

        assert evaluation.result.must_flag is True
        assert evaluation.result.should_alert is True
        assert evaluation.alert_created is True
        assert evaluation.context.trade_usd_value == pytest.approx(30_000.0)

        async with db_manager.session() as session:
            assert await TradeRepository(session).get_by_trade_id("big") is not None
            alert = await AlertRepository(session).get_by_trade_id("big")

        assert alert is not None
        assert alert.must_flag is True
        assert alert.wallet_address == "0xwhale"
        assert alert.market_state["token_price"] == "0.60"

    async def test_reevaluation_does_not_duplicate_alert(
        self, pipeline: ScoringPipeline, db_manager: DatabaseManager, market: MarketState
    ) -> None:
        trade = make_trade("big", size="50000")

        first = await pipeline.evaluate(trade, market)
        second = await pipeline.evaluate(trade, market)

        assert first.alert_created is True
        assert second.alert_created is False
        assert second.result.should_alert is True
        assert pipeline.stats.trades_processed == 2
        assert pipeline.stats.alerts_created == 1
        assert pipeline.stats.duplicate_alerts == 1

        async with db_manager.session() as session:
            assert len(await AlertRepository(session).list_recent()) == 1

    async def test_context_built_from_stored_history(
        self, pipeline: ScoringPipeline, market: MarketState
    ) -> None:
        for i, size in enumerate(["10", "20", "30"]):
            await pipeline.evaluate(make_trade(f"h{i}", taker=f"0xw{i}", size=size, minutes=i), market)

        evaluation = await pipeline.evaluate(make_trade("now", size="40", minutes=10), market)

        assert evaluation.context.median_trade_size == pytest.approx(20.0)
        assert evaluation.context.wallet_position == pytest.approx(40.0)
        assert evaluation.context.wallet_trades_last_hour == 1
        assert pipeline.stats.last_trade_time == T0 + timedelta(minutes=10)

    async def test_wallet_age_uses_full_trade_history(
        self, pipeline: ScoringPipeline, db_manager: DatabaseManager, market: MarketState
    ) -> None:
        # first seen 45 days ago in another market, outside the 7-day history window
        old = replace(make_trade("old", taker="0xvet", minutes=-45 * 24 * 60), market_id="m0")
        recent = make_trade("recent", taker="0xvet", minutes=-6 * 24 * 60)
        async with db_manager.session() as session:
            await TradeRepository(session).upsert_many([TradeDTO.from_trade(old), TradeDTO.from_trade(recent)])

        # 20,000 shares at 0.60 is a 12,000 USD trade
        evaluation = await pipeline.evaluate(make_trade("now", taker="0xvet", size="20000"), market)

        assert evaluation.context.wallet_age_days == pytest.approx(45.0)
        assert evaluation.result.must_flag is False
        assert evaluation.result.features["wallet_freshness"].score == pytest.approx(0.2)

    async def test_unseen_wallet_age_is_unknown(self, pipeline: ScoringPipeline, market: MarketState) -> None:
        evaluation = await pipeline.evaluate(make_trade("first", taker="0xnew"), market)

        assert evaluation.context.wallet_age_days is None

    async def test_evaluate_batch_skips_malformed(self, pipeline: ScoringPipeline, market: MarketState) -> None:
        records = [
            raw_record("ok-1"),
            {"id": "bad-1", "side": "buy"},
            raw_record("ok-2", size="5", minutes=1),
        ]

        batch = await pipeline.evaluate_batch(records, market)

        assert [e.trade.trade_id for e in batch.evaluations] == ["ok-1", "ok-2"]
        assert len(batch.rejected) == 1
        assert batch.rejected[0].record_id == "bad-1"
        assert batch.alerts_created >= 1
        assert pipeline.stats.trades_rejected == 1

    async def test_evaluate_batch_fail_fast(self, pipeline: ScoringPipeline, market: MarketState) -> None:
        with pytest.raises(NormalizationError):
            await pipeline.evaluate_batch([{"id": "bad-1", "side": "buy"}], market, fail_fast=True)

    async def test_market_state_round_trip(self, pipeline: ScoringPipeline, market: MarketState) -> None:
        await pipeline.record_market_state(market)

        stored = await pipeline.latest_market_state("tok1")

        assert stored is not None
        assert stored.best_ask == Decimal("0.60")
        assert stored.total_liquidity == Decimal("1000000")
        assert await pipeline.latest_market_state("tok1", as_of=T0 - timedelta(hours=1)) is None


class TestPositionSync:
    """Tests for PositionSync."""

    @pytest.fixture
    async def seeded(self, pipeline: ScoringPipeline, market: MarketState) -> None:
        for trade in [
            make_trade("a", maker="0xother", taker="0xw1", side="BUY", size="5"),
            make_trade("b", maker="0xw1", taker="0xanother", side="SELL", size="3", minutes=1),
        ]:
            await pipeline.evaluate(trade, market)

    async def test_sync_market_writes_positions(self, db_manager: DatabaseManager, seeded: None) -> None:
        sync = PositionSync(db_manager, settings=Settings())

        written = await sync.sync_market("m1", computed_at=T0 + timedelta(hours=1))

        assert written == 3
        async with db_manager.session() as session:
            latest = await WalletPositionRepository(session).get_latest("0xw1", "tok1")
        assert latest is not None
        assert latest.position == Decimal("8")
        assert latest.trade_count == 2

    async def test_sync_markets_defaults_to_active_markets(self, db_manager: DatabaseManager, seeded: None) -> None:
        result = await PositionSync(db_manager, settings=Settings()).sync_markets()

        assert result.succeeded
        assert result.markets_processed == 1
        assert result.positions_written == 3

    async def test_sync_markets_collects_errors(self, db_manager: DatabaseManager, seeded: None) -> None:
        aggregator = MagicMock()
        aggregator.aggregate.side_effect = RuntimeError("boom")
        sync = PositionSync(db_manager, settings=Settings(), aggregator=aggregator)

        result = await sync.sync_markets(["m1"])

        assert not result.succeeded
        assert result.markets_processed == 0
        assert result.errors == [("m1", "boom")]

    async def test_top_holders(self, db_manager: DatabaseManager, seeded: None) -> None:
        holders = await PositionSync(db_manager, settings=Settings()).top_holders("m1", limit=2)

        assert [h.wallet for h in holders] == ["0xw1", "0xother"]
        assert holders[0].total_position == Decimal("8")
