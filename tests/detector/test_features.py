"""Tests for the feature bank."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from polydiction.detector.config import DEFAULT_FEATURE_WEIGHTS
from polydiction.detector.features import (
    FEATURE_FUNCTIONS,
    compute_aggressiveness,
    compute_dollar_value,
    compute_features,
    compute_position_concentration,
    compute_ramp_speed,
    compute_timing_vs_market_end,
    compute_trade_size_vs_depth,
    compute_trade_size_vs_median,
    compute_wallet_burst,
    compute_wallet_freshness,
    compute_weighted_score,
    normalize,
)
from polydiction.detector.models import ScoringContext
from polydiction.ingestor.models import MarketState, Trade

NOW = datetime(2026, 1, 1, 12, tzinfo=UTC)


def make_trade(*, side: str = "BUY", size: str = "100", price: str = "0.55") -> Trade:
    return Trade(
        trade_id="t1",
        market_id="m1",
        token_id="tok1",
        maker="0xmaker",
        taker="0xtaker",
        side=side,  # type: ignore[arg-type]
        size=Decimal(size),
        price=Decimal(price),
        timestamp=NOW,
    )


def make_market(
    *,
    best_bid: str = "0.50",
    best_ask: str = "0.55",
    bid_depth: str = "1000",
    ask_depth: str = "1000",
    end_date: datetime | None = None,
) -> MarketState:
    return MarketState(
        market_id="m1",
        token_id="tok1",
        best_bid=Decimal(best_bid),
        best_ask=Decimal(best_ask),
        bid_depth=Decimal(bid_depth),
        ask_depth=Decimal(ask_depth),
        end_date=end_date,
        timestamp=NOW,
    )


def make_context(**overrides) -> ScoringContext:
    values = {
        "median_trade_size": 100.0,
        "wallet_position": 0.0,
        "wallet_position_hour_ago": 0.0,
        "wallet_trades_last_hour": 0,
        "total_liquidity": 2000.0,
        "wallet_age_days": None,
        "trade_usd_value": 55.0,
    }
    values.update(overrides)
    return ScoringContext(**values)


class TestNormalize:
    def test_value_equal_to_median_is_half(self) -> None:
        assert normalize(100, 100) == pytest.approx(0.5)

    def test_known_points(self) -> None:
        assert normalize(4, 1) == pytest.approx(0.8)
        assert normalize(9, 1) == pytest.approx(0.9)

    def test_non_positive_median_is_zero(self) -> None:
        assert normalize(100, 0) == 0.0
        assert normalize(100, -5) == 0.0

    def test_monotonic_and_bounded(self) -> None:
        values = [0, 0.5, 1, 10, 100, 1e6, 1e12]
        scores = [normalize(v, 10) for v in values]
        assert scores == sorted(scores)
        assert all(0.0 <= s < 1.0 for s in scores)

    def test_negative_value_clamped(self) -> None:
        assert normalize(-50, 10) == 0.0


class TestTradeSize:
    def test_ten_times_median(self) -> None:
        result = compute_trade_size_vs_median(make_trade(size="1000"), make_market(), make_context())

        assert result.score == pytest.approx(0.909, abs=1e-3)
        assert result.raw_value == pytest.approx(10.0)

    def test_zero_median(self) -> None:
        result = compute_trade_size_vs_median(
            make_trade(size="1000"), make_market(), make_context(median_trade_size=0.0)
        )
        assert result.score == 0.0
        assert result.raw_value == 10.0

    def test_buy_consumes_ask_depth(self) -> None:
        result = compute_trade_size_vs_depth(
            make_trade(side="BUY", size="100"), make_market(ask_depth="400", bid_depth="50"), make_context()
        )
        assert result.score == pytest.approx(0.25)

    def test_sell_consumes_bid_depth(self) -> None:
        result = compute_trade_size_vs_depth(
            make_trade(side="SELL", size="100"), make_market(ask_depth="50", bid_depth="400"), make_context()
        )
        assert result.score == pytest.approx(0.25)

    def test_depth_capped_at_one(self) -> None:
        result = compute_trade_size_vs_depth(make_trade(size="5000"), make_market(ask_depth="100"), make_context())
        assert result.score == 1.0
        assert result.raw_value == pytest.approx(50.0)

    def test_empty_side(self) -> None:
        market = make_market(ask_depth="0")
        assert compute_trade_size_vs_depth(make_trade(size="10"), market, make_context()).score == 1.0
        assert compute_trade_size_vs_depth(make_trade(size="0"), market, make_context()).score == 0.0


class TestAggressiveness:
    def test_buy_through_the_ask(self) -> None:
        result = compute_aggressiveness(make_trade(side="BUY", price="0.60"), make_market(), make_context())
        assert result.score == pytest.approx(1.0)

    def test_buy_at_the_ask(self) -> None:
        result = compute_aggressiveness(make_trade(side="BUY", price="0.55"), make_market(), make_context())
        assert result.score == pytest.approx(0.8)

    def test_buy_inside_spread_partial_credit(self) -> None:
        result = compute_aggressiveness(make_trade(side="BUY", price="0.525"), make_market(), make_context())
        assert result.score == pytest.approx(0.35)

    def test_buy_at_bid_is_passive(self) -> None:
        result = compute_aggressiveness(make_trade(side="BUY", price="0.50"), make_market(), make_context())
        assert result.score == 0.0

    def test_sell_mirrored(self) -> None:
        at_bid = compute_aggressiveness(make_trade(side="SELL", price="0.50"), make_market(), make_context())
        through = compute_aggressiveness(make_trade(side="SELL", price="0.40"), make_market(), make_context())
        passive = compute_aggressiveness(make_trade(side="SELL", price="0.55"), make_market(), make_context())

        assert at_bid.score == pytest.approx(0.8)
        assert through.score == pytest.approx(1.0)
        assert passive.score == 0.0

    @pytest.mark.parametrize(
        ("best_bid", "best_ask"),
        [("0", "0.55"), ("0.50", "0"), ("0.55", "0.55"), ("0.60", "0.55")],
    )
    def test_degenerate_book(self, best_bid: str, best_ask: str) -> None:
        result = compute_aggressiveness(
            make_trade(price="0.99"), make_market(best_bid=best_bid, best_ask=best_ask), make_context()
        )
        assert result.score == 0.0


class TestWalletFeatures:
    @pytest.mark.parametrize(("trades", "expected"), [(0, 0.0), (5, 0.5), (10, 1.0), (25, 1.0)])
    def test_wallet_burst(self, trades: int, expected: float) -> None:
        result = compute_wallet_burst(make_trade(), make_market(), make_context(wallet_trades_last_hour=trades))
        assert result.score == pytest.approx(expected)

    def test_position_concentration(self) -> None:
        result = compute_position_concentration(
            make_trade(), make_market(), make_context(wallet_position=100.0, total_liquidity=1000.0)
        )
        assert result.score == pytest.approx(0.1)

    def test_short_position_concentration_is_zero(self) -> None:
        result = compute_position_concentration(
            make_trade(), make_market(), make_context(wallet_position=-500.0, total_liquidity=1000.0)
        )
        assert result.score == 0.0

    def test_concentration_without_liquidity(self) -> None:
        result = compute_position_concentration(
            make_trade(), make_market(), make_context(wallet_position=100.0, total_liquidity=0.0)
        )
        assert result.score == 0.0

    def test_ramp_speed(self) -> None:
        result = compute_ramp_speed(
            make_trade(),
            make_market(),
            make_context(median_trade_size=20.0, wallet_position=150.0, wallet_position_hour_ago=50.0),
        )
        assert result.score == pytest.approx(0.5)

    def test_ramp_speed_counts_unwinding(self) -> None:
        result = compute_ramp_speed(
            make_trade(),
            make_market(),
            make_context(median_trade_size=20.0, wallet_position=50.0, wallet_position_hour_ago=150.0),
        )
        assert result.score == pytest.approx(0.5)

    @pytest.mark.parametrize(
        ("age", "expected"),
        [(0.5, 1.0), (3.0, 0.8), (10.0, 0.4), (60.0, 0.2), (365.0, 0.1), (None, 0.5)],
    )
    def test_wallet_freshness(self, age: float | None, expected: float) -> None:
        result = compute_wallet_freshness(make_trade(), make_market(), make_context(wallet_age_days=age))
        assert result.score == pytest.approx(expected)

    def test_zero_age_is_not_unknown(self) -> None:
        result = compute_wallet_freshness(make_trade(), make_market(), make_context(wallet_age_days=0.0))
        assert result.score == 1.0

    def test_dollar_value(self) -> None:
        result = compute_dollar_value(make_trade(), make_market(), make_context(trade_usd_value=5000.0))
        assert result.score == pytest.approx(0.5)


class TestTiming:
    def test_no_end_date(self) -> None:
        result = compute_timing_vs_market_end(make_trade(), make_market(end_date=None), make_context())
        assert result.score == 0.0

    def test_after_end_date(self) -> None:
        result = compute_timing_vs_market_end(
            make_trade(), make_market(end_date=NOW - timedelta(hours=1)), make_context()
        )
        assert result.score == 1.0

    def test_within_a_week(self) -> None:
        result = compute_timing_vs_market_end(
            make_trade(), make_market(end_date=NOW + timedelta(days=3.5)), make_context()
        )
        assert result.score == pytest.approx(0.7)

    def test_far_from_end(self) -> None:
        result = compute_timing_vs_market_end(
            make_trade(), make_market(end_date=NOW + timedelta(days=200)), make_context()
        )
        assert result.score == 0.0


class TestFeatureBank:
    def test_all_features_bounded(self) -> None:
        extreme = make_context(
            median_trade_size=0.001,
            wallet_position=1e9,
            wallet_position_hour_ago=-1e9,
            wallet_trades_last_hour=10_000,
            total_liquidity=1.0,
            wallet_age_days=0.0,
            trade_usd_value=1e12,
        )
        trade = make_trade(size="1000000", price="0.99")
        market = make_market(end_date=NOW)

        for name in FEATURE_FUNCTIONS:
            result = compute_features(trade, market, extreme, [name])[name]
            assert 0.0 <= result.score <= 1.0, name

    def test_compute_features_preserves_order(self) -> None:
        names = list(DEFAULT_FEATURE_WEIGHTS)
        features = compute_features(make_trade(), make_market(), make_context(), names)
        assert list(features) == names

    def test_weighted_score_bounded(self) -> None:
        features = compute_features(
            make_trade(size="100000", price="0.99"),
            make_market(ask_depth="1"),
            make_context(wallet_trades_last_hour=50, wallet_age_days=0.1, trade_usd_value=1e9),
            DEFAULT_FEATURE_WEIGHTS,
        )
        score = compute_weighted_score(features, DEFAULT_FEATURE_WEIGHTS)
        assert 0.0 <= score <= 1.0
