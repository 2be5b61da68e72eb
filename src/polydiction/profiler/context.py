"""Derive a ScoringContext for a trade from recent market history.

The context is a pure function of the trade, the market state and a bounded
window of trades in the same market. The wallet under evaluation is the
trade's taker.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from polydiction.detector.models import ScoringContext
from polydiction.ingestor.models import MarketState, Trade
from polydiction.profiler.positions import PositionAggregator

logger = logging.getLogger(__name__)

DEFAULT_MEDIAN_WINDOW = timedelta(days=7)
BURST_WINDOW = timedelta(hours=1)

_SECONDS_PER_DAY = 24 * 60 * 60


def calculate_median(values: Sequence[float]) -> float | None:
    """Median of ``values``; mean of the middle pair for even counts.

    Returns None for an empty sequence.
    """
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def days_since_first_trade(first_seen: datetime | None, as_of: datetime) -> float | None:
    """Days between a wallet's first trade and ``as_of``; None if never seen."""
    if first_seen is None:
        return None
    return max(0.0, (as_of - first_seen).total_seconds() / _SECONDS_PER_DAY)


class ContextAggregator:
    """Builds scoring contexts from a trade window.

    Rules:
    - Only trades at or before the scored trade's timestamp are considered;
      the scored trade itself is always part of the window.
    - The median trade size covers the trailing median window and excludes
      the scored trade.
    - Wallet activity and positions count both maker and taker legs.
    - Wallet age defaults to the time since the wallet's earliest trade in
      the window. A truncated window understates it, so callers with the full
      trade history pass ``wallet_age_days`` instead.
    """

    def __init__(
        self,
        *,
        median_window: timedelta = DEFAULT_MEDIAN_WINDOW,
        position_aggregator: PositionAggregator | None = None,
    ) -> None:
        if median_window <= timedelta(0):
            raise ValueError("median_window must be positive")
        self._median_window = median_window
        self._positions = position_aggregator or PositionAggregator()

    @property
    def median_window(self) -> timedelta:
        return self._median_window

    def build(
        self,
        trade: Trade,
        market: MarketState,
        history: Iterable[Trade],
        *,
        wallet_age_days: float | None = None,
    ) -> ScoringContext:
        """Build the context for ``trade``.

        Args:
            trade: Trade being scored.
            market: Market state at evaluation time.
            history: Recent trades in the same market; may include ``trade``.
            wallet_age_days: Known wallet age; derived from history if None.
        """
        as_of = trade.timestamp
        window = self._window(trade, history)
        wallet = trade.taker

        median = calculate_median(
            [
                float(t.size)
                for t in window
                if t.trade_id != trade.trade_id and t.timestamp >= as_of - self._median_window
            ]
        )

        hour_ago = as_of - BURST_WINDOW
        wallet_trades = [t for t in window if wallet in (t.taker, t.maker)]
        trades_last_hour = sum(1 for t in wallet_trades if t.timestamp > hour_ago)

        position = self._positions.position_of(wallet_trades, wallet=wallet, token_id=trade.token_id)
        position_hour_ago = self._positions.position_of(
            (t for t in wallet_trades if t.timestamp <= hour_ago),
            wallet=wallet,
            token_id=trade.token_id,
        )

        if wallet_age_days is None:
            wallet_age_days = self._wallet_age_days(wallet_trades, trade, as_of)

        context = ScoringContext(
            median_trade_size=median or 0.0,
            wallet_position=float(position),
            wallet_position_hour_ago=float(position_hour_ago),
            wallet_trades_last_hour=trades_last_hour,
            total_liquidity=float(market.total_liquidity),
            wallet_age_days=wallet_age_days,
            trade_usd_value=float(trade.notional_value),
        )

        logger.debug(
            "Context for trade %s: median=%s, position=%s, trades_last_hour=%d",
            trade.trade_id,
            context.median_trade_size,
            context.wallet_position,
            context.wallet_trades_last_hour,
        )
        return context

    @staticmethod
    def _window(trade: Trade, history: Iterable[Trade]) -> list[Trade]:
        window = [t for t in history if t.trade_id != trade.trade_id and t.timestamp <= trade.timestamp]
        window.append(trade)
        return window

    @staticmethod
    def _wallet_age_days(wallet_trades: Sequence[Trade], trade: Trade, as_of: datetime) -> float | None:
        earlier = [t.timestamp for t in wallet_trades if t.trade_id != trade.trade_id]
        return days_since_first_trade(min(earlier) if earlier else None, as_of)
