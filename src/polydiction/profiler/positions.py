"""Wallet token positions derived from trade history.

Positions are always recomputed from a bounded window of trades, never
updated incrementally. Each trade moves two wallets: the taker in the trade's
direction and the maker in the opposite direction.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from polydiction.ingestor.models import Trade

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_MIN_POSITION_SIZE = Decimal("0.01")
DEFAULT_TOP_HOLDERS_LIMIT = 20


@dataclass
class WalletTokenPosition:
    """Accumulated position of one wallet in one outcome token.

    ``position`` is signed: positive is net long, negative net short.
    ``last_price`` is the price of the most recent effective buy.
    """

    wallet: str
    market_id: str
    token_id: str
    position: Decimal = Decimal(0)
    buy_volume: Decimal = Decimal(0)
    sell_volume: Decimal = Decimal(0)
    trade_count: int = 0
    last_price: Decimal | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.wallet, self.token_id)

    def apply(self, *, is_buy: bool, size: Decimal, price: Decimal) -> None:
        """Apply one trade leg to the position."""
        if is_buy:
            self.position += size
            self.buy_volume += size
            if size > 0:
                self.last_price = price
        else:
            self.position -= size
            self.sell_volume += size
        self.trade_count += 1


@dataclass(frozen=True)
class TopHolder:
    """A wallet ranked by its total absolute position in a market."""

    wallet: str
    total_position: Decimal
    positions: tuple[WalletTokenPosition, ...]


def _is_tracked_wallet(wallet: str) -> bool:
    return bool(wallet) and wallet.lower() != ZERO_ADDRESS


def compute_positions_from_trades(trades: Iterable[Trade]) -> dict[tuple[str, str], WalletTokenPosition]:
    """Recompute every (wallet, token) position touched by ``trades``.

    Both legs of a trade are applied in the same pass. Legs whose wallet is
    empty or the zero address are skipped.

    Returns:
        Positions keyed by (wallet, token_id), in first-seen order.
    """
    positions: dict[tuple[str, str], WalletTokenPosition] = {}
    for trade in trades:
        legs = ((trade.taker, trade.is_buy), (trade.maker, not trade.is_buy))
        for wallet, is_buy in legs:
            if not _is_tracked_wallet(wallet):
                continue
            key = (wallet, trade.token_id)
            position = positions.get(key)
            if position is None:
                position = WalletTokenPosition(
                    wallet=wallet,
                    market_id=trade.market_id,
                    token_id=trade.token_id,
                )
                positions[key] = position
            position.apply(is_buy=is_buy, size=trade.size, price=trade.price)
    return positions


def filter_significant_positions(
    positions: Iterable[WalletTokenPosition],
    min_position_size: Decimal = DEFAULT_MIN_POSITION_SIZE,
) -> list[WalletTokenPosition]:
    """Drop dust positions whose absolute size is below ``min_position_size``."""
    return [p for p in positions if abs(p.position) >= min_position_size]


class PositionAggregator:
    """Aggregates per-wallet positions from a window of trades.

    Example:
        ```python
        aggregator = PositionAggregator()
        positions = aggregator.aggregate(recent_trades)
        holders = aggregator.top_holders(recent_trades, limit=10)
        ```
    """

    def __init__(self, min_position_size: Decimal = DEFAULT_MIN_POSITION_SIZE) -> None:
        if min_position_size < 0:
            raise ValueError("min_position_size must be non-negative")
        self._min_position_size = min_position_size

    @property
    def min_position_size(self) -> Decimal:
        return self._min_position_size

    def aggregate(self, trades: Iterable[Trade], *, significant_only: bool = False) -> list[WalletTokenPosition]:
        """Recompute positions for the trade window.

        Args:
            trades: Trade window, in any order.
            significant_only: Drop positions below the dust threshold.
        """
        positions = list(compute_positions_from_trades(trades).values())
        if significant_only:
            positions = filter_significant_positions(positions, self._min_position_size)
        return positions

    def position_of(self, trades: Iterable[Trade], *, wallet: str, token_id: str) -> Decimal:
        """Signed position of one wallet in one token over the window."""
        wallet = wallet.lower()
        position = Decimal(0)
        for trade in trades:
            if trade.token_id != token_id:
                continue
            if trade.taker == wallet:
                position += trade.size if trade.is_buy else -trade.size
            if trade.maker == wallet:
                position += -trade.size if trade.is_buy else trade.size
        return position

    def top_holders(
        self,
        trades: Iterable[Trade],
        limit: int = DEFAULT_TOP_HOLDERS_LIMIT,
    ) -> list[TopHolder]:
        """Rank wallets by the sum of absolute positions across tokens.

        Dust positions are excluded before ranking. Ties keep first-seen order.
        """
        if limit <= 0:
            return []

        by_wallet: dict[str, list[WalletTokenPosition]] = {}
        for position in self.aggregate(trades, significant_only=True):
            by_wallet.setdefault(position.wallet, []).append(position)

        holders = [
            TopHolder(
                wallet=wallet,
                total_position=sum((abs(p.position) for p in items), Decimal(0)),
                positions=tuple(items),
            )
            for wallet, items in by_wallet.items()
        ]
        holders.sort(key=lambda h: h.total_position, reverse=True)

        logger.debug("Ranked %d holders, returning top %d", len(holders), min(limit, len(holders)))
        return holders[:limit]
