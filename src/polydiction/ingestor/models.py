"""Data models for the ingestor module."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal

TradeSide = Literal["BUY", "SELL"]


@dataclass(frozen=True)
class OrderbookLevel:
    """Represents a single price level in an orderbook."""

    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class Orderbook:
    """Represents an orderbook for a single outcome token.

    Levels are stored best-first: bids descending, asks ascending.
    """

    market_id: str
    token_id: str
    bids: tuple[OrderbookLevel, ...]
    asks: tuple[OrderbookLevel, ...]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def best_bid(self) -> Decimal | None:
        """Return the best bid price, or None if no bids."""
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Decimal | None:
        """Return the best ask price, or None if no asks."""
        return self.asks[0].price if self.asks else None

    @property
    def bid_depth(self) -> Decimal:
        """Return total resting size on the bid side."""
        return sum((level.size for level in self.bids), Decimal(0))

    @property
    def ask_depth(self) -> Decimal:
        """Return total resting size on the ask side."""
        return sum((level.size for level in self.asks), Decimal(0))


@dataclass(frozen=True)
class Trade:
    """A single executed trade, normalized from an upstream record.

    Trades are immutable facts keyed by ``trade_id``. The ``raw`` payload is
    the untouched upstream record; it is kept for storage only and takes no
    part in equality or scoring.
    """

    trade_id: str
    market_id: str
    token_id: str
    maker: str
    taker: str
    side: TradeSide
    size: Decimal
    price: Decimal
    timestamp: datetime
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_buy(self) -> bool:
        """Return True if the taker bought."""
        return self.side == "BUY"

    @property
    def is_sell(self) -> bool:
        """Return True if the taker sold."""
        return self.side == "SELL"

    @property
    def notional_value(self) -> Decimal:
        """Return the USD notional value (price * size)."""
        return self.price * self.size


@dataclass(frozen=True)
class MarketState:
    """Point-in-time market snapshot used for scoring a trade.

    Missing book sides are represented as zero prices and zero depth.
    ``end_date`` is None when the market's resolution date is unknown.
    """

    market_id: str
    token_id: str
    best_bid: Decimal
    best_ask: Decimal
    bid_depth: Decimal
    ask_depth: Decimal
    end_date: datetime | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def spread(self) -> Decimal:
        """Return the bid-ask spread, or 0 if either side is missing."""
        if self.best_bid <= 0 or self.best_ask <= 0:
            return Decimal(0)
        return self.best_ask - self.best_bid

    @property
    def total_liquidity(self) -> Decimal:
        """Return total visible depth (bid + ask)."""
        return self.bid_depth + self.ask_depth

    @classmethod
    def from_orderbook(cls, orderbook: Orderbook, *, end_date: datetime | None = None) -> MarketState:
        """Create a MarketState from a full orderbook."""
        return cls(
            market_id=orderbook.market_id,
            token_id=orderbook.token_id,
            best_bid=orderbook.best_bid or Decimal(0),
            best_ask=orderbook.best_ask or Decimal(0),
            bid_depth=orderbook.bid_depth,
            ask_depth=orderbook.ask_depth,
            end_date=end_date,
            timestamp=orderbook.timestamp,
        )

    def to_dict(self, *, token_price: Decimal | None = None) -> dict[str, str]:
        """Serialize the snapshot stored alongside an alert."""
        return {
            "token_price": str(token_price) if token_price is not None else "",
            "best_bid": str(self.best_bid),
            "best_ask": str(self.best_ask),
            "spread": str(self.spread),
            "bid_depth": str(self.bid_depth),
            "ask_depth": str(self.ask_depth),
        }
