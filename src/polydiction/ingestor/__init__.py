"""Data ingestion layer - Canonical trade and market-state models."""

from polydiction.ingestor.models import (
    MarketState,
    Orderbook,
    OrderbookLevel,
    Trade,
)
from polydiction.ingestor.normalizer import (
    NormalizationError,
    ParseError,
    normalize_market_state,
    normalize_orderbook,
    normalize_trade,
    try_normalize_trade,
)

__all__ = [
    "MarketState",
    "NormalizationError",
    "Orderbook",
    "OrderbookLevel",
    "ParseError",
    "Trade",
    "normalize_market_state",
    "normalize_orderbook",
    "normalize_trade",
    "try_normalize_trade",
]
