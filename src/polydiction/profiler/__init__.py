"""Wallet profiling - positions and scoring context from trade history."""

from polydiction.profiler.context import ContextAggregator, calculate_median, days_since_first_trade
from polydiction.profiler.positions import (
    ZERO_ADDRESS,
    PositionAggregator,
    TopHolder,
    WalletTokenPosition,
    compute_positions_from_trades,
    filter_significant_positions,
)

__all__ = [
    "ZERO_ADDRESS",
    "ContextAggregator",
    "PositionAggregator",
    "TopHolder",
    "WalletTokenPosition",
    "calculate_median",
    "compute_positions_from_trades",
    "days_since_first_trade",
    "filter_significant_positions",
]
