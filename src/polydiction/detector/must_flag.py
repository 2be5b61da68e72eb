"""Must-flag rules that force an alert regardless of the weighted score."""

from __future__ import annotations

import logging

from polydiction.detector.config import MustFlagThresholds
from polydiction.detector.models import MustFlagResult, ScoringContext
from polydiction.ingestor.models import Trade

logger = logging.getLogger(__name__)


def _usd(amount: float) -> str:
    return f"${amount:,.0f}"


def _days(age: float) -> str:
    return f"{age:g}d"


class MustFlagEvaluator:
    """Evaluates the must-flag rule set for a trade.

    Rules, in priority order for the reported condition:
    1. Single trade USD value above the single-trade threshold.
    2. Position change over the last hour, valued at the trade price,
       above the hourly accumulation threshold.
    3. Known wallet younger than the new-wallet age making a trade above
       the new-wallet USD threshold.
    4. Wallet position above a fraction of total market liquidity.

    Every rule is checked; all triggered conditions are reported.
    """

    def __init__(self, thresholds: MustFlagThresholds | None = None) -> None:
        self._thresholds = thresholds or MustFlagThresholds()

    @property
    def thresholds(self) -> MustFlagThresholds:
        return self._thresholds

    def evaluate(self, trade: Trade, context: ScoringContext) -> MustFlagResult:
        t = self._thresholds
        conditions: list[str] = []

        if context.trade_usd_value > t.single_trade_usd:
            conditions.append(f"Single trade > {_usd(t.single_trade_usd)}")

        hourly_usd = context.position_change_last_hour * float(trade.price)
        if hourly_usd > t.hourly_accumulation_usd:
            conditions.append(f"Accumulated > {_usd(t.hourly_accumulation_usd)} in 1 hour")

        age = context.wallet_age_days
        if age is not None and age < t.new_wallet_age_days and context.trade_usd_value > t.new_wallet_trade_usd:
            conditions.append(f"New wallet ({_days(age)} old) traded > {_usd(t.new_wallet_trade_usd)}")

        if context.total_liquidity > 0:
            fraction = context.wallet_position / context.total_liquidity
            if fraction > t.liquidity_fraction:
                conditions.append(f"Position is {fraction * 100:.1f}% of market liquidity")

        if not conditions:
            return MustFlagResult(must_flag=False)

        logger.debug("Trade %s must-flagged: %s", trade.trade_id, "; ".join(conditions))
        return MustFlagResult(must_flag=True, condition=conditions[0], conditions=tuple(conditions))
