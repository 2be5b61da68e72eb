"""Feature bank for per-trade anomaly scoring.

Every feature is a pure function ``(Trade, MarketState, ScoringContext) ->
FeatureResult`` whose score lies in [0, 1]. Features never raise on
degenerate context (zero median, unknown wallet age, empty book); each one
defines its own fallback score instead.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal

from polydiction.detector.models import FeatureResult, ScoringContext
from polydiction.ingestor.models import MarketState, Trade

FeatureFunction = Callable[[Trade, MarketState, ScoringContext], FeatureResult]

MAX_EXPECTED_TRADES_PER_HOUR = 10
RAMP_BENCHMARK_MULTIPLE = 5
DOLLAR_VALUE_MEDIAN_USD = 5000.0

# Wallet freshness bands: (max age in days, score)
FRESHNESS_BANDS: tuple[tuple[float, float], ...] = (
    (1.0, 1.0),
    (7.0, 0.8),
    (30.0, 0.4),
    (90.0, 0.2),
)
FRESHNESS_MATURE_SCORE = 0.1
FRESHNESS_UNKNOWN_SCORE = 0.5

_SECONDS_PER_DAY = 24 * 60 * 60


def normalize(value: float, median: float) -> float:
    """Saturating normalization of a value against a median.

    ``value == median`` maps to 0.5, ``4 * median`` to 0.8 and ``9 * median``
    to 0.9. A non-positive median yields 0; negative values are clamped to 0.
    """
    if median <= 0:
        return 0.0
    ratio = max(value, 0.0) / median
    return 1.0 - 1.0 / (1.0 + ratio)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def compute_trade_size_vs_median(trade: Trade, market: MarketState, context: ScoringContext) -> FeatureResult:
    """Trade size relative to the market's median trade size."""
    size = float(trade.size)
    median = context.median_trade_size
    if median > 0:
        raw_value = size / median
    else:
        raw_value = 10.0 if size > 0 else 0.0

    return FeatureResult(
        name="trade_size_vs_median",
        score=_clamp(normalize(size, median)),
        raw_value=raw_value,
        description="Trade significantly larger than market median",
    )


def compute_trade_size_vs_depth(trade: Trade, market: MarketState, context: ScoringContext) -> FeatureResult:
    """Fraction of the consumed book side taken by the trade.

    BUY orders consume ask depth, SELL orders consume bid depth.
    """
    depth = float(market.ask_depth if trade.is_buy else market.bid_depth)
    size = float(trade.size)
    if depth > 0:
        raw_value = size / depth
    else:
        raw_value = 1.0 if size > 0 else 0.0

    return FeatureResult(
        name="trade_size_vs_depth",
        score=_clamp(raw_value),
        raw_value=raw_value,
        description="Trade consumes substantial orderbook depth",
    )


def compute_aggressiveness(trade: Trade, market: MarketState, context: ScoringContext) -> FeatureResult:
    """How aggressively the trade crossed the spread.

    Crossing to the opposite touch scores 0.8 plus up to 0.2 for paying
    through it; executing inside the spread earns partial credit up to 0.7;
    a passive execution scores 0. An empty or locked book scores 0.
    """
    best_bid = market.best_bid
    best_ask = market.best_ask
    spread = best_ask - best_bid
    price = trade.price

    score = Decimal(0)
    raw_value = Decimal(0)
    if spread > 0 and best_bid > 0 and best_ask > 0:
        if trade.is_buy:
            if price >= best_ask:
                overpay = (price - best_ask) / spread
                raw_value = 1 + overpay
                score = Decimal("0.8") + Decimal("0.2") * min(overpay, Decimal(1))
            elif price > best_bid:
                raw_value = (price - best_bid) / spread
                score = raw_value * Decimal("0.7")
        else:
            if price <= best_bid:
                underpay = (best_bid - price) / spread
                raw_value = 1 + underpay
                score = Decimal("0.8") + Decimal("0.2") * min(underpay, Decimal(1))
            elif price < best_ask:
                raw_value = (best_ask - price) / spread
                score = raw_value * Decimal("0.7")

    return FeatureResult(
        name="aggressiveness",
        score=_clamp(float(score)),
        raw_value=float(raw_value),
        description="Aggressive execution (crossing spread)",
    )


def compute_wallet_burst(trade: Trade, market: MarketState, context: ScoringContext) -> FeatureResult:
    """Trading burst from the wallet; 10+ trades in an hour saturates."""
    raw_value = float(context.wallet_trades_last_hour)
    return FeatureResult(
        name="wallet_burst",
        score=_clamp(raw_value / MAX_EXPECTED_TRADES_PER_HOUR),
        raw_value=raw_value,
        description="Rapid trading activity from wallet",
    )


def compute_position_concentration(trade: Trade, market: MarketState, context: ScoringContext) -> FeatureResult:
    """Wallet position as a fraction of total market liquidity."""
    if context.total_liquidity > 0:
        raw_value = context.wallet_position / context.total_liquidity
    else:
        raw_value = 0.0

    return FeatureResult(
        name="position_concentration",
        score=_clamp(raw_value),
        raw_value=raw_value,
        description="High position concentration",
    )


def compute_ramp_speed(trade: Trade, market: MarketState, context: ScoringContext) -> FeatureResult:
    """Position change over the last hour against 5x the median trade size."""
    delta = context.position_change_last_hour
    benchmark = context.median_trade_size * RAMP_BENCHMARK_MULTIPLE
    if benchmark > 0:
        raw_value = delta / benchmark
    else:
        raw_value = 1.0 if delta > 0 else 0.0

    return FeatureResult(
        name="ramp_speed",
        score=_clamp(normalize(delta, benchmark)),
        raw_value=raw_value,
        description="Fast position accumulation",
    )


def compute_wallet_freshness(trade: Trade, market: MarketState, context: ScoringContext) -> FeatureResult:
    """Stepwise suspicion by wallet age; unknown age is neutral (0.5)."""
    age = context.wallet_age_days
    if age is None:
        return FeatureResult(
            name="wallet_freshness",
            score=FRESHNESS_UNKNOWN_SCORE,
            raw_value=-1.0,
            description="Wallet age unknown",
        )

    score = FRESHNESS_MATURE_SCORE
    for max_age, band_score in FRESHNESS_BANDS:
        if age < max_age:
            score = band_score
            break

    return FeatureResult(
        name="wallet_freshness",
        score=score,
        raw_value=float(age),
        description="New or recently active wallet",
    )


def compute_dollar_value(trade: Trade, market: MarketState, context: ScoringContext) -> FeatureResult:
    """Absolute USD size; $5,000 maps to 0.5."""
    usd = context.trade_usd_value
    return FeatureResult(
        name="dollar_value",
        score=_clamp(normalize(usd, DOLLAR_VALUE_MEDIAN_USD)),
        raw_value=usd,
        description="Large absolute trade value",
    )


def compute_timing_vs_market_end(trade: Trade, market: MarketState, context: ScoringContext) -> FeatureResult:
    """Proximity of the trade to market resolution.

    Not part of the default weight table. Without an end date the score is 0;
    trades at or after the end date score 1.
    """
    if market.end_date is None:
        return FeatureResult(
            name="timing_vs_market_end",
            score=0.0,
            raw_value=-1.0,
            description="Trade close to market resolution",
        )

    seconds_to_end = (market.end_date - trade.timestamp).total_seconds()
    if seconds_to_end <= 0:
        return FeatureResult(
            name="timing_vs_market_end",
            score=1.0,
            raw_value=0.0,
            description="Trade after market end date",
        )

    days = seconds_to_end / _SECONDS_PER_DAY
    if days < 1:
        score = 0.9 + 0.1 * (1 - days)
    elif days < 7:
        score = 0.5 + 0.4 * (1 - days / 7)
    elif days < 30:
        score = 0.2 + 0.3 * (1 - days / 30)
    else:
        score = 0.1 * (1 - min(days / 90, 1.0))

    return FeatureResult(
        name="timing_vs_market_end",
        score=_clamp(score),
        raw_value=days,
        description="Trade close to market resolution",
    )


FEATURE_FUNCTIONS: dict[str, FeatureFunction] = {
    "trade_size_vs_median": compute_trade_size_vs_median,
    "trade_size_vs_depth": compute_trade_size_vs_depth,
    "aggressiveness": compute_aggressiveness,
    "wallet_burst": compute_wallet_burst,
    "position_concentration": compute_position_concentration,
    "ramp_speed": compute_ramp_speed,
    "wallet_freshness": compute_wallet_freshness,
    "dollar_value": compute_dollar_value,
    "timing_vs_market_end": compute_timing_vs_market_end,
}


def compute_features(
    trade: Trade,
    market: MarketState,
    context: ScoringContext,
    names: Iterable[str],
) -> dict[str, FeatureResult]:
    """Compute the named features, preserving the order of ``names``.

    Raises:
        KeyError: If a name is not a registered feature.
    """
    return {name: FEATURE_FUNCTIONS[name](trade, market, context) for name in names}


def compute_weighted_score(features: Mapping[str, FeatureResult], weights: Mapping[str, float]) -> float:
    """Weighted sum of feature scores, clamped to [0, 1]."""
    score = 0.0
    for name, weight in weights.items():
        score += features[name].score * weight
    return _clamp(score)
