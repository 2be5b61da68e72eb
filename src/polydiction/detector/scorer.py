"""Weighted anomaly scorer combining the feature bank and must-flag rules.

This module provides the AnomalyScorer class that turns a trade plus its
market and wallet context into a bounded anomaly score, an alert decision
and a ranked, human-readable explanation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from polydiction.detector.config import ScoringConfig
from polydiction.detector.features import compute_features, compute_weighted_score
from polydiction.detector.models import (
    AlertReasons,
    FeatureResult,
    MustFlagResult,
    Rejected,
    ScoreOutcome,
    Scored,
    ScoringContext,
    ScoringResult,
)
from polydiction.detector.must_flag import MustFlagEvaluator
from polydiction.ingestor.models import MarketState, Trade
from polydiction.ingestor.normalizer import ParseError, try_normalize_trade

logger = logging.getLogger(__name__)

# Per-feature cutoffs above which a feature is listed as a contributing factor.
# These are fixed and independent of the alert threshold.
FACTOR_CUTOFFS: dict[str, float] = {
    "trade_size_vs_median": 0.7,
    "trade_size_vs_depth": 0.5,
    "aggressiveness": 0.7,
    "wallet_burst": 0.5,
    "position_concentration": 0.3,
    "ramp_speed": 0.5,
    "wallet_freshness": 0.7,
    "dollar_value": 0.7,
}

PRIMARY_REASONS: dict[str, str] = {
    "trade_size_vs_median": "Unusually large trade size",
    "trade_size_vs_depth": "Trade consumes significant liquidity",
    "aggressiveness": "Aggressive trade execution",
    "wallet_burst": "Burst of trading activity",
    "position_concentration": "Concentrated position",
    "ramp_speed": "Rapid position building",
    "wallet_freshness": "New wallet activity",
    "dollar_value": "High-value trade",
    "timing_vs_market_end": "Trade close to market resolution",
}
FALLBACK_PRIMARY_REASON = "Anomalous trading pattern"


class AnomalyScorer:
    """Scores trades for informed-trading anomalies.

    The scorer:
    - Computes every feature in the configured weight table
    - Sums feature scores by weight into an overall score in [0, 1]
    - Applies the must-flag rules, which force an alert
    - Compares the score against a sensitivity-derived threshold
    - Ranks reasons by weighted contribution

    Scoring Formula:
        score = sum(feature.score * weight[name] for name in weights)
        threshold = threshold_base + sensitivity * threshold_slope
        should_alert = must_flag OR score >= threshold

    The scorer holds no mutable state; scoring the same inputs twice yields
    equal results.

    Example:
        ```python
        scorer = AnomalyScorer(ScoringConfig.from_settings(get_settings()))
        result = scorer.score(trade, market_state, context)
        if result.should_alert:
            print(result.reasons.primary)
        ```
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        """Initialize the scorer.

        Args:
            config: Validated scoring configuration (defaults if omitted).
        """
        self._config = config or ScoringConfig()
        self._must_flag = MustFlagEvaluator(self._config.must_flag)

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def get_weights(self) -> dict[str, float]:
        """Get the feature weights.

        Returns:
            Copy of the weights dictionary, in weight-table order.
        """
        return dict(self._config.weights)

    def threshold(self, sensitivity: float | None = None) -> float:
        """Alert threshold for a sensitivity (configured default if None)."""
        return self._config.threshold(sensitivity)

    def score(
        self,
        trade: Trade,
        market: MarketState,
        context: ScoringContext,
        sensitivity: float | None = None,
    ) -> ScoringResult:
        """Score a single trade.

        Args:
            trade: Normalized trade.
            market: Market state at evaluation time.
            context: Historical wallet and market context.
            sensitivity: Alert sensitivity in [0, 1]; lower means more alerts.

        Returns:
            ScoringResult with score, features, decision and reasons.

        Raises:
            ValueError: If sensitivity is outside [0, 1].
        """
        threshold = self.threshold(sensitivity)
        weights = self._config.weights

        features = compute_features(trade, market, context, weights.keys())
        score = compute_weighted_score(features, weights)
        must_flag = self._must_flag.evaluate(trade, context)
        should_alert = must_flag.must_flag or score >= threshold
        reasons = self.generate_reasons(features, must_flag)

        logger.debug(
            "Scored trade %s: score=%.4f, threshold=%.2f, must_flag=%s, alert=%s",
            trade.trade_id,
            score,
            threshold,
            must_flag.must_flag,
            should_alert,
        )

        return ScoringResult(
            score=score,
            features=features,
            should_alert=should_alert,
            reasons=reasons,
            threshold=threshold,
        )

    def generate_reasons(
        self,
        features: Mapping[str, FeatureResult],
        must_flag: MustFlagResult,
    ) -> AlertReasons:
        """Build the explanation for a scoring decision.

        Factors list every feature above its cutoff, in weight-table order.
        The primary reason is the must-flag condition if present, otherwise
        the feature with the largest weighted contribution (first wins ties).
        """
        weights = self._config.weights
        factors = tuple(
            features[name].description
            for name in weights
            if name in FACTOR_CUTOFFS and features[name].score > FACTOR_CUTOFFS[name]
        )

        if must_flag.must_flag and must_flag.condition:
            primary = must_flag.condition
        else:
            top = max(weights, key=lambda name: features[name].score * weights[name])
            primary = PRIMARY_REASONS.get(top, FALLBACK_PRIMARY_REASON)

        return AlertReasons(
            primary=primary,
            factors=factors,
            must_flag=must_flag.must_flag,
            must_flag_condition=must_flag.condition,
        )

    def evaluate(
        self,
        record: Mapping[str, Any] | Trade,
        market: MarketState,
        context: ScoringContext,
        sensitivity: float | None = None,
    ) -> ScoreOutcome:
        """Normalize and score a trade, returning a typed outcome.

        A malformed record yields ``Rejected`` instead of raising, so the
        caller decides whether one bad trade aborts a batch.
        """
        if isinstance(record, Trade):
            trade: Trade | ParseError = record
        else:
            trade = try_normalize_trade(record)
        if isinstance(trade, ParseError):
            return Rejected(error=trade)
        return Scored(trade=trade, result=self.score(trade, market, context, sensitivity))

    def score_batch(
        self,
        items: Iterable[tuple[Mapping[str, Any] | Trade, MarketState, ScoringContext]],
        sensitivity: float | None = None,
    ) -> list[ScoreOutcome]:
        """Evaluate multiple trades.

        Args:
            items: (record, market state, context) triples.
            sensitivity: Alert sensitivity applied to every item.

        Returns:
            One outcome per item, in input order.
        """
        outcomes = [self.evaluate(record, market, context, sensitivity) for record, market, context in items]
        rejected = sum(1 for outcome in outcomes if not outcome.ok)
        if rejected:
            logger.warning("Rejected %d of %d trades during batch scoring", rejected, len(outcomes))
        return outcomes
