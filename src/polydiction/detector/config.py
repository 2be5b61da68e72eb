"""Immutable scoring configuration.

The environment-facing settings live in :mod:`polydiction.config`; this
module holds the validated runtime object handed to the scorer. Validation
happens once, at construction, so a bad weight table fails at startup rather
than per trade.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from polydiction.detector.features import FEATURE_FUNCTIONS

if TYPE_CHECKING:
    from polydiction.config import Settings

DEFAULT_FEATURE_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "trade_size_vs_median": 0.15,
        "trade_size_vs_depth": 0.15,
        "aggressiveness": 0.20,
        "wallet_burst": 0.15,
        "position_concentration": 0.10,
        "ramp_speed": 0.10,
        "wallet_freshness": 0.10,
        "dollar_value": 0.05,
    }
)

DEFAULT_SENSITIVITY = 0.3
DEFAULT_THRESHOLD_BASE = 0.25
DEFAULT_THRESHOLD_SLOPE = 0.5
WEIGHT_SUM_TOLERANCE = 0.001


class ConfigurationError(ValueError):
    """Raised when the scoring configuration violates an invariant."""


def validate_weights(weights: Mapping[str, float]) -> dict[str, float]:
    """Validate a feature weight table and return an ordered copy.

    Raises:
        ConfigurationError: If the table is empty, names an unknown feature,
            has a negative weight, or does not sum to 1.0 (+/- 0.001).
    """
    if not weights:
        raise ConfigurationError("Feature weight table is empty")

    unknown = [name for name in weights if name not in FEATURE_FUNCTIONS]
    if unknown:
        raise ConfigurationError(f"Unknown features in weight table: {', '.join(sorted(unknown))}")

    negative = [name for name, w in weights.items() if w < 0]
    if negative:
        raise ConfigurationError(f"Negative feature weights: {', '.join(sorted(negative))}")

    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise ConfigurationError(f"Feature weights must sum to 1.0, got {total:.4f}")

    return {name: float(w) for name, w in weights.items()}


def calculate_threshold(
    sensitivity: float,
    *,
    base: float = DEFAULT_THRESHOLD_BASE,
    slope: float = DEFAULT_THRESHOLD_SLOPE,
) -> float:
    """Map a sensitivity in [0, 1] to an alert score threshold.

    With the default constants: 0.0 -> 0.25, 0.3 -> 0.40, 1.0 -> 0.75.

    Raises:
        ValueError: If sensitivity is outside [0, 1].
    """
    if not 0.0 <= sensitivity <= 1.0:
        raise ValueError(f"sensitivity must be within [0, 1], got {sensitivity}")
    return base + sensitivity * slope


@dataclass(frozen=True)
class MustFlagThresholds:
    """Thresholds for rules that force an alert regardless of score."""

    single_trade_usd: float = 25_000.0
    hourly_accumulation_usd: float = 50_000.0
    new_wallet_trade_usd: float = 10_000.0
    new_wallet_age_days: float = 7.0
    liquidity_fraction: float = 0.05

    def __post_init__(self) -> None:
        for name in (
            "single_trade_usd",
            "hourly_accumulation_usd",
            "new_wallet_trade_usd",
            "new_wallet_age_days",
            "liquidity_fraction",
        ):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"Must-flag threshold {name} must be non-negative")


@dataclass(frozen=True)
class ScoringConfig:
    """Validated, immutable configuration for the anomaly scorer."""

    weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_FEATURE_WEIGHTS))
    sensitivity: float = DEFAULT_SENSITIVITY
    threshold_base: float = DEFAULT_THRESHOLD_BASE
    threshold_slope: float = DEFAULT_THRESHOLD_SLOPE
    must_flag: MustFlagThresholds = field(default_factory=MustFlagThresholds)

    def __post_init__(self) -> None:
        object.__setattr__(self, "weights", MappingProxyType(validate_weights(self.weights)))
        if not 0.0 <= self.sensitivity <= 1.0:
            raise ConfigurationError(f"Default sensitivity must be within [0, 1], got {self.sensitivity}")
        if self.threshold_slope < 0:
            raise ConfigurationError("Threshold slope must be non-negative")

    def threshold(self, sensitivity: float | None = None) -> float:
        """Return the alert threshold for a sensitivity (default: configured)."""
        return calculate_threshold(
            self.sensitivity if sensitivity is None else sensitivity,
            base=self.threshold_base,
            slope=self.threshold_slope,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ScoringConfig:
        """Build the runtime config from environment settings."""
        scoring = settings.scoring
        must_flag = settings.must_flag
        return cls(
            weights=scoring.weights,
            sensitivity=scoring.sensitivity,
            threshold_base=scoring.threshold_base,
            threshold_slope=scoring.threshold_slope,
            must_flag=MustFlagThresholds(
                single_trade_usd=must_flag.single_trade_usd,
                hourly_accumulation_usd=must_flag.hourly_accumulation_usd,
                new_wallet_trade_usd=must_flag.new_wallet_trade_usd,
                new_wallet_age_days=must_flag.new_wallet_age_days,
                liquidity_fraction=must_flag.liquidity_fraction,
            ),
        )
