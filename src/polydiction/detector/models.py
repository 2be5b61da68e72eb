"""Data models for the detector module."""

from __future__ import annotations

from dataclasses import dataclass, field

from polydiction.ingestor.models import Trade
from polydiction.ingestor.normalizer import ParseError


class InvalidContextError(ValueError):
    """Raised when a scoring context carries a negative magnitude."""


@dataclass(frozen=True)
class ScoringContext:
    """Historical context for evaluating a single trade.

    Attributes:
        median_trade_size: Median trade size in the market over the trailing window.
        wallet_position: Wallet's current signed position in the token.
        wallet_position_hour_ago: Wallet's signed position one hour ago.
        wallet_trades_last_hour: Number of trades by the wallet in the last hour.
        total_liquidity: Total visible market liquidity (bid + ask depth).
        wallet_age_days: Wallet age in days, or None if the history is unknown.
        trade_usd_value: USD notional value of the trade.
    """

    median_trade_size: float
    wallet_position: float
    wallet_position_hour_ago: float
    wallet_trades_last_hour: int
    total_liquidity: float
    wallet_age_days: float | None
    trade_usd_value: float

    def __post_init__(self) -> None:
        for name in ("median_trade_size", "wallet_trades_last_hour", "total_liquidity", "trade_usd_value"):
            if getattr(self, name) < 0:
                raise InvalidContextError(f"{name} must be non-negative, got {getattr(self, name)}")
        if self.wallet_age_days is not None and self.wallet_age_days < 0:
            raise InvalidContextError(f"wallet_age_days must be non-negative, got {self.wallet_age_days}")

    @property
    def position_change_last_hour(self) -> float:
        """Absolute change in the wallet's position over the last hour."""
        return abs(self.wallet_position - self.wallet_position_hour_ago)


@dataclass(frozen=True)
class FeatureResult:
    """Output of a single feature function.

    ``raw_value`` is diagnostic only; decisions use ``score``.
    """

    name: str
    score: float
    raw_value: float
    description: str

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "score": self.score,
            "raw_value": self.raw_value,
            "description": self.description,
        }


@dataclass(frozen=True)
class MustFlagResult:
    """Outcome of the must-flag rule set.

    ``condition`` is the highest-priority triggered condition; ``conditions``
    lists every triggered condition in priority order.
    """

    must_flag: bool
    condition: str | None = None
    conditions: tuple[str, ...] = ()


@dataclass(frozen=True)
class AlertReasons:
    """Human-readable explanation of a scoring decision."""

    primary: str
    factors: tuple[str, ...]
    must_flag: bool
    must_flag_condition: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "primary": self.primary,
            "factors": list(self.factors),
            "must_flag": self.must_flag,
        }
        if self.must_flag_condition is not None:
            data["must_flag_condition"] = self.must_flag_condition
        return data


@dataclass(frozen=True)
class ScoringResult:
    """Result of scoring a trade.

    Attributes:
        score: Weighted anomaly score in [0, 1].
        features: Feature results keyed by name, in weight-table order.
        should_alert: True if must-flagged or the score reached the threshold.
        reasons: Primary reason and contributing factors.
        threshold: Alert threshold derived from the sensitivity used.
    """

    score: float
    features: dict[str, FeatureResult]
    should_alert: bool
    reasons: AlertReasons
    threshold: float

    @property
    def must_flag(self) -> bool:
        return self.reasons.must_flag

    def to_dict(self) -> dict[str, object]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "score": self.score,
            "features": {name: result.to_dict() for name, result in self.features.items()},
            "should_alert": self.should_alert,
            "reasons": self.reasons.to_dict(),
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class Scored:
    """Successful evaluation of a trade."""

    trade: Trade
    result: ScoringResult
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Rejected:
    """Evaluation that could not run because the input was malformed."""

    error: ParseError
    ok: bool = field(default=False, init=False)


ScoreOutcome = Scored | Rejected
