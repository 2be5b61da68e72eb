"""Anomaly detection layer - Feature bank, must-flag rules and scorer."""

from polydiction.detector.config import (
    ConfigurationError,
    MustFlagThresholds,
    ScoringConfig,
    calculate_threshold,
)
from polydiction.detector.features import FEATURE_FUNCTIONS, normalize
from polydiction.detector.models import (
    AlertReasons,
    FeatureResult,
    InvalidContextError,
    MustFlagResult,
    Rejected,
    Scored,
    ScoringContext,
    ScoringResult,
)
from polydiction.detector.must_flag import MustFlagEvaluator
from polydiction.detector.scorer import AnomalyScorer

__all__ = [
    "FEATURE_FUNCTIONS",
    "AlertReasons",
    "AnomalyScorer",
    "ConfigurationError",
    "FeatureResult",
    "InvalidContextError",
    "MustFlagEvaluator",
    "MustFlagResult",
    "MustFlagThresholds",
    "Rejected",
    "Scored",
    "ScoringConfig",
    "ScoringContext",
    "ScoringResult",
    "calculate_threshold",
    "normalize",
]
