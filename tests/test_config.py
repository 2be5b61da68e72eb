"""Tests for environment-backed settings."""

from __future__ import annotations

import logging
from decimal import Decimal

import pytest
from pydantic import ValidationError

from polydiction.config import Settings, get_settings


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.scoring.sensitivity == 0.3
        assert settings.scoring.threshold_base == 0.25
        assert settings.scoring.threshold_slope == 0.5
        assert sum(settings.scoring.weights.values()) == pytest.approx(1.0)
        assert settings.must_flag.single_trade_usd == 25_000.0
        assert settings.must_flag.new_wallet_age_days == 7.0
        assert settings.positions.trade_limit == 1000
        assert settings.positions.min_position_size == Decimal("0.01")
        assert settings.positions.max_markets == 50
        assert settings.context.median_window_hours == 168
        assert settings.log_level == "INFO"

    def test_weights_from_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCORING_WEIGHTS", '{"aggressiveness": 0.5, "wallet_burst": 0.5}')

        settings = Settings()

        assert settings.scoring.weights == {"aggressiveness": 0.5, "wallet_burst": 0.5}

    def test_invalid_weight_sum_fails_at_load(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCORING_WEIGHTS", '{"aggressiveness": 0.5, "wallet_burst": 0.4}')

        with pytest.raises(ValidationError, match="sum to 1.0"):
            Settings()

    def test_unknown_feature_fails_at_load(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCORING_WEIGHTS", '{"lunar_cycle": 1.0}')

        with pytest.raises(ValidationError):
            Settings()

    def test_sensitivity_bounds(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ALERT_SENSITIVITY", "1.5")

        with pytest.raises(ValidationError):
            Settings()

    def test_invalid_database_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "mysql://localhost/db")

        with pytest.raises(ValidationError):
            Settings()

    def test_logging_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        assert Settings().get_logging_level() == logging.DEBUG

    def test_redacted_summary_hides_password(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://scorer:hunter2@db:5432/polydiction")

        summary = Settings().redacted_summary()

        assert summary["database_url"] == "postgresql+asyncpg://scorer:***@db:5432/polydiction"
        assert "hunter2" not in str(summary)

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
