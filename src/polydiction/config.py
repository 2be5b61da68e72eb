"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for Polydiction,
loading and validating environment variables at startup. Scoring weights
and thresholds are tunable here without code changes; an invalid weight
table fails at load time.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from polydiction.detector.config import (
    DEFAULT_FEATURE_WEIGHTS,
    DEFAULT_SENSITIVITY,
    DEFAULT_THRESHOLD_BASE,
    DEFAULT_THRESHOLD_SLOPE,
    validate_weights,
)

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="sqlite+aiosqlite:///polydiction.db",
        alias="DATABASE_URL",
        description="SQLAlchemy connection string (PostgreSQL in production)",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class ScoringSettings(BaseSettings):
    """Weighted scoring configuration."""

    model_config = SettingsConfigDict(env_prefix="SCORING_", extra="ignore")

    weights: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_FEATURE_WEIGHTS),
        alias="SCORING_WEIGHTS",
        description="Feature weight table as a JSON object; must sum to 1.0",
    )
    sensitivity: float = Field(
        default=DEFAULT_SENSITIVITY,
        alias="ALERT_SENSITIVITY",
        ge=0.0,
        le=1.0,
        description="Default alert sensitivity (lower = more alerts)",
    )
    threshold_base: float = Field(
        default=DEFAULT_THRESHOLD_BASE,
        alias="SCORING_THRESHOLD_BASE",
        ge=0.0,
        le=1.0,
        description="Alert threshold at sensitivity 0",
    )
    threshold_slope: float = Field(
        default=DEFAULT_THRESHOLD_SLOPE,
        alias="SCORING_THRESHOLD_SLOPE",
        ge=0.0,
        le=1.0,
        description="Threshold increase per unit of sensitivity",
    )

    @field_validator("weights")
    @classmethod
    def validate_weight_table(cls, v: dict[str, float]) -> dict[str, float]:
        return validate_weights(v)


class MustFlagSettings(BaseSettings):
    """Thresholds for rules that force an alert."""

    model_config = SettingsConfigDict(env_prefix="MUST_FLAG_", extra="ignore")

    single_trade_usd: float = Field(
        default=25_000.0,
        alias="MUST_FLAG_SINGLE_TRADE_USD",
        ge=0.0,
        description="Single trade USD value that always alerts",
    )
    hourly_accumulation_usd: float = Field(
        default=50_000.0,
        alias="MUST_FLAG_HOURLY_ACCUMULATION_USD",
        ge=0.0,
        description="Position change within one hour (USD) that always alerts",
    )
    new_wallet_trade_usd: float = Field(
        default=10_000.0,
        alias="MUST_FLAG_NEW_WALLET_TRADE_USD",
        ge=0.0,
        description="Trade USD value that alerts when made by a new wallet",
    )
    new_wallet_age_days: float = Field(
        default=7.0,
        alias="MUST_FLAG_NEW_WALLET_AGE_DAYS",
        ge=0.0,
        le=3650.0,
        description="Wallet age (days) below which a wallet is new",
    )
    liquidity_fraction: float = Field(
        default=0.05,
        alias="MUST_FLAG_LIQUIDITY_FRACTION",
        ge=0.0,
        le=1.0,
        description="Position share of market liquidity that always alerts",
    )


class PositionSettings(BaseSettings):
    """Windowed position aggregation settings."""

    model_config = SettingsConfigDict(env_prefix="POSITIONS_", extra="ignore")

    trade_limit: int = Field(
        default=1000,
        alias="POSITIONS_TRADE_LIMIT",
        ge=1,
        le=1_000_000,
        description="Recent trades per market used to rebuild positions",
    )
    min_position_size: Decimal = Field(
        default=Decimal("0.01"),
        alias="POSITIONS_MIN_POSITION_SIZE",
        description="Positions smaller than this (absolute) are dropped as dust",
    )
    max_markets: int = Field(
        default=50,
        alias="POSITIONS_MAX_MARKETS",
        ge=1,
        le=10_000,
        description="Maximum markets processed per sync run",
    )
    top_holders_trade_limit: int = Field(
        default=2000,
        alias="POSITIONS_TOP_HOLDERS_TRADE_LIMIT",
        ge=1,
        le=1_000_000,
        description="Recent trades per market used to rank top holders",
    )

    @field_validator("min_position_size")
    @classmethod
    def validate_min_position_size(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("POSITIONS_MIN_POSITION_SIZE must be >= 0")
        return v


class ContextSettings(BaseSettings):
    """Historical context derivation settings."""

    model_config = SettingsConfigDict(env_prefix="CONTEXT_", extra="ignore")

    median_window_hours: int = Field(
        default=7 * 24,
        alias="CONTEXT_MEDIAN_WINDOW_HOURS",
        ge=1,
        le=90 * 24,
        description="Trailing window for the market median trade size (hours)",
    )
    history_trade_limit: int = Field(
        default=5000,
        alias="CONTEXT_HISTORY_TRADE_LIMIT",
        ge=1,
        le=1_000_000,
        description="Maximum trades loaded per market when building context",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from polydiction.config import get_settings

        settings = get_settings()
        print(settings.scoring.weights)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scoring: ScoringSettings = Field(
        default_factory=lambda: ScoringSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    must_flag: MustFlagSettings = Field(
        default_factory=lambda: MustFlagSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    positions: PositionSettings = Field(
        default_factory=lambda: PositionSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    context: ContextSettings = Field(
        default_factory=lambda: ContextSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "scoring": {
                "weights": ", ".join(f"{k}={v}" for k, v in self.scoring.weights.items()),
                "sensitivity": str(self.scoring.sensitivity),
                "threshold_base": str(self.scoring.threshold_base),
                "threshold_slope": str(self.scoring.threshold_slope),
            },
            "must_flag": {
                "single_trade_usd": str(self.must_flag.single_trade_usd),
                "hourly_accumulation_usd": str(self.must_flag.hourly_accumulation_usd),
                "new_wallet_trade_usd": str(self.must_flag.new_wallet_trade_usd),
                "new_wallet_age_days": str(self.must_flag.new_wallet_age_days),
                "liquidity_fraction": str(self.must_flag.liquidity_fraction),
            },
            "positions": {
                "trade_limit": str(self.positions.trade_limit),
                "min_position_size": str(self.positions.min_position_size),
                "max_markets": str(self.positions.max_markets),
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values,
            including a weight table that does not sum to 1.0.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
