"""SQLAlchemy models for persistent storage.

This module defines the database schema for trades, orderbook snapshots,
windowed wallet position snapshots and alerts.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TradeModel(Base):
    """Executed trade events (durable truth)."""

    __tablename__ = "trades"

    trade_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    market_id: Mapped[str] = mapped_column(String(128), nullable=False)
    token_id: Mapped[str] = mapped_column(String(128), nullable=False)
    maker: Mapped[str] = mapped_column(String(42), nullable=False)
    taker: Mapped[str] = mapped_column(String(42), nullable=False)

    side: Mapped[str] = mapped_column(String(4), nullable=False)  # BUY/SELL
    price: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)
    size: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    notional_usdc: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)

    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Upstream record, stored verbatim for audit.
    raw_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_trades_market_ts", "market_id", "ts"),
        Index("idx_trades_taker_ts", "taker", "ts"),
        Index("idx_trades_maker_ts", "maker", "ts"),
    )


class OrderbookSnapshotModel(Base):
    """Point-in-time top-of-book and depth for an outcome token."""

    __tablename__ = "orderbook_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[str] = mapped_column(String(128), nullable=False)
    token_id: Mapped[str] = mapped_column(String(128), nullable=False)

    best_bid: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)
    best_ask: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)
    bid_depth: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    ask_depth: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_orderbook_snapshots_token_ts", "token_id", "captured_at"),
        Index("idx_orderbook_snapshots_market_ts", "market_id", "captured_at"),
    )


class WalletPositionModel(Base):
    """Windowed wallet position snapshots, one row per sync run."""

    __tablename__ = "wallet_positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)
    market_id: Mapped[str] = mapped_column(String(128), nullable=False)
    token_id: Mapped[str] = mapped_column(String(128), nullable=False)

    position: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    buy_volume: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    sell_volume: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    trade_count: Mapped[int] = mapped_column(Integer, nullable=False)
    last_price: Mapped[Decimal | None] = mapped_column(Numeric(20, 10), nullable=True)

    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_wallet_positions_wallet_token_ts", "wallet_address", "token_id", "computed_at"),
        Index("idx_wallet_positions_market_ts", "market_id", "computed_at"),
    )


class AlertModel(Base):
    """Persisted alert, at most one per trade."""

    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trade_id: Mapped[str] = mapped_column(String(128), nullable=False)
    market_id: Mapped[str] = mapped_column(String(128), nullable=False)
    token_id: Mapped[str] = mapped_column(String(128), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)

    score: Mapped[Decimal] = mapped_column(Numeric(10, 8), nullable=False)
    threshold: Mapped[Decimal] = mapped_column(Numeric(10, 8), nullable=False)
    must_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    primary_reason: Mapped[str] = mapped_column(String(255), nullable=False)

    reasons_json: Mapped[str] = mapped_column(Text, nullable=False)
    features_json: Mapped[str] = mapped_column(Text, nullable=False)
    market_state_json: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("trade_id", name="uq_alerts_trade"),
        Index("idx_alerts_market_created", "market_id", "created_at"),
        Index("idx_alerts_score", "score"),
    )
