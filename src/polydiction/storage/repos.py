"""Repository pattern implementations for data access.

This module provides clean data access abstractions for trades, orderbook
snapshots, wallet position snapshots and alerts.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from polydiction.ingestor.models import MarketState, Trade
from polydiction.storage.models import (
    AlertModel,
    OrderbookSnapshotModel,
    TradeModel,
    WalletPositionModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from polydiction.detector.models import ScoringResult
    from polydiction.profiler.positions import WalletTokenPosition

logger = logging.getLogger(__name__)


def _as_utc(ts: datetime) -> datetime:
    # SQLite drops tzinfo on the way back; every stored timestamp is UTC.
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


def _dialect_insert(session: AsyncSession, model: type[Any]) -> Any:
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


@dataclass
class TradeDTO:
    """Data transfer object for trades."""

    trade_id: str
    market_id: str
    token_id: str
    maker: str
    taker: str
    side: str
    price: Decimal
    size: Decimal
    notional_usdc: Decimal
    ts: datetime
    raw_json: str = "{}"
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: TradeModel) -> TradeDTO:
        return cls(
            trade_id=model.trade_id,
            market_id=model.market_id,
            token_id=model.token_id,
            maker=model.maker,
            taker=model.taker,
            side=model.side,
            price=model.price,
            size=model.size,
            notional_usdc=model.notional_usdc,
            ts=_as_utc(model.ts),
            raw_json=model.raw_json,
            created_at=model.created_at,
        )

    @classmethod
    def from_trade(cls, trade: Trade) -> TradeDTO:
        return cls(
            trade_id=trade.trade_id,
            market_id=trade.market_id,
            token_id=trade.token_id,
            maker=trade.maker,
            taker=trade.taker,
            side=trade.side,
            price=trade.price,
            size=trade.size,
            notional_usdc=trade.notional_value,
            ts=trade.timestamp,
            raw_json=json.dumps(dict(trade.raw), default=str),
        )

    def to_trade(self) -> Trade:
        return Trade(
            trade_id=self.trade_id,
            market_id=self.market_id,
            token_id=self.token_id,
            maker=self.maker,
            taker=self.taker,
            side="BUY" if self.side == "BUY" else "SELL",
            size=self.size,
            price=self.price,
            timestamp=self.ts,
            raw=json.loads(self.raw_json),
        )


class TradeRepository:
    """Repository for persisted trades."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_trade_id(self, trade_id: str) -> TradeDTO | None:
        result = await self.session.execute(select(TradeModel).where(TradeModel.trade_id == trade_id))
        model = result.scalar_one_or_none()
        return TradeDTO.from_model(model) if model else None

    async def upsert(self, dto: TradeDTO) -> TradeDTO:
        """Upsert trade by trade_id (idempotent ingestion)."""
        await self.upsert_many([dto])
        return dto

    async def upsert_many(self, dtos: Iterable[TradeDTO]) -> int:
        """Upsert a batch of trades by trade_id.

        Returns:
            Number of rows written.
        """
        now = datetime.now(UTC)
        rows = [
            {
                "trade_id": dto.trade_id,
                "market_id": dto.market_id,
                "token_id": dto.token_id,
                "maker": dto.maker.lower(),
                "taker": dto.taker.lower(),
                "side": dto.side,
                "price": dto.price,
                "size": dto.size,
                "notional_usdc": dto.notional_usdc,
                "ts": dto.ts,
                "raw_json": dto.raw_json,
                "created_at": now,
            }
            for dto in dtos
        ]
        if not rows:
            return 0

        stmt = _dialect_insert(self.session, TradeModel).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["trade_id"],
            set_={
                "market_id": stmt.excluded.market_id,
                "token_id": stmt.excluded.token_id,
                "maker": stmt.excluded.maker,
                "taker": stmt.excluded.taker,
                "side": stmt.excluded.side,
                "price": stmt.excluded.price,
                "size": stmt.excluded.size,
                "notional_usdc": stmt.excluded.notional_usdc,
                "ts": stmt.excluded.ts,
                "raw_json": stmt.excluded.raw_json,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return len(rows)

    async def list_recent_by_market(self, market_id: str, *, limit: int) -> list[TradeDTO]:
        """Most recent ``limit`` trades in a market, oldest first."""
        result = await self.session.execute(
            select(TradeModel)
            .where(TradeModel.market_id == market_id)
            .order_by(TradeModel.ts.desc(), TradeModel.trade_id.desc())
            .limit(limit)
        )
        rows = [TradeDTO.from_model(m) for m in result.scalars().all()]
        rows.reverse()
        return rows

    async def list_since(
        self,
        market_id: str,
        *,
        since: datetime,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[TradeDTO]:
        """Trades in a market with ``since <= ts <= until``, oldest first.

        With ``limit``, the most recent ``limit`` trades of the range are kept.
        """
        stmt = select(TradeModel).where(TradeModel.market_id == market_id, TradeModel.ts >= since)
        if until is not None:
            stmt = stmt.where(TradeModel.ts <= until)
        stmt = stmt.order_by(TradeModel.ts.desc(), TradeModel.trade_id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        rows = [TradeDTO.from_model(m) for m in result.scalars().all()]
        rows.reverse()
        return rows

    async def first_trade_ts(
        self,
        wallet_address: str,
        *,
        before: datetime | None = None,
        exclude_trade_id: str | None = None,
    ) -> datetime | None:
        """Timestamp of the wallet's earliest stored trade in any market, as maker or taker."""
        wallet_address = wallet_address.lower()
        stmt = select(sa.func.min(TradeModel.ts)).where(
            sa.or_(TradeModel.maker == wallet_address, TradeModel.taker == wallet_address)
        )
        if before is not None:
            stmt = stmt.where(TradeModel.ts <= before)
        if exclude_trade_id is not None:
            stmt = stmt.where(TradeModel.trade_id != exclude_trade_id)
        result = await self.session.execute(stmt)
        first = result.scalar_one_or_none()
        return _as_utc(first) if first is not None else None

    async def list_market_ids(self, *, limit: int) -> list[str]:
        """Markets ordered by most recent trade activity."""
        last_ts = sa.func.max(TradeModel.ts)
        result = await self.session.execute(
            select(TradeModel.market_id).group_by(TradeModel.market_id).order_by(last_ts.desc()).limit(limit)
        )
        return [row[0] for row in result.all()]


@dataclass
class OrderbookSnapshotDTO:
    """Data transfer object for orderbook snapshots."""

    market_id: str
    token_id: str
    best_bid: Decimal
    best_ask: Decimal
    bid_depth: Decimal
    ask_depth: Decimal
    captured_at: datetime
    end_date: datetime | None = None
    id: int | None = None

    @classmethod
    def from_model(cls, model: OrderbookSnapshotModel) -> OrderbookSnapshotDTO:
        return cls(
            id=model.id,
            market_id=model.market_id,
            token_id=model.token_id,
            best_bid=model.best_bid,
            best_ask=model.best_ask,
            bid_depth=model.bid_depth,
            ask_depth=model.ask_depth,
            captured_at=_as_utc(model.captured_at),
            end_date=_as_utc(model.end_date) if model.end_date else None,
        )

    @classmethod
    def from_market_state(cls, state: MarketState) -> OrderbookSnapshotDTO:
        return cls(
            market_id=state.market_id,
            token_id=state.token_id,
            best_bid=state.best_bid,
            best_ask=state.best_ask,
            bid_depth=state.bid_depth,
            ask_depth=state.ask_depth,
            captured_at=state.timestamp,
            end_date=state.end_date,
        )

    def to_market_state(self) -> MarketState:
        return MarketState(
            market_id=self.market_id,
            token_id=self.token_id,
            best_bid=self.best_bid,
            best_ask=self.best_ask,
            bid_depth=self.bid_depth,
            ask_depth=self.ask_depth,
            end_date=self.end_date,
            timestamp=self.captured_at,
        )


class OrderbookSnapshotRepository:
    """Repository for orderbook snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: OrderbookSnapshotDTO) -> OrderbookSnapshotDTO:
        model = OrderbookSnapshotModel(
            market_id=dto.market_id,
            token_id=dto.token_id,
            best_bid=dto.best_bid,
            best_ask=dto.best_ask,
            bid_depth=dto.bid_depth,
            ask_depth=dto.ask_depth,
            end_date=dto.end_date,
            captured_at=dto.captured_at,
        )
        self.session.add(model)
        await self.session.flush()
        dto.id = model.id
        return dto

    async def get_latest(self, token_id: str, *, as_of: datetime | None = None) -> OrderbookSnapshotDTO | None:
        """Latest snapshot for a token, optionally at or before ``as_of``."""
        stmt = select(OrderbookSnapshotModel).where(OrderbookSnapshotModel.token_id == token_id)
        if as_of is not None:
            stmt = stmt.where(OrderbookSnapshotModel.captured_at <= as_of)
        stmt = stmt.order_by(OrderbookSnapshotModel.captured_at.desc(), OrderbookSnapshotModel.id.desc()).limit(1)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return OrderbookSnapshotDTO.from_model(model) if model else None


@dataclass
class WalletPositionDTO:
    """Data transfer object for wallet position snapshots."""

    wallet_address: str
    market_id: str
    token_id: str
    position: Decimal
    buy_volume: Decimal
    sell_volume: Decimal
    trade_count: int
    computed_at: datetime
    last_price: Decimal | None = None
    id: int | None = None

    @classmethod
    def from_model(cls, model: WalletPositionModel) -> WalletPositionDTO:
        return cls(
            id=model.id,
            wallet_address=model.wallet_address,
            market_id=model.market_id,
            token_id=model.token_id,
            position=model.position,
            buy_volume=model.buy_volume,
            sell_volume=model.sell_volume,
            trade_count=model.trade_count,
            last_price=model.last_price,
            computed_at=_as_utc(model.computed_at),
        )

    @classmethod
    def from_position(cls, position: WalletTokenPosition, *, computed_at: datetime) -> WalletPositionDTO:
        return cls(
            wallet_address=position.wallet,
            market_id=position.market_id,
            token_id=position.token_id,
            position=position.position,
            buy_volume=position.buy_volume,
            sell_volume=position.sell_volume,
            trade_count=position.trade_count,
            last_price=position.last_price,
            computed_at=computed_at,
        )


class WalletPositionRepository:
    """Repository for windowed wallet position snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_many(self, dtos: Iterable[WalletPositionDTO]) -> int:
        rows = [
            {
                "wallet_address": dto.wallet_address.lower(),
                "market_id": dto.market_id,
                "token_id": dto.token_id,
                "position": dto.position,
                "buy_volume": dto.buy_volume,
                "sell_volume": dto.sell_volume,
                "trade_count": dto.trade_count,
                "last_price": dto.last_price,
                "computed_at": dto.computed_at,
                "created_at": datetime.now(UTC),
            }
            for dto in dtos
        ]
        if not rows:
            return 0
        await self.session.execute(sa.insert(WalletPositionModel), rows)
        await self.session.flush()
        return len(rows)

    async def get_latest(
        self,
        wallet_address: str,
        token_id: str,
        *,
        as_of: datetime | None = None,
    ) -> WalletPositionDTO | None:
        stmt = select(WalletPositionModel).where(
            WalletPositionModel.wallet_address == wallet_address.lower(),
            WalletPositionModel.token_id == token_id,
        )
        if as_of is not None:
            stmt = stmt.where(WalletPositionModel.computed_at <= as_of)
        stmt = stmt.order_by(WalletPositionModel.computed_at.desc(), WalletPositionModel.id.desc()).limit(1)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return WalletPositionDTO.from_model(model) if model else None

    async def list_history(
        self,
        wallet_address: str,
        token_id: str,
        *,
        since: datetime | None = None,
    ) -> list[WalletPositionDTO]:
        """Position snapshots for a wallet and token, oldest first."""
        stmt = select(WalletPositionModel).where(
            WalletPositionModel.wallet_address == wallet_address.lower(),
            WalletPositionModel.token_id == token_id,
        )
        if since is not None:
            stmt = stmt.where(WalletPositionModel.computed_at >= since)
        stmt = stmt.order_by(WalletPositionModel.computed_at.asc(), WalletPositionModel.id.asc())
        result = await self.session.execute(stmt)
        return [WalletPositionDTO.from_model(m) for m in result.scalars().all()]


@dataclass
class AlertDTO:
    """Data transfer object for alerts."""

    trade_id: str
    market_id: str
    token_id: str
    wallet_address: str
    score: Decimal
    threshold: Decimal
    must_flag: bool
    primary_reason: str
    reasons_json: str
    features_json: str
    market_state_json: str
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: AlertModel) -> AlertDTO:
        return cls(
            id=model.id,
            trade_id=model.trade_id,
            market_id=model.market_id,
            token_id=model.token_id,
            wallet_address=model.wallet_address,
            score=model.score,
            threshold=model.threshold,
            must_flag=model.must_flag,
            primary_reason=model.primary_reason,
            reasons_json=model.reasons_json,
            features_json=model.features_json,
            market_state_json=model.market_state_json,
            created_at=_as_utc(model.created_at) if model.created_at else None,
        )

    @classmethod
    def from_result(cls, trade: Trade, market: MarketState, result: ScoringResult) -> AlertDTO:
        payload = result.to_dict()
        return cls(
            trade_id=trade.trade_id,
            market_id=trade.market_id,
            token_id=trade.token_id,
            wallet_address=trade.taker,
            score=Decimal(str(round(result.score, 8))),
            threshold=Decimal(str(round(result.threshold, 8))),
            must_flag=result.must_flag,
            primary_reason=result.reasons.primary,
            reasons_json=json.dumps(payload["reasons"]),
            features_json=json.dumps(payload["features"]),
            market_state_json=json.dumps(market.to_dict(token_price=trade.price)),
        )

    @property
    def reasons(self) -> dict[str, Any]:
        return json.loads(self.reasons_json)

    @property
    def features(self) -> dict[str, Any]:
        return json.loads(self.features_json)

    @property
    def market_state(self) -> dict[str, str]:
        return json.loads(self.market_state_json)


class AlertRepository:
    """Repository for alerts, deduplicated by trade_id."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def exists_for_trade(self, trade_id: str) -> bool:
        result = await self.session.execute(select(AlertModel.id).where(AlertModel.trade_id == trade_id).limit(1))
        return result.scalar_one_or_none() is not None

    async def get_by_trade_id(self, trade_id: str) -> AlertDTO | None:
        result = await self.session.execute(select(AlertModel).where(AlertModel.trade_id == trade_id))
        model = result.scalar_one_or_none()
        return AlertDTO.from_model(model) if model else None

    async def create_if_not_exists(self, dto: AlertDTO) -> bool:
        """Insert the alert unless one already exists for its trade.

        Returns:
            True if a new alert was written.
        """
        values = {
            "trade_id": dto.trade_id,
            "market_id": dto.market_id,
            "token_id": dto.token_id,
            "wallet_address": dto.wallet_address.lower(),
            "score": dto.score,
            "threshold": dto.threshold,
            "must_flag": dto.must_flag,
            "primary_reason": dto.primary_reason,
            "reasons_json": dto.reasons_json,
            "features_json": dto.features_json,
            "market_state_json": dto.market_state_json,
            "created_at": dto.created_at or datetime.now(UTC),
        }
        stmt = _dialect_insert(self.session, AlertModel).values(**values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["trade_id"])
        result = await self.session.execute(stmt)
        await self.session.flush()

        created = bool(result.rowcount)
        if not created:
            logger.debug("Alert for trade %s already exists", dto.trade_id)
        return created

    async def list_recent(
        self,
        *,
        min_score: Decimal | None = None,
        market_id: str | None = None,
        limit: int = 100,
    ) -> list[AlertDTO]:
        """Newest alerts first, optionally filtered by score and market."""
        stmt = select(AlertModel)
        if min_score is not None:
            stmt = stmt.where(AlertModel.score >= min_score)
        if market_id is not None:
            stmt = stmt.where(AlertModel.market_id == market_id)
        stmt = stmt.order_by(AlertModel.created_at.desc(), AlertModel.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return [AlertDTO.from_model(m) for m in result.scalars().all()]
