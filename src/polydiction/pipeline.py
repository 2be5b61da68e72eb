"""Storage-backed orchestration for position sync and trade scoring.

This module wires the normalizer, context aggregator and scorer to the
repositories. The scoring engine itself stays pure; everything here is
async glue with one database session per unit of work.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from polydiction.config import Settings, get_settings
from polydiction.detector.config import ScoringConfig
from polydiction.detector.models import ScoringContext, ScoringResult
from polydiction.detector.scorer import AnomalyScorer
from polydiction.ingestor.models import MarketState, Trade
from polydiction.ingestor.normalizer import NormalizationError, ParseError, try_normalize_trade
from polydiction.profiler.context import ContextAggregator, days_since_first_trade
from polydiction.profiler.positions import PositionAggregator, TopHolder
from polydiction.storage.database import DatabaseManager
from polydiction.storage.repos import (
    AlertDTO,
    AlertRepository,
    OrderbookSnapshotDTO,
    OrderbookSnapshotRepository,
    TradeDTO,
    TradeRepository,
    WalletPositionDTO,
    WalletPositionRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of a position sync run."""

    markets_processed: int = 0
    positions_written: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors


class PositionSync:
    """Rebuilds wallet position snapshots from recent trades.

    Each market is recomputed from its most recent trades; only positions
    above the dust threshold are written. One failing market does not stop
    the run.

    Example:
        ```python
        sync = PositionSync(db_manager)
        result = await sync.sync_markets()
        print(result.positions_written, result.errors)
        ```
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        *,
        settings: Settings | None = None,
        aggregator: PositionAggregator | None = None,
    ) -> None:
        self._db = db_manager
        self._settings = settings or get_settings()
        self._aggregator = aggregator or PositionAggregator(self._settings.positions.min_position_size)

    async def sync_market(self, market_id: str, *, computed_at: datetime | None = None) -> int:
        """Recompute and persist positions for one market.

        Returns:
            Number of position snapshots written.
        """
        computed_at = computed_at or datetime.now(UTC)
        async with self._db.session() as session:
            trades = await TradeRepository(session).list_recent_by_market(
                market_id, limit=self._settings.positions.trade_limit
            )
            positions = self._aggregator.aggregate((dto.to_trade() for dto in trades), significant_only=True)
            written = await WalletPositionRepository(session).insert_many(
                WalletPositionDTO.from_position(p, computed_at=computed_at) for p in positions
            )

        logger.info(
            "Synced market %s: %d trades, %d positions written",
            market_id,
            len(trades),
            written,
        )
        return written

    async def sync_markets(self, market_ids: Iterable[str] | None = None) -> SyncResult:
        """Sync several markets sequentially, collecting per-market errors.

        Args:
            market_ids: Markets to sync. Defaults to the most recently
                traded markets. Capped at the configured maximum.
        """
        max_markets = self._settings.positions.max_markets
        if market_ids is None:
            async with self._db.session() as session:
                ids = await TradeRepository(session).list_market_ids(limit=max_markets)
        else:
            ids = list(market_ids)[:max_markets]

        result = SyncResult()
        computed_at = datetime.now(UTC)
        for market_id in ids:
            try:
                result.positions_written += await self.sync_market(market_id, computed_at=computed_at)
                result.markets_processed += 1
            except Exception as e:
                logger.warning("Position sync failed for market %s: %s", market_id, e)
                result.errors.append((market_id, str(e)))

        logger.info(
            "Position sync complete: %d/%d markets, %d positions, %d errors",
            result.markets_processed,
            len(ids),
            result.positions_written,
            len(result.errors),
        )
        return result

    async def top_holders(self, market_id: str, *, limit: int = 20) -> list[TopHolder]:
        """Rank the market's largest holders over recent trades."""
        async with self._db.session() as session:
            trades = await TradeRepository(session).list_recent_by_market(
                market_id, limit=self._settings.positions.top_holders_trade_limit
            )
        return self._aggregator.top_holders((dto.to_trade() for dto in trades), limit=limit)


@dataclass(frozen=True)
class TradeEvaluation:
    """A scored trade together with the context it was scored against."""

    trade: Trade
    context: ScoringContext
    result: ScoringResult
    alert_created: bool


@dataclass
class BatchEvaluation:
    """Outcome of scoring a batch of raw trade records."""

    evaluations: list[TradeEvaluation] = field(default_factory=list)
    rejected: list[ParseError] = field(default_factory=list)

    @property
    def alerts_created(self) -> int:
        return sum(1 for e in self.evaluations if e.alert_created)


@dataclass
class PipelineStats:
    """Running counters for a scoring pipeline."""

    trades_processed: int = 0
    trades_rejected: int = 0
    alerts_created: int = 0
    duplicate_alerts: int = 0
    last_trade_time: datetime | None = None


class ScoringPipeline:
    """Scores trades against stored history and persists alerts.

    Pipeline flow:
        Raw record -> Normalizer -> Trade store -> Context Aggregator ->
        Anomaly Scorer -> Alert store

    Alerts are deduplicated by trade id, so re-evaluating a trade never
    creates a second alert.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        *,
        settings: Settings | None = None,
        scorer: AnomalyScorer | None = None,
        context_aggregator: ContextAggregator | None = None,
    ) -> None:
        self._db = db_manager
        self._settings = settings or get_settings()
        self._scorer = scorer or AnomalyScorer(ScoringConfig.from_settings(self._settings))
        self._median_window = timedelta(hours=self._settings.context.median_window_hours)
        self._context = context_aggregator or ContextAggregator(
            median_window=self._median_window,
            position_aggregator=PositionAggregator(self._settings.positions.min_position_size),
        )
        self._stats = PipelineStats()

    @property
    def stats(self) -> PipelineStats:
        return self._stats

    @property
    def scorer(self) -> AnomalyScorer:
        return self._scorer

    async def record_market_state(self, market: MarketState) -> None:
        """Persist an orderbook snapshot for later evaluations."""
        async with self._db.session() as session:
            await OrderbookSnapshotRepository(session).insert(OrderbookSnapshotDTO.from_market_state(market))

    async def latest_market_state(self, token_id: str, *, as_of: datetime | None = None) -> MarketState | None:
        """Most recent stored market state for a token, if any."""
        async with self._db.session() as session:
            dto = await OrderbookSnapshotRepository(session).get_latest(token_id, as_of=as_of)
        return dto.to_market_state() if dto else None

    async def evaluate(
        self,
        trade: Trade,
        market: MarketState,
        *,
        sensitivity: float | None = None,
    ) -> TradeEvaluation:
        """Store, score and (if alerting) persist an alert for one trade."""
        window_start = trade.timestamp - self._median_window
        async with self._db.session() as session:
            trades = TradeRepository(session)
            await trades.upsert(TradeDTO.from_trade(trade))
            history = await trades.list_since(
                trade.market_id,
                since=window_start,
                until=trade.timestamp,
                limit=self._settings.context.history_trade_limit,
            )
            first_seen = await trades.first_trade_ts(
                trade.taker, before=trade.timestamp, exclude_trade_id=trade.trade_id
            )

            context = self._context.build(
                trade,
                market,
                [dto.to_trade() for dto in history],
                wallet_age_days=days_since_first_trade(first_seen, trade.timestamp),
            )
            result = self._scorer.score(trade, market, context, sensitivity)

            alert_created = False
            if result.should_alert:
                alert_created = await AlertRepository(session).create_if_not_exists(
                    AlertDTO.from_result(trade, market, result)
                )

        self._stats.trades_processed += 1
        self._stats.last_trade_time = trade.timestamp
        if alert_created:
            self._stats.alerts_created += 1
            logger.info(
                "Alert created: trade=%s, wallet=%s, score=%.2f, reason=%s",
                trade.trade_id,
                trade.taker[:10] + "...",
                result.score,
                result.reasons.primary,
            )
        elif result.should_alert:
            self._stats.duplicate_alerts += 1
            logger.debug("Alert for trade %s already recorded", trade.trade_id)
        else:
            logger.debug(
                "Trade %s below alert threshold (score=%.2f)",
                trade.trade_id,
                result.score,
            )

        return TradeEvaluation(trade=trade, context=context, result=result, alert_created=alert_created)

    async def evaluate_batch(
        self,
        records: Iterable[Mapping[str, Any] | Trade],
        market: MarketState,
        *,
        sensitivity: float | None = None,
        fail_fast: bool = False,
    ) -> BatchEvaluation:
        """Normalize and evaluate a batch of records in order.

        Malformed records are skipped and reported in ``rejected``.

        Raises:
            NormalizationError: On the first malformed record if ``fail_fast``.
        """
        batch = BatchEvaluation()
        for record in records:
            trade = record if isinstance(record, Trade) else try_normalize_trade(record)
            if isinstance(trade, ParseError):
                if fail_fast:
                    raise NormalizationError(
                        trade.message,
                        field=trade.field,
                        value=trade.value,
                        record_id=trade.record_id,
                    )
                logger.warning(
                    "Skipping malformed trade %s: %s",
                    trade.record_id or "<unknown>",
                    trade.message,
                )
                self._stats.trades_rejected += 1
                batch.rejected.append(trade)
                continue

            batch.evaluations.append(await self.evaluate(trade, market, sensitivity=sensitivity))

        logger.info(
            "Evaluated batch: %d scored, %d rejected, %d alerts",
            len(batch.evaluations),
            len(batch.rejected),
            batch.alerts_created,
        )
        return batch
