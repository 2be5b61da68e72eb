"""Normalization of upstream trade and orderbook records.

Upstream records arrive in more than one shape (CLOB trade history payloads,
already-flattened camelCase records). This module maps them onto the
canonical :class:`Trade` / :class:`MarketState` models.

Numeric fields that feature math divides by are never zero-filled: a missing
or unparseable size, price, or depth is a hard failure for that record.
Only an empty orderbook side defaults to zero price and zero depth.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from polydiction.ingestor.models import MarketState, Orderbook, OrderbookLevel, Trade, TradeSide

logger = logging.getLogger(__name__)

_SIDE_ALIASES: dict[str, TradeSide] = {
    "BUY": "BUY",
    "B": "BUY",
    "BID": "BUY",
    "SELL": "SELL",
    "S": "SELL",
    "ASK": "SELL",
}


class NormalizationError(ValueError):
    """Raised when an upstream record cannot be normalized."""

    def __init__(self, message: str, *, field: str, value: object = None, record_id: str = "") -> None:
        super().__init__(message)
        self.field = field
        self.value = value
        self.record_id = record_id


@dataclass(frozen=True)
class ParseError:
    """Typed failure value for a record that could not be normalized."""

    record_id: str
    field: str
    value: str
    message: str

    @classmethod
    def from_exception(cls, exc: NormalizationError) -> ParseError:
        return cls(
            record_id=exc.record_id,
            field=exc.field,
            value=repr(exc.value),
            message=str(exc),
        )


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_decimal(value: object, *, field: str, record_id: str = "") -> Decimal:
    """Parse a decimal-string (or number) field.

    Raises:
        NormalizationError: If the value is missing, non-numeric or not finite.
    """
    if value is None or isinstance(value, bool):
        raise NormalizationError(f"Missing numeric field '{field}'", field=field, value=value, record_id=record_id)
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise NormalizationError(
            f"Field '{field}' is not numeric: {value!r}", field=field, value=value, record_id=record_id
        ) from e
    if not parsed.is_finite():
        raise NormalizationError(
            f"Field '{field}' is not finite: {value!r}", field=field, value=value, record_id=record_id
        )
    return parsed


def parse_side(value: object, *, record_id: str = "") -> TradeSide:
    """Unify side vocabulary to uppercase BUY/SELL."""
    side = _SIDE_ALIASES.get(str(value or "").strip().upper())
    if side is None:
        raise NormalizationError(f"Unknown trade side: {value!r}", field="side", value=value, record_id=record_id)
    return side


def parse_timestamp(value: object, *, field: str = "timestamp", record_id: str = "") -> datetime:
    """Parse epoch seconds, epoch milliseconds, or ISO-8601 into an aware UTC datetime."""
    if isinstance(value, datetime):
        return value.astimezone(UTC) if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts > 1e12:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise NormalizationError(
                f"Field '{field}' is out of range: {value!r}", field=field, value=value, record_id=record_id
            ) from e
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.isdigit():
            return parse_timestamp(int(raw), field=field, record_id=record_id)
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as e:
            raise NormalizationError(
                f"Field '{field}' is not a timestamp: {value!r}", field=field, value=value, record_id=record_id
            ) from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    raise NormalizationError(f"Missing timestamp field '{field}'", field=field, value=value, record_id=record_id)


def normalize_trade(record: Mapping[str, Any]) -> Trade:
    """Normalize one upstream trade record.

    Accepts CLOB trade-history keys (``id``, ``market``, ``asset_id``,
    ``maker_address``, ``owner``, ``match_time``) as well as the canonical
    camelCase contract (``marketId``, ``tokenId``, ``maker``, ``taker``,
    ``timestamp``).

    Raises:
        NormalizationError: If a required field is missing or malformed.
    """
    trade_id = str(_first(record, "id", "trade_id", "tradeId") or "")
    if not trade_id:
        raise NormalizationError("Trade record has no id", field="id")

    market_id = str(_first(record, "marketId", "market_id", "market", "conditionId") or "")
    token_id = str(_first(record, "tokenId", "token_id", "asset_id", "assetId", "asset") or "")
    maker = str(_first(record, "maker", "maker_address", "makerAddress") or "").lower()
    taker = str(_first(record, "taker", "taker_address", "takerAddress", "owner") or "").lower()

    side = parse_side(record.get("side"), record_id=trade_id)
    size = parse_decimal(record.get("size"), field="size", record_id=trade_id)
    price = parse_decimal(record.get("price"), field="price", record_id=trade_id)
    if size < 0:
        raise NormalizationError(f"Negative trade size: {size}", field="size", value=size, record_id=trade_id)
    if price < 0 or price > 1:
        raise NormalizationError(
            f"Trade price outside [0, 1]: {price}", field="price", value=price, record_id=trade_id
        )

    timestamp = parse_timestamp(
        _first(record, "timestamp", "match_time", "matchTime", "time"),
        record_id=trade_id,
    )

    return Trade(
        trade_id=trade_id,
        market_id=market_id,
        token_id=token_id,
        maker=maker,
        taker=taker,
        side=side,
        size=size,
        price=price,
        timestamp=timestamp,
        raw=dict(record),
    )


def try_normalize_trade(record: Mapping[str, Any]) -> Trade | ParseError:
    """Normalize a trade, returning a ParseError instead of raising."""
    try:
        return normalize_trade(record)
    except NormalizationError as e:
        logger.debug("Rejected trade record %s: %s", e.record_id or "(no id)", e)
        return ParseError.from_exception(e)


def _parse_levels(levels: Iterable[Mapping[str, Any]] | None, *, side: str, record_id: str) -> list[OrderbookLevel]:
    parsed = []
    for level in levels or ():
        parsed.append(
            OrderbookLevel(
                price=parse_decimal(level.get("price"), field=f"{side}.price", record_id=record_id),
                size=parse_decimal(level.get("size"), field=f"{side}.size", record_id=record_id),
            )
        )
    return parsed


def normalize_orderbook(
    record: Mapping[str, Any],
    *,
    market_id: str = "",
    end_date: datetime | None = None,
) -> MarketState:
    """Normalize a CLOB ``/book`` payload into a MarketState.

    Best bid is the highest bid price and best ask the lowest ask price; depth
    is the summed size of all levels on a side. An empty side yields zero price
    and zero depth.

    Raises:
        NormalizationError: If a level has a malformed price or size.
    """
    token_id = str(_first(record, "asset_id", "token_id", "tokenId") or "")
    bids = _parse_levels(record.get("bids"), side="bids", record_id=token_id)
    asks = _parse_levels(record.get("asks"), side="asks", record_id=token_id)

    raw_ts = record.get("timestamp")
    timestamp = parse_timestamp(raw_ts, record_id=token_id) if raw_ts not in (None, "") else datetime.now(UTC)

    orderbook = Orderbook(
        market_id=market_id or str(record.get("market") or ""),
        token_id=token_id,
        bids=tuple(sorted(bids, key=lambda lvl: lvl.price, reverse=True)),
        asks=tuple(sorted(asks, key=lambda lvl: lvl.price)),
        timestamp=timestamp,
    )
    return MarketState.from_orderbook(orderbook, end_date=end_date)


def normalize_market_state(record: Mapping[str, Any]) -> MarketState:
    """Normalize the flat market-state contract record.

    Expected keys: ``endDate`` (nullable), ``bestBid``, ``bestAsk``,
    ``bidDepth``, ``askDepth``.
    """
    market_id = str(_first(record, "marketId", "market_id", "market") or "")
    raw_end = record.get("endDate", record.get("end_date"))
    end_date = parse_timestamp(raw_end, field="endDate", record_id=market_id) if raw_end not in (None, "") else None

    def _get(camel: str, snake: str) -> Decimal:
        return parse_decimal(_first(record, camel, snake), field=camel, record_id=market_id)

    raw_ts = record.get("timestamp")
    return MarketState(
        market_id=market_id,
        token_id=str(_first(record, "tokenId", "token_id") or ""),
        best_bid=_get("bestBid", "best_bid"),
        best_ask=_get("bestAsk", "best_ask"),
        bid_depth=_get("bidDepth", "bid_depth"),
        ask_depth=_get("askDepth", "ask_depth"),
        end_date=end_date,
        timestamp=parse_timestamp(raw_ts, record_id=market_id) if raw_ts not in (None, "") else datetime.now(UTC),
    )
