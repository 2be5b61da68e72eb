"""Storage layer - Database schemas and repositories."""

from polydiction.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from polydiction.storage.models import (
    AlertModel,
    Base,
    OrderbookSnapshotModel,
    TradeModel,
    WalletPositionModel,
)
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

__all__ = [
    "AlertDTO",
    "AlertModel",
    "AlertRepository",
    "Base",
    "DatabaseManager",
    "OrderbookSnapshotDTO",
    "OrderbookSnapshotModel",
    "OrderbookSnapshotRepository",
    "TradeDTO",
    "TradeModel",
    "TradeRepository",
    "WalletPositionDTO",
    "WalletPositionModel",
    "WalletPositionRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
