"""Initial schema for trades and orderbook snapshots.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Trades table (durable truth)
    op.create_table(
        "trades",
        sa.Column("trade_id", sa.String(128), nullable=False),
        sa.Column("market_id", sa.String(128), nullable=False),
        sa.Column("token_id", sa.String(128), nullable=False),
        sa.Column("maker", sa.String(42), nullable=False),
        sa.Column("taker", sa.String(42), nullable=False),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("price", sa.Numeric(20, 10), nullable=False),
        sa.Column("size", sa.Numeric(30, 10), nullable=False),
        sa.Column("notional_usdc", sa.Numeric(30, 10), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("raw_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("trade_id"),
    )
    op.create_index("idx_trades_market_ts", "trades", ["market_id", "ts"])
    op.create_index("idx_trades_taker_ts", "trades", ["taker", "ts"])
    op.create_index("idx_trades_maker_ts", "trades", ["maker", "ts"])

    # Orderbook snapshots table
    op.create_table(
        "orderbook_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("market_id", sa.String(128), nullable=False),
        sa.Column("token_id", sa.String(128), nullable=False),
        sa.Column("best_bid", sa.Numeric(20, 10), nullable=False),
        sa.Column("best_ask", sa.Numeric(20, 10), nullable=False),
        sa.Column("bid_depth", sa.Numeric(30, 10), nullable=False),
        sa.Column("ask_depth", sa.Numeric(30, 10), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_orderbook_snapshots_token_ts", "orderbook_snapshots", ["token_id", "captured_at"])
    op.create_index("idx_orderbook_snapshots_market_ts", "orderbook_snapshots", ["market_id", "captured_at"])


def downgrade() -> None:
    op.drop_index("idx_orderbook_snapshots_market_ts", table_name="orderbook_snapshots")
    op.drop_index("idx_orderbook_snapshots_token_ts", table_name="orderbook_snapshots")
    op.drop_table("orderbook_snapshots")

    op.drop_index("idx_trades_maker_ts", table_name="trades")
    op.drop_index("idx_trades_taker_ts", table_name="trades")
    op.drop_index("idx_trades_market_ts", table_name="trades")
    op.drop_table("trades")
