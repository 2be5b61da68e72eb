"""Add wallet position snapshots and alerts.

Revision ID: 002_positions_and_alerts
Revises: 001_initial
Create Date: 2026-10-19 00:01:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002_positions_and_alerts"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "wallet_positions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("market_id", sa.String(128), nullable=False),
        sa.Column("token_id", sa.String(128), nullable=False),
        sa.Column("position", sa.Numeric(30, 10), nullable=False),
        sa.Column("buy_volume", sa.Numeric(30, 10), nullable=False),
        sa.Column("sell_volume", sa.Numeric(30, 10), nullable=False),
        sa.Column("trade_count", sa.Integer(), nullable=False),
        sa.Column("last_price", sa.Numeric(20, 10), nullable=True),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_wallet_positions_wallet_token_ts",
        "wallet_positions",
        ["wallet_address", "token_id", "computed_at"],
    )
    op.create_index("idx_wallet_positions_market_ts", "wallet_positions", ["market_id", "computed_at"])

    op.create_table(
        "alerts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("trade_id", sa.String(128), nullable=False),
        sa.Column("market_id", sa.String(128), nullable=False),
        sa.Column("token_id", sa.String(128), nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("score", sa.Numeric(10, 8), nullable=False),
        sa.Column("threshold", sa.Numeric(10, 8), nullable=False),
        sa.Column("must_flag", sa.Boolean(), nullable=False),
        sa.Column("primary_reason", sa.String(255), nullable=False),
        sa.Column("reasons_json", sa.Text(), nullable=False),
        sa.Column("features_json", sa.Text(), nullable=False),
        sa.Column("market_state_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("trade_id", name="uq_alerts_trade"),
    )
    op.create_index("idx_alerts_market_created", "alerts", ["market_id", "created_at"])
    op.create_index("idx_alerts_score", "alerts", ["score"])


def downgrade() -> None:
    op.drop_index("idx_alerts_score", table_name="alerts")
    op.drop_index("idx_alerts_market_created", table_name="alerts")
    op.drop_table("alerts")

    op.drop_index("idx_wallet_positions_market_ts", table_name="wallet_positions")
    op.drop_index("idx_wallet_positions_wallet_token_ts", table_name="wallet_positions")
    op.drop_table("wallet_positions")
