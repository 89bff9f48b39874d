"""add_portfolio_roi_tables

Revision ID: a3f1c9d2e7b4
Revises:
Create Date: 2026-09-28 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "a3f1c9d2e7b4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "asset_prices_daily",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("symbol", sa.String(length=20), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("close", sa.Numeric(30, 12), nullable=False),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("symbol", "date", name="uq_asset_prices_daily_symbol_date"),
    )
    op.create_index("ix_asset_prices_daily_symbol", "asset_prices_daily", ["symbol"])
    op.create_index("ix_asset_prices_daily_date", "asset_prices_daily", ["date"])

    op.create_table(
        "allocation_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("portfolio_key", sa.String(length=100), nullable=False),
        sa.Column("as_of_date", sa.Date(), nullable=False),
        sa.Column("items", postgresql.JSONB(), nullable=False),
        sa.Column("cash_weight", sa.Numeric(20, 10), nullable=False, server_default="0"),
        sa.Column("updated_by", sa.String(length=100)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("portfolio_key", "as_of_date", name="uq_allocation_snapshots_key_date"),
    )
    op.create_index(
        "ix_allocation_snapshots_key_date",
        "allocation_snapshots",
        ["portfolio_key", "as_of_date"],
    )

    op.create_table(
        "performance_series",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("series_type", sa.String(length=50), nullable=False),
        sa.Column("portfolio_key", sa.String(length=100), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("value", sa.Numeric(30, 12), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "series_type", "portfolio_key", "date", name="uq_performance_series_type_key_date"
        ),
    )
    op.create_index(
        "ix_performance_series_key_date",
        "performance_series",
        ["portfolio_key", "date"],
    )

    op.create_table(
        "roi_dashboard_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("scope", sa.String(length=50), nullable=False),
        sa.Column("portfolio_key", sa.String(length=100)),
        sa.Column("payload", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("needs_recompute", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("recompute_from_date", sa.Date()),
        sa.Column("as_of_date", sa.Date()),
        sa.Column("roi_inception", sa.Numeric(30, 12)),
        sa.Column("roi_30d", sa.Numeric(30, 12)),
        sa.Column("max_drawdown", sa.Numeric(30, 12)),
        sa.Column("volatility", sa.Numeric(30, 12)),
        sa.Column("last_computed_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("scope", "portfolio_key", name="uq_roi_dashboard_snapshots_scope_key"),
    )
    op.create_index("ix_roi_dashboard_snapshots_scope", "roi_dashboard_snapshots", ["scope"])
    op.create_index(
        "ix_roi_dashboard_snapshots_portfolio_key", "roi_dashboard_snapshots", ["portfolio_key"]
    )
    op.create_index(
        "ix_roi_dashboard_snapshots_needs_recompute",
        "roi_dashboard_snapshots",
        ["needs_recompute"],
    )


def downgrade() -> None:
    op.drop_index("ix_roi_dashboard_snapshots_needs_recompute", table_name="roi_dashboard_snapshots")
    op.drop_index("ix_roi_dashboard_snapshots_portfolio_key", table_name="roi_dashboard_snapshots")
    op.drop_index("ix_roi_dashboard_snapshots_scope", table_name="roi_dashboard_snapshots")
    op.drop_table("roi_dashboard_snapshots")

    op.drop_index("ix_performance_series_key_date", table_name="performance_series")
    op.drop_table("performance_series")

    op.drop_index("ix_allocation_snapshots_key_date", table_name="allocation_snapshots")
    op.drop_table("allocation_snapshots")

    op.drop_index("ix_asset_prices_daily_date", table_name="asset_prices_daily")
    op.drop_index("ix_asset_prices_daily_symbol", table_name="asset_prices_daily")
    op.drop_table("asset_prices_daily")
