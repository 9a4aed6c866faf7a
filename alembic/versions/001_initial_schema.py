"""Initial schema — watchlist, price_history

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- watchlist ---
    op.create_table(
        "watchlist",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("product_url", sa.String(), nullable=False),
        sa.Column("product_name", sa.String(), nullable=True),
        sa.Column("target_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("last_notified_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("active", sa.BOOLEAN(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("product_url", name="uq_watchlist_product_url"),
    )

    # --- price_history (append-only) ---
    op.create_table(
        "price_history",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("product", sa.String(), nullable=False),
        sa.Column("price", sa.DECIMAL(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("product_url", sa.String(), nullable=True),
        sa.Column(
            "captured_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_price_history_url_captured", "price_history", ["product_url", "captured_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_price_history_url_captured", table_name="price_history")
    op.drop_table("price_history")
    op.drop_table("watchlist")
