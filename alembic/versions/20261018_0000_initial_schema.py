"""Initial schema for groups, watchlists, alerts and the price cache.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
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
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("default_token", sa.String(128), nullable=True),
        sa.Column("default_chain", sa.String(16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chat_id"),
    )

    op.create_table(
        "watchlist",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("token_ref", sa.String(128), nullable=False),
        sa.Column("chain", sa.String(16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_watchlist_group", "watchlist", ["group_id"])

    op.create_table(
        "alerts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("token_ref", sa.String(128), nullable=False),
        sa.Column("chain", sa.String(16), nullable=True),
        sa.Column("direction", sa.String(8), nullable=False),
        sa.Column("target_price", sa.Float(), nullable=False),
        sa.Column("cooldown_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("last_triggered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_id"], ["groups.id"], ondelete="CASCADE"),
        sa.CheckConstraint("direction IN ('above', 'below')", name="ck_alerts_direction"),
        sa.CheckConstraint("target_price > 0", name="ck_alerts_target_price"),
    )
    op.create_index("idx_alerts_active", "alerts", ["is_active"])
    op.create_index("idx_alerts_group", "alerts", ["group_id"])

    op.create_table(
        "token_cache",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("token_ref", sa.String(128), nullable=False),
        sa.Column("chain", sa.String(16), nullable=False, server_default=""),
        sa.Column("data_json", sa.Text(), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ttl_seconds", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token_ref", "chain", name="uq_token_cache_ref_chain"),
    )
    op.create_index("idx_token_cache_expires_at", "token_cache", ["expires_at"])


def downgrade() -> None:
    op.drop_index("idx_token_cache_expires_at", table_name="token_cache")
    op.drop_table("token_cache")
    op.drop_index("idx_alerts_group", table_name="alerts")
    op.drop_index("idx_alerts_active", table_name="alerts")
    op.drop_table("alerts")
    op.drop_index("idx_watchlist_group", table_name="watchlist")
    op.drop_table("watchlist")
    op.drop_table("groups")
