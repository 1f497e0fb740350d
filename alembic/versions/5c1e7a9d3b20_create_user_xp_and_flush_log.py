"""Create user_xp and xp_flush_log tables

Revision ID: 5c1e7a9d3b20
Revises:
Create Date: 2026-10-18 09:12:31.402117

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c1e7a9d3b20'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the durable XP counters and the applied-snapshot log."""

    # --- user_xp ---
    op.create_table(
        "user_xp",
        sa.Column("guild_id", sa.BigInteger, primary_key=True),
        sa.Column("user_id", sa.BigInteger, primary_key=True),
        sa.Column("xp", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("daily_xp", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("weekly_xp", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("clan_id", sa.SmallInteger, nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )

    # Leaderboard reads: WHERE guild_id = ? ORDER BY <counter> DESC
    op.create_index("ix_user_xp_guild_xp", "user_xp", ["guild_id", "xp"])
    op.create_index("ix_user_xp_guild_daily", "user_xp", ["guild_id", "daily_xp"])
    op.create_index("ix_user_xp_guild_weekly", "user_xp", ["guild_id", "weekly_xp"])

    # --- xp_flush_log ---
    op.create_table(
        "xp_flush_log",
        sa.Column("snapshot_key", sa.String(200), primary_key=True),
        sa.Column("guild_id", sa.BigInteger, nullable=False),
        sa.Column("entries", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_delta", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column(
            "applied_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_xp_flush_log_applied_at", "xp_flush_log", ["applied_at"])


def downgrade() -> None:
    op.drop_index("ix_xp_flush_log_applied_at", table_name="xp_flush_log")
    op.drop_table("xp_flush_log")
    op.drop_index("ix_user_xp_guild_weekly", table_name="user_xp")
    op.drop_index("ix_user_xp_guild_daily", table_name="user_xp")
    op.drop_index("ix_user_xp_guild_xp", table_name="user_xp")
    op.drop_table("user_xp")
