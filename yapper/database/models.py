"""
yapper.database.models — SQLAlchemy 2.0 Data Models
====================================================

The durable side of the write-behind XP pipeline.

Tables:
- user_xp       — Per-(guild, member) lifetime / daily / weekly XP counters
- xp_flush_log  — One row per Redis buffer snapshot applied to ``user_xp``
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    SmallInteger,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Yapper ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class LeaderboardType(enum.StrEnum):
    """Which XP counter a leaderboard read is ordered by."""
    DAILY = "daily"
    WEEKLY = "weekly"
    LIFETIME = "lifetime"

    @property
    def column_name(self) -> str:
        """Name of the :class:`UserXp` attribute backing this board."""
        return _BOARD_COLUMNS[self]

    @classmethod
    def parse(cls, value: str | LeaderboardType) -> LeaderboardType:
        """Coerce a user-supplied board name, raising ``ValueError`` if unknown."""
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(
                f"Unknown leaderboard type {value!r}; "
                f"expected one of {', '.join(b.value for b in cls)}"
            ) from None


_BOARD_COLUMNS: dict[LeaderboardType, str] = {
    LeaderboardType.DAILY: "daily_xp",
    LeaderboardType.WEEKLY: "weekly_xp",
    LeaderboardType.LIFETIME: "xp",
}


# ---------------------------------------------------------------------------
# UserXp — one row per member per guild
# ---------------------------------------------------------------------------
class UserXp(Base):
    """Durable XP counters for one member of one guild.

    All three counters move together on a normal XP event and are floored
    at zero.  ``daily_xp`` and ``weekly_xp`` are zeroed by period resets;
    ``xp`` (lifetime) never is.
    """
    __tablename__ = "user_xp"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    daily_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    weekly_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    clan_id: Mapped[int | None] = mapped_column(SmallInteger, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_user_xp_guild_xp", "guild_id", "xp"),
        Index("ix_user_xp_guild_daily", "guild_id", "daily_xp"),
        Index("ix_user_xp_guild_weekly", "guild_id", "weekly_xp"),
    )

    def score(self, board: LeaderboardType) -> int:
        return getattr(self, board.column_name)

    def __repr__(self) -> str:
        return (
            f"<UserXp guild={self.guild_id} user={self.user_id} "
            f"xp={self.xp} daily={self.daily_xp} weekly={self.weekly_xp}>"
        )


# ---------------------------------------------------------------------------
# XpFlushLog — applied buffer snapshots
# ---------------------------------------------------------------------------
class XpFlushLog(Base):
    """Records every Redis snapshot that has been applied to ``user_xp``.

    Written in the same transaction as the batch it describes, so a snapshot
    key present here has been fully applied and must never be applied again.
    """
    __tablename__ = "xp_flush_log"

    snapshot_key: Mapped[str] = mapped_column(String(200), primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    entries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_delta: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_xp_flush_log_applied_at", "applied_at"),
    )

    def __repr__(self) -> str:
        return f"<XpFlushLog key={self.snapshot_key!r} entries={self.entries}>"
