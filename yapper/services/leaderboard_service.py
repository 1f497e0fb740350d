"""
yapper.services.leaderboard_service — Live Leaderboard Reads
=============================================================

Public façade over the XP pipeline for cogs:

- ``increment_score``  — buffered, fire-and-forget XP write
- ``get_live_top``     — durable page + unflushed buffer deltas, re-ranked
- ``get_live_stats``   — one member's durable counters + buffered delta
- ``get_rank``         — durable-only rank ("greater-than count + 1")
- ``count_ranked``     — members with a positive score (pagination)

**Live top-N and the overfetch margin.**  ``get_live_top`` reads
``skip + limit + overfetch_margin`` durable rows from the top of the board,
adds any buffered delta to the members among them, re-sorts the whole
window and slices the requested page out of it.  A member sitting further
down the durable table does *not* get pulled onto the page by a large
buffered delta until the next sync cycle writes it through.  That bounded
staleness is intended: the alternative is merging the buffer against the
whole table on every read.

**Ties.**  ``get_rank`` counts members with a strictly greater score, so equal
scores share the same rank.  Live pages keep the durable order for ties
(score, then user id).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from yapper.database.engine import run_db
from yapper.database.models import LeaderboardType
from yapper.services import xp_store
from yapper.services.xp_store import LeaderboardRow, XpStats

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from yapper.engine.buffer import XpBuffer

logger = logging.getLogger(__name__)

DEFAULT_OVERFETCH = 20


@dataclass(frozen=True, slots=True)
class LiveRow:
    """A leaderboard row with buffered XP merged in."""
    user_id: int
    rank: int
    xp: int
    daily_xp: int
    weekly_xp: int

    def score(self, board: LeaderboardType) -> int:
        return getattr(self, board.column_name)


def merge_live_rows(
    rows: Sequence[LeaderboardRow],
    deltas: Mapping[int, int],
    board: LeaderboardType,
    limit: int,
    skip: int = 0,
) -> list[LiveRow]:
    """Merge buffered *deltas* into durable *rows* and cut one page out.

    *rows* must be the durable board from its top (offset 0).  Only members
    already present in *rows* are considered.  Each delta is applied to all
    three counters (floored at zero, as the store would), members whose
    *board* score drops to zero are left out, the whole window is re-sorted,
    and ``merged[skip:skip + limit]`` is returned.  A row's rank is its
    position in the re-sorted window, so consecutive pages never repeat or
    skip a member.
    """
    merged: list[tuple[int, int, int, int]] = []
    for row in rows:
        delta = deltas.get(row.user_id, 0)
        merged.append((
            row.user_id,
            max(0, row.xp + delta),
            max(0, row.daily_xp + delta),
            max(0, row.weekly_xp + delta),
        ))

    index = {
        LeaderboardType.LIFETIME: 1,
        LeaderboardType.DAILY: 2,
        LeaderboardType.WEEKLY: 3,
    }[board]
    merged = [m for m in merged if m[index] > 0]
    # sorted() is stable, so durable order breaks ties.
    merged = sorted(merged, key=lambda m: m[index], reverse=True)

    return [
        LiveRow(user_id=user_id, rank=skip + pos + 1, xp=xp, daily_xp=daily, weekly_xp=weekly)
        for pos, (user_id, xp, daily, weekly) in enumerate(merged[skip:skip + limit])
    ]


class LeaderboardService:
    """Reads and writes XP on behalf of the bot's cogs.

    Usage::

        service = LeaderboardService(engine, buffer, overfetch_margin=20)
        await service.increment_score(guild_id, user_id, 42)
        page = await service.get_live_top(guild_id, "daily", limit=10)
    """

    def __init__(
        self,
        engine: Engine,
        buffer: XpBuffer,
        overfetch_margin: int = DEFAULT_OVERFETCH,
    ) -> None:
        if overfetch_margin < 0:
            raise ValueError("overfetch_margin must be >= 0")
        self._engine = engine
        self._buffer = buffer
        self.overfetch_margin = overfetch_margin

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    async def increment_score(self, guild_id: int, user_id: int, delta: int) -> None:
        """Buffer *delta* XP for a member.  Redis failures are logged, not raised."""
        await self._buffer.increment(guild_id, user_id, delta)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    async def get_live_top(
        self,
        guild_id: int,
        board: LeaderboardType | str,
        limit: int,
        skip: int = 0,
    ) -> list[LiveRow]:
        """Leaderboard page including XP that hasn't been synced yet."""
        board = LeaderboardType.parse(board)
        if limit <= 0:
            raise ValueError("limit must be positive")
        if skip < 0:
            raise ValueError("skip must be >= 0")

        # Every page re-ranks the same window from the top of the board.
        rows = await run_db(
            xp_store.fetch_top_users,
            self._engine, guild_id, board, skip + limit + self.overfetch_margin,
        )
        if not rows:
            return []
        deltas = await self._buffer.get_all(guild_id)
        logger.debug(
            "Live %s board guild=%s: %d durable rows, %d buffered deltas",
            board, guild_id, len(rows), len(deltas),
        )
        return merge_live_rows(rows, deltas, board, limit, skip)

    async def get_live_stats(self, guild_id: int, user_id: int) -> XpStats:
        """One member's counters with their buffered delta added."""
        stats = await run_db(xp_store.get_user_stats, self._engine, guild_id, user_id)
        delta = await self._buffer.get_delta(guild_id, user_id)
        if delta == 0:
            return stats
        return XpStats(
            xp=max(0, stats.xp + delta),
            daily_xp=max(0, stats.daily_xp + delta),
            weekly_xp=max(0, stats.weekly_xp + delta),
            clan_id=stats.clan_id,
        )

    async def get_rank(
        self, guild_id: int, user_id: int, board: LeaderboardType | str,
    ) -> int | None:
        """Durable rank on *board*, or None if the member has no XP row."""
        board = LeaderboardType.parse(board)
        return await run_db(xp_store.get_user_rank, self._engine, guild_id, user_id, board)

    async def count_ranked(self, guild_id: int, board: LeaderboardType | str) -> int:
        board = LeaderboardType.parse(board)
        return await run_db(xp_store.get_user_count, self._engine, guild_id, board)

    async def get_clan_totals(
        self, guild_id: int, board: LeaderboardType | str = LeaderboardType.LIFETIME,
    ) -> dict[int, int]:
        board = LeaderboardType.parse(board)
        return await run_db(xp_store.get_clan_totals, self._engine, guild_id, board)
