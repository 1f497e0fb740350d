"""
yapper.services.xp_store — Durable XP Store
============================================

Synchronous SQLAlchemy access to the ``user_xp`` table.  Shared by the sync
service, the leaderboard service and the admin commands; every function is
meant to be called through ``await run_db(fn, engine, ...)``.

Counter rules:
- A normal XP event moves lifetime, daily and weekly by the same amount.
- No counter ever goes below zero.
- A row whose three counters all reach zero through a decrement is deleted,
  unless it carries a clan assignment.
- Period resets zero ``daily_xp`` / ``weekly_xp`` with one set-based UPDATE
  and never touch lifetime ``xp``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, case, delete, func, select, update
from sqlalchemy.orm import Session

from yapper.database.engine import get_session, set_statement_timeout
from yapper.database.models import LeaderboardType, UserXp, XpFlushLog

logger = logging.getLogger(__name__)

# Keeps IN (...) lists well under SQLite's bound-parameter limit.
_IN_CHUNK = 500


@dataclass(frozen=True, slots=True)
class XpStats:
    """A member's three counters plus clan affiliation."""
    xp: int = 0
    daily_xp: int = 0
    weekly_xp: int = 0
    clan_id: int | None = None

    def score(self, board: LeaderboardType) -> int:
        return getattr(self, board.column_name)


@dataclass(frozen=True, slots=True)
class LeaderboardRow:
    """One durable leaderboard row, before any buffer merge."""
    user_id: int
    xp: int
    daily_xp: int
    weekly_xp: int

    def score(self, board: LeaderboardType) -> int:
        return getattr(self, board.column_name)


def _stats(row: UserXp | None) -> XpStats:
    if row is None:
        return XpStats()
    return XpStats(
        xp=row.xp, daily_xp=row.daily_xp, weekly_xp=row.weekly_xp, clan_id=row.clan_id,
    )


def _chunks(ids: list[int], size: int = _IN_CHUNK) -> Iterable[list[int]]:
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


# ---------------------------------------------------------------------------
# Point writes
# ---------------------------------------------------------------------------
def add_user_xp(engine: Engine, guild_id: int, user_id: int, amount: int) -> XpStats:
    """Increment all three counters of one member, creating the row if needed."""
    if amount <= 0:
        raise ValueError("amount must be positive")
    with get_session(engine) as session:
        row = session.get(UserXp, (guild_id, user_id), with_for_update=True)
        if row is None:
            row = UserXp(
                guild_id=guild_id, user_id=user_id,
                xp=amount, daily_xp=amount, weekly_xp=amount,
            )
            session.add(row)
        else:
            row.xp += amount
            row.daily_xp += amount
            row.weekly_xp += amount
        session.flush()
        return _stats(row)


def subtract_user_xp(
    engine: Engine, guild_id: int, user_id: int, amount: int,
) -> XpStats | None:
    """Remove *amount* lifetime XP from one member, flooring at zero.

    Daily and weekly counters track period activity and are left alone.
    A member whose lifetime XP hits zero is deleted unless they belong to a
    clan; the returned stats still describe the state just before deletion.  Returns None when
    the member has no row.
    """
    if amount <= 0:
        raise ValueError("amount must be positive")
    with get_session(engine) as session:
        row = session.execute(
            update(UserXp)
            .where(UserXp.guild_id == guild_id, UserXp.user_id == user_id)
            .values(
                xp=case((UserXp.xp > amount, UserXp.xp - amount), else_=0),
                updated_at=func.now(),
            )
            .returning(UserXp.xp, UserXp.daily_xp, UserXp.weekly_xp, UserXp.clan_id)
        ).first()
        if row is None:
            return None

        if row.xp == 0:
            session.execute(
                delete(UserXp).where(
                    UserXp.guild_id == guild_id,
                    UserXp.user_id == user_id,
                    UserXp.xp == 0,
                    UserXp.clan_id.is_(None),
                )
            )
        return XpStats(
            xp=row.xp, daily_xp=row.daily_xp, weekly_xp=row.weekly_xp, clan_id=row.clan_id,
        )


def update_user_xp(
    engine: Engine, guild_id: int, user_id: int, delta: int,
) -> XpStats | None:
    """Signed adjustment: positive adds to every counter, negative subtracts
    lifetime XP only.  Zero is a no-op returning None."""
    if delta > 0:
        return add_user_xp(engine, guild_id, user_id, delta)
    if delta < 0:
        return subtract_user_xp(engine, guild_id, user_id, -delta)
    return None


def set_user_xp(engine: Engine, guild_id: int, user_id: int, new_xp: int) -> XpStats | None:
    """Override a member's lifetime XP, preserving daily/weekly.

    ``new_xp <= 0`` deletes the member's row and returns None.
    """
    with get_session(engine) as session:
        row = session.get(UserXp, (guild_id, user_id), with_for_update=True)
        if new_xp <= 0:
            if row is not None:
                session.delete(row)
            return None
        if row is None:
            row = UserXp(
                guild_id=guild_id, user_id=user_id, xp=new_xp, daily_xp=0, weekly_xp=0,
            )
            session.add(row)
        else:
            row.xp = new_xp
        session.flush()
        return _stats(row)


def set_user_clan(
    engine: Engine, guild_id: int, user_id: int, clan_id: int | None,
) -> XpStats:
    """Set (or clear with None) a member's clan affiliation."""
    with get_session(engine) as session:
        row = session.get(UserXp, (guild_id, user_id), with_for_update=True)
        if row is None:
            row = UserXp(
                guild_id=guild_id, user_id=user_id,
                xp=0, daily_xp=0, weekly_xp=0, clan_id=clan_id,
            )
            session.add(row)
        else:
            row.clan_id = clan_id
        session.flush()
        return _stats(row)


# ---------------------------------------------------------------------------
# Batch write — the sync service's only entry point
# ---------------------------------------------------------------------------
def apply_xp_batch(
    engine: Engine,
    guild_id: int,
    snapshot_key: str,
    updates: Mapping[int, int],
    statement_timeout: float | None = None,
) -> bool:
    """Apply one drained buffer snapshot in a single transaction.

    Each ``user_id → delta`` pair moves lifetime, daily and weekly XP by the
    same signed delta, floored at zero.  Unknown members are created for
    positive deltas; negative deltas for unknown members have nothing to
    subtract from.  A row left with all three counters at zero by a negative
    delta is deleted, unless it carries a clan assignment.  The snapshot is
    recorded in ``xp_flush_log`` inside the same transaction.

    Returns False without touching any counter when *snapshot_key* was
    already applied by an earlier attempt, True otherwise.  Any exception
    rolls the whole batch back.
    """
    user_ids = sorted(uid for uid, delta in updates.items() if delta != 0)

    with get_session(engine) as session:
        if statement_timeout is not None:
            set_statement_timeout(session, statement_timeout)

        if session.get(XpFlushLog, snapshot_key) is not None:
            logger.info("Snapshot %s already applied — skipping", snapshot_key)
            return False

        session.add(XpFlushLog(
            snapshot_key=snapshot_key,
            guild_id=guild_id,
            entries=len(user_ids),
            total_delta=sum(updates[uid] for uid in user_ids),
        ))

        existing: dict[int, UserXp] = {}
        for chunk in _chunks(user_ids):
            rows = session.scalars(
                select(UserXp)
                .where(UserXp.guild_id == guild_id, UserXp.user_id.in_(chunk))
                .order_by(UserXp.user_id)
                .with_for_update()
            ).all()
            existing.update((row.user_id, row) for row in rows)

        created = removed = 0
        for user_id in user_ids:
            delta = updates[user_id]
            row = existing.get(user_id)
            if row is None:
                if delta > 0:
                    session.add(UserXp(
                        guild_id=guild_id, user_id=user_id,
                        xp=delta, daily_xp=delta, weekly_xp=delta,
                    ))
                    created += 1
                continue

            row.xp = max(0, row.xp + delta)
            row.daily_xp = max(0, row.daily_xp + delta)
            row.weekly_xp = max(0, row.weekly_xp + delta)
            if (
                delta < 0 and row.clan_id is None
                and row.xp == 0 and row.daily_xp == 0 and row.weekly_xp == 0
            ):
                session.delete(row)
                removed += 1

        session.flush()
        logger.debug(
            "Applied XP batch guild=%s users=%d created=%d removed=%d",
            guild_id, len(user_ids), created, removed,
        )
        return True


def is_snapshot_applied(engine: Engine, snapshot_key: str) -> bool:
    with Session(engine) as session:
        return session.get(XpFlushLog, snapshot_key) is not None


def prune_flush_log(engine: Engine, older_than_days: int) -> int:
    """Delete applied-snapshot records older than *older_than_days*."""
    cutoff = datetime.now(UTC) - timedelta(days=older_than_days)
    with get_session(engine) as session:
        result = session.execute(
            delete(XpFlushLog).where(XpFlushLog.applied_at < cutoff)
        )
        return result.rowcount or 0


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_user_stats(engine: Engine, guild_id: int, user_id: int) -> XpStats:
    """A member's counters; all zeros when the member has no row."""
    with Session(engine) as session:
        return _stats(session.get(UserXp, (guild_id, user_id)))


def fetch_top_users(
    engine: Engine,
    guild_id: int,
    board: LeaderboardType,
    limit: int,
    skip: int = 0,
) -> list[LeaderboardRow]:
    """Durable leaderboard slice, highest first, only scores above zero.

    Ties are ordered by ``user_id`` so pages are stable.
    """
    column = getattr(UserXp, board.column_name)
    with Session(engine) as session:
        rows = session.execute(
            select(UserXp.user_id, UserXp.xp, UserXp.daily_xp, UserXp.weekly_xp)
            .where(UserXp.guild_id == guild_id, column > 0)
            .order_by(column.desc(), UserXp.user_id)
            .offset(skip)
            .limit(limit)
        ).all()
    return [
        LeaderboardRow(user_id=r.user_id, xp=r.xp, daily_xp=r.daily_xp, weekly_xp=r.weekly_xp)
        for r in rows
    ]


def get_user_count(engine: Engine, guild_id: int, board: LeaderboardType) -> int:
    """Number of members with a positive score on *board* (for pagination)."""
    column = getattr(UserXp, board.column_name)
    with Session(engine) as session:
        return session.scalar(
            select(func.count()).select_from(UserXp)
            .where(UserXp.guild_id == guild_id, column > 0)
        ) or 0


def get_user_rank(
    engine: Engine, guild_id: int, user_id: int, board: LeaderboardType,
) -> int | None:
    """1 + number of members with a strictly greater score.

    Equal scores share a rank.  Returns None when the member has no row.
    """
    column = getattr(UserXp, board.column_name)
    with Session(engine) as session:
        score = session.scalar(
            select(column).where(UserXp.guild_id == guild_id, UserXp.user_id == user_id)
        )
        if score is None:
            return None
        above: int = session.scalar(
            select(func.count()).select_from(UserXp)
            .where(UserXp.guild_id == guild_id, column > score)
        ) or 0
    return above + 1


def get_clan_totals(
    engine: Engine, guild_id: int, board: LeaderboardType = LeaderboardType.LIFETIME,
) -> dict[int, int]:
    """Sum of member scores per clan, members without a clan excluded."""
    column = getattr(UserXp, board.column_name)
    with Session(engine) as session:
        rows = session.execute(
            select(UserXp.clan_id, func.sum(column).label("total"))
            .where(UserXp.guild_id == guild_id, UserXp.clan_id.is_not(None))
            .group_by(UserXp.clan_id)
        ).all()
    return {row.clan_id: int(row.total or 0) for row in rows}


# ---------------------------------------------------------------------------
# Period resets & tenant cleanup
# ---------------------------------------------------------------------------
def _reset_column(engine: Engine, column_name: str, guild_id: int | None) -> int:
    column = getattr(UserXp, column_name)
    stmt = update(UserXp).where(column != 0).values({column_name: 0})
    if guild_id is not None:
        stmt = stmt.where(UserXp.guild_id == guild_id)
    with get_session(engine) as session:
        result = session.execute(stmt)
        return result.rowcount or 0


def reset_daily_xp(engine: Engine, guild_id: int) -> int:
    """Zero daily XP for every member of *guild_id*.  Lifetime is untouched."""
    count = _reset_column(engine, "daily_xp", guild_id)
    logger.info("Reset daily XP for %d users in guild %s", count, guild_id)
    return count


def reset_weekly_xp(engine: Engine, guild_id: int) -> int:
    """Zero weekly XP for every member of *guild_id*.  Lifetime is untouched."""
    count = _reset_column(engine, "weekly_xp", guild_id)
    logger.info("Reset weekly XP for %d users in guild %s", count, guild_id)
    return count


def reset_daily_xp_all_guilds(engine: Engine) -> int:
    count = _reset_column(engine, "daily_xp", None)
    logger.info("Reset daily XP for %d users across all guilds", count)
    return count


def reset_weekly_xp_all_guilds(engine: Engine) -> int:
    count = _reset_column(engine, "weekly_xp", None)
    logger.info("Reset weekly XP for %d users across all guilds", count)
    return count


def reset_guild_xp(engine: Engine, guild_id: int) -> int:
    """Delete every XP row of *guild_id*."""
    with get_session(engine) as session:
        result = session.execute(delete(UserXp).where(UserXp.guild_id == guild_id))
        count = result.rowcount or 0
    logger.info("Deleted XP for %d users in guild %s", count, guild_id)
    return count


def delete_user_data(engine: Engine, guild_id: int, user_id: int) -> bool:
    """Delete one member's XP row.  Returns True if a row was removed."""
    with get_session(engine) as session:
        result = session.execute(
            delete(UserXp).where(UserXp.guild_id == guild_id, UserXp.user_id == user_id)
        )
        return bool(result.rowcount)
