"""
yapper.services.xp_sync_service — Buffer → Database Sync
=========================================================

The write-behind half of the XP pipeline.  Every cycle:

1. Re-applies snapshots left behind by an earlier failed cycle.
2. Finds every ``xp_buffer:{guild}`` hash.
3. RENAMEs each one to a unique ``xp_buffer_processing:…`` snapshot, so new
   XP keeps landing in a fresh hash while the snapshot is flushed.
4. Applies the snapshot to ``user_xp`` in one transaction
   (:func:`~yapper.services.xp_store.apply_xp_batch`).
5. Deletes the snapshot only after the commit.

A failed guild keeps its snapshot for the next cycle; it is never merged
back into the live buffer.  The flush log written alongside each batch
makes a re-applied snapshot a no-op, so a commit whose awaiter timed out
can't be counted twice.

The cycle is driven by ``PeriodicTasks.xp_sync_loop``; the service refuses
to start a second pass while one is running.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from yapper.database.engine import run_db
from yapper.engine.buffer import guild_id_from_key
from yapper.services import xp_store

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from yapper.engine.buffer import XpBuffer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncReport:
    """Outcome of one sync cycle."""
    buffers: int = 0       # snapshots applied to the database
    users: int = 0         # member rows touched
    total_delta: int = 0   # net XP moved into the database
    retried: int = 0       # leftover snapshots picked up from earlier cycles
    failed: int = 0        # snapshots kept for the next cycle
    skipped: bool = False  # True when another cycle was already running

    @property
    def did_work(self) -> bool:
        return bool(self.buffers or self.retried or self.failed)


class XpSyncService:
    """Drains every guild's XP buffer into the durable store.

    Parameters
    ----------
    engine:
        SQLAlchemy engine for ``user_xp``.
    buffer:
        The shared :class:`~yapper.engine.buffer.XpBuffer`.
    timeout_seconds:
        Upper bound for one guild's batch transaction.
    """

    def __init__(self, engine: Engine, buffer: XpBuffer, timeout_seconds: float = 10.0) -> None:
        self._engine = engine
        self._buffer = buffer
        self._timeout = timeout_seconds
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run_sync_cycle(self) -> SyncReport:
        """Flush all guild buffers once.  Never raises for I/O failures."""
        if self._running:
            logger.debug("XP sync already in progress — skipping this tick")
            return SyncReport(skipped=True)

        self._running = True
        report = SyncReport()
        try:
            try:
                leftovers = await self._buffer.scan_snapshot_keys()
                live_keys = await self._buffer.scan_buffer_keys()
            except RedisError:
                logger.exception("XP sync could not list buffers", extra={"task": "xp_sync"})
                return report

            for key in leftovers:
                report.retried += 1
                await self._flush_snapshot(key, report)

            for key in live_keys:
                try:
                    snapshot = await self._buffer.detach(key)
                except RedisError:
                    report.failed += 1
                    logger.exception(
                        "Could not detach XP buffer %s", key, extra={"task": "xp_sync"},
                    )
                    continue
                if snapshot is None:
                    # Drained by someone else between SCAN and RENAME.
                    continue
                await self._flush_snapshot(snapshot, report)

            return report
        finally:
            self._running = False

    async def _flush_snapshot(self, key: str, report: SyncReport) -> None:
        guild_id = guild_id_from_key(key)
        if guild_id is None:
            logger.warning("Skipping XP snapshot with unexpected key %r", key)
            return

        try:
            updates = await self._buffer.read_snapshot(key)
            if not updates:
                await self._buffer.discard(key)
                return

            applied = await asyncio.wait_for(
                run_db(
                    xp_store.apply_xp_batch,
                    self._engine, guild_id, key, updates, self._timeout,
                ),
                timeout=self._timeout,
            )
        except (RedisError, SQLAlchemyError, TimeoutError):
            report.failed += 1
            logger.exception(
                "XP sync failed for guild %s — snapshot %s kept for retry",
                guild_id, key,
                extra={"task": "xp_sync", "guild_id": guild_id},
            )
            return

        if applied:
            report.buffers += 1
            report.users += sum(1 for delta in updates.values() if delta != 0)
            report.total_delta += sum(updates.values())

        try:
            await self._buffer.discard(key)
        except RedisError:
            # Already committed; the flush log turns the retry into a no-op.
            logger.warning("Could not delete applied XP snapshot %s", key)
