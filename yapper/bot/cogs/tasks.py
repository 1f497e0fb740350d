"""
yapper.bot.cogs.tasks — Periodic Background Tasks
==================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **XP sync** — every ``xp.sync_interval_seconds`` (default 20 s), drains
  every guild's Redis XP buffer into PostgreSQL.  ``tasks.loop`` awaits
  each iteration before scheduling the next, so cycles never overlap.
- **Flush-log pruning** — daily, removes applied-snapshot records older
  than ``xp.flush_log_retention_days``.
- **Period resets** — at 00:00 UTC zeroes every guild's daily board, and
  the weekly board on ``xp.weekly_reset_weekday``.  Buffered XP is flushed
  first so it counts toward the period that is closing.

On unload (including bot shutdown) one last sync cycle runs so buffered
XP isn't left waiting in Redis.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, time
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from yapper.database.engine import run_db
from yapper.services import xp_store

if TYPE_CHECKING:
    from yapper.bot.core import YapperBot

logger = logging.getLogger(__name__)

RESET_TIME = time(hour=0, minute=0, tzinfo=UTC)


class PeriodicTasks(commands.Cog):
    """Cog for the XP sync loop and its housekeeping."""

    def __init__(self, bot: YapperBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Start task loops when the cog is loaded."""
        self.xp_sync_loop.change_interval(seconds=self.bot.cfg.xp.sync_interval_seconds)
        self.xp_sync_loop.start()
        self.flush_log_prune_loop.start()
        self.period_reset_loop.start()

    async def cog_unload(self) -> None:
        """Stop the loops, then flush whatever is still buffered."""
        self.xp_sync_loop.cancel()
        self.flush_log_prune_loop.cancel()
        self.period_reset_loop.cancel()
        try:
            report = await self.bot.sync_service.run_sync_cycle()
            logger.info(
                "Final XP flush: %d buffers, %d users, %+d XP",
                report.buffers, report.users, report.total_delta,
            )
        except Exception:
            logger.exception("Final XP flush failed", extra={"task": "xp_sync"})

    # -------------------------------------------------------------------
    # XP sync — Redis buffers → user_xp
    # -------------------------------------------------------------------
    @tasks.loop(seconds=20)
    async def xp_sync_loop(self):
        """Drain every guild's XP buffer into the database."""
        try:
            report = await self.bot.sync_service.run_sync_cycle()
        except Exception:
            logger.exception("XP sync task failed", extra={"task": "xp_sync"})
            return

        if report.failed:
            logger.info(
                "XP sync: %d buffers applied, %d kept for retry",
                report.buffers, report.failed,
            )
        elif report.did_work:
            logger.debug(
                "XP sync: %d buffers, %d users, %+d XP (%d retried)",
                report.buffers, report.users, report.total_delta, report.retried,
            )

    @xp_sync_loop.before_loop
    async def _wait_xp_sync(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Flush-log pruning — runs every 24 hours
    # -------------------------------------------------------------------
    @tasks.loop(hours=24)
    async def flush_log_prune_loop(self):
        """Delete applied-snapshot records past the retention window."""
        retention_days = self.bot.cfg.xp.flush_log_retention_days
        try:
            deleted = await run_db(xp_store.prune_flush_log, self.bot.engine, retention_days)
            logger.info("Flush-log prune complete: %d records deleted", deleted)
        except Exception:
            logger.exception("Flush-log prune failed", extra={"task": "flush_log_prune"})

    @flush_log_prune_loop.before_loop
    async def _wait_flush_log_prune(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Period resets — daily at 00:00 UTC, weekly on the configured day
    # -------------------------------------------------------------------
    @tasks.loop(time=RESET_TIME)
    async def period_reset_loop(self):
        """Zero the daily board (and the weekly one on its day) in every guild."""
        await self.run_period_resets(datetime.now(UTC))

    @period_reset_loop.before_loop
    async def _wait_period_reset(self):
        await self.bot.wait_until_ready()

    async def run_period_resets(self, now: datetime) -> None:
        """Flush buffered XP into the closing period, then reset it."""
        try:
            await self.bot.sync_service.run_sync_cycle()
            daily = await run_db(xp_store.reset_daily_xp_all_guilds, self.bot.engine)
            weekly = None
            if now.weekday() == self.bot.cfg.xp.weekly_reset_weekday:
                weekly = await run_db(xp_store.reset_weekly_xp_all_guilds, self.bot.engine)
            logger.info(
                "Period reset complete: daily=%d weekly=%s", daily,
                weekly if weekly is not None else "not due",
            )
        except Exception:
            logger.exception("Period reset failed", extra={"task": "period_reset"})


async def setup(bot: YapperBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
