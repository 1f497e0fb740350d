"""
tests/test_cogs.py — Cog Wiring Tests
======================================

Exercises the listeners and the periodic tasks with a mock bot, without
connecting to Discord.
"""

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from conftest import make_redis, run_async

from yapper.bot.cogs.membership import Membership
from yapper.bot.cogs.tasks import PeriodicTasks
from yapper.bot.cogs.xp import XpCapture
from yapper.config import XpConfig
from yapper.database.models import LeaderboardType
from yapper.engine.buffer import XpBuffer
from yapper.services import xp_store
from yapper.services.xp_sync_service import SyncReport, XpSyncService


def _make_bot(**xp_overrides) -> MagicMock:
    bot = MagicMock()
    bot.cfg = SimpleNamespace(xp=XpConfig(**xp_overrides), community_name="Test")
    bot.leaderboard = MagicMock()
    bot.leaderboard.increment_score = AsyncMock()
    bot.sync_service = MagicMock()
    bot.sync_service.run_sync_cycle = AsyncMock(return_value=SyncReport())
    return bot


def _make_message(content: str, *, bot_author: bool = False, guild_id: int | None = 10):
    message = MagicMock()
    message.content = content
    message.author.bot = bot_author
    message.author.id = 1234
    message.guild = SimpleNamespace(id=guild_id) if guild_id is not None else None
    return message


class TestXpCapture:
    def test_buffers_message_xp(self):
        bot = _make_bot()
        run_async(XpCapture(bot).on_message(_make_message("hello")))
        bot.leaderboard.increment_score.assert_awaited_once_with(10, 1234, 5)

    def test_applies_cap(self):
        bot = _make_bot(message_xp_cap=3)
        run_async(XpCapture(bot).on_message(_make_message("hello")))
        bot.leaderboard.increment_score.assert_awaited_once_with(10, 1234, 3)

    def test_ignores_bots(self):
        bot = _make_bot()
        run_async(XpCapture(bot).on_message(_make_message("hello", bot_author=True)))
        bot.leaderboard.increment_score.assert_not_awaited()

    def test_ignores_dms(self):
        bot = _make_bot()
        run_async(XpCapture(bot).on_message(_make_message("hello", guild_id=None)))
        bot.leaderboard.increment_score.assert_not_awaited()

    def test_ignores_zero_xp_messages(self):
        bot = _make_bot()
        run_async(XpCapture(bot).on_message(_make_message("1234 !!")))
        bot.leaderboard.increment_score.assert_not_awaited()

    def test_errors_do_not_escape_listener(self):
        bot = _make_bot()
        bot.leaderboard.increment_score.side_effect = RuntimeError("boom")
        run_async(XpCapture(bot).on_message(_make_message("hello")))


class TestPeriodicTasks:
    def test_sync_loop_runs_one_cycle(self):
        bot = _make_bot()
        cog = PeriodicTasks(bot)
        run_async(cog.xp_sync_loop.coro(cog))
        bot.sync_service.run_sync_cycle.assert_awaited_once()

    def test_sync_loop_survives_errors(self):
        bot = _make_bot()
        bot.sync_service.run_sync_cycle.side_effect = RuntimeError("boom")
        cog = PeriodicTasks(bot)
        run_async(cog.xp_sync_loop.coro(cog))

    def test_unload_runs_final_flush(self):
        bot = _make_bot()
        cog = PeriodicTasks(bot)
        run_async(cog.cog_unload())
        bot.sync_service.run_sync_cycle.assert_awaited_once()


# ---------------------------------------------------------------------------
# Membership cleanup and period resets run against fake Redis + SQLite
# ---------------------------------------------------------------------------
def _make_wired_bot(engine, redis, **xp_overrides) -> MagicMock:
    bot = _make_bot(**xp_overrides)
    bot.engine = engine
    bot.buffer = XpBuffer(redis)
    bot.sync_service = XpSyncService(engine, bot.buffer)
    return bot


def _make_member(guild_id: int, user_id: int, *, is_bot: bool = False) -> MagicMock:
    member = MagicMock()
    member.bot = is_bot
    member.id = user_id
    member.guild = SimpleNamespace(id=guild_id)
    return member


class TestMembership:
    def test_member_leave_wipes_row_and_buffer(self, db_engine):
        xp_store.add_user_xp(db_engine, 10, 1234, 50)
        xp_store.add_user_xp(db_engine, 10, 999, 50)

        async def _inner():
            redis = make_redis()
            bot = _make_wired_bot(db_engine, redis)
            await bot.buffer.increment(10, 1234, 7)
            await bot.buffer.increment(10, 999, 3)

            await Membership(bot).on_member_remove(_make_member(10, 1234))
            pending = await bot.buffer.get_all(10)
            await bot.sync_service.run_sync_cycle()
            return pending

        pending = run_async(_inner())
        assert pending == {999: 3}
        assert xp_store.get_user_stats(db_engine, 10, 1234) == xp_store.XpStats()
        assert xp_store.get_user_stats(db_engine, 10, 999).xp == 53

    def test_bot_leave_is_ignored(self, db_engine):
        xp_store.add_user_xp(db_engine, 10, 1234, 50)

        async def _inner():
            bot = _make_wired_bot(db_engine, make_redis())
            await Membership(bot).on_member_remove(_make_member(10, 1234, is_bot=True))

        run_async(_inner())
        assert xp_store.get_user_stats(db_engine, 10, 1234).xp == 50

    def test_guild_remove_wipes_guild(self, db_engine):
        xp_store.add_user_xp(db_engine, 10, 1, 50)
        xp_store.add_user_xp(db_engine, 20, 1, 50)

        async def _inner():
            bot = _make_wired_bot(db_engine, make_redis())
            await bot.buffer.increment(10, 2, 5)
            await Membership(bot).on_guild_remove(SimpleNamespace(id=10))
            await bot.sync_service.run_sync_cycle()

        run_async(_inner())
        assert xp_store.get_user_count(db_engine, 10, LeaderboardType.LIFETIME) == 0
        assert xp_store.get_user_stats(db_engine, 20, 1).xp == 50


class TestPeriodResets:
    def test_daily_reset_flushes_buffer_first(self, db_engine):
        xp_store.add_user_xp(db_engine, 10, 1, 50)

        async def _inner():
            bot = _make_wired_bot(db_engine, make_redis(), weekly_reset_weekday=0)
            await bot.buffer.increment(10, 1, 5)
            # 2026-10-20 is a Tuesday.
            await PeriodicTasks(bot).run_period_resets(datetime(2026, 10, 20, tzinfo=UTC))

        run_async(_inner())
        stats = xp_store.get_user_stats(db_engine, 10, 1)
        assert (stats.xp, stats.daily_xp, stats.weekly_xp) == (55, 0, 55)

    def test_weekly_reset_on_configured_day(self, db_engine):
        xp_store.add_user_xp(db_engine, 10, 1, 50)
        xp_store.add_user_xp(db_engine, 20, 1, 30)

        async def _inner():
            bot = _make_wired_bot(db_engine, make_redis(), weekly_reset_weekday=0)
            # 2026-10-19 is a Monday.
            await PeriodicTasks(bot).run_period_resets(datetime(2026, 10, 19, tzinfo=UTC))

        run_async(_inner())
        for guild_id, lifetime in ((10, 50), (20, 30)):
            stats = xp_store.get_user_stats(db_engine, guild_id, 1)
            assert (stats.xp, stats.daily_xp, stats.weekly_xp) == (lifetime, 0, 0)
