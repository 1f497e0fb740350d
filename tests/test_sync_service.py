"""
tests/test_sync_service.py — Buffer → Database Sync Tests
==========================================================
End-to-end cycles against fake Redis + in-memory SQLite: nothing buffered is
lost, a failed guild keeps its snapshot for the next cycle, an applied
snapshot is never applied twice, and overlapping cycles are refused.
"""

from __future__ import annotations

import asyncio
import time

import pytest
from conftest import make_redis, run_async
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from yapper.engine.buffer import XpBuffer, buffer_key
from yapper.services import xp_store
from yapper.services.xp_sync_service import SyncReport, XpSyncService

GUILD = 100


@pytest.fixture
def engine(db_engine):
    return db_engine


def _stats(engine, user_id: int, guild_id: int = GUILD):
    return xp_store.get_user_stats(engine, guild_id, user_id)


class TestRunSyncCycle:
    def test_flushes_every_guild(self, engine):
        async def _inner():
            redis = make_redis()
            buffer = XpBuffer(redis)
            service = XpSyncService(engine, buffer)
            await buffer.increment(GUILD, 1, 10)
            await buffer.increment(GUILD, 1, 5)
            await buffer.increment(GUILD, 2, 7)
            await buffer.increment(200, 1, 3)

            report = await service.run_sync_cycle()
            return report, await redis.keys("*")

        report, keys = run_async(_inner())
        assert report.buffers == 2
        assert report.users == 3
        assert report.total_delta == 25
        assert report.failed == 0
        assert keys == []
        assert _stats(engine, 1).xp == 15
        assert _stats(engine, 2).daily_xp == 7
        assert _stats(engine, 1, guild_id=200).weekly_xp == 3

    def test_empty_cycle_is_a_noop(self, engine):
        async def _inner():
            service = XpSyncService(engine, XpBuffer(make_redis()))
            return await service.run_sync_cycle(), await service.run_sync_cycle()

        first, second = run_async(_inner())
        assert first == SyncReport()
        assert second == SyncReport()
        assert not first.did_work

    def test_back_to_back_cycles_apply_once(self, engine):
        async def _inner():
            buffer = XpBuffer(make_redis())
            service = XpSyncService(engine, buffer)
            await buffer.increment(GUILD, 1, 10)
            await service.run_sync_cycle()
            return await service.run_sync_cycle()

        second = run_async(_inner())
        assert not second.did_work
        assert _stats(engine, 1).xp == 10

    def test_increments_after_sync_go_to_next_cycle(self, engine):
        async def _inner():
            buffer = XpBuffer(make_redis())
            service = XpSyncService(engine, buffer)
            await buffer.increment(GUILD, 1, 10)
            await service.run_sync_cycle()
            await buffer.increment(GUILD, 1, 4)
            pending = await buffer.get_all(GUILD)
            await service.run_sync_cycle()
            return pending

        assert run_async(_inner()) == {1: 4}
        assert _stats(engine, 1).xp == 14

    def test_netted_out_members_are_not_counted(self, engine):
        async def _inner():
            buffer = XpBuffer(make_redis())
            await buffer.increment(GUILD, 1, 5)
            await buffer.increment(GUILD, 1, -5)
            await buffer.increment(GUILD, 2, 3)
            return await XpSyncService(engine, buffer).run_sync_cycle()

        report = run_async(_inner())
        assert report.users == 1
        assert report.total_delta == 3
        assert _stats(engine, 1) == xp_store.XpStats()

    def test_negative_deltas_floor_and_delete(self, engine):
        xp_store.add_user_xp(engine, GUILD, 1, 5)

        async def _inner():
            buffer = XpBuffer(make_redis())
            await buffer.increment(GUILD, 1, -50)
            await XpSyncService(engine, buffer).run_sync_cycle()

        run_async(_inner())
        assert xp_store.get_user_stats(engine, GUILD, 1) == xp_store.XpStats()


class TestFailureRecovery:
    def test_failed_guild_keeps_snapshot_until_retry(self, engine, monkeypatch):
        real_apply = xp_store.apply_xp_batch
        calls = {"n": 0}

        def flaky_apply(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("UPDATE user_xp", {}, Exception("db down"))
            return real_apply(*args, **kwargs)

        monkeypatch.setattr(xp_store, "apply_xp_batch", flaky_apply)

        async def _inner():
            redis = make_redis()
            buffer = XpBuffer(redis)
            service = XpSyncService(engine, buffer)
            await buffer.increment(GUILD, 1, 10)

            failed = await service.run_sync_cycle()
            leftovers = await buffer.scan_snapshot_keys()
            # New XP keeps landing in a fresh buffer meanwhile.
            await buffer.increment(GUILD, 1, 3)

            retried = await service.run_sync_cycle()
            return failed, leftovers, retried, await redis.keys("*")

        failed, leftovers, retried, keys = run_async(_inner())
        assert failed.failed == 1
        assert failed.buffers == 0
        assert len(leftovers) == 1
        assert retried.retried == 1
        assert retried.buffers == 2
        assert keys == []
        assert _stats(engine, 1).xp == 13

    def test_timeout_keeps_snapshot(self, engine, monkeypatch):
        def slow_apply(*args, **kwargs):
            time.sleep(0.3)
            return True

        monkeypatch.setattr(xp_store, "apply_xp_batch", slow_apply)

        async def _inner():
            buffer = XpBuffer(make_redis())
            service = XpSyncService(engine, buffer, timeout_seconds=0.05)
            await buffer.increment(GUILD, 1, 10)
            report = await service.run_sync_cycle()
            return report, await buffer.scan_snapshot_keys()

        report, leftovers = run_async(_inner())
        assert report.failed == 1
        assert len(leftovers) == 1

    def test_already_applied_snapshot_is_not_reapplied(self, engine):
        async def _inner():
            redis = make_redis()
            buffer = XpBuffer(redis)
            await buffer.increment(GUILD, 1, 10)
            snap = await buffer.detach(buffer_key(GUILD))
            # Committed by an earlier attempt whose snapshot delete never happened.
            xp_store.apply_xp_batch(engine, GUILD, snap, {1: 10})

            report = await XpSyncService(engine, buffer).run_sync_cycle()
            return report, await redis.exists(snap)

        report, exists = run_async(_inner())
        assert report.retried == 1
        assert report.buffers == 0
        assert exists == 0
        assert _stats(engine, 1).xp == 10

    def test_redis_scan_failure_returns_empty_report(self, engine):
        class BrokenBuffer(XpBuffer):
            async def scan_snapshot_keys(self):
                raise RedisConnectionError("down")

        async def _inner():
            service = XpSyncService(engine, BrokenBuffer(make_redis()))
            report = await service.run_sync_cycle()
            return report, service.running

        report, running = run_async(_inner())
        assert report == SyncReport()
        assert running is False


class TestNonOverlap:
    def test_second_cycle_is_skipped_while_first_runs(self, engine, monkeypatch):
        def slow_apply(*args, **kwargs):
            time.sleep(0.1)
            return True

        monkeypatch.setattr(xp_store, "apply_xp_batch", slow_apply)

        async def _inner():
            buffer = XpBuffer(make_redis())
            service = XpSyncService(engine, buffer)
            await buffer.increment(GUILD, 1, 10)
            return await asyncio.gather(service.run_sync_cycle(), service.run_sync_cycle())

        first, second = run_async(_inner())
        assert first.buffers == 1
        assert second.skipped is True
