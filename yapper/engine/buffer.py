"""
yapper.engine.buffer — Redis Write Buffer for XP Deltas
========================================================

Every XP event lands here first instead of in PostgreSQL.  Each guild owns
one Redis hash::

    xp_buffer:{guild_id}   field = user_id   value = unflushed signed delta

``HINCRBY`` makes increments cheap and atomic.  The sync loop drains a guild
by ``RENAME``-ing its hash to a unique snapshot key::

    xp_buffer_processing:{guild_id}:{uuid}

Redis executes RENAME atomically with respect to HINCRBY, so every
increment either made it into the snapshot or lands in a brand-new hash
under the original key.  No application-level locking is involved.

Snapshots are only deleted once their batch is committed to the database;
a snapshot that survives a failed cycle is picked up again by the next one.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from redis.exceptions import RedisError, ResponseError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

BUFFER_PREFIX = "xp_buffer"
SNAPSHOT_PREFIX = "xp_buffer_processing"

SCAN_COUNT = 100


def buffer_key(guild_id: int) -> str:
    return f"{BUFFER_PREFIX}:{guild_id}"


def snapshot_key(guild_id: int) -> str:
    """Build a fresh, never-reused snapshot key for *guild_id*."""
    return f"{SNAPSHOT_PREFIX}:{guild_id}:{uuid.uuid4().hex}"


def guild_id_from_key(key: str | bytes) -> int | None:
    """Extract the guild id from a buffer or snapshot key.

    Returns None for keys that don't follow the naming convention.
    """
    if isinstance(key, bytes):
        key = key.decode()
    parts = key.split(":")
    if len(parts) < 2 or parts[0] not in (BUFFER_PREFIX, SNAPSHOT_PREFIX):
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


def _decode_hash(raw: dict) -> dict[int, int]:
    """Turn a raw HGETALL reply into ``{user_id: delta}``."""
    deltas: dict[int, int] = {}
    for field_, value in raw.items():
        try:
            deltas[int(field_)] = int(value)
        except (TypeError, ValueError):
            logger.warning("Skipping malformed XP buffer entry %r=%r", field_, value)
    return deltas


class XpBuffer:
    """Per-guild XP delta buffer backed by Redis hashes.

    Usage::

        buffer = XpBuffer(redis_client)
        await buffer.increment(guild_id, user_id, 42)   # never raises
        pending = await buffer.get_all(guild_id)        # {user_id: delta}
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    # -------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------
    async def increment(self, guild_id: int, user_id: int, delta: int) -> bool:
        """Add *delta* to the member's buffered XP.

        Fire-and-forget: a Redis failure is logged and the increment is
        dropped.  Returns True when the increment was recorded.
        """
        if delta == 0:
            return False
        try:
            await self._redis.hincrby(buffer_key(guild_id), str(user_id), int(delta))
        except RedisError as exc:
            logger.warning(
                "Dropped XP increment guild=%s user=%s delta=%d: %s",
                guild_id, user_id, delta, exc,
            )
            return False
        return True

    # -------------------------------------------------------------------
    # Live reads
    # -------------------------------------------------------------------
    async def get_all(self, guild_id: int) -> dict[int, int]:
        """Every unflushed delta for *guild_id* in one HGETALL."""
        raw = await self._redis.hgetall(buffer_key(guild_id))
        return _decode_hash(raw)

    async def get_delta(self, guild_id: int, user_id: int) -> int:
        """Unflushed delta of one member (0 when absent)."""
        value = await self._redis.hget(buffer_key(guild_id), str(user_id))
        return int(value) if value is not None else 0

    # -------------------------------------------------------------------
    # Drain primitives (used by the sync service)
    # -------------------------------------------------------------------
    async def scan_buffer_keys(self) -> list[str]:
        """All live guild buffers (``xp_buffer:*``)."""
        return await self._scan(f"{BUFFER_PREFIX}:*")

    async def scan_snapshot_keys(self) -> list[str]:
        """Snapshots left behind by earlier, failed sync cycles."""
        return await self._scan(f"{SNAPSHOT_PREFIX}:*")

    async def _scan(self, pattern: str) -> list[str]:
        keys: list[str] = []
        async for key in self._redis.scan_iter(match=pattern, count=SCAN_COUNT):
            keys.append(key.decode() if isinstance(key, bytes) else key)
        return keys

    async def detach(self, key: str) -> str | None:
        """Atomically move the buffer at *key* to a fresh snapshot key.

        Returns the snapshot key, or None when *key* no longer exists
        (already drained by another pass, or never written).
        """
        guild_id = guild_id_from_key(key)
        if guild_id is None:
            logger.warning("Ignoring XP buffer key with unexpected format: %r", key)
            return None

        target = snapshot_key(guild_id)
        try:
            await self._redis.rename(key, target)
        except ResponseError as exc:
            if "no such key" in str(exc).lower():
                return None
            raise
        return target

    async def read_snapshot(self, key: str) -> dict[int, int]:
        raw = await self._redis.hgetall(key)
        return _decode_hash(raw)

    async def discard(self, key: str) -> None:
        await self._redis.delete(key)

    # -------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------
    async def forget_member(self, guild_id: int, user_id: int) -> None:
        """Drop a member's unflushed delta so the next sync can't recreate them."""
        await self._redis.hdel(buffer_key(guild_id), str(user_id))

    async def drop_guild(self, guild_id: int) -> None:
        """Drop every unflushed delta of *guild_id*."""
        await self._redis.delete(buffer_key(guild_id))
