"""
yapper.bot.core — Bot Instance & Cog Loader
============================================

Defines :class:`YapperBot`, the ``commands.Bot`` subclass that:

1. Carries the shared config, DB engine and Redis client so every Cog can
   reach them via ``self.bot.*``.
2. Builds the XP pipeline once: the Redis :class:`XpBuffer`, the
   :class:`LeaderboardService` cogs read and write through, and the
   :class:`XpSyncService` driven by the periodic task cog.
3. Loads every Cog listed in :data:`EXTENSIONS`.
4. Syncs the slash-command tree on startup (guild-scoped for dev, global
   for production — controlled by the ``DEV_GUILD_ID`` env var).
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

import discord
from discord.ext import commands
from sqlalchemy import Engine

from yapper.config import YapperConfig
from yapper.engine.buffer import XpBuffer
from yapper.services.leaderboard_service import LeaderboardService
from yapper.services.xp_sync_service import XpSyncService

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "yapper.bot.cogs.xp",
    "yapper.bot.cogs.leaderboard",
    "yapper.bot.cogs.admin",
    "yapper.bot.cogs.membership",
    "yapper.bot.cogs.tasks",
]


class YapperBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`YapperConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    redis:
        An async Redis client holding the XP buffers.
    """

    def __init__(self, cfg: YapperConfig, engine: Engine, redis: Redis) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # Privileged: message XP scoring
        intents.members = True            # Privileged: /rank lookups, leave cleanup
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=cfg.community_name,
        )

        self.cfg = cfg
        self.engine = engine
        self.redis = redis

        self.buffer = XpBuffer(redis)
        self.leaderboard = LeaderboardService(
            engine, self.buffer, overfetch_margin=cfg.xp.overfetch_margin,
        )
        self.sync_service = XpSyncService(
            engine, self.buffer, timeout_seconds=cfg.xp.sync_timeout_seconds,
        )

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions before connecting to Discord.

        A broken Cog is logged and skipped so it can't take the bot down.
        """
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

    async def close(self) -> None:
        """Graceful shutdown — unload cogs (final XP flush) then drop Redis."""
        logger.info("Bot shutting down…")
        await super().close()
        await self.redis.aclose()
