"""
yapper.bot.cogs.xp — Message XP Capture
========================================

Listens for on_message events and buffers the XP each message earns.

Pipeline:
1. on_message fires → gate checks (bot, DM, empty score)
2. Score the message (:func:`~yapper.engine.message_xp.calculate_message_xp`)
3. ``HINCRBY`` the guild's Redis buffer — no database round trip
4. The periodic sync loop writes the buffer through to PostgreSQL
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from yapper.engine.message_xp import calculate_message_xp

if TYPE_CHECKING:
    from yapper.bot.core import YapperBot

logger = logging.getLogger(__name__)


class XpCapture(commands.Cog, name="XP"):
    """Awards XP for guild messages through the write buffer."""

    def __init__(self, bot: YapperBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        """Hot path — fires on every message the bot can see."""
        try:
            await self._handle_message(message)
        except Exception:
            logger.exception(
                "Error processing message %s from user %s",
                message.id,
                message.author.id,
                extra={"event_type": "message", "user_id": message.author.id,
                       "message_id": message.id},
            )

    async def _handle_message(self, message: discord.Message) -> None:
        """Inner message handler (separated for error isolation)."""
        if message.author.bot:
            return

        if message.guild is None:
            logger.debug("Ignoring DM from %s", message.author.name)
            return

        xp = calculate_message_xp(message.content, cap=self.bot.cfg.xp.message_xp_cap)
        if xp <= 0:
            return

        await self.bot.leaderboard.increment_score(message.guild.id, message.author.id, xp)
        logger.debug(
            "Buffered +%d XP for %s in guild %s",
            xp, message.author.name, message.guild.id,
        )


async def setup(bot: YapperBot) -> None:
    await bot.add_cog(XpCapture(bot))
