"""
yapper.bot.cogs.membership — Departure Cleanup
===============================================

Removes XP when it no longer has an owner:

- GUILD_MEMBER_REMOVE → the member's buffered delta and their ``user_xp``
  row are deleted.  Requires the GUILD_MEMBERS privileged intent.
- GUILD_REMOVE (bot kicked or guild deleted) → the guild's buffer and every
  ``user_xp`` row of the guild are deleted.

The buffer is cleared first so the next sync cycle can't write the row back.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from yapper.database.engine import run_db
from yapper.services.xp_store import delete_user_data, reset_guild_xp

if TYPE_CHECKING:
    from yapper.bot.core import YapperBot

logger = logging.getLogger(__name__)


class Membership(commands.Cog, name="Membership"):
    """Deletes the XP of members and guilds the bot no longer sees."""

    def __init__(self, bot: YapperBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member) -> None:
        """GUILD_MEMBER_REMOVE → wipe the member's XP in that guild."""
        try:
            if member.bot:
                return

            await self.bot.buffer.forget_member(member.guild.id, member.id)
            removed = await run_db(
                delete_user_data, self.bot.engine, member.guild.id, member.id,
            )
            if removed:
                logger.info(
                    "Cleaned up XP for departed member %s (ID: %d)",
                    member.display_name, member.id,
                )

        except Exception:
            logger.exception(
                "Error cleaning up XP for departed member %s", member.id,
                extra={"event_type": "member_leave", "user_id": member.id},
            )

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        """GUILD_REMOVE → wipe every XP row of the guild."""
        try:
            await self.bot.buffer.drop_guild(guild.id)
            count = await run_db(reset_guild_xp, self.bot.engine, guild.id)
            logger.info("Left guild %s; deleted XP for %d members", guild.id, count)

        except Exception:
            logger.exception(
                "Error cleaning up XP for guild %s", guild.id,
                extra={"event_type": "guild_remove", "guild_id": guild.id},
            )


async def setup(bot: YapperBot) -> None:
    await bot.add_cog(Membership(bot))
