"""
yapper.bot.cogs.admin — Admin Slash Commands
=============================================

Discord slash commands for server admins:
- /set-xp — add to, subtract from, or override a member's XP
- /reset-xp — zero the daily or weekly board for this server
- /set-clan — assign or clear a member's clan

All commands require the configured admin_role_id and reply ephemerally.
Admin writes go straight to the database; buffered XP still waiting in
Redis is applied on top at the next sync.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from yapper.database.engine import run_db
from yapper.services.xp_store import (
    reset_daily_xp,
    reset_weekly_xp,
    set_user_clan,
    set_user_xp,
    update_user_xp,
)

if TYPE_CHECKING:
    from yapper.bot.core import YapperBot

logger = logging.getLogger(__name__)


def is_admin():
    """Decorator that checks if the user has the configured admin role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: YapperBot = interaction.client  # type: ignore[assignment]
        if not interaction.user or not hasattr(interaction.user, "roles"):
            return False
        admin_role_id = bot.cfg.admin_role_id
        return any(role.id == admin_role_id for role in interaction.user.roles)
    return app_commands.check(predicate)


class Admin(commands.Cog, name="Admin"):
    """Server administration commands for Yapper."""

    def __init__(self, bot: YapperBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /set-xp
    # -------------------------------------------------------------------
    @app_commands.command(name="set-xp", description="Adjust or override a member's XP.")
    @app_commands.describe(
        member="The member to adjust",
        amount="XP to add (negative subtracts), or the new total with override",
        override="Replace lifetime XP with amount instead of adding it",
    )
    @app_commands.guild_only()
    @is_admin()
    async def set_xp(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: int,
        override: bool = False,
    ) -> None:
        """Manually change a member's XP."""
        guild_id = interaction.guild_id or 0

        if override:
            stats = await run_db(set_user_xp, self.bot.engine, guild_id, member.id, amount)
        else:
            if amount == 0:
                await interaction.response.send_message(
                    "❌ Please specify a non-zero amount.", ephemeral=True,
                )
                return
            stats = await run_db(update_user_xp, self.bot.engine, guild_id, member.id, amount)

        logger.info(
            "Admin %s set XP for %s in guild %s: amount=%d override=%s",
            interaction.user.id, member.id, guild_id, amount, override,
        )

        if stats is None:
            summary = f"**{member.display_name}** now has no XP."
        else:
            summary = (
                f"**{member.display_name}** now has {stats.xp:,} XP "
                f"(today {stats.daily_xp:,}, this week {stats.weekly_xp:,})."
            )
        await interaction.response.send_message(f"✅ {summary}", ephemeral=True)

    # -------------------------------------------------------------------
    # /reset-xp
    # -------------------------------------------------------------------
    @app_commands.command(name="reset-xp", description="Reset the daily or weekly board.")
    @app_commands.describe(board="Which board to reset")
    @app_commands.choices(board=[
        app_commands.Choice(name="Daily", value="daily"),
        app_commands.Choice(name="Weekly", value="weekly"),
    ])
    @app_commands.guild_only()
    @is_admin()
    async def reset_xp(self, interaction: discord.Interaction, board: str) -> None:
        """Zero one period counter for every member of this server."""
        guild_id = interaction.guild_id or 0
        reset = reset_daily_xp if board == "daily" else reset_weekly_xp
        count = await run_db(reset, self.bot.engine, guild_id)
        await interaction.response.send_message(
            f"✅ Reset {board} XP for {count} members.", ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /set-clan
    # -------------------------------------------------------------------
    @app_commands.command(name="set-clan", description="Assign or clear a member's clan.")
    @app_commands.describe(
        member="The member to update",
        clan_id="Clan number (leave empty to clear)",
    )
    @app_commands.guild_only()
    @is_admin()
    async def set_clan(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        clan_id: app_commands.Range[int, 0, 32767] | None = None,
    ) -> None:
        guild_id = interaction.guild_id or 0
        await run_db(set_user_clan, self.bot.engine, guild_id, member.id, clan_id)
        if clan_id is None:
            text = f"✅ Cleared clan for **{member.display_name}**."
        else:
            text = f"✅ **{member.display_name}** joined clan {clan_id}."
        await interaction.response.send_message(text, ephemeral=True)

    # -------------------------------------------------------------------
    # Error handler for permission failures
    # -------------------------------------------------------------------
    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            await interaction.response.send_message(
                "🔒 You need the Admin role to use this command.",
                ephemeral=True,
            )
        else:
            raise error


async def setup(bot: YapperBot) -> None:
    await bot.add_cog(Admin(bot))
