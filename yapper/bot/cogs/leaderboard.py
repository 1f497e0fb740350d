"""
yapper.bot.cogs.leaderboard — Live Leaderboard Commands
========================================================

Hybrid commands (slash + prefix) for reading XP:

- ``/live [board] [page]`` — a leaderboard page that already includes XP
  still waiting in the Redis buffer.
- ``/rank [member]`` — a member's live counters and their durable rank on
  every board.
- ``/clans [board]`` — XP totals per clan.

Scores shown are live; ranks from ``/rank`` come from the database and may
lag the scores by up to one sync interval.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from yapper.constants import BOARD_TITLES, rank_label
from yapper.database.models import LeaderboardType

if TYPE_CHECKING:
    from yapper.bot.core import YapperBot

logger = logging.getLogger(__name__)

_BOARD_CHOICES = [
    app_commands.Choice(name="Daily", value=LeaderboardType.DAILY.value),
    app_commands.Choice(name="Weekly", value=LeaderboardType.WEEKLY.value),
    app_commands.Choice(name="Lifetime", value=LeaderboardType.LIFETIME.value),
]

_UNAVAILABLE = "❌ The leaderboard is unavailable right now. Try again in a moment."


class Leaderboard(commands.Cog, name="Leaderboard"):
    """Live leaderboard and rank lookups."""

    def __init__(self, bot: YapperBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /live
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="live",
        description="Show the live XP leaderboard.",
    )
    @app_commands.describe(board="Which leaderboard to show", page="Page number (starts at 1)")
    @app_commands.choices(board=_BOARD_CHOICES)
    @commands.guild_only()
    async def live(self, ctx: commands.Context, board: str = "daily", page: int = 1) -> None:
        assert ctx.guild is not None
        try:
            lb_type = LeaderboardType.parse(board)
        except ValueError:
            await ctx.send(f"❌ Unknown leaderboard `{board}`.", ephemeral=True)
            return

        page = max(page, 1)
        page_size = self.bot.cfg.xp.page_size
        skip = (page - 1) * page_size

        try:
            rows = await self.bot.leaderboard.get_live_top(
                ctx.guild.id, lb_type, limit=page_size, skip=skip,
            )
            total = await self.bot.leaderboard.count_ranked(ctx.guild.id, lb_type)
        except (RedisError, SQLAlchemyError):
            logger.exception("Live leaderboard failed for guild %s", ctx.guild.id)
            await ctx.send(_UNAVAILABLE, ephemeral=True)
            return

        if not rows:
            await ctx.send(
                "No data yet! Start chatting to appear on the leaderboard.",
                ephemeral=True,
            )
            return

        lines = []
        for row in rows:
            member = ctx.guild.get_member(row.user_id)
            name = member.display_name if member else f"<@{row.user_id}>"
            lines.append(f"{rank_label(row.rank)} **{name}** — {row.score(lb_type):,} XP")

        pages = max(1, math.ceil(total / page_size))
        embed = discord.Embed(
            title=f"\U0001f3c6 {BOARD_TITLES[lb_type]}",
            description="\n".join(lines),
            color=discord.Color.gold(),
        )
        embed.set_footer(text=f"Page {page}/{pages} | {self.bot.cfg.community_name}")
        await ctx.send(embed=embed)

    # -------------------------------------------------------------------
    # /rank
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="rank",
        description="View your (or another member's) XP and rank.",
    )
    @app_commands.describe(member="The member to look up (defaults to you)")
    @commands.guild_only()
    async def rank(self, ctx: commands.Context, member: discord.Member | None = None) -> None:
        assert ctx.guild is not None
        target = member or ctx.author

        try:
            stats = await self.bot.leaderboard.get_live_stats(ctx.guild.id, target.id)
            ranks = {
                board: await self.bot.leaderboard.get_rank(ctx.guild.id, target.id, board)
                for board in LeaderboardType
            }
        except (RedisError, SQLAlchemyError):
            logger.exception("Rank lookup failed for user %s", target.id)
            await ctx.send(_UNAVAILABLE, ephemeral=True)
            return

        if stats.xp == 0 and all(r is None for r in ranks.values()):
            await ctx.send(
                f"\U0001f50d **{target.display_name}** hasn't earned any XP yet.",
                ephemeral=True,
            )
            return

        embed = discord.Embed(
            title=f"\U0001f4ac {target.display_name}",
            color=discord.Color.blurple(),
        )
        embed.set_thumbnail(url=target.display_avatar.url)
        for board, label in (
            (LeaderboardType.DAILY, "Today"),
            (LeaderboardType.WEEKLY, "This week"),
            (LeaderboardType.LIFETIME, "All time"),
        ):
            board_rank = ranks[board]
            rank_text = f"#{board_rank}" if board_rank is not None else "unranked"
            embed.add_field(
                name=label, value=f"{stats.score(board):,} XP ({rank_text})", inline=True,
            )
        if stats.clan_id is not None:
            embed.add_field(name="Clan", value=str(stats.clan_id), inline=True)
        embed.set_footer(text=self.bot.cfg.community_name)
        await ctx.send(embed=embed)

    # -------------------------------------------------------------------
    # /clans
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="clans",
        description="Show XP totals per clan.",
    )
    @app_commands.describe(board="Which leaderboard to total")
    @app_commands.choices(board=_BOARD_CHOICES)
    @commands.guild_only()
    async def clans(self, ctx: commands.Context, board: str = "lifetime") -> None:
        assert ctx.guild is not None
        try:
            lb_type = LeaderboardType.parse(board)
        except ValueError:
            await ctx.send(f"❌ Unknown leaderboard `{board}`.", ephemeral=True)
            return

        try:
            totals = await self.bot.leaderboard.get_clan_totals(ctx.guild.id, lb_type)
        except SQLAlchemyError:
            logger.exception("Clan totals failed for guild %s", ctx.guild.id)
            await ctx.send(_UNAVAILABLE, ephemeral=True)
            return

        if not totals:
            await ctx.send("No clan has earned XP yet.", ephemeral=True)
            return

        ordered = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
        lines = [
            f"{rank_label(i)} **Clan {clan_id}** — {total:,} XP"
            for i, (clan_id, total) in enumerate(ordered, 1)
        ]
        embed = discord.Embed(
            title=f"⚔️ Clans — {BOARD_TITLES[lb_type]}",
            description="\n".join(lines),
            color=discord.Color.dark_gold(),
        )
        embed.set_footer(text=self.bot.cfg.community_name)
        await ctx.send(embed=embed)


async def setup(bot: YapperBot) -> None:
    await bot.add_cog(Leaderboard(bot))
