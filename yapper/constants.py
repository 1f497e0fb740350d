"""
yapper.constants — Shared Constants & Helpers
==============================================

Presentation constants and text helpers shared by cogs and the XP engine.
"""

from __future__ import annotations

import re

from yapper.database.models import LeaderboardType

# ---------------------------------------------------------------------------
# Leaderboard presentation
# ---------------------------------------------------------------------------
RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

BOARD_TITLES: dict[LeaderboardType, str] = {
    LeaderboardType.DAILY: "Yappers of the day",
    LeaderboardType.WEEKLY: "Yappers of the week",
    LeaderboardType.LIFETIME: "All-time yappers",
}


def rank_label(rank: int) -> str:
    """Medal for the podium, ``#n`` for everyone else."""
    if 1 <= rank <= len(RANK_BADGES):
        return RANK_BADGES[rank - 1]
    return f"#{rank}"


# ---------------------------------------------------------------------------
# Text processing helpers
# ---------------------------------------------------------------------------
URL_REGEX = re.compile(r"https?://\S+")

_CUSTOM_EMOJI_REGEX = re.compile(r"<a?:\w+:\d+>")

# Pictographic blocks only; skin-tone modifiers, ZWJ and variation selectors
# are not counted on their own.
_UNICODE_EMOJI_REGEX = re.compile(
    "(?:"
    "[\U0001f1e6-\U0001f1ff]{2}"          # flags (regional indicator pairs)
    "|[\U0001f300-\U0001f5ff]"            # symbols & pictographs
    "|[\U0001f600-\U0001f64f]"            # emoticons
    "|[\U0001f680-\U0001f6ff]"            # transport & map
    "|[\U0001f900-\U0001f9ff]"            # supplemental symbols
    "|[\U0001fa70-\U0001faff]"            # symbols & pictographs ext-A
    "|[\u2600-\u27bf]"            # misc symbols, dingbats
    ")"
    "(?:[\U0001f3fb-\U0001f3ff]|\ufe0f)?"
    "(?:\u200d(?:[\U0001f300-\U0001faff]|[\u2600-\u27bf])\ufe0f?)*"
)


def count_emojis(text: str) -> int:
    """Count custom emojis (``<:name:id>``) and unicode emoji in *text*.

    ZWJ sequences (family, profession emoji) count once.  This is a regex
    heuristic, not a full Unicode emoji segmentation.
    """
    custom = len(_CUSTOM_EMOJI_REGEX.findall(text))
    remaining = _CUSTOM_EMOJI_REGEX.sub("", text)
    return custom + len(_UNICODE_EMOJI_REGEX.findall(remaining))
