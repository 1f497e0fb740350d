"""
yapper.engine.message_xp — XP awarded for a chat message
=========================================================

Scoring:
- 1 XP per ASCII letter
- 2 XP per emoji (custom ``<:name:id>`` or unicode)
- URLs are stripped before counting

An optional cap bounds the XP of a single message.
"""

from __future__ import annotations

from yapper.constants import URL_REGEX, count_emojis

XP_PER_LETTER = 1
XP_PER_EMOJI = 2


def calculate_message_xp(content: str, cap: int = 0) -> int:
    """XP earned by a message with *content*.

    *cap* > 0 limits the result; 0 means uncapped.
    """
    if not content:
        return 0
    clean = URL_REGEX.sub("", content)
    letters = sum(1 for ch in clean if ch.isascii() and ch.isalpha())
    xp = letters * XP_PER_LETTER + count_emojis(clean) * XP_PER_EMOJI
    if cap > 0:
        xp = min(xp, cap)
    return xp
