"""
tests/test_message_xp.py — Message Scoring Tests
=================================================
"""

from __future__ import annotations

import pytest

from yapper.constants import count_emojis, rank_label
from yapper.engine.message_xp import XP_PER_EMOJI, calculate_message_xp


class TestCalculateMessageXp:
    def test_letters_only(self):
        assert calculate_message_xp("hello") == 5

    def test_digits_punctuation_and_spaces_are_free(self):
        assert calculate_message_xp("hi 123 !!! ...") == 2

    def test_empty(self):
        assert calculate_message_xp("") == 0

    def test_urls_are_stripped(self):
        assert calculate_message_xp("see https://example.com/abc") == 3

    def test_unicode_emoji(self):
        assert calculate_message_xp("\U0001f600") == XP_PER_EMOJI
        assert calculate_message_xp("ok \U0001f600\U0001f680") == 2 + 2 * XP_PER_EMOJI

    def test_custom_emoji_name_letters_count_too(self):
        # <:pog:123> → 3 letters in the name + one emoji
        assert calculate_message_xp("<:pog:123>") == 3 + XP_PER_EMOJI

    def test_non_ascii_letters_are_free(self):
        assert calculate_message_xp("héllo") == 4

    def test_cap(self):
        assert calculate_message_xp("a" * 500, cap=100) == 100
        assert calculate_message_xp("abc", cap=100) == 3

    def test_zero_cap_means_uncapped(self):
        assert calculate_message_xp("a" * 500, cap=0) == 500


class TestCountEmojis:
    def test_mixed(self):
        assert count_emojis("<:a:1> <a:b:2> \U0001f600") == 3

    def test_skin_tone_counts_once(self):
        assert count_emojis("\U0001f44d\U0001f3fd") == 1

    def test_flag_pair_counts_once(self):
        assert count_emojis("\U0001f1fa\U0001f1f8") == 1

    def test_plain_text(self):
        assert count_emojis("nothing to see") == 0


@pytest.mark.parametrize("rank,expected", [
    (1, "\U0001f947"),
    (3, "\U0001f949"),
    (4, "#4"),
    (12, "#12"),
])
def test_rank_label(rank, expected):
    assert rank_label(rank) == expected
