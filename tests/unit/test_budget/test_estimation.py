"""Tests for token estimation.

Tests cover:
- Empty text estimates to zero
- Non-CJK characters count four to a token, rounded up
- CJK ideographs count one token each
- Character counts are additive across concatenation
"""

from chatrelay.core.budget import count_characters, estimate_tokens, tokens_from_counts


class TestEstimateTokens:
    def test_empty_text_is_zero(self):
        assert estimate_tokens("") == 0

    def test_other_characters_round_up(self):
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2
        assert estimate_tokens("a" * 400) == 100

    def test_cjk_counts_one_token_each(self):
        assert estimate_tokens("你好") == 2
        assert estimate_tokens("你好ab") == 3

    def test_is_deterministic(self):
        text = "Deploy 完成 after retry\n\n[AI]: ok"
        assert estimate_tokens(text) == estimate_tokens(text)


class TestCharacterCounts:
    def test_counts_split_by_class(self):
        assert count_characters("中文abc") == (2, 3)

    def test_counts_are_additive(self):
        left, right = "第一部分 part one", "\n\nsecond 部分"
        lcjk, lother = count_characters(left)
        rcjk, rother = count_characters(right)
        assert tokens_from_counts(lcjk + rcjk, lother + rother) == estimate_tokens(left + right)
