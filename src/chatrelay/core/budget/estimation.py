"""Heuristic token estimation.

Provides:
    - estimate_tokens(): Estimated token count for a string
    - count_characters(): CJK / other character counts for a string
    - tokens_from_counts(): Token count from precomputed character counts

CJK ideographs count as one token each; every other character counts as a
quarter token, rounded up over the whole string. The estimate is stable for a
given input and is the only measure used for budgeting decisions.
"""

import math
import re
from typing import Tuple

from chatrelay.core.budget.constants import CHARS_PER_TOKEN

_CJK_RE = re.compile(r"[\u4e00-\u9fa5]")


def count_characters(text: str) -> Tuple[int, int]:
    """Return ``(cjk, other)`` character counts for ``text``."""
    if not text:
        return 0, 0
    cjk = len(_CJK_RE.findall(text))
    return cjk, len(text) - cjk


def tokens_from_counts(cjk: int, other: int) -> int:
    """Estimated tokens for a text with the given character counts.

    Character counts are additive under concatenation, so callers can sum the
    counts of several pieces and get the exact estimate of their join.
    """
    return cjk + math.ceil(other / CHARS_PER_TOKEN)


def estimate_tokens(text: str) -> int:
    """Estimate tokens in ``text``. Always ``>= 0``; empty text is 0."""
    return tokens_from_counts(*count_characters(text))
