"""Textual preprocessing applied to flattened conversation text.

Each helper is a pure ``str -> str`` transform. ``preprocess_text`` applies
them in a fixed order:

1. strip markup tags
2. collapse 3+ newlines to a single blank line
3. collapse runs of spaces and tabs
4. elide the middle of long fenced code blocks
5. collapse repeated horizontal separators
6. shorten long URLs
7. trim surrounding whitespace
"""

from __future__ import annotations

import re

from chatrelay.core.budget.constants import (
    CANONICAL_SEPARATOR,
    CODE_BLOCK_HEAD_LINES,
    CODE_BLOCK_MAX_LINES,
    CODE_BLOCK_TAIL_LINES,
    CODE_ELISION_TEMPLATE,
    URL_KEEP_CHARS,
    URL_MAX_LENGTH,
    URL_TRUNCATION_MARKER,
)

_TAG_RE = re.compile(r"<[^>]*>")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_HORIZONTAL_WS_RE = re.compile(r"[ \t]+")
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_SEPARATOR_RUN_RE = re.compile(r"(-{3,}\n?){2,}")
_LONG_URL_RE = re.compile(r"https?://[^\s)>\]]{%d,}" % URL_MAX_LENGTH)


def strip_markup(text: str) -> str:
    return _TAG_RE.sub("", text)


def collapse_blank_lines(text: str) -> str:
    return _BLANK_LINES_RE.sub("\n\n", text)


def collapse_horizontal_whitespace(text: str) -> str:
    return _HORIZONTAL_WS_RE.sub(" ", text)


def elide_code_block(block: str) -> str:
    """Replace the middle of a fenced block longer than the line limit.

    The first lines (opening fence included) and last lines (closing fence
    included) are kept; the marker states how many lines were dropped.
    """
    lines = block.split("\n")
    if len(lines) <= CODE_BLOCK_MAX_LINES:
        return block
    omitted = len(lines) - CODE_BLOCK_HEAD_LINES - CODE_BLOCK_TAIL_LINES
    kept = (
        lines[:CODE_BLOCK_HEAD_LINES]
        + [CODE_ELISION_TEMPLATE.format(count=omitted)]
        + lines[-CODE_BLOCK_TAIL_LINES:]
    )
    return "\n".join(kept)


def elide_code_blocks(text: str) -> str:
    return _CODE_BLOCK_RE.sub(lambda match: elide_code_block(match.group(0)), text)


def collapse_separators(text: str) -> str:
    return _SEPARATOR_RUN_RE.sub(CANONICAL_SEPARATOR, text)


def shorten_long_urls(text: str) -> str:
    """Keep the first characters of any URL over the length limit."""
    return _LONG_URL_RE.sub(lambda match: match.group(0)[:URL_KEEP_CHARS] + URL_TRUNCATION_MARKER, text)


def preprocess_text(text: str) -> str:
    """Apply every preprocessing step in order."""
    text = strip_markup(text)
    text = collapse_blank_lines(text)
    text = collapse_horizontal_whitespace(text)
    text = elide_code_blocks(text)
    text = collapse_separators(text)
    text = shorten_long_urls(text)
    return text.strip()
