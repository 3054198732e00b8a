"""Constants for the content budgeting pipeline."""

from __future__ import annotations

# =============================================================================
# Estimation
# =============================================================================

# Non-CJK characters per estimated token
CHARS_PER_TOKEN = 4

# Default token budget for content sent to the remote model
DEFAULT_MAX_TOKENS = 30000

# =============================================================================
# Stage B: textual preprocessing
# =============================================================================

# Fenced code blocks longer than this many lines are elided
CODE_BLOCK_MAX_LINES = 35

# Lines kept from the start of an elided block (opening fence included)
CODE_BLOCK_HEAD_LINES = 11

# Lines kept from the end of an elided block (closing fence included)
CODE_BLOCK_TAIL_LINES = 6

CODE_ELISION_TEMPLATE = "// ... [{count} lines omitted] ..."

# URLs whose part after the scheme is at least this long are shortened
URL_MAX_LENGTH = 100

URL_KEEP_CHARS = 50

URL_TRUNCATION_MARKER = "...[URL truncated]"

CANONICAL_SEPARATOR = "---\n"

# =============================================================================
# Stage C: final budget enforcement
# =============================================================================

# Turn counts at or below this are truncated as one unsegmentable block
MIN_SEGMENTABLE_TURNS = 4

# Leading turns always kept verbatim when segmenting
HEAD_TURNS = 2

# Token margin reserved while greedily adding tail turns
TAIL_SAFETY_MARGIN_TOKENS = 100

# Applied to the proportional prefix length
PREFIX_SAFETY_RATIO = 0.9

TRUNCATION_MARKER = "[... content truncated ...]"

MIDDLE_ELISION_TEMPLATE = "[... {count} middle turns omitted ...]"
