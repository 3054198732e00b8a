"""Content budgeting: token estimation, preprocessing and budget enforcement."""

from chatrelay.core.budget.estimation import count_characters, estimate_tokens, tokens_from_counts
from chatrelay.core.budget.pipeline import (
    BudgetPipeline,
    BudgetResult,
    enforce_budget,
    select_messages,
    split_turns,
)
from chatrelay.core.budget.preprocess import elide_code_block, preprocess_text

__all__ = [
    "BudgetPipeline",
    "BudgetResult",
    "count_characters",
    "elide_code_block",
    "enforce_budget",
    "estimate_tokens",
    "preprocess_text",
    "select_messages",
    "split_turns",
    "tokens_from_counts",
]
