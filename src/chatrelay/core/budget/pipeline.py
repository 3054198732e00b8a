"""Content budgeting pipeline.

Reduces a conversation to a single string whose estimated token count fits a
budget, keeping the opening message and the most recent exchanges:

    Stage A: drop whole messages from the middle (newest kept first)
    Stage B: textual preprocessing of the flattened text
    Stage C: final enforcement by turns, or by proportional prefix

Example:
    pipeline = BudgetPipeline(max_tokens=30_000)
    result = pipeline.run(conversation)
    if result.truncated:
        logger.warning("Content truncated to %d tokens", result.estimated_tokens)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from chatrelay.core.budget.constants import (
    DEFAULT_MAX_TOKENS,
    HEAD_TURNS,
    MIDDLE_ELISION_TEMPLATE,
    MIN_SEGMENTABLE_TURNS,
    PREFIX_SAFETY_RATIO,
    TAIL_SAFETY_MARGIN_TOKENS,
    TRUNCATION_MARKER,
)
from chatrelay.core.budget.estimation import count_characters, estimate_tokens, tokens_from_counts
from chatrelay.core.budget.preprocess import preprocess_text
from chatrelay.core.conversation.models import (
    TURN_BOUNDARY_RE,
    TURN_SEPARATOR,
    Conversation,
    Message,
    flatten_messages,
)
from chatrelay.core.errors import BudgetingFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetResult:
    """Outcome of one pipeline run.

    Attributes:
        content: Text to send to the remote model
        truncated: True iff Stage A dropped a message or Stage C altered the text
        estimated_tokens: Estimate for ``content``
        kept_messages: Messages that survived Stage A
        dropped_messages: Messages discarded by Stage A
    """

    content: str
    truncated: bool
    estimated_tokens: int
    kept_messages: int = 0
    dropped_messages: int = 0


def select_messages(messages: Sequence[Message], budget: int) -> Tuple[List[Message], int]:
    """Stage A: keep the first message plus the longest trailing run that fits.

    Walks from the newest message backward and stops at the first one that
    would push the flattened total over ``budget``. The first message is kept
    even when it alone exceeds the budget.

    Returns:
        Tuple of (kept messages in original order, number dropped)
    """
    if not messages:
        return [], 0

    first = messages[0]
    cjk, other = count_characters(first.render_turn())
    separator_chars = len(TURN_SEPARATOR)

    retained: List[Message] = []
    for message in reversed(messages[1:]):
        msg_cjk, msg_other = count_characters(message.render_turn())
        next_cjk = cjk + msg_cjk
        next_other = other + msg_other + separator_chars
        if tokens_from_counts(next_cjk, next_other) > budget:
            break
        cjk, other = next_cjk, next_other
        retained.append(message)

    retained.reverse()
    kept = [first] + retained
    return kept, len(messages) - len(kept)


def split_turns(text: str) -> List[str]:
    """Split flattened text at role markers."""
    return TURN_BOUNDARY_RE.split(text)


def _keep_head_and_tail(turns: List[str], budget: int) -> Optional[str]:
    head = turns[:HEAD_TURNS]
    used = estimate_tokens(TURN_SEPARATOR.join(head))

    tail: List[str] = []
    for turn in reversed(turns[HEAD_TURNS:]):
        cost = estimate_tokens(turn)
        if used + cost + TAIL_SAFETY_MARGIN_TOKENS >= budget:
            break
        tail.append(turn)
        used += cost
    tail.reverse()

    omitted = len(turns) - HEAD_TURNS - len(tail)
    parts = list(head)
    if omitted:
        parts.append(MIDDLE_ELISION_TEMPLATE.format(count=omitted))
    parts.extend(tail)
    result = TURN_SEPARATOR.join(parts)

    if estimate_tokens(result) > budget:
        return None
    return result


def _truncate_prefix(text: str, budget: int, protected: str) -> str:
    """Keep a proportional prefix of ``text`` followed by a truncation marker.

    ``protected`` is a prefix of ``text`` that is kept whole whenever it fits
    together with the marker.
    """
    marker = TURN_SEPARATOR + TRUNCATION_MARKER
    ratio = budget / estimate_tokens(text)
    keep = math.floor(len(text) * ratio * PREFIX_SAFETY_RATIO)

    floor = len(protected) if estimate_tokens(protected + marker) <= budget else 0
    keep = max(keep, floor)

    while keep > floor:
        candidate = text[:keep].rstrip() + marker
        if estimate_tokens(candidate) <= budget:
            return candidate
        keep = max(floor, math.floor(keep * PREFIX_SAFETY_RATIO))

    if floor:
        return protected + marker
    if estimate_tokens(protected) <= budget:
        return protected
    if estimate_tokens(TRUNCATION_MARKER) <= budget:
        return TRUNCATION_MARKER
    return ""


def enforce_budget(text: str, budget: int) -> str:
    """Stage C: make ``text`` fit ``budget``; returns it unchanged if it already fits."""
    if estimate_tokens(text) <= budget:
        return text

    turns = split_turns(text)
    if len(turns) > MIN_SEGMENTABLE_TURNS:
        result = _keep_head_and_tail(turns, budget)
        if result is not None:
            return result
        logger.debug("Head turns exceed budget %d, falling back to prefix truncation", budget)

    return _truncate_prefix(text, budget, protected=turns[0])


class BudgetPipeline:
    """Runs Stage A, B and C over a conversation.

    The pipeline holds no state between runs; one instance can be reused for
    any number of conversations.
    """

    def __init__(self, max_tokens: int = DEFAULT_MAX_TOKENS):
        if max_tokens < 0:
            raise ValueError("max_tokens must be non-negative")
        self.max_tokens = max_tokens

    def run(
        self,
        conversation: Union[Conversation, Sequence[Message]],
        budget: Optional[int] = None,
    ) -> BudgetResult:
        """Reduce ``conversation`` to at most ``budget`` estimated tokens.

        Raises:
            BudgetingFailure: If the input is not a sequence of messages or
                the budget is negative
        """
        budget = self.max_tokens if budget is None else budget
        if budget < 0:
            raise BudgetingFailure(f"Budget must be non-negative, got {budget}", stage="input")

        messages = list(conversation.messages if isinstance(conversation, Conversation) else conversation)
        for index, message in enumerate(messages):
            if not isinstance(message, Message) or not isinstance(message.content, str):
                raise BudgetingFailure(f"Item {index} is not a message", stage="input")

        if not messages:
            return BudgetResult(content="", truncated=False, estimated_tokens=0)

        kept, dropped = select_messages(messages, budget)
        if dropped:
            logger.debug("Stage A dropped %d of %d messages", dropped, len(messages))

        preprocessed = preprocess_text(flatten_messages(kept))
        content = enforce_budget(preprocessed, budget)
        altered = content != preprocessed
        if altered:
            logger.debug("Stage C reduced content to fit %d tokens", budget)

        return BudgetResult(
            content=content,
            truncated=bool(dropped) or altered,
            estimated_tokens=estimate_tokens(content),
            kept_messages=len(kept),
            dropped_messages=dropped,
        )
