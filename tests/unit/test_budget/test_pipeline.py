"""Tests for the content budgeting pipeline.

Tests cover:
- Stage A message selection (first message plus newest that fit)
- Stage C head/tail turn selection and proportional prefix truncation
- Output never exceeds the budget when truncated
- Re-running on the output is a no-op
- Input validation
"""

import pytest

from chatrelay.core.budget import BudgetPipeline, BudgetResult, enforce_budget, estimate_tokens, select_messages
from chatrelay.core.budget.constants import TRUNCATION_MARKER
from chatrelay.core.conversation import Conversation, Message, Role, flatten_messages
from chatrelay.core.errors import BudgetingFailure


def _long_conversation(count: int = 100) -> Conversation:
    """Messages whose flattened turns are each exactly 198 characters."""
    messages = []
    for i in range(count):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        length = 189 if role == Role.USER else 192
        messages.append(Message(role, (f"m{i:03d}-" + "x" * 200)[:length]))
    return Conversation.create(messages, title="Long thread")


def _turns(count: int, chars: int) -> str:
    """Flattened text of ``count`` turns, each ``chars`` characters long."""
    turns = []
    for i in range(count):
        marker = "[Human]: " if i % 2 == 0 else "[AI]: "
        body = f"turn{i:02d} " + "a" * chars
        turns.append((marker + body)[:chars])
    return "\n\n".join(turns)


class TestStageA:
    def test_keeps_first_and_newest_messages(self):
        conversation = _long_conversation()

        result = BudgetPipeline().run(conversation, budget=600)

        assert result.kept_messages == 12
        assert result.dropped_messages == 88
        assert result.truncated is True
        assert result.content.startswith("[Human]: m000-")
        assert "m089-" in result.content
        assert "m099-" in result.content
        assert "m088-" not in result.content
        assert result.estimated_tokens <= 600

    def test_first_message_kept_when_it_alone_exceeds_budget(self):
        messages = [Message(Role.USER, "q" * 4000), Message(Role.ASSISTANT, "short answer")]

        kept, dropped = select_messages(messages, 50)

        assert kept == [messages[0]]
        assert dropped == 1

    def test_stops_at_first_message_that_does_not_fit(self):
        messages = [
            Message(Role.USER, "first"),
            Message(Role.ASSISTANT, "old " * 10),
            Message(Role.USER, "huge " * 500),
            Message(Role.ASSISTANT, "newest"),
        ]

        kept, dropped = select_messages(messages, 100)

        assert kept == [messages[0], messages[3]]
        assert dropped == 2

    def test_everything_fits(self, conversation):
        result = BudgetPipeline().run(conversation)

        assert result.truncated is False
        assert result.content == flatten_messages(conversation.messages)
        assert result.dropped_messages == 0


class TestStageC:
    def test_fitting_text_is_unchanged(self):
        text = _turns(3, 40)
        assert enforce_budget(text, 1000) == text

    def test_many_turns_keep_head_and_tail(self):
        text = _turns(10, 400)

        result = enforce_budget(text, 500)
        parts = result.split("\n\n")

        assert parts[0].startswith("[Human]: turn00")
        assert parts[1].startswith("[AI]: turn01")
        assert parts[2] == "[... 7 middle turns omitted ...]"
        assert parts[3].startswith("[AI]: turn09")
        assert estimate_tokens(result) <= 500

    def test_few_turns_fall_back_to_prefix(self):
        text = _turns(3, 2000)

        result = enforce_budget(text, 300)

        assert result.endswith("\n\n" + TRUNCATION_MARKER)
        assert result.startswith(text[:100])
        assert estimate_tokens(result) <= 300

    def test_zero_budget_yields_empty_text(self):
        assert enforce_budget(_turns(3, 200), 0) == ""


class TestPipelineProperties:
    @pytest.mark.parametrize("budget", [0, 10, 50, 120, 600, 2000, 5000, 100000])
    def test_truncated_output_fits_budget(self, budget):
        result = BudgetPipeline().run(_long_conversation(), budget=budget)

        if result.truncated:
            assert result.estimated_tokens <= budget
        assert result.estimated_tokens == estimate_tokens(result.content)

    @pytest.mark.parametrize("budget", [150, 600, 2000, 100000])
    def test_rerun_on_output_is_noop(self, budget):
        pipeline = BudgetPipeline()
        first = pipeline.run(_long_conversation(), budget=budget)

        second = pipeline.run(Conversation.from_flattened(first.content), budget=budget)

        assert second.content == first.content

    def test_rerun_with_larger_budget_is_noop(self):
        pipeline = BudgetPipeline()
        first = pipeline.run(_long_conversation(), budget=600)

        second = pipeline.run(Conversation.from_flattened(first.content), budget=6000)

        assert second.content == first.content

    def test_rerun_after_prefix_truncation_is_noop(self):
        pipeline = BudgetPipeline()
        conversation = Conversation.create([Message(Role.USER, "word " * 2000)])
        first = pipeline.run(conversation, budget=200)
        assert first.content.endswith(TRUNCATION_MARKER)

        second = pipeline.run(Conversation.from_flattened(first.content), budget=200)

        assert second.content == first.content

    def test_first_message_is_preserved(self):
        messages = [Message(Role.USER, "Goal: migrate the billing service")]
        messages += [Message(Role.ASSISTANT if i % 2 else Role.USER, "detail " * 80) for i in range(40)]

        result = BudgetPipeline().run(messages, budget=300)

        assert result.content.startswith("[Human]: Goal: migrate the billing service")
        assert result.truncated is True

    def test_preprocessing_alone_does_not_mark_truncated(self):
        conversation = Conversation.create([Message(Role.USER, "<b>bold</b>   text")])

        result = BudgetPipeline().run(conversation)

        assert result.content == "[Human]: bold text"
        assert result.truncated is False


class TestPipelineInput:
    def test_empty_input(self):
        assert BudgetPipeline().run([]) == BudgetResult(content="", truncated=False, estimated_tokens=0)

    def test_negative_budget_rejected(self, conversation):
        with pytest.raises(BudgetingFailure):
            BudgetPipeline().run(conversation, budget=-1)

    def test_non_message_items_rejected(self):
        with pytest.raises(BudgetingFailure) as exc_info:
            BudgetPipeline().run([Message(Role.USER, "ok"), {"role": "user"}])
        assert exc_info.value.stage == "input"

    def test_negative_default_rejected(self):
        with pytest.raises(ValueError):
            BudgetPipeline(max_tokens=-5)
