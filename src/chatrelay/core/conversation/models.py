"""Conversation data model.

A ``Conversation`` is produced once by an extractor and never mutated
afterwards. The budgeting pipeline and the exporter only read it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Tuple


class Role(str, Enum):
    """Author of a single conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Platform(str, Enum):
    """Chat platform a conversation was captured from."""

    CHATGPT = "chatgpt"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        return _PLATFORM_DISPLAY_NAMES[self]


_PLATFORM_DISPLAY_NAMES = {
    Platform.CHATGPT: "ChatGPT",
    Platform.GEMINI: "Gemini",
    Platform.DEEPSEEK: "DeepSeek",
    Platform.UNKNOWN: "Unknown",
}

# Role markers used when a conversation is flattened to text.
HUMAN_MARKER = "[Human]: "
AI_MARKER = "[AI]: "
TURN_SEPARATOR = "\n\n"

# A turn starts at a role marker preceded by the turn separator.
TURN_BOUNDARY_RE = re.compile(r"\n\n(?=\[(?:Human|AI)\]: )")


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    def render_turn(self) -> str:
        """Render this message as a role-tagged turn."""
        marker = HUMAN_MARKER if self.role == Role.USER else AI_MARKER
        return f"{marker}{self.content}"


@dataclass(frozen=True)
class Conversation:
    """An ordered, immutable sequence of messages plus capture metadata."""

    messages: Tuple[Message, ...]
    platform: Platform = Platform.UNKNOWN
    title: str = "Untitled conversation"
    exported_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def create(
        cls,
        messages: Iterable[Message],
        *,
        platform: Platform = Platform.UNKNOWN,
        title: Optional[str] = None,
        exported_at: Optional[datetime] = None,
    ) -> "Conversation":
        return cls(
            messages=tuple(messages),
            platform=platform,
            title=title or "Untitled conversation",
            exported_at=exported_at or datetime.now(timezone.utc),
        )

    @classmethod
    def from_flattened(cls, text: str, **kwargs) -> "Conversation":
        """Rebuild a conversation from its flattened ``[Human]/[AI]`` form.

        Text before the first role marker becomes a leading user message.
        ``flatten_messages(from_flattened(t).messages) == t`` holds for any
        ``t`` that starts with a role marker.
        """
        messages: List[Message] = []
        for segment in TURN_BOUNDARY_RE.split(text):
            if segment.startswith(HUMAN_MARKER):
                messages.append(Message(Role.USER, segment[len(HUMAN_MARKER):]))
            elif segment.startswith(AI_MARKER):
                messages.append(Message(Role.ASSISTANT, segment[len(AI_MARKER):]))
            elif segment:
                messages.append(Message(Role.USER, segment))
        return cls.create(messages, **kwargs)

    def __len__(self) -> int:
        return len(self.messages)


def flatten_messages(messages: Iterable[Message]) -> str:
    """Join messages as role-tagged turns separated by one blank line."""
    return TURN_SEPARATOR.join(message.render_turn() for message in messages)
