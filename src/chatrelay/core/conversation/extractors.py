"""Conversation extractors.

An extractor produces one immutable ``Conversation`` or raises
``ExtractionFailure``. Platform selection is a pure dispatch over the origin
of the page the conversation came from.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

from chatrelay.core.conversation.models import Conversation, Message, Platform, Role
from chatrelay.core.errors import ExtractionFailure

logger = logging.getLogger(__name__)

_PLATFORM_HOSTS = {
    "chatgpt.com": Platform.CHATGPT,
    "chat.openai.com": Platform.CHATGPT,
    "aistudio.google.com": Platform.GEMINI,
    "chat.deepseek.com": Platform.DEEPSEEK,
}

_ROLE_ALIASES = {
    "user": Role.USER,
    "human": Role.USER,
    "assistant": Role.ASSISTANT,
    "ai": Role.ASSISTANT,
    "model": Role.ASSISTANT,
    "system": Role.SYSTEM,
}


def detect_platform(url: str) -> Platform:
    """Map a page URL to its chat platform; unsupported origins are UNKNOWN."""
    host = (urlparse(url).hostname or "").lower()
    return _PLATFORM_HOSTS.get(host, Platform.UNKNOWN)


class ConversationExtractor(ABC):
    """Source of exactly one conversation."""

    @abstractmethod
    def extract(self) -> Conversation:
        """Return the conversation, or raise ``ExtractionFailure``."""


class StaticExtractor(ConversationExtractor):
    """Extractor over an already-built conversation."""

    def __init__(self, conversation: Conversation):
        self._conversation = conversation

    def extract(self) -> Conversation:
        if not self._conversation.messages:
            raise ExtractionFailure("Extraction failed: conversation has no messages")
        return self._conversation


def _parse_exported_at(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Ignoring unparseable exportedAt value %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def conversation_from_dict(data: Dict[str, Any], *, source: Optional[str] = None) -> Conversation:
    """Build a conversation from the JSON export shape.

    Expects ``{platform | url, title, messages: [{role, content}], exportedAt}``.

    Raises:
        ExtractionFailure: If there are no messages or a role is unknown
    """
    if not isinstance(data, dict):
        raise ExtractionFailure("Extraction failed: expected a JSON object", source=source)

    raw_messages = data.get("messages")
    if not isinstance(raw_messages, list) or not raw_messages:
        raise ExtractionFailure("Extraction failed: no messages found", source=source)

    messages: List[Message] = []
    for index, raw in enumerate(raw_messages):
        if not isinstance(raw, dict):
            raise ExtractionFailure(f"Extraction failed: message {index} is not an object", source=source)
        role = _ROLE_ALIASES.get(str(raw.get("role", "")).strip().lower())
        if role is None:
            raise ExtractionFailure(
                f"Extraction failed: message {index} has unknown role {raw.get('role')!r}",
                source=source,
            )
        content = raw.get("content", "")
        messages.append(Message(role=role, content=content if isinstance(content, str) else str(content)))

    if url := data.get("url"):
        platform = detect_platform(str(url))
    else:
        try:
            platform = Platform(str(data.get("platform", "unknown")).lower())
        except ValueError:
            platform = Platform.UNKNOWN

    return Conversation.create(
        messages,
        platform=platform,
        title=str(data.get("title") or "").strip() or None,
        exported_at=_parse_exported_at(data.get("exportedAt")),
    )


class JsonFileExtractor(ConversationExtractor):
    """Reads a conversation from a JSON export file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def extract(self) -> Conversation:
        source = str(self.path)
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ExtractionFailure(f"Extraction failed: cannot read {source}: {exc}", source=source) from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ExtractionFailure(f"Extraction failed: invalid JSON in {source}: {exc}", source=source) from exc

        conversation = conversation_from_dict(data, source=source)
        logger.debug("Extracted %d messages from %s", len(conversation.messages), source)
        return conversation
