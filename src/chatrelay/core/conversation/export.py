"""Conversation export to Markdown, JSON or plain text.

Exports are written atomically into an output directory. When a summary is
produced later, ``write_summary`` places it next to the export.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from chatrelay.core.conversation.models import Conversation, Role
from chatrelay.core.errors import ExportFailure

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_RE = re.compile(r'[\\/:*?"<>|]')
_TAG_RE = re.compile(r"<[^>]*>")
_BLANK_LINES_RE = re.compile(r"\n{3,}")

_HTML_ENTITIES = {
    "&nbsp;": " ",
    "&lt;": "<",
    "&gt;": ">",
    "&amp;": "&",
}

EXTENSIONS = {
    "markdown": "md",
    "json": "json",
    "text": "txt",
}

_MARKDOWN_ROLE_NAMES = {
    Role.USER: "User",
    Role.ASSISTANT: "AI",
    Role.SYSTEM: "System",
}


@dataclass(frozen=True)
class ExportResult:
    """Where an export landed and what was written."""

    path: Path
    content: str
    format: str

    @property
    def filename(self) -> str:
        return self.path.name


def sanitize_filename(title: str) -> str:
    """Replace characters that are not allowed in file names."""
    cleaned = _UNSAFE_FILENAME_RE.sub("_", title).strip()
    return cleaned or "conversation"


def export_filename(conversation: Conversation, fmt: str) -> str:
    """``<sanitized title>_<YYYY-MM-DD>.<ext>``"""
    date = conversation.exported_at.astimezone().strftime("%Y-%m-%d")
    return f"{sanitize_filename(conversation.title)}_{date}.{EXTENSIONS[fmt]}"


def summary_filename(export_name: str) -> str:
    stem = Path(export_name).stem
    return f"{stem}_summary.md"


def _timestamp(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _strip_tags(text: str) -> str:
    return _TAG_RE.sub("", text)


def _decode_entities(text: str) -> str:
    for entity, replacement in _HTML_ENTITIES.items():
        text = text.replace(entity, replacement)
    return text


def format_markdown(conversation: Conversation) -> str:
    parts = [
        f"# {conversation.title}\n\n",
        f"> Source: {conversation.platform.display_name}\n",
        f"> Exported: {_timestamp(conversation.exported_at)}\n\n---\n\n",
    ]
    for message in conversation.messages:
        content = _BLANK_LINES_RE.sub("\n\n", _strip_tags(message.content)).strip()
        parts.append(f"## {_MARKDOWN_ROLE_NAMES[message.role]}\n\n{content}\n\n---\n\n")
    return "".join(parts)


def format_json(conversation: Conversation) -> str:
    data = {
        "platform": conversation.platform.value,
        "title": conversation.title,
        "messages": [
            {"role": message.role.value, "content": _strip_tags(message.content).strip()}
            for message in conversation.messages
        ],
        "exportedAt": int(conversation.exported_at.timestamp() * 1000),
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


def format_text(conversation: Conversation) -> str:
    parts = [
        f"Title: {conversation.title}\n",
        f"Platform: {conversation.platform.display_name}\n",
        f"Time: {_timestamp(conversation.exported_at)}\n",
        "=" * 50 + "\n\n",
    ]
    for message in conversation.messages:
        label = {Role.USER: "[User]", Role.ASSISTANT: "[AI]", Role.SYSTEM: "[System]"}[message.role]
        plain = _decode_entities(_strip_tags(message.content))
        plain = _BLANK_LINES_RE.sub("\n\n", plain).strip()
        parts.append(f"{label}\n{plain}\n\n" + "-" * 30 + "\n\n")
    return "".join(parts)


FORMATTERS: Dict[str, Callable[[Conversation], str]] = {
    "markdown": format_markdown,
    "json": format_json,
    "text": format_text,
}


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via temp file + fsync + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


class ConversationExporter:
    """Renders and writes conversations into one output directory."""

    def __init__(self, output_dir: Union[str, Path], fmt: str = "markdown"):
        if fmt not in FORMATTERS:
            raise ValueError(f"Unsupported export format: {fmt}")
        self.output_dir = Path(output_dir)
        self.format = fmt

    def render(self, conversation: Conversation) -> str:
        return FORMATTERS[self.format](conversation)

    def export(self, conversation: Conversation) -> ExportResult:
        """Write the conversation and return where it went.

        Raises:
            ExportFailure: If the file could not be written
        """
        content = self.render(conversation)
        path = self.output_dir / export_filename(conversation, self.format)
        try:
            atomic_write_text(path, content)
        except OSError as exc:
            raise ExportFailure(f"Export failed: {exc}", path=str(path)) from exc
        logger.info("Exported conversation to %s", path)
        return ExportResult(path=path, content=content, format=self.format)

    def write_summary(
        self,
        export_name: str,
        summary: str,
        generated_at: Optional[datetime] = None,
    ) -> Path:
        """Write a context snapshot next to the export it was made from.

        Raises:
            ExportFailure: If the file could not be written
        """
        generated_at = generated_at or datetime.now(timezone.utc)
        content = (
            "# Context Snapshot\n\n"
            f"> Source file: {export_name}\n"
            f"> Generated: {_timestamp(generated_at)}\n\n"
            "---\n\n"
            f"{summary}\n"
        )
        path = self.output_dir / summary_filename(export_name)
        try:
            atomic_write_text(path, content)
        except OSError as exc:
            raise ExportFailure(f"Summary write failed: {exc}", path=str(path)) from exc
        logger.info("Wrote summary to %s", path)
        return path
