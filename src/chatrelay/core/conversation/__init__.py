"""Conversation model, extraction and export."""

from chatrelay.core.conversation.export import ConversationExporter, ExportResult, export_filename
from chatrelay.core.conversation.extractors import (
    ConversationExtractor,
    JsonFileExtractor,
    StaticExtractor,
    conversation_from_dict,
    detect_platform,
)
from chatrelay.core.conversation.models import Conversation, Message, Platform, Role, flatten_messages

__all__ = [
    "Conversation",
    "ConversationExporter",
    "ConversationExtractor",
    "ExportResult",
    "JsonFileExtractor",
    "Message",
    "Platform",
    "Role",
    "StaticExtractor",
    "conversation_from_dict",
    "detect_platform",
    "export_filename",
    "flatten_messages",
]
