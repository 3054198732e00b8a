"""Shared fixtures for chatrelay tests."""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from chatrelay.core.conversation import Conversation, Message, Platform, Role
from chatrelay.core.remote import RemoteConfig

TEST_CREDENTIAL = "sk-test-credential-0123456789"


def make_conversation(*contents: str, title: str = "Debugging session") -> Conversation:
    """Alternate user/assistant messages, starting with the user."""
    messages = [
        Message(Role.USER if index % 2 == 0 else Role.ASSISTANT, content) for index, content in enumerate(contents)
    ]
    return Conversation.create(
        messages,
        platform=Platform.CHATGPT,
        title=title,
        exported_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
    )


class FakeSummarizationClient:
    """Stand-in for SummarizationClient that records calls and observes cancellation."""

    def __init__(self, reply: str = "## Core goal\nShip the fix", delay: float = 0.0, error: Optional[Exception] = None):
        self.reply = reply
        self.delay = delay
        self.error = error
        self.calls: List[str] = []
        self.cancelled = False

    async def summarize(self, content: str) -> str:
        self.calls.append(content)
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def conversation() -> Conversation:
    return make_conversation(
        "Why does the upload handler return 413 for files over 1MB?",
        "The proxy limits request bodies. Raise client_max_body_size in nginx.",
        "Done, uploads work now. What about the timeout on large files?",
        "Increase proxy_read_timeout and stream the body instead of buffering it.",
    )


@pytest.fixture
def remote_config() -> RemoteConfig:
    return RemoteConfig(
        endpoint="https://api.example.test/v1",
        credential=TEST_CREDENTIAL,
        model="test-model",
        provider="custom",
    )


@pytest.fixture
def state_dir(tmp_path):
    path = tmp_path / "state"
    path.mkdir()
    return path


@pytest.fixture
def output_dir(tmp_path):
    path = tmp_path / "exports"
    path.mkdir()
    return path


@pytest.fixture
def conversation_factory():
    return make_conversation


@pytest.fixture
def fake_client_class():
    return FakeSummarizationClient
