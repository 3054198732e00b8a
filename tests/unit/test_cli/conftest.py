"""CLI test fixtures."""

import json
import logging
import os

import pytest
from click.testing import CliRunner

from chatrelay.cli.main import cli
from chatrelay.config import set_config


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_cli(tmp_path, monkeypatch):
    """Keep CLI invocations away from the real home, cwd and CHATRELAY_* settings."""
    for name in list(os.environ):
        if name.startswith("CHATRELAY_"):
            monkeypatch.delenv(name)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.chdir(tmp_path)

    logger = logging.getLogger("chatrelay")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers = handlers
    logger.setLevel(level)
    set_config(None)


@pytest.fixture
def invoke(cli_runner, state_dir):
    """Invoke the CLI against the test state directory."""

    def _invoke(*args):
        return cli_runner.invoke(cli, ["--state-dir", str(state_dir), "--log-level", "ERROR", *args])

    return _invoke


@pytest.fixture
def conversation_file(tmp_path):
    path = tmp_path / "conversation.json"
    path.write_text(
        json.dumps(
            {
                "url": "https://chatgpt.com/c/123",
                "title": "Cache invalidation",
                "exportedAt": "2026-03-01T12:00:00Z",
                "messages": [
                    {"role": "user", "content": "When should the product cache be invalidated?"},
                    {"role": "assistant", "content": "On every price or stock update, keyed by SKU."},
                    {"role": "user", "content": "And the category pages?"},
                    {"role": "assistant", "content": "Use a short TTL; they aggregate too many SKUs."},
                ],
            }
        ),
        encoding="utf-8",
    )
    return path
