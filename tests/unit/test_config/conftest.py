"""Fixtures isolating config loading from the real home directory and environment."""

import logging
import os

import pytest


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Point HOME and the working directory at empty temp dirs and clear CHATRELAY_* vars."""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    for name in list(os.environ):
        if name.startswith("CHATRELAY_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.chdir(work)
    return work


@pytest.fixture
def restore_chatrelay_logger():
    logger = logging.getLogger("chatrelay")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)
