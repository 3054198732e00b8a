"""Cancel-signal file protocol between the CLI and a running orchestrator.

The ``cancel`` command (writer) and the orchestrator process (consumer)
communicate through a well-known file:

    {state_dir}/signals/cancel.signal

The orchestrator polls for the file only while a task is active and deletes
it when consumed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

CANCEL_SIGNAL_FILENAME = "cancel.signal"


def signal_dir_for(state_dir: Path) -> Path:
    """Return the canonical signal directory for a state directory."""
    return Path(state_dir) / "signals"


def cancel_signal_path(signal_dir: Path) -> Path:
    return Path(signal_dir) / CANCEL_SIGNAL_FILENAME


def write_cancel_signal(signal_dir: Path, requested_by: str = "chatrelay-cli") -> Path:
    """Write a cancel signal file.

    Args:
        signal_dir: Directory watched by the orchestrator.
        requested_by: Identifier of the component requesting the cancel.

    Returns:
        Path to the written signal file.
    """
    signal_dir = Path(signal_dir)
    signal_dir.mkdir(parents=True, exist_ok=True)

    sig_file = cancel_signal_path(signal_dir)
    payload = {
        "requested_at": datetime.now(timezone.utc).isoformat(),
        "requested_by": requested_by,
        "reason": "user_cancelled",
    }
    sig_file.write_text(json.dumps(payload, indent=2))
    return sig_file


def consume_cancel_signal(signal_dir: Path) -> Optional[Dict[str, Any]]:
    """Remove a pending cancel signal and return its payload, if any."""
    sig_file = cancel_signal_path(signal_dir)
    try:
        raw = sig_file.read_text()
    except FileNotFoundError:
        return None
    try:
        sig_file.unlink()
    except FileNotFoundError:
        pass

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        payload = {}
    return payload if isinstance(payload, dict) else {}


def clear_cancel_signal(signal_dir: Path) -> bool:
    """Delete a stale signal. Returns True if one was present."""
    try:
        cancel_signal_path(signal_dir).unlink()
        return True
    except FileNotFoundError:
        return False


async def relay_cancel_signals(
    signal_dir: Path,
    on_cancel: Callable[[Dict[str, Any]], None],
    interval: float = 0.25,
) -> None:
    """Poll for cancel signals and forward each one to ``on_cancel``.

    Runs until cancelled by the caller.
    """
    while True:
        payload = consume_cancel_signal(signal_dir)
        if payload is not None:
            logger.info("Cancel signal received from %s", payload.get("requested_by", "unknown"))
            on_cancel(payload)
        await asyncio.sleep(interval)
