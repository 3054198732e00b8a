"""State synchronization: durable slot, event stream and observers.

The orchestrator hands every new ``TaskState`` to ``StateSynchronizer.publish``,
which overwrites the durable slot and then notifies listeners. Processes that
attach later read the slot once and poll it until the task is terminal.

Storage layout under the state directory::

    task_state.json      latest TaskState (overwritten)
    .task_state.lock     lock for the slot
    events.jsonl         one event per published change, reset at task start
    .events.lock         lock for the event stream
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from filelock import FileLock, Timeout
from pydantic import BaseModel, Field, ValidationError

from chatrelay.core.errors import StateStoreError
from chatrelay.core.task.models import TaskState

logger = logging.getLogger(__name__)

# Maximum seconds to wait for a file lock
LOCK_ACQUISITION_TIMEOUT = 5

TASK_STATE_KEY = "task_state"
EVENTS_FILENAME = "events.jsonl"

StateListener = Callable[[TaskState], None]


def sanitize_key(key: str) -> str:
    """Restrict a slot key to characters safe for a file name."""
    return "".join(c for c in key if c.isalnum() or c in "-_") or TASK_STATE_KEY


class StateStore:
    """File-backed key/value slot holding one ``TaskState`` per key.

    Writes are atomic (temp file + fsync + rename) and serialized with a
    file lock; the last write wins.
    """

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)

    def _ensure_directory(self) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.state_dir / f"{sanitize_key(key)}.json"

    def _lock_for(self, key: str) -> FileLock:
        return FileLock(self.state_dir / f".{sanitize_key(key)}.lock", timeout=LOCK_ACQUISITION_TIMEOUT)

    def set(self, key: str, state: TaskState) -> None:
        """Overwrite the slot for ``key``.

        Raises:
            StateStoreError: If the lock could not be acquired or the write failed
        """
        self._ensure_directory()
        path = self.path_for(key)
        data = state.model_dump(mode="json")
        try:
            with self._lock_for(key):
                fd, temp_path = tempfile.mkstemp(dir=self.state_dir, prefix=f".{path.stem}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w") as f:
                        json.dump(data, f, indent=2)
                        f.flush()
                        os.fsync(f.fileno())
                    os.replace(temp_path, path)
                except Exception:
                    try:
                        os.unlink(temp_path)
                    except OSError:
                        pass
                    raise
        except Timeout as exc:
            raise StateStoreError(f"Timed out waiting for state lock for {key}", path=str(path)) from exc
        except OSError as exc:
            raise StateStoreError(f"Failed to write state for {key}: {exc}", path=str(path)) from exc

    def get(self, key: str) -> Optional[TaskState]:
        """Read the slot for ``key``; None if absent or unreadable.

        Raises:
            StateStoreError: If the lock could not be acquired
        """
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            with self._lock_for(key):
                if not path.exists():
                    return None
                try:
                    return TaskState.model_validate(json.loads(path.read_text()))
                except (json.JSONDecodeError, ValidationError, OSError) as exc:
                    logger.warning("Failed to load task state from %s: %s", path, exc)
                    return None
        except Timeout as exc:
            raise StateStoreError(f"Timed out waiting for state lock for {key}", path=str(path)) from exc


class TaskEvent(BaseModel):
    """One published change, as written to the event stream."""

    sequence: int = Field(..., ge=0, description="Sequence of the published state")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    state: TaskState


class EventStream:
    """Append-only JSONL stream of published states for cross-process listeners.

    Storage path: {state_dir}/events.jsonl
    Lock file: {state_dir}/.events.lock
    """

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)
        self.path = self.state_dir / EVENTS_FILENAME
        self.lock_path = self.state_dir / ".events.lock"

    def _acquire_lock(self) -> FileLock:
        return FileLock(self.lock_path, timeout=LOCK_ACQUISITION_TIMEOUT)

    def reset(self) -> None:
        """Truncate the stream; called when a new task starts."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        with self._acquire_lock():
            self.path.write_text("")

    def publish(self, state: TaskState) -> TaskEvent:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        event = TaskEvent(sequence=state.sequence, state=state)
        with self._acquire_lock():
            with open(self.path, "a") as f:
                f.write(event.model_dump_json() + "\n")
        return event

    def read(self, since_sequence: int = 0) -> List[TaskEvent]:
        """Events with a sequence greater than ``since_sequence``, oldest first."""
        if not self.path.exists():
            return []
        events: List[TaskEvent] = []
        with self._acquire_lock():
            lines = self.path.read_text().splitlines()
        for line in lines:
            if not line.strip():
                continue
            try:
                event = TaskEvent.model_validate_json(line)
            except ValidationError as exc:
                logger.warning("Skipping malformed event line: %s", exc)
                continue
            if event.sequence > since_sequence:
                events.append(event)
        return events


class StateSynchronizer:
    """Mirrors orchestrator state to the durable slot and to listeners.

    Delivery to listeners is best-effort: a failing listener or event write
    is logged and never affects the task. The durable slot is written first,
    so it always holds the latest state a listener has been told about.
    """

    def __init__(self, store: StateStore, events: Optional[EventStream] = None, key: str = TASK_STATE_KEY):
        self.store = store
        self.events = events
        self.key = key
        self._listeners: List[StateListener] = []

    @classmethod
    def for_directory(cls, state_dir: Path) -> "StateSynchronizer":
        return cls(StateStore(state_dir), EventStream(state_dir))

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def begin_task(self) -> None:
        if self.events is not None:
            try:
                self.events.reset()
            except (Timeout, OSError) as exc:
                logger.warning("Failed to reset event stream: %s", exc)

    def publish(self, state: TaskState) -> None:
        snapshot = state.model_copy(deep=True)
        try:
            self.store.set(self.key, snapshot)
        except StateStoreError as exc:
            logger.error("Failed to persist task state: %s", exc)

        if self.events is not None:
            try:
                self.events.publish(snapshot)
            except (Timeout, OSError) as exc:
                logger.warning("Failed to append task event: %s", exc)

        for listener in list(self._listeners):
            try:
                listener(snapshot.model_copy(deep=True))
            except Exception:
                logger.exception("Task state listener raised")

    def read(self) -> Optional[TaskState]:
        return self.store.get(self.key)


class TaskObserver:
    """Read-only view of the durable slot for processes that attach late."""

    def __init__(self, store: StateStore, key: str = TASK_STATE_KEY):
        self.store = store
        self.key = key

    def read(self) -> TaskState:
        """Current state; an absent slot reads as idle."""
        return self.store.get(self.key) or TaskState()

    async def follow(
        self,
        interval: float = 0.5,
        on_update: Optional[StateListener] = None,
        max_wait: Optional[float] = None,
    ) -> TaskState:
        """Read once, then poll until the task is no longer active.

        ``on_update`` is called for the first read and for every state with a
        new sequence number.

        Args:
            interval: Seconds between polls
            on_update: Called with each newly observed state
            max_wait: Stop polling after this many seconds, even if active

        Returns:
            The last state observed
        """
        deadline = None if max_wait is None else time.monotonic() + max_wait
        state = self.read()
        if on_update is not None:
            on_update(state)

        last_sequence = state.sequence
        while state.is_active:
            if deadline is not None and time.monotonic() >= deadline:
                break
            await asyncio.sleep(interval)
            state = self.read()
            if state.sequence != last_sequence:
                last_sequence = state.sequence
                if on_update is not None:
                    on_update(state)
        return state
