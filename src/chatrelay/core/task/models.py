"""Task state model and control-surface types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

from chatrelay.core.budget.constants import DEFAULT_MAX_TOKENS

if TYPE_CHECKING:
    from chatrelay.core.conversation.extractors import ConversationExtractor
    from chatrelay.core.remote.models import RemoteConfig

# Newest log entries kept on a TaskState; older ones are evicted first.
MAX_LOG_ENTRIES = 50

DEFAULT_TIMEOUT_MS = 60000


class TaskStatus(str, Enum):
    """Lifecycle status of the single relay task."""

    IDLE = "idle"
    EXTRACTING = "extracting"
    EXPORTING = "exporting"
    CALLING_REMOTE = "calling_remote"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        """True while a task is in flight."""
        return self is not TaskStatus.IDLE and not self.is_terminal


TERMINAL_STATUSES: FrozenSet[TaskStatus] = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)

_FROM_TERMINAL = frozenset({TaskStatus.IDLE, TaskStatus.EXTRACTING})

ALLOWED_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.IDLE: frozenset({TaskStatus.EXTRACTING}),
    TaskStatus.EXTRACTING: frozenset({TaskStatus.EXPORTING, TaskStatus.FAILED, TaskStatus.CANCELLED}),
    TaskStatus.EXPORTING: frozenset(
        {TaskStatus.CALLING_REMOTE, TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.CALLING_REMOTE: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: _FROM_TERMINAL,
    TaskStatus.FAILED: _FROM_TERMINAL,
    TaskStatus.CANCELLED: _FROM_TERMINAL,
}


def can_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[from_status]


def format_log_entry(text: str, now: Optional[datetime] = None) -> str:
    """``[HH:MM:SS] text`` in local time."""
    now = now or datetime.now()
    return f"[{now.strftime('%H:%M:%S')}] {text}"


class TaskState(BaseModel):
    """The single canonical record of in-flight or last-finished work.

    Only the orchestrator mutates it; everything else receives copies.
    """

    status: TaskStatus = Field(default=TaskStatus.IDLE, description="Current lifecycle status")
    message: str = Field(default="", description="Human-readable current step")
    result: Optional[str] = Field(None, description="Produced summary or handoff prompt (completed only)")
    filename: Optional[str] = Field(None, description="Exported conversation file name")
    summary_filename: Optional[str] = Field(None, description="Written summary file name")
    error: Optional[str] = Field(None, description="Failure description (failed/cancelled only)")
    started_at: Optional[datetime] = Field(None, description="When the current task started")
    updated_at: Optional[datetime] = Field(None, description="When this state was last published")
    logs: List[str] = Field(default_factory=list, description="Newest-last timestamped log lines")
    owner_pid: Optional[int] = Field(None, description="Process running the task")
    sequence: int = Field(default=0, ge=0, description="Incremented on every published change")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def append_log(self, text: str, now: Optional[datetime] = None) -> str:
        """Append a timestamped entry, evicting the oldest beyond the cap."""
        entry = format_log_entry(text, now)
        self.logs.append(entry)
        overflow = len(self.logs) - MAX_LOG_ENTRIES
        if overflow > 0:
            del self.logs[:overflow]
        return entry


@dataclass
class TaskRequest:
    """Everything one task needs, supplied by the caller at start.

    Attributes:
        extractor: Source of the conversation
        output_dir: Where the export and summary are written
        remote: Summarization endpoint; None means manual handoff
        export_format: markdown, json or text
        timeout_ms: Deadline for the remote call
        max_tokens: Budget for the content sent to the remote model
        auto_summary: Request a summary when a remote endpoint is configured
    """

    extractor: "ConversationExtractor"
    output_dir: Path
    remote: Optional["RemoteConfig"] = None
    export_format: str = "markdown"
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_tokens: int = DEFAULT_MAX_TOKENS
    auto_summary: bool = True

    @property
    def wants_summary(self) -> bool:
        return self.auto_summary and self.remote is not None and self.remote.is_configured


@dataclass
class ControlResponse:
    """Outcome of a control-surface command. Never raised, always returned."""

    success: bool
    state: Optional[TaskState] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    details: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "error_code": self.error_code,
            "state": self.state.model_dump(mode="json") if self.state else None,
            **({"details": self.details} if self.details else {}),
        }
