"""Task lifecycle: state model, call coordination, synchronization and orchestration."""

from chatrelay.core.task.coordinator import (
    CallOutcome,
    CallResult,
    CancellationToken,
    CancelReason,
    RemoteCallCoordinator,
)
from chatrelay.core.task.models import (
    MAX_LOG_ENTRIES,
    TERMINAL_STATUSES,
    ControlResponse,
    TaskRequest,
    TaskState,
    TaskStatus,
    can_transition,
)
from chatrelay.core.task.orchestrator import TaskOrchestrator
from chatrelay.core.task.sync import EventStream, StateStore, StateSynchronizer, TaskObserver

__all__ = [
    "MAX_LOG_ENTRIES",
    "TERMINAL_STATUSES",
    "CallOutcome",
    "CallResult",
    "CancelReason",
    "CancellationToken",
    "ControlResponse",
    "EventStream",
    "RemoteCallCoordinator",
    "StateStore",
    "StateSynchronizer",
    "TaskObserver",
    "TaskOrchestrator",
    "TaskRequest",
    "TaskState",
    "TaskStatus",
    "can_transition",
]
