"""Task orchestrator: the only writer of ``TaskState``.

Drives one task at a time through extraction, export, budgeting and the
remote summarization call, and exposes the control surface
(``start``/``cancel``/``reset``/``get_state``). Task failures never raise
past this class; they end up in ``TaskState.status`` and ``TaskState.error``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

from chatrelay.core.budget import BudgetPipeline, estimate_tokens
from chatrelay.core.conversation import Conversation, ConversationExporter, flatten_messages
from chatrelay.core.errors import ExportFailure, ExtractionFailure, InvalidTransitionError, StateStoreError
from chatrelay.core.remote import SummarizationClient, build_handoff_prompt, redact_secrets
from chatrelay.core.task.coordinator import (
    DEFAULT_ABORT_GRACE_SECONDS,
    CallOutcome,
    CancellationToken,
    CancelReason,
    RemoteCallCoordinator,
)
from chatrelay.core.task.models import (
    ControlResponse,
    TaskRequest,
    TaskState,
    TaskStatus,
    can_transition,
)
from chatrelay.core.task.signals import clear_cancel_signal, relay_cancel_signals
from chatrelay.core.task.sync import StateSynchronizer

logger = logging.getLogger(__name__)

USER_CANCELLED_ERROR = "Cancelled by user"
EXTRACTION_FAILED_ERROR = "Failed to extract conversation: platform not supported or no messages found"
ABANDONED_ERROR = "Task abandoned: owning process exited"
TASK_ACTIVE_CODE = "TASK_ACTIVE"
NOT_OWNER_CODE = "NOT_OWNER"

ClientFactory = Callable[[Any], Any]
PipelineFactory = Callable[[int], BudgetPipeline]


def _process_alive(pid: Optional[int]) -> bool:
    if pid is None:
        return False
    if pid == os.getpid() or os.name == "nt":
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def _handoff_reason(request: TaskRequest) -> str:
    """Name the setting that keeps a request from reaching the remote model."""
    remote = request.remote
    if not request.auto_summary:
        return "auto-summary disabled"
    if remote is None or not remote.credential:
        return "no API key configured"
    if not remote.endpoint:
        return "no endpoint configured"
    return "no model configured"


class TaskOrchestrator:
    """Owns the task state, the active cancellation token and the coordinator.

    Construct one per process. ``start`` schedules the task on the running
    event loop and returns immediately; ``wait`` awaits its completion.

    Example:
        sync = StateSynchronizer.for_directory(state_dir)
        orchestrator = TaskOrchestrator(sync)
        orchestrator.attach()
        await orchestrator.start(request)
        final = await orchestrator.wait()
    """

    def __init__(
        self,
        synchronizer: StateSynchronizer,
        *,
        client_factory: ClientFactory = SummarizationClient,
        pipeline_factory: PipelineFactory = BudgetPipeline,
        abort_grace: float = DEFAULT_ABORT_GRACE_SECONDS,
        signal_dir: Optional[Path] = None,
        cancel_poll_interval: float = 0.25,
    ):
        self._sync = synchronizer
        self._client_factory = client_factory
        self._pipeline_factory = pipeline_factory
        self._abort_grace = abort_grace
        self._signal_dir = signal_dir
        self._cancel_poll_interval = cancel_poll_interval

        self._state = TaskState()
        self._token: Optional[CancellationToken] = None
        self._coordinator: Optional[RemoteCallCoordinator] = None
        self._runner: Optional["asyncio.Task[None]"] = None
        self._signal_task: Optional["asyncio.Task[None]"] = None

    # =========================================================================
    # Control surface
    # =========================================================================

    def get_state(self) -> TaskState:
        return self._state.model_copy(deep=True)

    @property
    def coordinator(self) -> Optional[RemoteCallCoordinator]:
        return self._coordinator

    def attach(self) -> TaskState:
        """Adopt the durable state left by a previous process.

        A task that was still active when its owning process exited can
        never finish, so it is moved to ``failed``.
        """
        try:
            stored = self._sync.read()
        except StateStoreError as exc:
            logger.warning("Could not read stored task state: %s", exc)
            return self.get_state()

        if stored is None:
            return self.get_state()

        self._state = stored
        if stored.is_active and not _process_alive(stored.owner_pid):
            logger.warning("Recovering abandoned task owned by pid %s", stored.owner_pid)
            self._transition(
                TaskStatus.FAILED,
                message="Task abandoned",
                error=ABANDONED_ERROR,
                log=ABANDONED_ERROR,
            )
        return self.get_state()

    async def start(self, request: TaskRequest) -> ControlResponse:
        """Begin a new task unless one is already running.

        A finished task (completed, failed or cancelled) is overwritten.
        """
        if self._state.is_active:
            return ControlResponse(
                success=False,
                state=self.get_state(),
                error=f"A task is already {self._state.status.value}",
                error_code=TASK_ACTIVE_CODE,
            )

        self._invalidate_previous()
        token = CancellationToken()
        coordinator = RemoteCallCoordinator(abort_grace=self._abort_grace)
        self._token = token
        self._coordinator = coordinator

        self._sync.begin_task()
        if self._signal_dir is not None:
            clear_cancel_signal(self._signal_dir)

        self._state = TaskState(
            sequence=self._state.sequence,
            owner_pid=os.getpid(),
            started_at=datetime.now(timezone.utc),
        )
        self._transition(TaskStatus.EXTRACTING, message="Extracting conversation", log="Task started")

        self._runner = asyncio.ensure_future(self._run(request, token, coordinator))
        self._start_signal_relay()
        return ControlResponse(success=True, state=self.get_state(), message="Task started")

    def cancel(self) -> ControlResponse:
        """Cancel the active task; a no-op when nothing is running."""
        if not self._state.is_active:
            return ControlResponse(success=True, state=self.get_state(), message="No active task")

        if self._token is None:
            return ControlResponse(
                success=False,
                state=self.get_state(),
                error=f"Task is owned by process {self._state.owner_pid}",
                error_code=NOT_OWNER_CODE,
            )

        self._token.cancel(CancelReason.USER_CANCELLED)
        self._transition(
            TaskStatus.CANCELLED,
            message="Task cancelled",
            error=USER_CANCELLED_ERROR,
            log="Task cancelled by user",
        )
        return ControlResponse(success=True, state=self.get_state(), message="Task cancelled")

    def reset(self) -> ControlResponse:
        """Return a finished task to ``idle``. Rejected while a task is running."""
        if self._state.is_active:
            return ControlResponse(
                success=False,
                state=self.get_state(),
                error="Cannot reset while a task is running; cancel it first",
                error_code=TASK_ACTIVE_CODE,
            )
        if self._state.status == TaskStatus.IDLE:
            return ControlResponse(success=True, state=self.get_state(), message="Already idle")

        self._transition(
            TaskStatus.IDLE,
            message="",
            result=None,
            filename=None,
            summary_filename=None,
            error=None,
            started_at=None,
            owner_pid=None,
            logs=[],
        )
        return ControlResponse(success=True, state=self.get_state(), message="Task reset")

    async def wait(self, timeout: Optional[float] = None) -> TaskState:
        """Wait for the current task's runner to finish and return the state."""
        runner = self._runner
        if runner is not None and not runner.done():
            await asyncio.wait({runner}, timeout=timeout)
        return self.get_state()

    async def close(self) -> None:
        """Stop background work owned by this orchestrator."""
        self._stop_signal_relay()
        if self._state.is_active and self._token is not None:
            self.cancel()
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
            await asyncio.wait({self._runner})

    # =========================================================================
    # State mutation
    # =========================================================================

    def _publish(self) -> None:
        self._state.sequence += 1
        self._state.updated_at = datetime.now(timezone.utc)
        self._sync.publish(self._state)

    def _transition(
        self,
        status: TaskStatus,
        *,
        message: Optional[str] = None,
        log: Optional[str] = None,
        **fields: Any,
    ) -> None:
        current = self._state.status
        if not can_transition(current, status):
            raise InvalidTransitionError(current.value, status.value)

        self._state.status = status
        if message is not None:
            self._state.message = message
        for name, value in fields.items():
            setattr(self._state, name, value)
        if log:
            self._state.append_log(log)
        logger.info("Task %s -> %s", current.value, status.value)
        self._publish()

    def _log(self, token: CancellationToken, text: str) -> None:
        if token is not self._token:
            return
        self._state.append_log(text)
        logger.debug("Task log: %s", text)
        # Terminal states are published once; later lines stay in memory.
        if not self._state.is_terminal:
            self._publish()

    def _update(self, token: CancellationToken, log: Optional[str] = None, **fields: Any) -> None:
        if token is not self._token or self._state.is_terminal:
            return
        for name, value in fields.items():
            setattr(self._state, name, value)
        if log:
            self._state.append_log(log)
        self._publish()

    def _advance(self, token: CancellationToken, status: TaskStatus, **kwargs: Any) -> bool:
        """Move a still-running task forward; False if it was cancelled or superseded."""
        if token is not self._token or token.is_cancelled or self._state.is_terminal:
            return False
        self._transition(status, **kwargs)
        return True

    def _settle(self, token: CancellationToken, status: TaskStatus, **kwargs: Any) -> bool:
        """Move the task to a terminal status unless it already has one."""
        if token is not self._token or self._state.is_terminal:
            logger.debug("Ignoring %s for a finished or superseded task", status.value)
            return False
        self._transition(status, **kwargs)
        return True

    def _invalidate_previous(self) -> None:
        self._stop_signal_relay()
        if self._token is not None:
            self._token.cancel(CancelReason.SUPERSEDED)
        if self._coordinator is not None:
            self._coordinator.invalidate()

    # =========================================================================
    # Cross-process cancel signals
    # =========================================================================

    def _start_signal_relay(self) -> None:
        if self._signal_dir is None:
            return
        self._signal_task = asyncio.ensure_future(
            relay_cancel_signals(self._signal_dir, lambda _payload: self.cancel(), self._cancel_poll_interval)
        )

    def _stop_signal_relay(self) -> None:
        if self._signal_task is not None and not self._signal_task.done():
            self._signal_task.cancel()
        self._signal_task = None

    # =========================================================================
    # Task runner
    # =========================================================================

    async def _run(
        self,
        request: TaskRequest,
        token: CancellationToken,
        coordinator: RemoteCallCoordinator,
    ) -> None:
        try:
            await self._run_steps(request, token, coordinator)
        except ExtractionFailure as exc:
            self._log(token, f"Extraction failed: {redact_secrets(str(exc))}")
            self._settle(token, TaskStatus.FAILED, message="Extraction failed", error=EXTRACTION_FAILED_ERROR)
        except ExportFailure as exc:
            error = redact_secrets(str(exc))
            self._settle(token, TaskStatus.FAILED, message="Export failed", error=error, log=error)
        except asyncio.CancelledError:
            self._settle(
                token,
                TaskStatus.CANCELLED,
                message="Task interrupted",
                error="Task interrupted",
                log="Task interrupted",
            )
            raise
        except Exception as exc:
            logger.exception("Task failed: %s", exc)
            error = redact_secrets(str(exc)) or type(exc).__name__
            self._settle(token, TaskStatus.FAILED, message="Task failed", error=error, log=f"Error: {error}")
        finally:
            if token is self._token:
                self._stop_signal_relay()
                self._token = None

    async def _run_steps(
        self,
        request: TaskRequest,
        token: CancellationToken,
        coordinator: RemoteCallCoordinator,
    ) -> None:
        conversation = await asyncio.to_thread(request.extractor.extract)
        if not self._advance(
            token,
            TaskStatus.EXPORTING,
            message="Exporting conversation",
            log=f"Extracted {len(conversation.messages)} messages from {conversation.platform.display_name}",
        ):
            return

        exporter = ConversationExporter(request.output_dir, request.export_format)
        export = await asyncio.to_thread(exporter.export, conversation)
        if token.is_cancelled:
            return
        self._update(token, filename=export.filename, log=f"Exported to {export.filename}")

        if not request.wants_summary:
            reason = _handoff_reason(request)
            self._settle(
                token,
                TaskStatus.COMPLETED,
                message="Exported; paste the handoff prompt into a new conversation",
                result=build_handoff_prompt(export.filename),
                log=f"Skipping remote summary ({reason}); handoff prompt ready",
            )
            return

        remote = request.remote
        assert remote is not None
        self._log(token, f"Processing file: {export.filename}")
        content, truncated = self._budget(conversation, request, token)
        self._log(token, f"Processed content: {len(content)} chars, ~{estimate_tokens(content)} tokens")
        if truncated:
            self._log(token, f"Warning: content truncated to fit {request.max_tokens} tokens")

        if not self._advance(
            token,
            TaskStatus.CALLING_REMOTE,
            message="Generating context snapshot",
            log=f"Endpoint: {remote.completions_url}",
        ):
            return
        self._log(token, f"Model: {remote.model}")
        self._log(token, f"Timeout: {request.timeout_ms / 1000:g}s")
        self._log(token, "Sending request...")

        client = self._client_factory(remote)
        result = await coordinator.run(lambda: client.summarize(content), token, request.timeout_ms)
        elapsed = f"{result.elapsed:.1f}s"

        if result.outcome == CallOutcome.SUCCESS:
            summary = result.value
            self._log(token, f"Summary received in {elapsed} ({len(summary)} chars)")
            summary_filename = None
            try:
                path = await asyncio.to_thread(exporter.write_summary, export.filename, summary)
                summary_filename = path.name
            except ExportFailure as exc:
                logger.warning("Failed to write summary file: %s", exc)
                self._log(token, f"Warning: could not write summary file: {exc}")
            self._settle(
                token,
                TaskStatus.COMPLETED,
                message="Context snapshot ready",
                result=summary,
                summary_filename=summary_filename,
                log="Task completed successfully",
            )
        elif result.outcome == CallOutcome.TIMEOUT:
            error = f"Request timed out after {request.timeout_ms / 1000:g}s"
            self._settle(
                token,
                TaskStatus.CANCELLED,
                message="Request timed out",
                error=error,
                log=f"Request timed out after {elapsed}",
            )
        elif result.outcome == CallOutcome.USER_CANCELLED:
            self._log(token, f"Request cancelled after {elapsed}")
            self._settle(token, TaskStatus.CANCELLED, message="Task cancelled", error=USER_CANCELLED_ERROR)
        elif result.outcome == CallOutcome.SUPERSEDED:
            logger.info("Remote call superseded by a newer task after %s", elapsed)
        else:
            error = redact_secrets(str(result.error), known_secret=remote.credential) or "Remote call failed"
            self._settle(
                token,
                TaskStatus.FAILED,
                message="Remote call failed",
                error=error,
                log=f"Error after {elapsed}: {error}",
            )

    def _budget(
        self,
        conversation: Conversation,
        request: TaskRequest,
        token: CancellationToken,
    ) -> Tuple[str, bool]:
        try:
            result = self._pipeline_factory(request.max_tokens).run(conversation)
        except Exception as exc:
            logger.warning("Budgeting failed, sending unbudgeted content: %s", exc)
            self._log(token, f"Warning: budgeting failed ({exc}); sending full content")
            return flatten_messages(conversation.messages), False
        return result.content, result.truncated
