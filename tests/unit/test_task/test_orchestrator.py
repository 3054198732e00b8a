"""Tests for TaskOrchestrator.

Tests cover:
- Completed task with result, summary file and logs
- Remote deadline expiry ends as cancelled with a timeout error
- User cancel during the remote call
- Rejection of concurrent start and of reset while active
- Manual handoff without a remote summary
- Extraction, export and remote failures
- Budgeting failures degrade to unbudgeted content
- A restarted task is not affected by its predecessor's runner
- A cancelled runner does not overwrite a newer task in the shared state slot
- Cancel after a task finished leaves its state untouched
- Manual handoff names the missing remote setting
- Recovery of tasks abandoned by their owning process
- Cross-process cancel through the signal file
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from chatrelay.core.conversation import Conversation, StaticExtractor, flatten_messages
from chatrelay.core.errors import BudgetingFailure, ExportFailure, ExtractionFailure, RemoteCallFailure
from chatrelay.core.remote import RemoteConfig
from chatrelay.core.task import StateStore, StateSynchronizer, TaskOrchestrator, TaskRequest, TaskState, TaskStatus
from chatrelay.core.task.orchestrator import (
    ABANDONED_ERROR,
    EXTRACTION_FAILED_ERROR,
    NOT_OWNER_CODE,
    TASK_ACTIVE_CODE,
    USER_CANCELLED_ERROR,
)
from chatrelay.core.task.signals import cancel_signal_path, signal_dir_for, write_cancel_signal
from chatrelay.core.task.sync import TASK_STATE_KEY

_ENDPOINT = "https://api.example.test/v1"


@pytest.fixture
def synchronizer(state_dir):
    return StateSynchronizer.for_directory(state_dir)


@pytest.fixture
def make_orchestrator(synchronizer):
    def factory(*clients, **kwargs):
        remaining = list(clients)
        kwargs.setdefault("abort_grace", 0.5)
        return TaskOrchestrator(synchronizer, client_factory=lambda _remote: remaining.pop(0), **kwargs)

    return factory


@pytest.fixture
def make_request(conversation, output_dir, remote_config):
    def factory(**overrides):
        overrides.setdefault("extractor", StaticExtractor(conversation))
        overrides.setdefault("output_dir", output_dir)
        overrides.setdefault("remote", remote_config)
        return TaskRequest(**overrides)

    return factory


async def _wait_for_status(orchestrator, status, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while orchestrator.get_state().status != status:
        if loop.time() > deadline:
            raise AssertionError(f"Task never reached {status.value}: {orchestrator.get_state().status.value}")
        await asyncio.sleep(0.005)


def _logs_contain(state, text):
    return any(text in entry for entry in state.logs)


class _UncancellableClient:
    """Summarization client that keeps running for ``hold`` seconds despite cancellation."""

    def __init__(self, hold):
        self.hold = hold
        self.released = asyncio.Event()

    async def summarize(self, content):
        loop = asyncio.get_running_loop()
        until = loop.time() + self.hold
        while loop.time() < until:
            try:
                await asyncio.sleep(until - loop.time())
            except asyncio.CancelledError:
                continue
        self.released.set()
        return "too late"



class TestCompletedTask:
    @pytest.mark.asyncio
    async def test_completes_with_summary(self, make_orchestrator, make_request, fake_client_class, output_dir):
        client = fake_client_class(reply="## Core goal\nFix uploads")
        orchestrator = make_orchestrator(client)

        response = await orchestrator.start(make_request())
        state = await orchestrator.wait(timeout=5)

        assert response.success
        assert state.status == TaskStatus.COMPLETED
        assert state.result == "## Core goal\nFix uploads"
        assert state.error is None
        assert _logs_contain(state, "Task completed successfully")
        assert state.filename == "Debugging session_2026-03-01.md"
        assert state.summary_filename == "Debugging session_2026-03-01_summary.md"
        assert (output_dir / state.filename).exists()
        assert "Fix uploads" in (output_dir / state.summary_filename).read_text()
        assert client.calls[0].startswith("[Human]: Why does the upload handler")

    @pytest.mark.asyncio
    async def test_published_states_are_ordered(self, make_orchestrator, make_request, fake_client_class, synchronizer):
        received = []
        synchronizer.subscribe(received.append)
        orchestrator = make_orchestrator(fake_client_class())

        await orchestrator.start(make_request())
        final = await orchestrator.wait(timeout=5)

        sequences = [state.sequence for state in received]
        assert sequences == sorted(sequences)
        assert len(set(sequences)) == len(sequences)
        statuses = [state.status for state in received]
        assert statuses[0] == TaskStatus.EXTRACTING
        assert TaskStatus.CALLING_REMOTE in statuses
        assert synchronizer.read() == final
        assert [event.sequence for event in synchronizer.events.read()] == sequences

    @pytest.mark.asyncio
    async def test_manual_handoff_without_summary(self, make_orchestrator, make_request, fake_client_class):
        client = fake_client_class()
        orchestrator = make_orchestrator(client)

        await orchestrator.start(make_request(auto_summary=False))
        state = await orchestrator.wait(timeout=5)

        assert state.status == TaskStatus.COMPLETED
        assert state.filename in state.result
        assert state.summary_filename is None
        assert client.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"auto_summary": False}, "auto-summary disabled"),
            ({"remote": None}, "no API key configured"),
            ({"remote": RemoteConfig(endpoint=_ENDPOINT, credential="", model="m")}, "no API key configured"),
            ({"remote": RemoteConfig(endpoint="", credential="sk-key", model="m")}, "no endpoint configured"),
            ({"remote": RemoteConfig(endpoint=_ENDPOINT, credential="sk-key", model="")}, "no model configured"),
        ],
    )
    async def test_handoff_names_missing_setting(self, make_orchestrator, make_request, overrides, reason):
        orchestrator = make_orchestrator()

        await orchestrator.start(make_request(**overrides))
        state = await orchestrator.wait(timeout=5)

        assert state.status == TaskStatus.COMPLETED
        assert _logs_contain(state, f"Skipping remote summary ({reason})")

    @pytest.mark.asyncio
    async def test_budgeting_failure_sends_full_content(
        self, make_orchestrator, make_request, fake_client_class, conversation
    ):
        client = fake_client_class()
        pipeline = MagicMock()
        pipeline.run.side_effect = BudgetingFailure("unexpected input", stage="input")
        orchestrator = make_orchestrator(client, pipeline_factory=lambda _max_tokens: pipeline)

        await orchestrator.start(make_request())
        state = await orchestrator.wait(timeout=5)

        assert state.status == TaskStatus.COMPLETED
        assert client.calls == [flatten_messages(conversation.messages)]
        assert _logs_contain(state, "budgeting failed")


class TestTimeoutAndCancel:
    @pytest.mark.asyncio
    async def test_deadline_expiry_cancels_task(self, make_orchestrator, make_request, fake_client_class):
        client = fake_client_class(delay=5)
        orchestrator = make_orchestrator(client)

        await orchestrator.start(make_request(timeout_ms=1))
        state = await orchestrator.wait(timeout=5)

        assert state.status == TaskStatus.CANCELLED
        assert "timed out" in state.error
        assert state.error != USER_CANCELLED_ERROR
        assert client.cancelled
        assert not orchestrator.coordinator.has_pending_timer

    @pytest.mark.asyncio
    async def test_user_cancel_during_remote_call(self, make_orchestrator, make_request, fake_client_class):
        client = fake_client_class(delay=5)
        orchestrator = make_orchestrator(client)
        await orchestrator.start(make_request(timeout_ms=100))
        await _wait_for_status(orchestrator, TaskStatus.CALLING_REMOTE)

        response = orchestrator.cancel()

        assert response.success
        assert response.state.status == TaskStatus.CANCELLED
        assert response.state.error == USER_CANCELLED_ERROR

        state = await orchestrator.wait(timeout=5)
        assert client.cancelled
        assert not orchestrator.coordinator.has_pending_timer

        # The original deadline passes without side effects.
        await asyncio.sleep(0.15)
        later = orchestrator.get_state()
        assert later.sequence == state.sequence
        assert later.status == TaskStatus.CANCELLED
        assert later.error == USER_CANCELLED_ERROR

    @pytest.mark.asyncio
    async def test_cancel_without_task_is_noop(self, make_orchestrator):
        orchestrator = make_orchestrator()

        response = orchestrator.cancel()

        assert response.success
        assert response.message == "No active task"
        assert response.state.status == TaskStatus.IDLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "client_kwargs, cancel_first, expected",
        [
            ({}, False, TaskStatus.COMPLETED),
            ({"error": RemoteCallFailure("upstream unavailable", status_code=503)}, False, TaskStatus.FAILED),
            ({"delay": 5}, True, TaskStatus.CANCELLED),
        ],
    )
    async def test_cancel_after_finish_is_noop(
        self, make_orchestrator, make_request, fake_client_class, synchronizer, client_kwargs, cancel_first, expected
    ):
        orchestrator = make_orchestrator(fake_client_class(**client_kwargs))
        await orchestrator.start(make_request(timeout_ms=5000))
        if cancel_first:
            await _wait_for_status(orchestrator, TaskStatus.CALLING_REMOTE)
            orchestrator.cancel()
        finished = await orchestrator.wait(timeout=5)

        response = orchestrator.cancel()

        assert finished.status == expected
        assert response.success
        assert response.message == "No active task"
        assert response.state.status == expected
        assert response.state.sequence == finished.sequence
        assert response.state.error == finished.error
        assert synchronizer.read().sequence == finished.sequence

    @pytest.mark.asyncio
    async def test_cancel_signal_from_another_process(
        self, make_orchestrator, make_request, fake_client_class, state_dir
    ):
        signal_dir = signal_dir_for(state_dir)
        client = fake_client_class(delay=5)
        orchestrator = make_orchestrator(client, signal_dir=signal_dir, cancel_poll_interval=0.01)
        await orchestrator.start(make_request(timeout_ms=5000))
        await _wait_for_status(orchestrator, TaskStatus.CALLING_REMOTE)

        write_cancel_signal(signal_dir)
        await _wait_for_status(orchestrator, TaskStatus.CANCELLED)
        state = await orchestrator.wait(timeout=5)

        assert state.error == USER_CANCELLED_ERROR
        assert not cancel_signal_path(signal_dir).exists()
        await orchestrator.close()


class TestControlRejections:
    @pytest.mark.asyncio
    async def test_start_rejected_while_active(self, make_orchestrator, make_request, fake_client_class):
        orchestrator = make_orchestrator(fake_client_class(delay=5))
        await orchestrator.start(make_request(timeout_ms=5000))

        response = await orchestrator.start(make_request())

        assert not response.success
        assert response.error_code == TASK_ACTIVE_CODE
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_reset_rejected_while_active(self, make_orchestrator, make_request, fake_client_class):
        orchestrator = make_orchestrator(fake_client_class(delay=5))
        await orchestrator.start(make_request(timeout_ms=5000))

        response = orchestrator.reset()

        assert not response.success
        assert response.error_code == TASK_ACTIVE_CODE
        assert orchestrator.get_state().is_active
        await orchestrator.close()

    @pytest.mark.asyncio
    async def test_reset_after_completion(self, make_orchestrator, make_request, fake_client_class):
        orchestrator = make_orchestrator(fake_client_class())
        await orchestrator.start(make_request())
        finished = await orchestrator.wait(timeout=5)

        response = orchestrator.reset()

        assert response.success
        state = orchestrator.get_state()
        assert state.status == TaskStatus.IDLE
        assert state.result is None
        assert state.logs == []
        assert state.sequence == finished.sequence + 1

    @pytest.mark.asyncio
    async def test_start_after_terminal_overwrites(self, make_orchestrator, make_request, fake_client_class):
        orchestrator = make_orchestrator(fake_client_class(reply="first"), fake_client_class(reply="second"))
        await orchestrator.start(make_request())
        first = await orchestrator.wait(timeout=5)

        response = await orchestrator.start(make_request())
        second = await orchestrator.wait(timeout=5)

        assert response.success
        assert second.result == "second"
        assert second.sequence > first.sequence
        assert second.started_at >= first.started_at


class TestFailures:
    @pytest.mark.asyncio
    async def test_extraction_failure(self, make_orchestrator, make_request, fake_client_class):
        client = fake_client_class()
        orchestrator = make_orchestrator(client)
        empty = Conversation.create([])

        await orchestrator.start(make_request(extractor=StaticExtractor(empty)))
        state = await orchestrator.wait(timeout=5)

        assert state.status == TaskStatus.FAILED
        assert state.error == EXTRACTION_FAILED_ERROR
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_extractor_error_from_source(self, make_orchestrator, make_request):
        extractor = MagicMock()
        extractor.extract.side_effect = ExtractionFailure("page not supported", source="https://example.test")
        orchestrator = make_orchestrator()

        await orchestrator.start(make_request(extractor=extractor))
        state = await orchestrator.wait(timeout=5)

        assert state.status == TaskStatus.FAILED
        assert state.error == EXTRACTION_FAILED_ERROR

    @pytest.mark.asyncio
    async def test_export_failure(self, make_orchestrator, make_request, tmp_path):
        blocker = tmp_path / "not-a-directory"
        blocker.write_text("")
        orchestrator = make_orchestrator()

        await orchestrator.start(make_request(output_dir=blocker))
        state = await orchestrator.wait(timeout=5)

        assert state.status == TaskStatus.FAILED
        assert "Export failed" in state.error

    @pytest.mark.asyncio
    async def test_remote_failure_is_redacted(self, make_orchestrator, make_request, fake_client_class, remote_config):
        error = RemoteCallFailure(f"Invalid API key {remote_config.credential}", status_code=401)
        orchestrator = make_orchestrator(fake_client_class(error=error))

        await orchestrator.start(make_request())
        state = await orchestrator.wait(timeout=5)

        assert state.status == TaskStatus.FAILED
        assert "Invalid API key" in state.error
        assert remote_config.credential not in state.error
        assert all(remote_config.credential not in entry for entry in state.logs)

    @pytest.mark.asyncio
    async def test_summary_write_failure_still_completes(self, make_orchestrator, make_request, fake_client_class):
        orchestrator = make_orchestrator(fake_client_class(reply="snapshot"))

        with patch(
            "chatrelay.core.conversation.export.ConversationExporter.write_summary",
            side_effect=ExportFailure("disk full"),
        ):
            await orchestrator.start(make_request())
            state = await orchestrator.wait(timeout=5)

        assert state.status == TaskStatus.COMPLETED
        assert state.result == "snapshot"
        assert state.summary_filename is None
        assert _logs_contain(state, "could not write summary file")


class TestGenerations:
    @pytest.mark.asyncio
    async def test_restart_ignores_previous_runner(self, make_orchestrator, make_request, fake_client_class):
        slow = fake_client_class(delay=5)
        fast = fake_client_class(reply="fresh")
        orchestrator = make_orchestrator(slow, fast)
        await orchestrator.start(make_request(timeout_ms=5000))
        await _wait_for_status(orchestrator, TaskStatus.CALLING_REMOTE)

        orchestrator.cancel()
        response = await orchestrator.start(make_request())
        state = await orchestrator.wait(timeout=5)
        await asyncio.sleep(0.05)

        assert response.success
        assert state.status == TaskStatus.COMPLETED
        assert state.result == "fresh"
        assert orchestrator.get_state().status == TaskStatus.COMPLETED
        assert not _logs_contain(orchestrator.get_state(), "Request cancelled")

    @pytest.mark.asyncio
    async def test_cancelled_runner_leaves_newer_task_in_shared_slot(
        self, make_orchestrator, make_request, fake_client_class, state_dir
    ):
        stubborn = _UncancellableClient(hold=1.0)
        first = make_orchestrator(stubborn, abort_grace=0.3)
        await first.start(make_request(timeout_ms=5000))
        await _wait_for_status(first, TaskStatus.CALLING_REMOTE)
        first.cancel()

        second = TaskOrchestrator(
            StateSynchronizer.for_directory(state_dir),
            client_factory=lambda _remote: fake_client_class(delay=5),
        )
        second.attach()
        assert (await second.start(make_request(timeout_ms=5000))).success
        await _wait_for_status(second, TaskStatus.CALLING_REMOTE)

        cancelled = await first.wait(timeout=3)

        assert _logs_contain(cancelled, "Request cancelled")
        stored = StateStore(state_dir).get(TASK_STATE_KEY)
        assert stored.status == TaskStatus.CALLING_REMOTE
        assert stored.sequence == second.get_state().sequence

        second.cancel()
        await second.wait(timeout=3)
        await second.close()
        await stubborn.released.wait()


class TestAttach:
    def test_attach_marks_abandoned_task_failed(self, synchronizer, state_dir):
        StateStore(state_dir).set(
            TASK_STATE_KEY,
            TaskState(status=TaskStatus.CALLING_REMOTE, owner_pid=999999, sequence=7),
        )
        orchestrator = TaskOrchestrator(synchronizer)

        with patch("chatrelay.core.task.orchestrator._process_alive", return_value=False):
            state = orchestrator.attach()

        assert state.status == TaskStatus.FAILED
        assert state.error == ABANDONED_ERROR
        assert state.sequence == 8
        assert synchronizer.read().status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_attach_to_live_foreign_task(self, synchronizer, state_dir, make_request):
        StateStore(state_dir).set(
            TASK_STATE_KEY,
            TaskState(status=TaskStatus.EXPORTING, owner_pid=4242, sequence=3),
        )
        orchestrator = TaskOrchestrator(synchronizer)

        with patch("chatrelay.core.task.orchestrator._process_alive", return_value=True):
            state = orchestrator.attach()

        assert state.status == TaskStatus.EXPORTING
        assert orchestrator.cancel().error_code == NOT_OWNER_CODE
        assert (await orchestrator.start(make_request())).error_code == TASK_ACTIVE_CODE

    def test_attach_with_no_stored_state(self, synchronizer):
        assert TaskOrchestrator(synchronizer).attach().status == TaskStatus.IDLE
