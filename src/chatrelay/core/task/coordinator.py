"""Cancellation and deadline coordination for one outbound call.

``RemoteCallCoordinator.run`` races the call against its cancellation token.
A deadline timer cancels the token with reason ``TIMEOUT``; the user cancels
it with ``USER_CANCELLED``; a newer task cancels it with ``SUPERSEDED``.
Exactly one outcome is reported per run and the timer is always cleared.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from chatrelay.core.errors import ChatRelayError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ABORT_GRACE_SECONDS = 2.0


class CancelReason(str, Enum):
    TIMEOUT = "timeout"
    USER_CANCELLED = "user_cancelled"
    SUPERSEDED = "superseded"


class CancellationToken:
    """One-shot cancellation handle owned by a single task.

    The first ``cancel`` wins; later calls neither change the reason nor
    wake waiters again.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[CancelReason] = None

    @property
    def is_cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[CancelReason]:
        return self._reason

    def cancel(self, reason: CancelReason) -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        if self._reason is not None:
            return False
        self._reason = reason
        self._event.set()
        return True

    async def wait(self) -> CancelReason:
        await self._event.wait()
        assert self._reason is not None
        return self._reason

    def __repr__(self) -> str:
        return f"CancellationToken(reason={self._reason.value if self._reason else None})"


class CallOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    USER_CANCELLED = "user_cancelled"
    SUPERSEDED = "superseded"


_OUTCOME_FOR_REASON = {
    CancelReason.TIMEOUT: CallOutcome.TIMEOUT,
    CancelReason.USER_CANCELLED: CallOutcome.USER_CANCELLED,
    CancelReason.SUPERSEDED: CallOutcome.SUPERSEDED,
}


@dataclass
class CallResult(Generic[T]):
    """Single resolved outcome of a coordinated call."""

    outcome: CallOutcome
    value: Optional[T] = None
    error: Optional[BaseException] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.outcome == CallOutcome.SUCCESS


def _consume_result(task: "asyncio.Future[Any]") -> None:
    # Abandoned calls may still finish with an error after the grace period.
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Abandoned call finished with %r", task.exception())


class RemoteCallCoordinator:
    """Bounds one call at a time by a deadline and a cancellation token."""

    def __init__(self, abort_grace: float = DEFAULT_ABORT_GRACE_SECONDS):
        """
        Args:
            abort_grace: Seconds to wait for a cancelled call to actually stop
                before reporting the cancellation anyway
        """
        self.abort_grace = abort_grace
        self._token: Optional[CancellationToken] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def is_bound(self) -> bool:
        return self._token is not None

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None and not self._timer.cancelled()

    def invalidate(self) -> None:
        """Cancel the bound call, if any, on behalf of a newer task."""
        if self._token is not None:
            self._token.cancel(CancelReason.SUPERSEDED)

    async def run(
        self,
        call: Callable[[], Awaitable[T]],
        token: CancellationToken,
        deadline_ms: float,
    ) -> CallResult[T]:
        """Run ``call`` until it finishes, the deadline passes, or ``token`` is cancelled.

        Args:
            call: Zero-argument coroutine factory; invoked at most once
            token: Cancellation token of the owning task
            deadline_ms: Milliseconds before the token is cancelled with TIMEOUT

        Returns:
            CallResult with exactly one outcome. Call errors are returned,
            not raised.
        """
        if self._token is not None:
            return CallResult(
                CallOutcome.FAILED,
                error=ChatRelayError("Coordinator is already bound to another call"),
            )
        if token.is_cancelled:
            return CallResult(_OUTCOME_FOR_REASON[token.reason])  # type: ignore[index]

        loop = asyncio.get_running_loop()
        started = loop.time()
        self._token = token
        self._timer = loop.call_later(max(deadline_ms, 0) / 1000, token.cancel, CancelReason.TIMEOUT)

        call_task = asyncio.ensure_future(call())
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({call_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)

            if not token.is_cancelled:
                elapsed = loop.time() - started
                if call_task.cancelled():
                    return CallResult(
                        CallOutcome.FAILED,
                        error=ChatRelayError("Call was cancelled unexpectedly"),
                        elapsed=elapsed,
                    )
                error = call_task.exception()
                if error is not None:
                    return CallResult(CallOutcome.FAILED, error=error, elapsed=elapsed)
                return CallResult(CallOutcome.SUCCESS, value=call_task.result(), elapsed=elapsed)

            if not call_task.done():
                call_task.cancel()
                _, pending = await asyncio.wait({call_task}, timeout=self.abort_grace)
                if pending:
                    logger.warning(
                        "Call did not stop within %.1fs of cancellation; abandoning it",
                        self.abort_grace,
                    )
            reason = token.reason
            assert reason is not None
            return CallResult(_OUTCOME_FOR_REASON[reason], elapsed=loop.time() - started)
        finally:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if not cancel_task.done():
                cancel_task.cancel()
            if not call_task.done():
                call_task.cancel()
            call_task.add_done_callback(_consume_result)
            self._token = None
