"""Cancellation composition for a single gateway call.

A call is bounded by two sources: a caller-owned ``CancellationToken`` and an
absolute deadline armed once when the call starts. ``CallScope.run`` races
any suspension point (HTTP send, backoff sleep, stream read) against both, so
whichever fires first aborts the in-flight I/O.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

from conduit.errors import GatewayTimeoutError

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


class CancellationToken:
    """Caller-owned abort signal.

    Example:
        token = CancellationToken()
        task = asyncio.create_task(client.chat(ChatRequest(..., signal=token)))
        token.cancel("user closed the tab")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Whether ``cancel()`` has been called."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Reason passed to the first ``cancel()`` call."""
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Fire the token. Later calls are no-ops."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    async def wait(self) -> None:
        """Block until the token fires."""
        await self._event.wait()


class CallScope:
    """Deadline plus optional caller token, armed once per call.

    Retries share the same absolute deadline: the time budget is never
    re-armed per attempt.
    """

    def __init__(self, *, timeout_s: float, signal: CancellationToken | None = None) -> None:
        self._loop = asyncio.get_running_loop()
        self._timeout_s = timeout_s
        self._signal = signal
        self.deadline = self._loop.time() + timeout_s

    @property
    def timeout_s(self) -> float:
        """Configured wall-clock budget for the whole call."""
        return self._timeout_s

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self.deadline - self._loop.time())

    @property
    def aborted(self) -> bool:
        """Whether either cancellation source has fired."""
        return self.caller_cancelled or self.remaining() <= 0

    @property
    def caller_cancelled(self) -> bool:
        """Whether the caller's token fired."""
        return self._signal is not None and self._signal.cancelled

    def abort_error(self) -> GatewayTimeoutError:
        """Build the terminal error for whichever source fired."""
        if self.caller_cancelled:
            assert self._signal is not None
            return GatewayTimeoutError(
                "Request aborted by caller",
                details={"cancelled": True, "reason": self._signal.reason},
            )
        return GatewayTimeoutError(
            "Request timeout exceeded",
            details={"timeout_s": self._timeout_s},
        )

    def check(self) -> None:
        """Raise the abort error if either source already fired."""
        if self.aborted:
            raise self.abort_error()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the deadline or the caller's token fires first.

        Raises:
            GatewayTimeoutError: If either source fired before completion. The
                in-flight work is cancelled and awaited before raising.
        """
        if self.aborted:
            _close_unstarted(awaitable)
            raise self.abort_error()

        work: asyncio.Future[T] = asyncio.ensure_future(awaitable)
        waiters: set[asyncio.Future[Any]] = {work}
        signal_waiter: asyncio.Future[None] | None = None
        if self._signal is not None:
            signal_waiter = asyncio.ensure_future(self._signal.wait())
            waiters.add(signal_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            if signal_waiter is not None and not signal_waiter.done():
                signal_waiter.cancel()

        if work in done:
            return work.result()

        work.cancel()
        # Let the aborted work unwind so transports release their sockets.
        await asyncio.gather(work, return_exceptions=True)
        raise self.abort_error()


def _close_unstarted(awaitable: Awaitable[Any]) -> None:
    """Close a never-awaited coroutine to avoid 'never awaited' warnings."""
    close = getattr(awaitable, "close", None)
    if callable(close):
        close()
