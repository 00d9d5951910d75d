"""Deadline racing and cancellation for outbound calls.

Provides:
- Cancellation tokens honored at every suspension point
- Racing a call against a per-attempt deadline
- Cancellable sleeps for backoff and polling schedules
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Optional

logger = logging.getLogger(__name__)


class DeadlineExceededError(Exception):
    """Raised when a call does not finish within its deadline."""

    def __init__(self, message: str = "", timeout: float = 0.0):
        super().__init__(message)
        self.timeout = timeout


class OperationCancelledError(Exception):
    """Raised when the owning component cancels an in-flight wait."""

    pass


class CancellationToken:
    """One-shot cancellation signal shared by a component and its tasks.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(executor.execute(url, token=token))
        ...
        token.cancel("unmount")  # task raises OperationCancelledError
    """

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None  # Created on first wait()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        """Check if the token has been cancelled."""
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        """Reason given on cancellation."""
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel the token. Later calls keep the first reason."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Wait until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError if the token is cancelled."""
        if self.cancelled:
            raise OperationCancelledError(self._reason or "cancelled")


async def race_with_timeout(
    call: Awaitable[Any],
    timeout_seconds: float,
    token: Optional[CancellationToken] = None,
    error_message: str = "Operation timed out",
) -> Any:
    """Race an awaitable against a deadline and an optional token.

    The losing call is cancelled rather than left running, so an aborted
    HTTP request releases its connection.

    Args:
        call: Awaitable to execute
        timeout_seconds: Deadline in seconds
        token: Optional cancellation token
        error_message: Error message for timeout

    Returns:
        Result of the call

    Raises:
        DeadlineExceededError: If the deadline fires first
        OperationCancelledError: If the token fires first
    """
    if token is not None and token.cancelled:
        if inspect.iscoroutine(call):
            call.close()
        token.raise_if_cancelled()

    task = asyncio.ensure_future(call)
    waiters = {task}
    cancel_waiter = None
    if token is not None:
        cancel_waiter = asyncio.ensure_future(token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters,
            timeout=timeout_seconds,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if task in done:
            return task.result()
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    if token is not None and token.cancelled:
        raise OperationCancelledError(token.reason or "cancelled")

    logger.debug(f"{error_message} after {timeout_seconds}s")
    raise DeadlineExceededError(
        f"{error_message} after {timeout_seconds}s",
        timeout_seconds,
    )


async def cancellable_sleep(
    delay: float,
    token: Optional[CancellationToken] = None,
) -> None:
    """Sleep for delay seconds unless the token fires first.

    Raises:
        OperationCancelledError: If the token is cancelled during the sleep
    """
    if token is None:
        await asyncio.sleep(delay)
        return

    token.raise_if_cancelled()
    try:
        await asyncio.wait_for(token.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    token.raise_if_cancelled()
