"""Cancellation contexts for steps and runners.

A ``StepContext`` is handed down from the caller to every task taking part
in a run. Cancelling a context (or reaching its deadline) cancels all of
its children. Tasks race their awaits against the context with
``wait_for`` so that a cancelled run stops without waiting on a provider.
"""

import asyncio
import logging
import time
from typing import Awaitable, TypeVar

from ..errors import CancellationError, DeadlineExceededError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class StepContext:
    def __init__(self, parent: "StepContext | None" = None, deadline: float | None = None):
        self._parent = parent
        self._deadline = deadline
        self._error: CancellationError | None = None
        self._event = asyncio.Event()
        self._children: list["StepContext"] = []

        if parent is not None:
            if parent._deadline is not None and (deadline is None or parent._deadline < deadline):
                self._deadline = parent._deadline
            parent._children.append(self)
            if parent.err() is not None:
                self.cancel(parent.err())

    @classmethod
    def background(cls) -> "StepContext":
        """A root context that is never cancelled unless asked to."""
        return cls()

    def with_cancel(self) -> "StepContext":
        return StepContext(parent=self)

    def with_timeout(self, seconds: float) -> "StepContext":
        return StepContext(parent=self, deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, cause: CancellationError | None = None) -> None:
        """Cancel this context and its children. Only the first cause is kept."""
        if self._error is not None:
            return
        self._error = cause if cause is not None else CancellationError("context cancelled")
        self._event.set()
        children, self._children = self._children, []
        for child in children:
            child.cancel(self._error)
        if self._parent is not None and self in self._parent._children:
            self._parent._children.remove(self)

    def err(self) -> CancellationError | None:
        """Return the cancellation cause, or None while the context is live.

        An expired deadline inherited from a parent is reported with the
        parent's own error object.
        """
        if self._error is None and self._parent is not None:
            parent_err = self._parent.err()
            if parent_err is not None:
                self.cancel(parent_err)
        if self._error is None and self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel(DeadlineExceededError("context deadline exceeded"))
        return self._error

    @property
    def cancelled(self) -> bool:
        return self.err() is not None

    async def done(self) -> CancellationError:
        """Wait until the context is cancelled and return the cause."""
        while self.err() is None:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=self.remaining())
            except asyncio.TimeoutError:
                pass
        return self._error

    async def wait_for(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless the context is cancelled first.

        Raises the context's ``CancellationError`` when cancellation wins the
        race; the pending awaitable is cancelled before returning.
        """
        err = self.err()
        if err is not None:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise err

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Discarding error from cancelled await: {task.exception()!r}")
        if self.err() is None:
            # woke up on the deadline timer
            self.cancel(DeadlineExceededError("context deadline exceeded"))
        raise self._error

    def __repr__(self) -> str:
        state = "live" if self._error is None else f"cancelled ({self._error})"
        return f"StepContext({state}, deadline={self._deadline})"
