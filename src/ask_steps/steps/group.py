import asyncio
import logging
from typing import Any, Awaitable, Callable

from ..errors import CancellationError
from .context import StepContext

logger = logging.getLogger(__name__)


class StepGroup:
    """Join a set of coroutines that share one cancellation context.

    The first coroutine to fail cancels the group's context so the others
    unblock; ``wait`` re-raises that first failure once every task is done.
    """

    def __init__(self, ctx: StepContext):
        self.ctx = ctx.with_cancel()
        self._tasks: list[asyncio.Task] = []
        self._error: BaseException | None = None

    def go(self, fn: Callable[[StepContext], Awaitable[Any]], name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(self._run(fn), name=name)
        self._tasks.append(task)
        return task

    async def _run(self, fn: Callable[[StepContext], Awaitable[Any]]) -> Any:
        try:
            return await fn(self.ctx)
        except Exception as e:
            if self._error is None:
                self._error = e
                logger.debug(f"Step group task failed first: {e!r}")
                if isinstance(e, CancellationError):
                    self.ctx.cancel(e)
                else:
                    self.ctx.cancel(CancellationError(f"step group cancelled: {e}"))
            return None

    async def wait(self) -> None:
        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            for task in self._tasks:
                task.cancel()
            raise
        finally:
            self.ctx.cancel(CancellationError("step group finished"))
        if self._error is not None:
            raise self._error
