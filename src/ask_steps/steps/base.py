"""Asynchronous, cancellable steps.

A step is started with ``run``, which only dispatches the producer task.
Results are read from ``get_output()`` until the stream closes; the last
result is always terminal (final value or error).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import AsyncIterator, Generic, TypeVar

from ..errors import CancellationError, StepError
from .context import StepContext
from .result import StepResult

I = TypeVar("I")
O = TypeVar("O")

logger = logging.getLogger(__name__)

_CLOSED = object()


class StepState(str, Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    DONE = "done"


class StepOutput(Generic[O]):
    """Receive side of a step's result stream.

    The queue is unbounded, so the producer never blocks on a consumer that
    stopped reading.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._sealed = False
        self._closed = False

    def send(self, result: StepResult[O]) -> None:
        if self._sealed:
            raise StepError("send on a closed step output")
        self._queue.put_nowait(result)
        if result.is_terminal:
            self.close()

    def close(self) -> None:
        if not self._sealed:
            self._sealed = True
            self._queue.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._sealed

    async def receive(self) -> StepResult[O] | None:
        """Next result, or None once the stream is closed."""
        if self._closed:
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            return None
        return item

    async def __aiter__(self) -> AsyncIterator[StepResult[O]]:
        while True:
            result = await self.receive()
            if result is None:
                return
            yield result


class Step(ABC, Generic[I, O]):
    """Single-use unit of work emitting ``StepResult`` values."""

    def __init__(self):
        self.state = StepState.NOT_STARTED
        self._output: StepOutput[O] = StepOutput()
        self._task: asyncio.Task | None = None

    @abstractmethod
    def stream(self, ctx: StepContext, input: I) -> AsyncIterator[StepResult[O]]:
        """Produce results for ``input``; the last one should be terminal."""

    def get_output(self) -> StepOutput[O]:
        return self._output

    async def run(self, ctx: StepContext, input: I) -> None:
        if self.state is not StepState.NOT_STARTED:
            raise StepError(f"{type(self).__name__} cannot be started twice (state: {self.state.value})")
        self.state = StepState.RUNNING

        err = ctx.err()
        if err is not None:
            self._finish(StepResult.error(err))
            raise err

        self._task = asyncio.create_task(self._pump(ctx, input), name=f"{type(self).__name__}-producer")

    async def wait(self) -> None:
        """Wait for the producer task to finish."""
        if self._task is not None:
            await self._task

    async def _pump(self, ctx: StepContext, input: I) -> None:
        results = self.stream(ctx, input)
        terminal: StepResult[O] | None = None
        try:
            while terminal is None:
                try:
                    result = await ctx.wait_for(anext(results))
                except StopAsyncIteration:
                    terminal = StepResult.error(StepError(f"{type(self).__name__} finished without a final result"))
                    break
                except Exception as e:
                    # Provider failures and cancellation become the terminal error
                    terminal = StepResult.error(e)
                    break

                if result.is_terminal:
                    terminal = result
                else:
                    self._output.send(result)
        except asyncio.CancelledError:
            terminal = StepResult.error(CancellationError(f"{type(self).__name__} task was cancelled"))
            raise
        finally:
            try:
                await results.aclose()
            except Exception as e:
                logger.debug(f"Error closing result stream of {type(self).__name__}: {e!r}")
            self._finish(terminal)

    def _finish(self, terminal: StepResult[O] | None) -> None:
        if terminal is not None:
            if terminal.is_error:
                logger.debug(f"{type(self).__name__} failed: {terminal.cause!r}")
            self._output.send(terminal)
        self._output.close()
        self.state = StepState.DONE
