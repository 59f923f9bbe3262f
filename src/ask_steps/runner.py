"""Build conversations from templates and drive steps to completion.

``create_manager`` renders a system prompt, historical messages and the
user prompt into a ``ConversationManager``. The ``run_*`` functions start
a step through a ``Runnable`` and consume its output while racing the
caller's ``StepContext``:

- ``run_into_writer`` streams partial text into a writer,
- ``run_to_string`` returns the complete response,
- ``run_to_context_manager`` appends the response as an assistant message.
"""

import io
import logging
import time
from enum import Enum
from typing import IO, Any, Callable, Iterable, Mapping, Protocol

from .conversation import ConversationManager, ManagerOption
from .errors import CancellationError
from .models.message import Message, Role
from .steps import Step, StepContext, StepFactory, StepGroup, StepOutput
from .utils.templating import Renderer, render

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RENDERING = "rendering"
    RUNNING = "running"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Runnable(Protocol):
    async def run_with_manager(self, ctx: StepContext, manager: ConversationManager) -> Step[Any, str]:
        """Start a step on the manager's messages and return it."""
        ...


class StepFactoryRunnable:
    """Runs steps from a factory whose steps take a list of messages."""

    def __init__(self, factory: StepFactory[list[Message], str]):
        self.factory = factory

    async def run_with_manager(self, ctx: StepContext, manager: ConversationManager) -> Step[list[Message], str]:
        step = self.factory.new_step()
        await step.run(ctx, manager.get_messages())
        return step


def create_manager(
    system_prompt: str,
    prompt: str,
    messages: Iterable[Message],
    bindings: Mapping[str, Any],
    options: Iterable[ManagerOption] = (),
    renderer: Renderer = render,
) -> ConversationManager:
    """Render a conversation from templates.

    The system prompt comes first, then every historical message (rendered
    with its own role and timestamp), then the user prompt. All templates
    share ``bindings``. Options are applied to the manager afterwards.
    """
    manager = ConversationManager()

    if system_prompt:
        manager.render_and_add(system_prompt, Role.SYSTEM, bindings, renderer=renderer)

    for message in messages:
        manager.render_and_add(message.content, message.role, bindings, renderer=renderer, timestamp=message.timestamp)

    if prompt:
        manager.render_and_add(prompt, Role.USER, bindings, renderer=renderer)

    for option in options:
        option(manager)

    return manager


class StepRunner:
    """Drives one run of a ``Runnable`` and tracks its state."""

    def __init__(self, runnable: Runnable, writer: IO | None = None, on_partial: Callable[[str], None] | None = None):
        self.runnable = runnable
        self.writer = writer
        self.on_partial = on_partial
        self.state = RunState.IDLE
        self.elapsed: float | None = None

    def render(
        self,
        system_prompt: str,
        prompt: str,
        messages: Iterable[Message],
        bindings: Mapping[str, Any],
        options: Iterable[ManagerOption] = (),
        renderer: Renderer = render,
    ) -> ConversationManager:
        """Build the conversation for this run, see ``create_manager``."""
        self.state = RunState.RENDERING
        try:
            return create_manager(system_prompt, prompt, messages, bindings, options=options, renderer=renderer)
        except Exception:
            self.state = RunState.FAILED
            raise

    async def run(self, ctx: StepContext, manager: ConversationManager, append_to_manager: bool = False) -> str:
        """Run the step to its terminal result and return the response text.

        Text written to the writer before a failure or cancellation is not
        retracted. On failure the manager is left untouched.
        """
        self.state = RunState.RUNNING
        start_time = time.time()
        chunks: list[str] = []
        group = StepGroup(ctx)
        try:
            step = await self.runnable.run_with_manager(group.ctx, manager)
            group.go(lambda _: step.wait(), name="step-producer")
            group.go(lambda gctx: self._consume(gctx, step.get_output(), chunks), name="step-consumer")
            await group.wait()
        except CancellationError:
            self.state = RunState.CANCELLED
            raise
        except Exception:
            self.state = RunState.FAILED
            raise
        finally:
            group.ctx.cancel(CancellationError("run finished"))
            self.elapsed = time.time() - start_time

        response = "".join(chunks)
        if append_to_manager:
            manager.add_messages(Message(Role.ASSISTANT, response))
        self.state = RunState.COMPLETED
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Run completed: {len(response)} chars in {self.elapsed:.2f}s")
        return response

    async def _consume(self, ctx: StepContext, output: StepOutput[str], chunks: list[str]) -> None:
        self.state = RunState.STREAMING
        while True:
            result = await ctx.wait_for(output.receive())
            if result is None:
                return
            if result.is_error:
                raise result.cause
            value = result.value()
            if value:
                chunks.append(value)
                self._emit(value)
            if result.is_final:
                return

    def _emit(self, text: str) -> None:
        if self.writer is not None:
            if isinstance(self.writer, (io.RawIOBase, io.BufferedIOBase)):
                self.writer.write(text.encode("utf-8"))
            else:
                self.writer.write(text)
            flush = getattr(self.writer, "flush", None)
            if flush is not None:
                flush()
        if self.on_partial is not None:
            self.on_partial(text)


async def run_into_writer(ctx: StepContext, runnable: Runnable, manager: ConversationManager, writer: IO) -> str:
    return await StepRunner(runnable, writer=writer).run(ctx, manager)


async def run_to_string(ctx: StepContext, runnable: Runnable, manager: ConversationManager) -> str:
    buffer = io.StringIO()
    await run_into_writer(ctx, runnable, manager, buffer)
    return buffer.getvalue()


async def run_to_context_manager(ctx: StepContext, runnable: Runnable, manager: ConversationManager) -> ConversationManager:
    await StepRunner(runnable).run(ctx, manager, append_to_manager=True)
    return manager
