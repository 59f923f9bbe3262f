import asyncio

import pytest

from ask_steps.settings import StepSettings
from ask_steps.steps import Step, StepFactory, StepResult

# Script item that blocks until the step is cancelled
HANG = object()


class ScriptedStep(Step):
    """Step replaying a fixed script.

    Strings are emitted as partial results, ``StepResult`` items as is,
    exceptions are raised and ``HANG`` blocks forever.
    """

    def __init__(self, script, delay: float = 0.0):
        super().__init__()
        self.script = list(script)
        self.delay = delay
        self.inputs = None
        self.closed = False

    async def stream(self, ctx, input):
        self.inputs = input
        try:
            for item in self.script:
                if self.delay:
                    await asyncio.sleep(self.delay)
                if item is HANG:
                    await asyncio.Event().wait()
                elif isinstance(item, BaseException):
                    raise item
                elif isinstance(item, StepResult):
                    yield item
                else:
                    yield StepResult.partial(item)
        finally:
            self.closed = True


class ScriptedFactory(StepFactory):
    def __init__(self, script, settings: StepSettings | None = None, delay: float = 0.0):
        super().__init__(settings if settings is not None else StepSettings.new())
        self.script = script
        self.delay = delay
        self.steps: list[ScriptedStep] = []

    def new_step(self) -> ScriptedStep:
        step = ScriptedStep(self.script, self.delay)
        self.steps.append(step)
        return step


@pytest.fixture
def scripted_step():
    return ScriptedStep


@pytest.fixture
def scripted_factory():
    return ScriptedFactory


@pytest.fixture
def hang():
    return HANG


@pytest.fixture
def settings_yaml():
    return """
factories:
  api:
    api_keys:
      openai: sk-file-openai-key
    base_urls:
      ollama: http://ollama.local:11434
  chat:
    engine: gpt-4o-mini
    api_type: openai
    max_response_tokens: 512
    temperature: 0.7
  client:
    timeout_seconds: 30
  openai:
    n: 1
    presence_penalty: 0.5
  claude:
    top_k: 5
  ollama:
    seed: 42
"""
