import logging
from abc import abstractmethod
from typing import AsyncIterator, ClassVar, List

from ..errors import ConfigurationError
from ..models.message import Message, Role
from ..settings import ApiType, StepSettings
from ..steps import Step, StepContext, StepFactory, StepResult

logger = logging.getLogger(__name__)


def prepare_api_messages(messages: List[Message], merge_system_messages: bool = True) -> tuple[str | None, List[dict]]:
    """Split messages into a system prompt and the remaining API messages.

    Multiple system messages are merged (joined by a blank line) or, with
    ``merge_system_messages=False``, only the first one is kept.
    """
    system_contents: List[str] = []
    api_messages: List[dict] = []
    for msg in messages:
        if msg.role is Role.SYSTEM:
            if merge_system_messages or not system_contents:
                system_contents.append(msg.content)
        else:
            api_messages.append(msg.to_api_format())
    system = "\n\n".join(system_contents) if system_contents else None
    return system, api_messages


class ChatStep(Step[List[Message], str]):
    """Step sending a conversation to a chat provider.

    Subclasses implement ``iter_chunks`` and yield text as it arrives.
    With streaming enabled every chunk is a partial result and the final
    result is empty; otherwise the chunks are joined into the final result.
    """

    api_type: ClassVar[ApiType]

    def __init__(self, settings: StepSettings):
        super().__init__()
        self.settings = settings

    @property
    def engine(self) -> str:
        return self.settings.chat.engine

    @property
    def api_key(self) -> str | None:
        return self.settings.api.api_keys.get(self.api_type)

    @property
    def base_url(self) -> str | None:
        return self.settings.api.base_urls.get(self.api_type)

    @abstractmethod
    def iter_chunks(self, messages: List[Message], stream: bool) -> AsyncIterator[str]:
        """Yield response text for ``messages``."""

    async def stream(self, ctx: StepContext, input: List[Message]) -> AsyncIterator[StepResult[str]]:
        streaming = self.settings.chat.stream
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"{self.api_type.value} request: engine={self.engine}, messages={len(input)}, stream={streaming}")
        collected: List[str] = []
        async for chunk in self.iter_chunks(input, streaming):
            if not chunk:
                continue
            if streaming:
                yield StepResult.partial(chunk)
            else:
                collected.append(chunk)
        yield StepResult.final("".join(collected))


class ChatStepFactory(StepFactory[List[Message], str]):
    step_class: ClassVar[type[ChatStep]]
    requires_api_key: ClassVar[bool] = True

    @property
    def api_type(self) -> ApiType:
        return self.step_class.api_type

    def new_step(self) -> ChatStep:
        settings = self.settings.clone()
        if not settings.chat.engine:
            raise ConfigurationError(f"No engine configured for {self.api_type.value} (set ai-engine)")
        if self.requires_api_key and not settings.api.api_keys.get(self.api_type):
            raise ConfigurationError(f"No API key configured for {self.api_type.value} (set {self.api_type.value}-api-key)")
        return self.step_class(settings)
