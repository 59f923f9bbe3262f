"""Provider step factories and the registry used to pick one."""

from ..errors import ConfigurationError
from ..settings import ApiType, StepSettings, default_api_type
from .base import ChatStep, ChatStepFactory, prepare_api_messages
from .claude_step import ClaudeChatStep, ClaudeChatStepFactory
from .ollama_step import OllamaChatStep, OllamaChatStepFactory
from .openai_step import OpenAIChatStep, OpenAIChatStepFactory

STEP_FACTORIES: dict[ApiType, type[ChatStepFactory]] = {
    ApiType.OPENAI: OpenAIChatStepFactory,
    ApiType.CLAUDE: ClaudeChatStepFactory,
    ApiType.OLLAMA: OllamaChatStepFactory,
}


def create_step_factory(settings: StepSettings, api_type: ApiType | str | None = None) -> ChatStepFactory:
    """Return the factory for ``api_type``, defaulting to the configured one."""
    if api_type is None:
        api_type = default_api_type(settings)
    try:
        api_type = ApiType(api_type)
        factory_class = STEP_FACTORIES[api_type]
    except (ValueError, KeyError):
        raise ConfigurationError(f"Unknown API type: {api_type!r}. Available: {', '.join(t.value for t in STEP_FACTORIES)}") from None
    return factory_class(settings)


__all__ = [
    "STEP_FACTORIES",
    "ChatStep",
    "ChatStepFactory",
    "ClaudeChatStep",
    "ClaudeChatStepFactory",
    "OllamaChatStep",
    "OllamaChatStepFactory",
    "OpenAIChatStep",
    "OpenAIChatStepFactory",
    "create_step_factory",
    "prepare_api_messages",
]
