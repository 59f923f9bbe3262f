import logging
from pathlib import Path
from typing import IO, Any, Mapping

import yaml

from ..errors import ConfigurationError
from .chat import APISettings, ChatSettings, ClientSettings
from .providers import ClaudeSettings, OllamaSettings, OpenAISettings

logger = logging.getLogger(__name__)

# Top level key of a settings file
FACTORIES_KEY = "factories"


class StepSettings:
    """Aggregate configuration used to build steps.

    One instance is typically reused as a template for many invocations;
    always ``clone()`` before handing it to code that applies overrides.
    """

    def __init__(
        self,
        api: APISettings | None = None,
        chat: ChatSettings | None = None,
        client: ClientSettings | None = None,
        openai: OpenAISettings | None = None,
        claude: ClaudeSettings | None = None,
        ollama: OllamaSettings | None = None,
    ):
        self.api = api if api is not None else APISettings()
        self.chat = chat if chat is not None else ChatSettings()
        self.client = client if client is not None else ClientSettings()
        self.openai = openai if openai is not None else OpenAISettings()
        self.claude = claude if claude is not None else ClaudeSettings()
        self.ollama = ollama if ollama is not None else OllamaSettings()

    @classmethod
    def new(cls) -> "StepSettings":
        return cls()

    def blocks(self) -> dict[str, Any]:
        return {
            "api": self.api,
            "chat": self.chat,
            "client": self.client,
            "openai": self.openai,
            "claude": self.claude,
            "ollama": self.ollama,
        }

    @classmethod
    def from_yaml(cls, source: str | IO[str]) -> "StepSettings":
        settings = cls.new()
        settings.update_from_mapping(load_settings_yaml(source))
        return settings

    @classmethod
    def from_file(cls, path: str | Path) -> "StepSettings":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_yaml(f)

    def update_from_mapping(self, data: Mapping[str, Any]) -> None:
        """Overlay a ``factories`` block (as read from a settings file).

        All blocks are validated before any of them changes.
        """
        updated = self.clone()
        for name, block in updated.blocks().items():
            values = data.get(name)
            if values is None:
                continue
            if not isinstance(values, Mapping):
                raise ConfigurationError(f"Settings block '{name}' must be a mapping, got {type(values).__name__}")
            block.update_from_mapping(values)
        self._adopt(updated)

    def update_from_parameters(self, params: Mapping[str, Any]) -> None:
        """Overlay flat parameters, e.g. from the command line.

        Fields whose parameter is absent or ``None`` keep their value. An
        invalid value raises ``ConfigurationError`` and changes nothing.
        """
        updated = self.clone()
        for block in updated.blocks().values():
            block.update_from_parameters(params)
        self._adopt(updated)

    def _adopt(self, other: "StepSettings") -> None:
        for name, block in other.blocks().items():
            setattr(self, name, block)

    def clone(self) -> "StepSettings":
        return StepSettings(
            api=self.api.clone(),
            chat=self.chat.clone(),
            client=self.client.clone(),
            openai=self.openai.clone(),
            claude=self.claude.clone(),
            ollama=self.ollama.clone(),
        )

    def get_metadata(self) -> dict[str, Any]:
        """Settings worth attaching to a response.

        Values equal to the provider's documented default are left out.
        """
        metadata: dict[str, Any] = {}

        chat = self.chat
        if chat.engine is not None:
            metadata["ai-engine"] = chat.engine
        if chat.api_type is not None:
            metadata["ai-api-type"] = chat.api_type.value
            base_url = self.api.base_urls.get(chat.api_type)
            if base_url is not None:
                metadata["ai-base-url"] = base_url
        if chat.max_response_tokens is not None:
            metadata["ai-max-response-tokens"] = chat.max_response_tokens
        if chat.top_p is not None and chat.top_p != 1:
            metadata["ai-top-p"] = chat.top_p
        if chat.temperature is not None:
            metadata["ai-temperature"] = chat.temperature
        if chat.stop:
            metadata["ai-stop"] = list(chat.stop)
        metadata["ai-stream"] = chat.stream

        openai = self.openai
        if openai.n is not None and openai.n != 1:
            metadata["openai-n"] = openai.n
        if openai.presence_penalty is not None and openai.presence_penalty != 0:
            metadata["openai-presence-penalty"] = openai.presence_penalty
        if openai.frequency_penalty is not None and openai.frequency_penalty != 0:
            metadata["openai-frequency-penalty"] = openai.frequency_penalty
        if openai.logit_bias:
            metadata["openai-logit-bias"] = dict(openai.logit_bias)

        client = self.client
        if client.timeout_seconds is not None:
            metadata["ai-timeout"] = client.timeout_seconds
        if client.organization:
            metadata["ai-organization"] = client.organization
        if client.user_agent is not None:
            metadata["ai-user-agent"] = client.user_agent

        claude = self.claude
        if claude.top_k is not None and claude.top_k != 1:
            metadata["claude-top-k"] = claude.top_k
        if claude.user_id:
            metadata["claude-user-id"] = claude.user_id

        ollama = self.ollama
        if ollama.temperature is not None and ollama.temperature != 0:
            metadata["ollama-temperature"] = ollama.temperature
        if ollama.seed is not None and ollama.seed != 0:
            metadata["ollama-seed"] = ollama.seed
        if ollama.stop:
            metadata["ollama-stop"] = ollama.stop
        if ollama.top_k is not None and ollama.top_k != 40:
            metadata["ollama-top-k"] = ollama.top_k
        if ollama.top_p is not None and ollama.top_p != 0.9:
            metadata["ollama-top-p"] = ollama.top_p

        return metadata

    def to_dict(self) -> dict[str, Any]:
        """Settings as a ``factories`` document, API keys masked."""
        data = {name: block.model_dump(mode="json", exclude_none=True) for name, block in self.blocks().items()}
        data["api"]["api_keys"] = {k: _mask(v) for k, v in data["api"].get("api_keys", {}).items()}
        return {FACTORIES_KEY: data}

    def __repr__(self) -> str:
        return f"StepSettings(engine={self.chat.engine!r}, api_type={self.chat.api_type})"


def load_settings_yaml(source: str | IO[str]) -> dict[str, Any]:
    """Read the ``factories`` block of a settings document."""
    try:
        loaded = yaml.safe_load(source)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing settings YAML: {e}") from e
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError("Settings YAML must be a mapping")
    factories = loaded.get(FACTORIES_KEY, {})
    if factories is None:
        return {}
    if not isinstance(factories, dict):
        raise ConfigurationError(f"'{FACTORIES_KEY}' must be a mapping")
    return factories


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "****"
    return f"{secret[:4]}...{secret[-4:]}"
