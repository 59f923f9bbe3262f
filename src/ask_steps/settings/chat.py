from typing import Any, ClassVar, Mapping

from pydantic import Field, ValidationError, field_validator

from ..errors import ConfigurationError
from .base import ApiType, ParameterSettings


class APISettings(ParameterSettings):
    """API keys and base URLs, keyed by provider.

    Parameter names are ``<api>-api-key`` and ``<api>-base-url`` for every
    known ``ApiType``.
    """

    slug: ClassVar[str] = "api"

    api_keys: dict[ApiType, str] = Field(default_factory=dict)
    base_urls: dict[ApiType, str] = Field(default_factory=dict)

    def update_from_parameters(self, params: Mapping[str, Any]) -> None:
        self._merge(self._parameter_values(params))

    def update_from_mapping(self, data: Mapping[str, Any]) -> None:
        """Accepts ``api_keys``/``base_urls`` mappings and ``<api>-api-key`` style names.

        Parameter-style names win over the nested mappings.
        """
        values = self._parameter_values(data)
        for name in ("api_keys", "base_urls"):
            nested = data.get(name) or {}
            if not isinstance(nested, Mapping):
                raise ConfigurationError(f"Invalid api settings: '{name}' must be a mapping")
            values[name] = {**nested, **values[name]}
        self._merge(values)

    @staticmethod
    def _parameter_values(params: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
        values: dict[str, dict[str, Any]] = {"api_keys": {}, "base_urls": {}}
        for api_type in ApiType:
            key = params.get(f"{api_type.value}-api-key")
            if key is not None:
                values["api_keys"][api_type.value] = key
            url = params.get(f"{api_type.value}-base-url")
            if url is not None:
                values["base_urls"][api_type.value] = url
        return values

    def _merge(self, values: Mapping[str, Mapping[str, Any]]) -> None:
        try:
            validated = APISettings.model_validate(dict(values))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid api settings: {e}") from e
        # Per-provider overlay: a layer only replaces the keys it names
        self.api_keys = {**self.api_keys, **validated.api_keys}
        self.base_urls = {**self.base_urls, **validated.base_urls}

    def clone(self) -> "APISettings":
        return APISettings(api_keys=dict(self.api_keys), base_urls=dict(self.base_urls))


class ChatSettings(ParameterSettings):
    slug: ClassVar[str] = "ai-chat"

    engine: str | None = Field(default=None, alias="ai-engine")
    api_type: ApiType | None = Field(default=None, alias="ai-api-type")
    max_response_tokens: int | None = Field(default=None, alias="ai-max-response-tokens", gt=0)
    temperature: float | None = Field(default=None, alias="ai-temperature", ge=0)
    top_p: float | None = Field(default=None, alias="ai-top-p", ge=0, le=1)
    stop: list[str] | None = Field(default=None, alias="ai-stop")
    stream: bool = Field(default=True, alias="ai-stream")

    @field_validator("stop", mode="before")
    @classmethod
    def _split_stop(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [s for s in value.split(",") if s]
        return value

    def clone(self) -> "ChatSettings":
        return ChatSettings(
            engine=self.engine,
            api_type=self.api_type,
            max_response_tokens=self.max_response_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            stop=list(self.stop) if self.stop is not None else None,
            stream=self.stream,
        )


class ClientSettings(ParameterSettings):
    """HTTP client options shared by all providers."""

    slug: ClassVar[str] = "ai-client"

    timeout_seconds: float | None = Field(default=None, alias="ai-timeout", gt=0)
    organization: str | None = Field(default=None, alias="ai-organization")
    user_agent: str | None = Field(default=None, alias="ai-user-agent")

    def clone(self) -> "ClientSettings":
        return ClientSettings(
            timeout_seconds=self.timeout_seconds,
            organization=self.organization,
            user_agent=self.user_agent,
        )
