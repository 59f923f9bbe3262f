"""Provider specific generation settings."""

from typing import ClassVar

from pydantic import Field

from .base import ParameterSettings


class OpenAISettings(ParameterSettings):
    slug: ClassVar[str] = "openai-chat"

    n: int | None = Field(default=None, alias="openai-n", ge=1)
    presence_penalty: float | None = Field(default=None, alias="openai-presence-penalty", ge=-2, le=2)
    frequency_penalty: float | None = Field(default=None, alias="openai-frequency-penalty", ge=-2, le=2)
    logit_bias: dict[str, int] | None = Field(default=None, alias="openai-logit-bias")

    def clone(self) -> "OpenAISettings":
        return OpenAISettings(
            n=self.n,
            presence_penalty=self.presence_penalty,
            frequency_penalty=self.frequency_penalty,
            logit_bias=dict(self.logit_bias) if self.logit_bias is not None else None,
        )


class ClaudeSettings(ParameterSettings):
    slug: ClassVar[str] = "claude-chat"

    top_k: int | None = Field(default=None, alias="claude-top-k", ge=1)
    user_id: str | None = Field(default=None, alias="claude-user-id")

    def clone(self) -> "ClaudeSettings":
        return ClaudeSettings(top_k=self.top_k, user_id=self.user_id)


class OllamaSettings(ParameterSettings):
    slug: ClassVar[str] = "ollama-chat"

    temperature: float | None = Field(default=None, alias="ollama-temperature", ge=0)
    seed: int | None = Field(default=None, alias="ollama-seed")
    stop: str | None = Field(default=None, alias="ollama-stop")
    top_k: int | None = Field(default=None, alias="ollama-top-k", ge=1)
    top_p: float | None = Field(default=None, alias="ollama-top-p", ge=0, le=1)

    def clone(self) -> "OllamaSettings":
        return OllamaSettings(
            temperature=self.temperature,
            seed=self.seed,
            stop=self.stop,
            top_k=self.top_k,
            top_p=self.top_p,
        )
