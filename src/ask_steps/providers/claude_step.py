import logging
from typing import Any, AsyncIterator, List

import anthropic

from ..models.message import Message
from ..settings import ApiType
from .base import ChatStep, ChatStepFactory, prepare_api_messages

logger = logging.getLogger(__name__)

# The messages API requires max_tokens
DEFAULT_MAX_TOKENS = 1024


class ClaudeChatStep(ChatStep):
    """Chat step backed by the Anthropic messages API."""

    api_type = ApiType.CLAUDE

    def _create_client(self) -> anthropic.AsyncAnthropic:
        client = self.settings.client
        kwargs: dict[str, Any] = {"api_key": self.api_key}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if client.timeout_seconds is not None:
            kwargs["timeout"] = client.timeout_seconds
        if client.user_agent:
            kwargs["default_headers"] = {"User-Agent": client.user_agent}
        return anthropic.AsyncAnthropic(**kwargs)

    def build_kwargs(self, messages: List[Message]) -> dict[str, Any]:
        chat = self.settings.chat
        claude = self.settings.claude
        system, api_messages = prepare_api_messages(messages)

        kwargs: dict[str, Any] = {
            "model": chat.engine,
            "max_tokens": chat.max_response_tokens or DEFAULT_MAX_TOKENS,
            "messages": api_messages,
        }
        if system:
            kwargs["system"] = system
        if chat.temperature is not None:
            kwargs["temperature"] = chat.temperature
        if chat.top_p is not None:
            kwargs["top_p"] = chat.top_p
        if chat.stop:
            kwargs["stop_sequences"] = list(chat.stop)
        if claude.top_k is not None:
            kwargs["top_k"] = claude.top_k
        if claude.user_id:
            kwargs["metadata"] = {"user_id": claude.user_id}
        return kwargs

    async def iter_chunks(self, messages: List[Message], stream: bool) -> AsyncIterator[str]:
        kwargs = self.build_kwargs(messages)
        client = self._create_client()
        try:
            if stream:
                async with client.messages.stream(**kwargs) as response:
                    async for text in response.text_stream:
                        yield text
            else:
                response = await client.messages.create(**kwargs)
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug(f"Claude Tokens: Input={response.usage.input_tokens}, Output={response.usage.output_tokens}")
                for block in response.content:
                    if getattr(block, "type", None) == "text":
                        yield block.text
        finally:
            await client.close()


class ClaudeChatStepFactory(ChatStepFactory):
    step_class = ClaudeChatStep
