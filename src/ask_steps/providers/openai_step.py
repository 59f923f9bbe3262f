import json
import logging
from typing import AsyncIterator, List

from openai import AsyncOpenAI

from ..models.message import Message
from ..settings import ApiType
from .base import ChatStep, ChatStepFactory, prepare_api_messages

logger = logging.getLogger(__name__)


class OpenAIChatStep(ChatStep):
    """Chat step backed by the OpenAI chat completions API."""

    api_type = ApiType.OPENAI

    def _create_client(self) -> AsyncOpenAI:
        client = self.settings.client
        kwargs = {"api_key": self.api_key}
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if client.organization:
            kwargs["organization"] = client.organization
        if client.timeout_seconds is not None:
            kwargs["timeout"] = client.timeout_seconds
        if client.user_agent:
            kwargs["default_headers"] = {"User-Agent": client.user_agent}
        return AsyncOpenAI(**kwargs)

    def build_payload(self, messages: List[Message], stream: bool) -> dict:
        chat = self.settings.chat
        openai = self.settings.openai
        system, api_messages = prepare_api_messages(messages)
        if system is not None:
            api_messages.insert(0, {"role": "system", "content": system})

        payload = {
            "model": chat.engine,
            "messages": api_messages,
            "stream": stream,
        }
        optional = {
            "max_tokens": chat.max_response_tokens,
            "temperature": chat.temperature,
            "top_p": chat.top_p,
            "stop": chat.stop or None,
            "n": openai.n,
            "presence_penalty": openai.presence_penalty,
            "frequency_penalty": openai.frequency_penalty,
            "logit_bias": openai.logit_bias or None,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        return payload

    async def iter_chunks(self, messages: List[Message], stream: bool) -> AsyncIterator[str]:
        payload = self.build_payload(messages, stream)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"OpenAI Request Payload: {json.dumps(payload)}")

        client = self._create_client()
        try:
            if stream:
                response = await client.chat.completions.create(**payload)
                async for chunk in response:
                    if not chunk.choices:
                        continue
                    content = chunk.choices[0].delta.content
                    if content:
                        yield content
            else:
                completion = await client.chat.completions.create(**payload)
                usage = completion.usage
                if usage and logger.isEnabledFor(logging.DEBUG):
                    logger.debug(f"OpenAI Tokens: Prompt={usage.prompt_tokens}, Completion={usage.completion_tokens}, Total={usage.total_tokens}")
                yield completion.choices[0].message.content or ""
        finally:
            await client.close()


class OpenAIChatStepFactory(ChatStepFactory):
    step_class = OpenAIChatStep
