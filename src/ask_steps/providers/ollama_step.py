import asyncio
import json
import logging
import threading
from typing import Any, AsyncIterator, Iterator, List

import requests

from ..errors import StepError
from ..models.message import Message
from ..settings import ApiType
from .base import ChatStep, ChatStepFactory, prepare_api_messages

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
# Longer default timeout for potentially slow model loads
DEFAULT_TIMEOUT = 120


class OllamaChatStep(ChatStep):
    """Chat step posting to a local Ollama server's ``/api/chat``."""

    api_type = ApiType.OLLAMA

    @property
    def url(self) -> str:
        return f"{(self.base_url or DEFAULT_OLLAMA_URL).rstrip('/')}/api/chat"

    def build_payload(self, messages: List[Message], stream: bool) -> dict[str, Any]:
        chat = self.settings.chat
        ollama = self.settings.ollama
        system, api_messages = prepare_api_messages(messages, merge_system_messages=False)
        if system is not None:
            api_messages.insert(0, {"role": "system", "content": system})

        stop = list(chat.stop or [])
        if ollama.stop:
            stop.append(ollama.stop)
        options = {
            "temperature": ollama.temperature if ollama.temperature is not None else chat.temperature,
            "top_p": ollama.top_p if ollama.top_p is not None else chat.top_p,
            "top_k": ollama.top_k,
            "seed": ollama.seed,
            "num_predict": chat.max_response_tokens,
            "stop": stop or None,
        }
        return {
            "model": chat.engine,
            "messages": api_messages,
            "stream": stream,
            "options": {k: v for k, v in options.items() if v is not None},
        }

    def _headers(self) -> dict[str, str]:
        headers = {}
        if self.settings.client.user_agent:
            headers["User-Agent"] = self.settings.client.user_agent
        return headers

    def _post(self, payload: dict, stream: bool) -> requests.Response:
        timeout = self.settings.client.timeout_seconds or DEFAULT_TIMEOUT
        try:
            response = requests.post(self.url, json=payload, headers=self._headers(), stream=stream, timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.ConnectionError as e:
            raise StepError(f"Could not connect to Ollama server at {self.url}. Ensure it is running.") from e
        return response

    def _iterate_ollama_chunks(self, http_response: requests.Response) -> Iterator[str]:
        for line in http_response.iter_lines():
            if not line:
                continue
            try:
                chunk = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(f"Could not decode JSON line: {line!r}")
                continue
            if "error" in chunk:
                raise StepError(f"Ollama error: {chunk['error']}")
            content = chunk.get("message", {}).get("content")
            if content:
                yield content
            if chunk.get("done"):
                return

    async def iter_chunks(self, messages: List[Message], stream: bool) -> AsyncIterator[str]:
        payload = self.build_payload(messages, stream)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Ollama Request Payload: {json.dumps(payload)}")

        if not stream:
            data = await asyncio.to_thread(lambda: self._post(payload, stream=False).json())
            if "error" in data:
                raise StepError(f"Ollama error: {data['error']}")
            yield data.get("message", {}).get("content", "")
            return

        chunk_queue: asyncio.Queue = asyncio.Queue()
        loop = asyncio.get_running_loop()
        cancel_event = threading.Event()

        def _stream_to_queue():
            """Read the HTTP stream in a thread and push chunks to the async queue."""
            try:
                with self._post(payload, stream=True) as response:
                    for chunk in self._iterate_ollama_chunks(response):
                        if cancel_event.is_set():
                            return
                        _put_threadsafe(loop, chunk_queue, chunk)
            except Exception as e:
                if not cancel_event.is_set():
                    _put_threadsafe(loop, chunk_queue, e)
            finally:
                _put_threadsafe(loop, chunk_queue, None)

        reader = threading.Thread(target=_stream_to_queue, daemon=True, name="ollama-stream")
        reader.start()
        try:
            while True:
                chunk = await chunk_queue.get()
                if chunk is None:
                    return
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk
        finally:
            cancel_event.set()


def _put_threadsafe(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue, item: Any) -> None:
    try:
        loop.call_soon_threadsafe(queue.put_nowait, item)
    except RuntimeError:
        # Loop closed while the reader thread was still running
        logger.debug("Event loop closed, dropping Ollama stream item")


class OllamaChatStepFactory(ChatStepFactory):
    step_class = OllamaChatStep
    requires_api_key = False
