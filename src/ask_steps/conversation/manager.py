import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping

from ..models.message import Message, Role
from ..utils.templating import Renderer, render

logger = logging.getLogger(__name__)


class ConversationManager:
    """Ordered, append-only log of conversation messages.

    The order of messages is the prompt history sent to providers and is
    never changed. A manager has a single writer; it does no locking.
    """

    def __init__(self, messages: list[Message] | None = None):
        self._messages: list[Message] = []
        if messages:
            self.add_messages(*messages)

    def add_messages(self, *messages: Message, timestamp: float | None = None) -> None:
        """Append messages in the given order.

        Messages without a timestamp are stamped with ``timestamp`` or, when
        it is not given, the time of the append.
        """
        now = timestamp if timestamp is not None else time.time()
        for message in messages:
            self._messages.append(message.stamped(now))

    def render_and_add(
        self,
        template: str,
        role: Role | str,
        bindings: Mapping[str, Any],
        renderer: Renderer = render,
        timestamp: float | None = None,
    ) -> Message:
        """Render ``template`` and append it with ``role``.

        A rendering failure propagates and nothing is appended.
        """
        content = renderer(template, bindings)
        message = Message(role, content, timestamp)
        self.add_messages(message)
        return self._messages[-1]

    def get_messages(self) -> list[Message]:
        return list(self._messages)

    def get_last_message(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def get_single_prompt(self) -> str:
        """All message contents joined into one prompt, for completion style steps."""
        return "\n".join(m.content for m in self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def to_dicts(self) -> list[dict]:
        return [m.to_dict() for m in self._messages]

    def save(self, path: str | Path) -> None:
        """Write the conversation to a JSON file."""
        path = Path(path).expanduser()
        os.makedirs(path.parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dicts(), f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved {len(self)} messages to {path}")

    @classmethod
    def load(cls, path: str | Path) -> "ConversationManager":
        with open(Path(path).expanduser(), "r", encoding="utf-8") as f:
            message_dicts = json.load(f)
        if not isinstance(message_dicts, list):
            raise ValueError(f"Conversation file {path} must contain a JSON list")
        return cls([Message.from_dict(m) for m in message_dicts])


ManagerOption = Callable[[ConversationManager], None]


def with_messages(*messages: Message) -> ManagerOption:
    """Option appending already rendered messages after the prompt."""

    def _apply(manager: ConversationManager) -> None:
        manager.add_messages(*messages)

    return _apply
