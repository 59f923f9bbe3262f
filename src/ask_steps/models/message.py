import time
from dataclasses import dataclass, replace
from enum import Enum


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single rendered conversation message."""

    role: Role
    content: str
    timestamp: float | None = None

    def __post_init__(self):
        # Accept plain strings from YAML and JSON
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(str(self.role).lower()))

    def stamped(self, timestamp: float | None = None) -> "Message":
        """Return this message with a timestamp, keeping an existing one."""
        if self.timestamp is not None:
            return self
        return replace(self, timestamp=timestamp if timestamp is not None else time.time())

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """Create a Message from a dictionary"""
        role = data.get("role", Role.USER.value)
        content = cls._extract_content(data)
        return cls(role, content, data.get("timestamp"))

    @staticmethod
    def _extract_content(data: dict) -> str:
        content = data.get("content", data.get("text", ""))
        if isinstance(content, list):
            # Multimodal payloads: keep the text parts only
            return " ".join(item.get("text", "") for item in content if item.get("type") == "text")
        return str(content)

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content, "timestamp": self.timestamp}

    def to_api_format(self) -> dict:
        """Convert to API-compatible format (without timestamp)"""
        return {"role": self.role.value, "content": self.content}
