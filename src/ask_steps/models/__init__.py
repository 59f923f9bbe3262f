from .message import Message, Role

__all__ = ["Message", "Role"]
