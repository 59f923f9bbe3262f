from .manager import ConversationManager, ManagerOption, with_messages

__all__ = ["ConversationManager", "ManagerOption", "with_messages"]
