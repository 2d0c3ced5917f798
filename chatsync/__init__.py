"""chatsync -- streaming transcript synchronization for chat clients."""

from chatsync.config import Settings
from chatsync.schemas import Chat, Message
from chatsync.session import ChatSession

__all__ = ["Chat", "ChatSession", "Message", "Settings"]
