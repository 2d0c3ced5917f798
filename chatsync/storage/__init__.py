"""Persistence for chats and messages."""

from chatsync.storage.database import Database
from chatsync.storage.store import RecordStore, Subscription

__all__ = ["Database", "RecordStore", "Subscription"]
