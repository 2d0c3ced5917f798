"""Pydantic DTOs for chats and messages.

These models define the contract between the record store, the transcript
and the reply client.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

Role = Literal["user", "assistant"]


class Message(BaseModel):
    """A transcript entry. ``pending`` marks local, not yet persisted entries."""

    id: str
    role: Role
    content: str
    created_at: datetime
    chat_id: str | None = None
    pending: bool = False

    def to_wire(self) -> dict[str, str]:
        """Shape sent to the reply service."""
        return {"role": self.role, "content": self.content}


class Chat(BaseModel):
    """A conversation header."""

    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    user_id: str | None = None
