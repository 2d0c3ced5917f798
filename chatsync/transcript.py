"""In-memory transcript for the active conversation.

The accumulator is the only writer of the visible message list. Optimistic
user entries and the streaming assistant placeholder carry local ids
(``local-…`` / ``temp-…``) that can never collide with persisted UUIDs.

Two paths can deliver the same finished assistant reply: ``finalize`` (keyed by
placeholder id) and ``merge_pushed`` (keyed by the persisted id). Whichever
arrives first wins; the second is folded into it.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from datetime import UTC, datetime

from chatsync.schemas import Message

logger = logging.getLogger(__name__)

_local_ids = itertools.count(1)


def _local_id(prefix: str) -> str:
    return f"{prefix}-{next(_local_ids)}-{uuid.uuid4().hex[:8]}"


class TranscriptAccumulator:
    """Ordered message list with an id -> position index."""

    def __init__(self, chat_id: str, messages: list[Message] | None = None) -> None:
        self.chat_id = chat_id
        self._messages: list[Message] = []
        self._index: dict[str, int] = {}
        self._placeholder_id: str | None = None
        if messages:
            self.load(messages)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def placeholder_id(self) -> str | None:
        return self._placeholder_id

    def get(self, message_id: str) -> Message | None:
        position = self._index.get(message_id)
        return None if position is None else self._messages[position]

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._index

    def __len__(self) -> int:
        return len(self._messages)

    def history(self) -> list[dict[str, str]]:
        """Finalized messages in wire shape, for the reply request."""
        return [m.to_wire() for m in self._messages if not m.pending]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def load(self, messages: list[Message]) -> None:
        """Replace the transcript with messages loaded from the store."""
        self._messages = list(messages)
        self._placeholder_id = None
        self._reindex()

    def append_user(self, text: str) -> Message:
        """Append an optimistic user message and return it."""
        message = Message(
            id=_local_id("local"),
            role="user",
            content=text,
            created_at=datetime.now(UTC),
            chat_id=self.chat_id,
            pending=True,
        )
        self._append(message)
        return message

    def promote(self, local_id: str, persisted: Message) -> None:
        """Swap an optimistic entry for its persisted copy, in place."""
        position = self._index.get(local_id)
        if position is None:
            self._append(persisted)
            return
        self._replace_at(position, local_id, persisted)

    def begin_assistant_placeholder(self) -> str:
        """Append an empty assistant placeholder and return its id."""
        if self._placeholder_id is not None:
            raise RuntimeError(f"Placeholder {self._placeholder_id} is already streaming")
        placeholder = Message(
            id=_local_id("temp"),
            role="assistant",
            content="",
            created_at=datetime.now(UTC),
            chat_id=self.chat_id,
            pending=True,
        )
        self._append(placeholder)
        self._placeholder_id = placeholder.id
        return placeholder.id

    def append_fragment(self, placeholder_id: str, text: str) -> None:
        """Concatenate a streamed fragment onto the placeholder."""
        position = self._index.get(placeholder_id)
        if position is None:
            logger.debug("Fragment for retired placeholder %s ignored", placeholder_id)
            return
        current = self._messages[position]
        self._messages[position] = current.model_copy(update={"content": current.content + text})

    def finalize(self, placeholder_id: str, persisted: Message) -> None:
        """Replace the placeholder with its persisted counterpart.

        If a push notification already inserted ``persisted.id`` the existing
        entry is kept and the placeholder is dropped.
        """
        if placeholder_id == self._placeholder_id:
            self._placeholder_id = None

        if persisted.id in self._index:
            self._remove(placeholder_id)
            logger.debug("Reply %s already merged from push, placeholder dropped", persisted.id)
            return

        position = self._index.get(placeholder_id)
        if position is None:
            self._append(persisted)
            return
        self._replace_at(position, placeholder_id, persisted)

    def merge_pushed(self, persisted: Message) -> bool:
        """Append a message delivered by the notification channel.

        Returns False when the id is already present.
        """
        if persisted.id in self._index:
            return False
        self._append(persisted)
        return True

    def discard(self, placeholder_id: str) -> None:
        """Remove a placeholder after a failed run."""
        if placeholder_id == self._placeholder_id:
            self._placeholder_id = None
        self._remove(placeholder_id)

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def _append(self, message: Message) -> None:
        self._index[message.id] = len(self._messages)
        self._messages.append(message)

    def _replace_at(self, position: int, old_id: str, message: Message) -> None:
        self._messages[position] = message
        del self._index[old_id]
        self._index[message.id] = position

    def _remove(self, message_id: str) -> None:
        position = self._index.pop(message_id, None)
        if position is None:
            return
        del self._messages[position]
        for shifted in self._messages[position:]:
            self._index[shifted.id] -= 1

    def _reindex(self) -> None:
        self._index = {m.id: i for i, m in enumerate(self._messages)}
