"""Push reconciler -- merges independently pushed assistant messages.

Subscribes to message inserts for the active chat and forwards assistant
messages to TranscriptAccumulator.merge_pushed(), which owns dedup against
the orchestrator's own finalize().
"""

from __future__ import annotations

import logging

from chatsync.schemas import Message
from chatsync.storage.store import RecordStore, Subscription
from chatsync.transcript import TranscriptAccumulator

logger = logging.getLogger(__name__)


class PushReconciler:
    """One live subscription, re-pointed whenever the active chat changes."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._subscription: Subscription | None = None
        self._chat_id: str | None = None
        self._transcript: TranscriptAccumulator | None = None

    @property
    def chat_id(self) -> str | None:
        return self._chat_id

    async def watch(self, chat_id: str, transcript: TranscriptAccumulator) -> None:
        """Tear down the previous subscription and follow ``chat_id``."""
        await self.close()
        self._chat_id = chat_id
        self._transcript = transcript
        self._subscription = await self._store.subscribe_messages(chat_id, self._on_insert)
        logger.debug("Reconciler watching chat %s", chat_id)

    async def close(self) -> None:
        subscription = self._subscription
        self._subscription = None
        self._chat_id = None
        self._transcript = None
        if subscription is not None:
            await self._store.unsubscribe(subscription)

    async def _on_insert(self, message: Message) -> None:
        if self._transcript is None or message.chat_id != self._chat_id:
            return
        if message.role != "assistant":
            return
        if self._transcript.merge_pushed(message):
            logger.debug("Merged pushed reply %s into chat %s", message.id, self._chat_id)
