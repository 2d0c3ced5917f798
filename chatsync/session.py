"""Chat session -- process-wide state for one signed-in user.

Holds the chat list, the active chat id and its transcript, the push
reconciler subscription and the stream orchestrator. State is created in
start() (after successful auth) and torn down in sign_out(); switching the
active chat swaps the transcript and re-points the reconciler.
"""

from __future__ import annotations

import logging

from chatsync.config import Settings
from chatsync.errors import ChatSyncError
from chatsync.notifications import Notifier, log_notifier
from chatsync.orchestrator import StreamOrchestrator
from chatsync.reconciler import PushReconciler
from chatsync.reply_client import ReplyClient
from chatsync.schemas import Chat, Message
from chatsync.storage.store import RecordStore
from chatsync.transcript import TranscriptAccumulator

logger = logging.getLogger(__name__)


class ChatSession:
    """Active-conversation state plus the operations the view calls."""

    def __init__(
        self,
        store: RecordStore,
        client: ReplyClient,
        settings: Settings,
        notify: Notifier | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._notify = notify or log_notifier
        self.user_id: str | None = None
        self.chats: list[Chat] = []
        self.active_chat_id: str | None = None
        self.transcript: TranscriptAccumulator | None = None
        self.reconciler = PushReconciler(store)
        self.orchestrator = StreamOrchestrator(store, client, self, settings, notify=self._notify)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, user_id: str) -> None:
        """Initialize for a signed-in user and open their most recent chat."""
        self.user_id = user_id
        await self.load_chats()

    async def sign_out(self) -> None:
        """Drop all per-user state and unsubscribe."""
        await self.reconciler.close()
        self.user_id = None
        self.chats = []
        self.active_chat_id = None
        self.transcript = None
        logger.info("Session signed out")

    def is_active(self, chat_id: str, transcript: TranscriptAccumulator) -> bool:
        """True while ``transcript`` is still the visible one for ``chat_id``."""
        return self.active_chat_id == chat_id and self.transcript is transcript

    @property
    def messages(self) -> list[Message]:
        return self.transcript.messages if self.transcript else []

    @property
    def active_chat(self) -> Chat | None:
        return next((c for c in self.chats if c.id == self.active_chat_id), None)

    @property
    def is_sending(self) -> bool:
        return self.active_chat_id is not None and self.orchestrator.is_sending(self.active_chat_id)

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def load_chats(self) -> None:
        """Reload the chat list; select the newest chat if none is active."""
        if self.user_id is None:
            return
        try:
            self.chats = await self._store.list_chats(self.user_id)
        except ChatSyncError as e:
            logger.error("Error loading chats: %s", e)
            self._notify("error", "Failed to load chats")
            return

        if self.chats and self.active_chat_id is None:
            await self.select_chat(self.chats[0].id)

    async def refresh_chats(self) -> None:
        await self.load_chats()

    async def select_chat(self, chat_id: str | None) -> None:
        """Make ``chat_id`` the active chat, or clear the selection."""
        await self.reconciler.close()
        self.active_chat_id = chat_id
        if chat_id is None:
            self.transcript = None
            return

        transcript = TranscriptAccumulator(chat_id)
        self.transcript = transcript
        await self.reconciler.watch(chat_id, transcript)

        try:
            messages = await self._store.list_messages(chat_id)
        except ChatSyncError as e:
            logger.error("Error loading messages: %s", e)
            self._notify("error", "Failed to load messages")
            return

        if self.is_active(chat_id, transcript):
            # Keep pushes that landed after the query snapshot
            loaded_ids = {m.id for m in messages}
            late = [m for m in transcript.messages if m.id not in loaded_ids]
            transcript.load(messages + late)

    async def create_chat(self) -> Chat | None:
        if self.user_id is None:
            return None
        try:
            chat = await self._store.insert_chat(self.user_id, self._settings.default_chat_title)
        except ChatSyncError as e:
            logger.error("Error creating chat: %s", e)
            self._notify("error", "Failed to create new chat")
            return None

        self.chats = [chat, *self.chats]
        await self.select_chat(chat.id)
        return chat

    async def delete_chat(self, chat_id: str) -> bool:
        try:
            await self._store.delete_chat(chat_id)
        except ChatSyncError as e:
            logger.error("Error deleting chat: %s", e)
            self._notify("error", "Failed to delete chat")
            return False

        self.chats = [c for c in self.chats if c.id != chat_id]
        if self.active_chat_id == chat_id:
            await self.select_chat(self.chats[0].id if self.chats else None)

        self._notify("success", "Chat deleted")
        return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send(self, text: str) -> Message | None:
        """Send ``text`` to the active chat. Ignored with no chat selected."""
        if self.user_id is None or self.active_chat_id is None or self.transcript is None:
            return None
        return await self.orchestrator.send(self.active_chat_id, text, self.transcript)
