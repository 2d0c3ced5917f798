"""Stream orchestrator -- one send/stream/finalize cycle per user message.

IDLE -> SENDING -> STREAMING -> FINALIZING -> IDLE, with FAILED reachable
from any non-idle state. A failed run raises exactly one notification and
returns to IDLE so the user can retry.

Runs are single-flight per chat. Every transcript mutation is guarded by the
owner's is_active() check: once the user switches away from a chat, the run
keeps draining and persisting its reply but never touches the new transcript.
"""

from __future__ import annotations

import enum
import logging
from datetime import UTC, datetime
from typing import Awaitable, Protocol

from chatsync.config import Settings
from chatsync.errors import ChatSyncError
from chatsync.notifications import Notifier, log_notifier
from chatsync.reply_client import ReplyClient
from chatsync.schemas import Message
from chatsync.storage.store import RecordStore
from chatsync.stream.decoder import ReplyAssembler
from chatsync.titles import derive_title
from chatsync.transcript import TranscriptAccumulator

logger = logging.getLogger(__name__)

SEND_FAILED = "Failed to send message"


class SendState(str, enum.Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    FAILED = "failed"


class TranscriptOwner(Protocol):
    """What the orchestrator needs from the surrounding chat session."""

    user_id: str | None

    def is_active(self, chat_id: str, transcript: TranscriptAccumulator) -> bool: ...

    def refresh_chats(self) -> Awaitable[None]: ...


class StreamOrchestrator:
    """Drives send -> stream -> finalize for one chat at a time."""

    def __init__(
        self,
        store: RecordStore,
        client: ReplyClient,
        owner: TranscriptOwner,
        settings: Settings,
        notify: Notifier | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._owner = owner
        self._settings = settings
        self._notify = notify or log_notifier
        self._states: dict[str, SendState] = {}

    def state_for(self, chat_id: str) -> SendState:
        return self._states.get(chat_id, SendState.IDLE)

    def is_sending(self, chat_id: str) -> bool:
        return self.state_for(chat_id) is not SendState.IDLE

    def _transition(self, chat_id: str, state: SendState) -> None:
        logger.debug("Chat %s: %s -> %s", chat_id, self.state_for(chat_id).value, state.value)
        if state is SendState.IDLE:
            self._states.pop(chat_id, None)
        else:
            self._states[chat_id] = state

    async def send(self, chat_id: str, text: str, transcript: TranscriptAccumulator) -> Message | None:
        """Send ``text`` to ``chat_id`` and stream the reply into ``transcript``.

        Returns the persisted assistant message, or None when the send was
        rejected or failed. Never raises ChatSyncError.
        """
        content = text.strip()
        user_id = self._owner.user_id
        if not content or user_id is None:
            return None
        if self.is_sending(chat_id):
            logger.warning("Send rejected: chat %s already has a reply in flight", chat_id)
            return None

        placeholder_id: str | None = None
        try:
            # 1. Persist user message behind an optimistic entry
            self._transition(chat_id, SendState.SENDING)
            local = transcript.append_user(content) if self._active(chat_id, transcript) else None
            user_message = await self._store.insert_message(chat_id, user_id, "user", content)
            if local is not None and self._active(chat_id, transcript):
                transcript.promote(local.id, user_message)

            if self._active(chat_id, transcript):
                history = transcript.history()
            else:
                history = [user_message.to_wire()]

            # 2. Stream the reply
            self._transition(chat_id, SendState.STREAMING)
            parts: list[str] = []
            assembler = ReplyAssembler()
            try:
                async with self._client.open_stream(chat_id, history) as chunks:
                    if self._active(chat_id, transcript):
                        placeholder_id = transcript.begin_assistant_placeholder()
                    async for chunk in chunks:
                        for fragment in assembler.feed(chunk):
                            parts.append(fragment)
                            if placeholder_id is not None and self._active(chat_id, transcript):
                                transcript.append_fragment(placeholder_id, fragment)
                        if assembler.finished:
                            break
            finally:
                assembler.close()

            # 3. Persist and promote the reply
            self._transition(chat_id, SendState.FINALIZING)
            reply = await self._store.insert_message(chat_id, user_id, "assistant", "".join(parts))
            if placeholder_id is not None:
                if self._active(chat_id, transcript):
                    transcript.finalize(placeholder_id, reply)
                placeholder_id = None

            title = derive_title(content, self._settings.title_word_count)
            await self._store.update_chat(chat_id, title=title, updated_at=datetime.now(UTC))
            await self._owner.refresh_chats()

            self._transition(chat_id, SendState.IDLE)
            return reply

        except ChatSyncError as e:
            logger.error("Error sending message to chat %s: %s", chat_id, e)
            self._fail(chat_id, transcript, placeholder_id, str(e) or SEND_FAILED)
            return None
        except Exception:
            logger.exception("Unexpected error sending message to chat %s", chat_id)
            self._fail(chat_id, transcript, placeholder_id, SEND_FAILED)
            return None
        finally:
            # Cancellation skips both handlers above
            if self.is_sending(chat_id):
                if placeholder_id is not None and self._active(chat_id, transcript):
                    transcript.discard(placeholder_id)
                self._transition(chat_id, SendState.IDLE)

    def _active(self, chat_id: str, transcript: TranscriptAccumulator) -> bool:
        return self._owner.is_active(chat_id, transcript)

    def _fail(
        self,
        chat_id: str,
        transcript: TranscriptAccumulator,
        placeholder_id: str | None,
        message: str,
    ) -> None:
        self._transition(chat_id, SendState.FAILED)
        if placeholder_id is not None and self._active(chat_id, transcript):
            transcript.discard(placeholder_id)
        self._notify("error", message)
        self._transition(chat_id, SendState.IDLE)
