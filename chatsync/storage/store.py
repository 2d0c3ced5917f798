"""Record store for chats and messages.

CRUD and ordered queries over async SQLAlchemy, plus change notification:
every committed message insert is published on the EventBus, and
subscribe_messages() registers a handler scoped to one chat.
All methods follow the session injection pattern: pass a session to join
a caller's transaction, omit it to get a committed unit of work.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Awaitable, Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chatsync.errors import PersistenceError
from chatsync.events import MESSAGE_INSERTED, Event, EventBus
from chatsync.schemas import Chat, Message, Role
from chatsync.storage.database import Database
from chatsync.storage.models import ChatRecord, MessageRecord

logger = logging.getLogger(__name__)

InsertHandler = Callable[[Message], Awaitable[None]]


@dataclass
class Subscription:
    """Handle returned by subscribe_messages()."""

    chat_id: str
    handler: Callable[[Event], Awaitable[None]]
    active: bool = True


def _uuid(value: str, operation: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise PersistenceError(operation, e) from e


def _aware(value: datetime) -> datetime:
    # SQLite hands timestamps back naive
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class RecordStore:
    """Chats and messages, with insert notifications for messages."""

    def __init__(self, db: Database, bus: EventBus) -> None:
        self.db = db
        self.bus = bus

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def insert_message(
        self,
        chat_id: str,
        user_id: str,
        role: Role,
        content: str,
        session: AsyncSession | None = None,
    ) -> Message:
        """Persist a message and publish it to subscribers of its chat."""
        chat_uuid = _uuid(chat_id, "insert_message")
        try:
            if session is None:
                async with self.db.session() as session:
                    message = await self._insert_message(chat_uuid, user_id, role, content, session)
                    await session.commit()
            else:
                message = await self._insert_message(chat_uuid, user_id, role, content, session)
        except SQLAlchemyError as e:
            raise PersistenceError("insert_message", e) from e

        await self.bus.emit(Event(type=MESSAGE_INSERTED, chat_id=message.chat_id, record=message))
        return message

    async def _insert_message(
        self,
        chat_id: uuid.UUID,
        user_id: str,
        role: Role,
        content: str,
        session: AsyncSession,
    ) -> Message:
        record = MessageRecord(chat_id=chat_id, user_id=user_id, role=role, content=content)
        session.add(record)
        await session.flush()
        return self._to_message(record)

    async def list_messages(self, chat_id: str, session: AsyncSession | None = None) -> list[Message]:
        """Messages of a chat, oldest first."""
        chat_uuid = _uuid(chat_id, "list_messages")
        try:
            if session is None:
                async with self.db.session() as session:
                    return await self._list_messages(chat_uuid, session)
            return await self._list_messages(chat_uuid, session)
        except SQLAlchemyError as e:
            raise PersistenceError("list_messages", e) from e

    async def _list_messages(self, chat_id: uuid.UUID, session: AsyncSession) -> list[Message]:
        result = await session.execute(
            select(MessageRecord)
            .where(MessageRecord.chat_id == chat_id)
            .order_by(MessageRecord.created_at.asc())
        )
        return [self._to_message(r) for r in result.scalars().all()]

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def insert_chat(self, user_id: str, title: str, session: AsyncSession | None = None) -> Chat:
        try:
            if session is None:
                async with self.db.session() as session:
                    chat = await self._insert_chat(user_id, title, session)
                    await session.commit()
                    return chat
            return await self._insert_chat(user_id, title, session)
        except SQLAlchemyError as e:
            raise PersistenceError("insert_chat", e) from e

    async def _insert_chat(self, user_id: str, title: str, session: AsyncSession) -> Chat:
        record = ChatRecord(user_id=user_id, title=title)
        session.add(record)
        await session.flush()
        return self._to_chat(record)

    async def list_chats(self, user_id: str, session: AsyncSession | None = None) -> list[Chat]:
        """Chats of a user, most recently updated first."""
        try:
            if session is None:
                async with self.db.session() as session:
                    return await self._list_chats(user_id, session)
            return await self._list_chats(user_id, session)
        except SQLAlchemyError as e:
            raise PersistenceError("list_chats", e) from e

    async def _list_chats(self, user_id: str, session: AsyncSession) -> list[Chat]:
        result = await session.execute(
            select(ChatRecord)
            .where(ChatRecord.user_id == user_id)
            .order_by(ChatRecord.updated_at.desc())
        )
        return [self._to_chat(r) for r in result.scalars().all()]

    async def update_chat(
        self,
        chat_id: str,
        title: str | None = None,
        updated_at: datetime | None = None,
        session: AsyncSession | None = None,
    ) -> Chat:
        chat_uuid = _uuid(chat_id, "update_chat")
        try:
            if session is None:
                async with self.db.session() as session:
                    chat = await self._update_chat(chat_uuid, title, updated_at, session)
                    await session.commit()
                    return chat
            return await self._update_chat(chat_uuid, title, updated_at, session)
        except SQLAlchemyError as e:
            raise PersistenceError("update_chat", e) from e

    async def _update_chat(
        self,
        chat_id: uuid.UUID,
        title: str | None,
        updated_at: datetime | None,
        session: AsyncSession,
    ) -> Chat:
        record = await session.get(ChatRecord, chat_id)
        if record is None:
            raise PersistenceError("update_chat", LookupError(f"chat {chat_id} not found"))
        if title is not None:
            record.title = title
        record.updated_at = updated_at or datetime.now(UTC)
        await session.flush()
        return self._to_chat(record)

    async def delete_chat(self, chat_id: str, session: AsyncSession | None = None) -> None:
        """Delete a chat together with its messages."""
        chat_uuid = _uuid(chat_id, "delete_chat")
        try:
            if session is None:
                async with self.db.session() as session:
                    await self._delete_chat(chat_uuid, session)
                    await session.commit()
                    return
            await self._delete_chat(chat_uuid, session)
        except SQLAlchemyError as e:
            raise PersistenceError("delete_chat", e) from e

    async def _delete_chat(self, chat_id: uuid.UUID, session: AsyncSession) -> None:
        await session.execute(delete(MessageRecord).where(MessageRecord.chat_id == chat_id))
        await session.execute(delete(ChatRecord).where(ChatRecord.id == chat_id))
        await session.flush()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    async def subscribe_messages(self, chat_id: str, on_insert: InsertHandler) -> Subscription:
        """Call ``on_insert`` for every message committed to ``chat_id``."""
        subscription: Subscription

        async def _filtered(event: Event) -> None:
            if subscription.active and event.chat_id == chat_id:
                await on_insert(event.record)

        subscription = Subscription(chat_id=chat_id, handler=_filtered)
        self.bus.on(MESSAGE_INSERTED, _filtered)
        logger.debug("Subscribed to message inserts for chat %s", chat_id)
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        self.bus.off(MESSAGE_INSERTED, subscription.handler)
        logger.debug("Unsubscribed from message inserts for chat %s", subscription.chat_id)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _to_message(record: MessageRecord) -> Message:
        return Message(
            id=str(record.id),
            role=record.role,  # type: ignore[arg-type]
            content=record.content,
            created_at=_aware(record.created_at),
            chat_id=str(record.chat_id),
        )

    @staticmethod
    def _to_chat(record: ChatRecord) -> Chat:
        return Chat(
            id=str(record.id),
            title=record.title,
            created_at=_aware(record.created_at),
            updated_at=_aware(record.updated_at),
            user_id=record.user_id,
        )
