"""Test fixtures: in-memory SQLite store, live event bus, fake reply service."""

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio

from chatsync.config import Settings
from chatsync.events import EventBus
from chatsync.reply_client import ReplyClient
from chatsync.storage.database import Database
from chatsync.storage.store import RecordStore

from tests.helpers import FakeReplyService

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        reply_base_url="http://reply.test",
        REPLY_API_KEY="test-key",
    )


@pytest_asyncio.fixture
async def db(settings):
    """Fresh in-memory database per test."""
    database = Database(settings)
    await database.connect()
    yield database
    await database.disconnect()


@pytest_asyncio.fixture
async def bus():
    event_bus = EventBus()
    await event_bus.start()
    yield event_bus
    await event_bus.stop()


@pytest_asyncio.fixture
async def store(db, bus) -> RecordStore:
    return RecordStore(db, bus)


@pytest.fixture
def reply_service() -> FakeReplyService:
    return FakeReplyService()


@pytest_asyncio.fixture
async def client(settings, reply_service):
    reply_client = ReplyClient(settings, transport=httpx.MockTransport(reply_service))
    await reply_client.start()
    yield reply_client
    await reply_client.close()
