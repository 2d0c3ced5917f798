"""chatsync component wiring.

Builds components in dependency order:
  Settings -> Database -> EventBus -> RecordStore -> ReplyClient -> ChatSession

and tears them down in reverse. The view layer owns the event loop and
calls create_components() once at startup.
"""

from __future__ import annotations

import logging

import httpx

from chatsync.config import Settings
from chatsync.events import EventBus
from chatsync.notifications import Notifier
from chatsync.reply_client import ReplyClient
from chatsync.session import ChatSession
from chatsync.storage.database import Database
from chatsync.storage.store import RecordStore

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


async def create_components(
    settings: Settings,
    notify: Notifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """Initialize all components in dependency order.

    Returns dict with all components so shutdown_components() can close them.
    """
    database = Database(settings)
    await database.connect()

    bus = EventBus(max_queue=settings.event_queue_size)
    await bus.start()

    store = RecordStore(database, bus)

    client = ReplyClient(settings, transport=transport)
    await client.start()

    session = ChatSession(store, client, settings, notify=notify)

    logger.info("chatsync components ready (database: %s)", database.engine.url.render_as_string(hide_password=True))
    return {
        "database": database,
        "bus": bus,
        "store": store,
        "client": client,
        "session": session,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down chatsync...")

    session = components.get("session")
    if session:
        await session.sign_out()

    client = components.get("client")
    if client:
        await client.close()

    bus = components.get("bus")
    if bus:
        await bus.stop()

    database = components.get("database")
    if database:
        await database.disconnect()

    logger.info("chatsync shutdown complete.")
