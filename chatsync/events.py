"""Change notifications from the record store.

The store emits a MESSAGE_INSERTED event after each committed message
insert. Subscribers (the push reconciler, via RecordStore.subscribe_messages)
receive it later, from the bus's own task, so a notification for a reply can
reach the transcript before or after the orchestrator finalizes it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], Awaitable[None]]

MESSAGE_INSERTED = "message_inserted"


@dataclass
class Event:
    """One store change. ``record`` carries the persisted Message."""

    type: str
    chat_id: str | None = None
    record: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventBus:
    """Queue of store changes fanned out to subscribers.

    emit() never waits on subscribers: events go onto a bounded queue and a
    background task hands each one to every handler registered for its type.
    A handler that raises is logged and the rest still run.
    """

    def __init__(self, max_queue: int = 1000):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue)
        self._task: asyncio.Task | None = None
        self._running = False

    def on(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logger.debug("Subscribed %s to '%s'", handler.__qualname__, event_type)

    def off(self, event_type: str, handler: EventHandler) -> None:
        """Unsubscribe ``handler``. No-op if it was never subscribed."""
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)
            logger.debug("Unsubscribed %s from '%s'", handler.__qualname__, event_type)

    async def emit(self, event: Event) -> None:
        """Queue ``event`` for delivery. Drops it with a warning when full."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Change queue full, dropping %s for chat %s", event.type, event.chat_id)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name="chatsync-events")
        logger.info("Event bus started")

    async def stop(self) -> None:
        """Stop the delivery task, then deliver whatever is still queued."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            while not self._queue.empty():
                try:
                    event = self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                await self._deliver(event)
        logger.info("Event bus stopped")

    async def _run(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
                await self._deliver(event)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Event delivery loop error")

    async def _deliver(self, event: Event) -> None:
        # Copy: a handler may unsubscribe itself during delivery
        handlers = list(self._handlers.get(event.type, []))
        if handlers:
            await asyncio.gather(*(self._call(h, event) for h in handlers))

    async def _call(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Subscriber %s failed on %s for chat %s", handler.__qualname__, event.type, event.chat_id)

    @property
    def pending(self) -> int:
        """Events queued but not yet delivered."""
        return self._queue.qsize()
