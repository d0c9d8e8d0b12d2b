"""Analytics event logging for the tutoring core.

Events are recorded through an EventLogger sink. The Engine never waits on
a sink directly: BackgroundEventLogger queues events and a background
asyncio task writes them, so a slow or broken sink never delays or breaks
a conversation turn.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import select

from pai.agent.store import ConversationNotFoundError
from pai.agent.store_sql import parse_conversation_id
from pai.storage.database import Database
from pai.storage.models import ConversationRow, EventRow

logger = logging.getLogger(__name__)

SESSION_STARTED = "session_started"
MESSAGE_SENT = "message_sent"
AI_RESPONSE = "ai_response"


@dataclass
class Event:
    """An analytics event tied to a conversation."""

    event_type: str
    conversation_id: str = ""
    user_id: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventLogger(Protocol):
    async def log_event(self, event: Event) -> None: ...


class NopEventLogger:
    """Discards every event."""

    async def log_event(self, event: Event) -> None:
        return None


class MemoryEventLogger:
    """Keeps events in a list. Used by tests."""

    def __init__(self) -> None:
        self._events: list[Event] = []

    async def log_event(self, event: Event) -> None:
        if not event.event_type:
            raise ValueError("event_type is required")
        self._events.append(copy.deepcopy(event))

    def events(self) -> list[Event]:
        return copy.deepcopy(self._events)

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events() if e.event_type == event_type]


class SQLEventLogger:
    """Writes events to the events table.

    Tenant and user are taken from the conversation the event belongs to.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def log_event(self, event: Event) -> None:
        if not event.event_type:
            raise ValueError("event_type is required")
        conv_pk = parse_conversation_id(event.conversation_id)
        async with self.db.session() as session:
            found = (
                await session.execute(
                    select(ConversationRow.tenant_id, ConversationRow.user_id).where(ConversationRow.id == conv_pk)
                )
            ).first()
            if found is None:
                raise ConversationNotFoundError(event.conversation_id)
            tenant_id, user_pk = found
            data = {"conversation_id": event.conversation_id, **event.data}
            session.add(
                EventRow(
                    tenant_id=tenant_id,
                    user_id=user_pk,
                    event_type=event.event_type,
                    data=data,
                    created_at=event.created_at,
                )
            )
            await session.commit()


class BackgroundEventLogger:
    """Non-blocking front for an EventLogger sink.

    submit() never blocks: when the queue is full the new event is dropped
    with a warning. Sink errors are logged and the event is discarded.
    """

    def __init__(self, sink: EventLogger, max_queue: int = 1000) -> None:
        self.sink = sink
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue)
        self._task: asyncio.Task | None = None
        self._running = False
        self.dropped = 0

    def submit(self, event: Event) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Event queue full, dropping event: %s", event.event_type)

    async def log_event(self, event: Event) -> None:
        self.submit(event)

    async def start(self) -> None:
        """Start the background writer task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._process_loop(), name="event-logger")
        logger.info("Event logger started")

    async def stop(self) -> None:
        """Stop the writer, then write whatever is still queued."""
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
            await self._write(event)
        logger.info("Event logger stopped")

    async def _process_loop(self) -> None:
        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            await self._write(event)

    async def _write(self, event: Event) -> None:
        try:
            await self.sink.log_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Failed to log event %s: %s", event.event_type, e)
        else:
            logger.debug("Event logged: %s conversation=%s", event.event_type, event.conversation_id)

    @property
    def pending(self) -> int:
        """Number of events waiting in queue."""
        return self._queue.qsize()
