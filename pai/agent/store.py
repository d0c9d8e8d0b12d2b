"""Conversation state and message history persistence.

Two backends implement ConversationStore: MemoryStore here (tests/dev)
and SQLStore in store_sql.py (Postgres via SQLAlchemy).
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol


class ConversationNotFoundError(LookupError):
    """No conversation matches the given id."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ConversationState(StrEnum):
    TEACHING = "teaching"
    QUIZZING = "quizzing"
    REVIEWING = "reviewing"


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class StoredMessage:
    """A persisted conversation message."""

    role: str
    content: str
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    created_at: datetime | None = None


@dataclass
class Conversation:
    """A teaching conversation session.

    ``compacted_at`` counts how many leading messages are covered by
    ``summary``. Only messages after it are sent to the model verbatim.
    """

    user_id: str
    id: str = ""
    topic_id: str | None = None
    state: str = ConversationState.TEACHING
    messages: list[StoredMessage] = field(default_factory=list)
    summary: str = ""
    compacted_at: int = 0
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


def validate_message(msg: StoredMessage) -> None:
    if not msg.role:
        raise ValueError("message role is required")
    if not msg.content:
        raise ValueError("message content is required")


def validate_summary(message_count: int, summary: str, compacted_at: int) -> None:
    if not 0 <= compacted_at <= message_count:
        raise ValueError(
            f"compacted_at {compacted_at} out of range [0, {message_count}]"
        )
    if summary and compacted_at == 0:
        raise ValueError("a non-empty summary requires compacted_at > 0")


class ConversationStore(Protocol):
    """Persistence contract consumed by the Engine.

    Unknown ids raise ConversationNotFoundError.
    """

    async def create_conversation(self, conv: Conversation) -> str: ...

    async def get_conversation(self, conversation_id: str) -> Conversation: ...

    async def get_active_conversation(self, user_id: str) -> Conversation | None: ...

    async def add_message(self, conversation_id: str, msg: StoredMessage) -> None: ...

    async def set_summary(
        self, conversation_id: str, summary: str, compacted_at: int
    ) -> None: ...

    async def end_conversation(self, conversation_id: str) -> None: ...


class MemoryStore:
    """In-memory ConversationStore guarded by a single lock.

    Returned conversations are copies; mutate state through the store.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._lock = asyncio.Lock()

    async def create_conversation(self, conv: Conversation) -> str:
        if not conv.user_id:
            raise ValueError("user_id is required")
        async with self._lock:
            stored = copy.deepcopy(conv)
            stored.id = uuid.uuid4().hex
            stored.started_at = stored.started_at or _now()
            stored.ended_at = None
            for msg in stored.messages:
                msg.created_at = msg.created_at or _now()
            self._conversations[stored.id] = stored
            return stored.id

    async def get_conversation(self, conversation_id: str) -> Conversation:
        async with self._lock:
            return copy.deepcopy(self._get(conversation_id))

    async def get_active_conversation(self, user_id: str) -> Conversation | None:
        async with self._lock:
            active = [
                c for c in self._conversations.values()
                if c.user_id == user_id and c.ended_at is None
            ]
            if not active:
                return None
            # Stable sort: ties resolve to the most recently created
            latest = sorted(active, key=lambda c: c.started_at)[-1]
            return copy.deepcopy(latest)

    async def add_message(self, conversation_id: str, msg: StoredMessage) -> None:
        validate_message(msg)
        async with self._lock:
            conv = self._get(conversation_id)
            stored = copy.copy(msg)
            stored.created_at = stored.created_at or _now()
            conv.messages.append(stored)

    async def set_summary(
        self, conversation_id: str, summary: str, compacted_at: int
    ) -> None:
        async with self._lock:
            conv = self._get(conversation_id)
            validate_summary(len(conv.messages), summary, compacted_at)
            conv.summary = summary
            conv.compacted_at = compacted_at

    async def end_conversation(self, conversation_id: str) -> None:
        async with self._lock:
            conv = self._get(conversation_id)
            if conv.ended_at is None:
                conv.ended_at = _now()

    def _get(self, conversation_id: str) -> Conversation:
        conv = self._conversations.get(conversation_id)
        if conv is None:
            raise ConversationNotFoundError(conversation_id)
        return conv
