"""Postgres-backed ConversationStore.

Conversations belong to a users row resolved from the chat-channel user id
(external_id). The running summary and its compaction boundary live in the
conversation's metadata JSONB column.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pai.agent.store import (
    Conversation,
    ConversationNotFoundError,
    StoredMessage,
    validate_message,
    validate_summary,
)
from pai.storage.database import Database
from pai.storage.models import ConversationRow, MessageRow, Tenant, User

logger = logging.getLogger(__name__)


def parse_conversation_id(conversation_id: str) -> UUID:
    try:
        return UUID(conversation_id)
    except (TypeError, ValueError, AttributeError):
        raise ConversationNotFoundError(conversation_id) from None


class SQLStore:
    """ConversationStore over the tenants/users/conversations/messages tables.

    Call connect() once before use; it resolves the tenant row by slug.
    """

    def __init__(self, db: Database, *, channel: str = "telegram", tenant_slug: str = "default") -> None:
        self.db = db
        self.channel = channel
        self.tenant_slug = tenant_slug
        self._tenant_id: UUID | None = None

    async def connect(self) -> None:
        async with self.db.session() as session:
            tenant_id = await session.scalar(select(Tenant.id).where(Tenant.slug == self.tenant_slug))
        if tenant_id is None:
            raise LookupError(f"tenant not found: {self.tenant_slug}")
        self._tenant_id = tenant_id
        logger.info("SQL store ready (tenant=%s, channel=%s)", self.tenant_slug, self.channel)

    @property
    def tenant_id(self) -> UUID:
        if self._tenant_id is None:
            raise RuntimeError("SQLStore.connect() has not been called")
        return self._tenant_id

    # ------------------------------------------------------------------
    # ConversationStore
    # ------------------------------------------------------------------

    async def create_conversation(self, conv: Conversation) -> str:
        if not conv.user_id:
            raise ValueError("user_id is required")
        for msg in conv.messages:
            validate_message(msg)
        async with self.db.session() as session:
            user_pk = await self._resolve_user(session, conv.user_id, create=True)
            row = ConversationRow(
                id=uuid4(),
                user_id=user_pk,
                tenant_id=self.tenant_id,
                topic_id=conv.topic_id,
                state=str(conv.state),
                meta=_summary_meta({}, conv.summary, conv.compacted_at),
            )
            if conv.started_at is not None:
                row.started_at = conv.started_at
            session.add(row)
            await session.flush()
            for msg in conv.messages:
                session.add(self._message_row(row.id, msg))
            await session.commit()
            return str(row.id)

    async def get_conversation(self, conversation_id: str) -> Conversation:
        conv_pk = parse_conversation_id(conversation_id)
        async with self.db.session() as session:
            result = await session.execute(
                select(ConversationRow, User.external_id)
                .join(User, User.id == ConversationRow.user_id)
                .where(ConversationRow.id == conv_pk, ConversationRow.tenant_id == self.tenant_id)
            )
            found = result.first()
            if found is None:
                raise ConversationNotFoundError(conversation_id)
            row, external_id = found
            return await self._load(session, row, external_id)

    async def get_active_conversation(self, user_id: str) -> Conversation | None:
        async with self.db.session() as session:
            user_pk = await self._resolve_user(session, user_id, create=False)
            if user_pk is None:
                return None
            row = await session.scalar(
                select(ConversationRow)
                .where(
                    ConversationRow.user_id == user_pk,
                    ConversationRow.tenant_id == self.tenant_id,
                    ConversationRow.ended_at.is_(None),
                )
                .order_by(ConversationRow.started_at.desc())
                .limit(1)
            )
            if row is None:
                return None
            return await self._load(session, row, user_id)

    async def add_message(self, conversation_id: str, msg: StoredMessage) -> None:
        validate_message(msg)
        async with self.db.session() as session:
            row = await self._get_row(session, conversation_id)
            session.add(self._message_row(row.id, msg))
            await session.commit()

    async def set_summary(self, conversation_id: str, summary: str, compacted_at: int) -> None:
        async with self.db.session() as session:
            row = await self._get_row(session, conversation_id)
            count = await session.scalar(
                select(func.count()).select_from(MessageRow).where(MessageRow.conversation_id == row.id)
            )
            validate_summary(count or 0, summary, compacted_at)
            # Reassign so the JSONB change is flushed
            row.meta = _summary_meta(row.meta or {}, summary, compacted_at)
            await session.commit()

    async def end_conversation(self, conversation_id: str) -> None:
        async with self.db.session() as session:
            row = await self._get_row(session, conversation_id)
            if row.ended_at is None:
                row.ended_at = datetime.now(UTC)
                await session.commit()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_user(self, session: AsyncSession, external_id: str, *, create: bool) -> UUID | None:
        user_pk = await session.scalar(
            select(User.id).where(
                User.tenant_id == self.tenant_id,
                User.channel == self.channel,
                User.external_id == external_id,
            )
        )
        if user_pk is not None or not create:
            return user_pk

        user = User(
            id=uuid4(),
            tenant_id=self.tenant_id,
            role="student",
            name=external_id,
            external_id=external_id,
            channel=self.channel,
        )
        session.add(user)
        await session.flush()
        logger.info("Created user for %s:%s", self.channel, external_id)
        return user.id

    async def _get_row(self, session: AsyncSession, conversation_id: str) -> ConversationRow:
        conv_pk = parse_conversation_id(conversation_id)
        row = await session.scalar(
            select(ConversationRow).where(
                ConversationRow.id == conv_pk,
                ConversationRow.tenant_id == self.tenant_id,
            )
        )
        if row is None:
            raise ConversationNotFoundError(conversation_id)
        return row

    async def _load(self, session: AsyncSession, row: ConversationRow, external_id: str | None) -> Conversation:
        result = await session.execute(
            select(MessageRow)
            .where(MessageRow.conversation_id == row.id)
            .order_by(MessageRow.created_at, MessageRow.seq)
        )
        meta = row.meta or {}
        return Conversation(
            user_id=external_id or "",
            id=str(row.id),
            topic_id=row.topic_id,
            state=row.state,
            messages=[_to_message(m) for m in result.scalars().all()],
            summary=meta.get("summary", ""),
            compacted_at=int(meta.get("compacted_at", 0)),
            started_at=row.started_at,
            ended_at=row.ended_at,
        )

    def _message_row(self, conversation_pk: UUID, msg: StoredMessage) -> MessageRow:
        row = MessageRow(
            conversation_id=conversation_pk,
            tenant_id=self.tenant_id,
            role=msg.role,
            content=msg.content,
            model=msg.model or None,
            input_tokens=msg.input_tokens,
            output_tokens=msg.output_tokens,
        )
        if msg.created_at is not None:
            row.created_at = msg.created_at
        return row


def _summary_meta(meta: dict, summary: str, compacted_at: int) -> dict:
    updated = dict(meta)
    if summary or compacted_at:
        updated["summary"] = summary
        updated["compacted_at"] = compacted_at
    else:
        updated.pop("summary", None)
        updated.pop("compacted_at", None)
    return updated


def _to_message(row: MessageRow) -> StoredMessage:
    return StoredMessage(
        role=row.role,
        content=row.content,
        model=row.model or "",
        input_tokens=row.input_tokens or 0,
        output_tokens=row.output_tokens or 0,
        created_at=row.created_at,
    )
