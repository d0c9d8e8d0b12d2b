"""Conversation engine: one inbound chat message in, one reply out.

Per turn: command dispatch, fetch-or-create the active conversation,
persist the student message, compaction check, prompt assembly, router
call, persist the reply. Provider, persistence and event failures are
logged and never reach the chat layer; the student sees a fixed apology
when no provider could answer.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from pai.agent import prompts
from pai.agent.compaction import ConversationCompactor
from pai.agent.store import Conversation, ConversationStore, StoredMessage
from pai.ai.schemas import CompletionRequest, Message, Role, TaskType
from pai.chat.gateway import InboundMessage
from pai.config import Settings
from pai.events import (
    AI_RESPONSE,
    MESSAGE_SENT,
    SESSION_STARTED,
    BackgroundEventLogger,
    Event,
    EventLogger,
    NopEventLogger,
)

if TYPE_CHECKING:
    from pai.ai.router import Router

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class _UserLock:
    lock: asyncio.Lock = dataclasses.field(default_factory=asyncio.Lock)
    holders: int = 0


class Engine:
    """Processes inbound messages for every user.

    Turns for the same user run one at a time; different users run
    concurrently.
    """

    def __init__(
        self,
        router: Router,
        store: ConversationStore,
        events: EventLogger | None = None,
        settings: Settings | None = None,
        compactor: ConversationCompactor | None = None,
    ) -> None:
        self.router = router
        self.store = store
        self.events = events or NopEventLogger()
        self.settings = settings or Settings()
        self.compactor = compactor or ConversationCompactor.from_settings(router, self.settings)
        self._user_locks: dict[str, _UserLock] = {}
        self._event_tasks: set[asyncio.Task] = set()

    async def process_message(self, msg: InboundMessage) -> str:
        if not msg.user_id:
            raise ValueError("user_id is required")
        logger.info(
            "Processing message: channel=%s user_id=%s text_len=%d",
            msg.channel,
            msg.user_id,
            len(msg.text),
        )
        async with self._user_turn(msg.user_id):
            if msg.text.startswith("/"):
                return await self._handle_command(msg)
            return await self._handle_turn(msg)

    @asynccontextmanager
    async def _user_turn(self, user_id: str) -> AsyncIterator[None]:
        """Hold the user's lock. The entry is dropped once no turn holds or awaits it."""
        entry = self._user_locks.get(user_id)
        if entry is None:
            entry = self._user_locks[user_id] = _UserLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._user_locks[user_id]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _handle_command(self, msg: InboundMessage) -> str:
        lang = prompts.language_for(msg.language)
        command = msg.text.split()[0]
        # /start@pai_bot -> /start
        command = command.split("@", 1)[0]

        if command in ("/start", "/clear"):
            try:
                ended = await self._end_active(msg.user_id)
            except Exception as e:
                logger.error("Failed to end conversation for user %s: %s", msg.user_id, e)
                return prompts.APOLOGY[lang]

        if command == "/start":
            name = msg.first_name or msg.username or prompts.DEFAULT_NAME[lang]
            return prompts.WELCOME[lang].format(name=name)
        if command == "/clear":
            if ended:
                return prompts.CLEARED[lang]
            return prompts.NOTHING_TO_CLEAR[lang]
        return prompts.UNKNOWN_COMMAND[lang].format(command=command)

    async def _end_active(self, user_id: str) -> bool:
        """End the user's active conversation. Returns True if one was ended.

        Store errors propagate.
        """
        conv = await self.store.get_active_conversation(user_id)
        if conv is None:
            return False
        await self.store.end_conversation(conv.id)
        logger.info("Ended conversation %s for user %s", conv.id, user_id)
        return True

    # ------------------------------------------------------------------
    # Teaching turn
    # ------------------------------------------------------------------

    async def _handle_turn(self, msg: InboundMessage) -> str:
        lang = prompts.language_for(msg.language)
        content = self._user_content(msg)
        conv = await self._get_or_create(msg)

        user_message = StoredMessage(role=Role.USER, content=content)
        persisted = await self._persist(conv.id, user_message)
        self._emit(
            Event(
                MESSAGE_SENT,
                conversation_id=conv.id,
                user_id=msg.user_id,
                data={"channel": msg.channel, "text_length": len(content)},
            )
        )

        if persisted:
            try:
                conv = await self.store.get_conversation(conv.id)
            except Exception as e:
                logger.warning("Failed to reload conversation %s: %s", conv.id, e)
                conv.messages.append(user_message)
        else:
            conv.messages.append(user_message)

        conv = await self.compactor.maybe_compact(conv, self.store)

        context = self.compactor.context_messages(conv)
        if msg.image_url and context and context[-1].role == Role.USER:
            context[-1] = dataclasses.replace(context[-1], image_urls=(msg.image_url,))

        request = CompletionRequest(
            messages=[Message(role=Role.SYSTEM, content=prompts.SYSTEM_PROMPT), *context],
            max_tokens=self.settings.max_output_tokens,
            task=TaskType.TEACHING,
        )
        try:
            response = await self.router.complete(request)
        except Exception as e:
            logger.error("AI completion failed for user %s: %s", msg.user_id, e)
            return prompts.APOLOGY[lang]

        await self._persist(
            conv.id,
            StoredMessage(
                role=Role.ASSISTANT,
                content=response.content,
                model=response.model,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            ),
        )
        self._emit(
            Event(
                AI_RESPONSE,
                conversation_id=conv.id,
                user_id=msg.user_id,
                data={
                    "model": response.model,
                    "input_tokens": response.input_tokens,
                    "output_tokens": response.output_tokens,
                    "channel": msg.channel,
                    "had_image": bool(msg.has_image or msg.image_url),
                    "had_reply": bool(msg.reply_to_text),
                },
            )
        )
        return response.content

    @staticmethod
    def _user_content(msg: InboundMessage) -> str:
        text = msg.text
        if not text and msg.has_image:
            text = msg.caption or prompts.IMAGE_ONLY
        if not text:
            raise ValueError("message text is required")
        if msg.reply_to_text:
            return f'[Replying to: "{msg.reply_to_text}"]\n\n{text}'
        return text

    async def _get_or_create(self, msg: InboundMessage) -> Conversation:
        try:
            conv = await self.store.get_active_conversation(msg.user_id)
            if conv is not None:
                return conv
            conv = Conversation(user_id=msg.user_id)
            conv.id = await self.store.create_conversation(conv)
        except Exception as e:
            logger.error("Failed to load or create conversation for user %s: %s", msg.user_id, e)
            # Answer from a transient conversation; nothing is persisted
            return Conversation(user_id=msg.user_id)

        logger.info("Started conversation %s for user %s", conv.id, msg.user_id)
        self._emit(
            Event(
                SESSION_STARTED,
                conversation_id=conv.id,
                user_id=msg.user_id,
                data={"channel": msg.channel},
            )
        )
        return conv

    async def _persist(self, conversation_id: str, message: StoredMessage) -> bool:
        if not conversation_id:
            return False
        try:
            await self.store.add_message(conversation_id, message)
        except Exception as e:
            logger.warning("Failed to persist %s message in %s: %s", message.role, conversation_id, e)
            return False
        return True

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(self, event: Event) -> None:
        """Fire-and-forget. Never blocks the turn."""
        if not event.conversation_id:
            return
        if isinstance(self.events, BackgroundEventLogger):
            self.events.submit(event)
            return
        task = asyncio.create_task(self._log_event(event))
        self._event_tasks.add(task)
        task.add_done_callback(self._event_tasks.discard)

    async def _log_event(self, event: Event) -> None:
        try:
            await self.events.log_event(event)
        except Exception as e:
            logger.warning("Failed to log event %s: %s", event.event_type, e)

    async def flush_events(self) -> None:
        """Wait for fire-and-forget event writes started by this engine."""
        if self._event_tasks:
            await asyncio.gather(*list(self._event_tasks), return_exceptions=True)
