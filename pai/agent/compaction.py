"""Conversation compaction: keeps the prompt bounded as history grows.

Once the uncompacted tail of a conversation passes the message-count or
token threshold, everything except the most recent keep_recent messages
is folded into a short running summary by a separate analysis call. The
summary is injected into later prompts in place of the messages it covers.

Compaction is best effort: any failure is logged and the turn carries on
with the full uncompacted history.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from pai.agent.store import Conversation, ConversationStore, StoredMessage
from pai.ai.schemas import CompletionRequest, Message, Role, TaskType

if TYPE_CHECKING:
    from pai.ai.router import Router
    from pai.config import Settings

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Summarization Prompts
# ------------------------------------------------------------------

SUMMARY_SYSTEM_PROMPT = """\
You summarize tutoring conversations between a student and a mathematics tutor.
Capture:
- Topics covered
- What the student understood and what they struggled with
- Worked examples and the key steps used
Keep the summary under 150 words. Write it in the dominant language of the
conversation. Output ONLY the summary."""

SUMMARY_PREFIX = "Previous conversation summary:\n"
SUMMARY_ACK = "Understood. I'll continue from where we left off."

# Room for a ~150 word summary
_SUMMARY_MAX_TOKENS = 512


# ------------------------------------------------------------------
# Token Estimator
# ------------------------------------------------------------------


class TokenEstimator:
    """Rough token counts using the chars/4 heuristic."""

    CHARS_PER_TOKEN = 4

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return len(text) // self.CHARS_PER_TOKEN

    def estimate_messages(self, messages: list[StoredMessage]) -> int:
        return sum(self.estimate(m.content) for m in messages)


# ------------------------------------------------------------------
# Conversation Compactor
# ------------------------------------------------------------------


class ConversationCompactor:
    """Decides when to compact and builds the post-compaction context."""

    def __init__(
        self,
        router: Router,
        message_threshold: int = 20,
        token_threshold: int = 3000,
        keep_recent: int = 6,
    ) -> None:
        if message_threshold < 1:
            raise ValueError("message_threshold must be >= 1")
        if keep_recent < 0:
            raise ValueError("keep_recent must be >= 0")
        self.router = router
        self.message_threshold = message_threshold
        self.token_threshold = token_threshold
        self.keep_recent = keep_recent
        self.estimator = TokenEstimator()

    @classmethod
    def from_settings(cls, router: Router, settings: Settings) -> ConversationCompactor:
        return cls(
            router,
            message_threshold=settings.compact_threshold,
            token_threshold=settings.compact_token_threshold,
            keep_recent=settings.compact_keep_recent,
        )

    def should_compact(self, conv: Conversation) -> bool:
        """True when the uncompacted tail exceeds either threshold."""
        uncompacted = conv.messages[conv.compacted_at:]
        if len(uncompacted) > self.message_threshold:
            return True
        return self.estimator.estimate_messages(uncompacted) > self.token_threshold

    def compact_until(self, conv: Conversation) -> int | None:
        """New compacted_at boundary, or None if nothing new would be summarized."""
        compact_up_to = len(conv.messages) - self.keep_recent
        if compact_up_to <= conv.compacted_at:
            return None
        return compact_up_to

    async def maybe_compact(self, conv: Conversation, store: ConversationStore) -> Conversation:
        """Compact conv if needed. Returns the conversation to build the prompt from.

        Never raises: on failure the original conversation is returned.
        """
        if not self.should_compact(conv):
            return conv
        compact_up_to = self.compact_until(conv)
        if compact_up_to is None:
            return conv

        start_time = time.monotonic()
        try:
            summary = await self._summarize(
                conv.messages[conv.compacted_at:compact_up_to], conv.summary
            )
            if not summary:
                raise ValueError("empty summary")
            await store.set_summary(conv.id, summary, compact_up_to)
        except Exception as e:
            logger.warning("Compaction failed for conversation %s, continuing uncompacted: %s", conv.id, e)
            return conv

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            "Compacted conversation %s: %d messages summarized, compacted_at=%d (%d ms)",
            conv.id,
            compact_up_to - conv.compacted_at,
            compact_up_to,
            duration_ms,
        )
        conv.summary = summary
        conv.compacted_at = compact_up_to
        return conv

    def context_messages(self, conv: Conversation) -> list[Message]:
        """Messages to send after the system prompt."""
        if not conv.summary:
            return [Message(role=m.role, content=m.content) for m in conv.messages]
        prefix = [
            Message(role=Role.USER, content=SUMMARY_PREFIX + conv.summary),
            Message(role=Role.ASSISTANT, content=SUMMARY_ACK),
        ]
        return prefix + [
            Message(role=m.role, content=m.content) for m in conv.messages[conv.compacted_at:]
        ]

    async def _summarize(self, messages: list[StoredMessage], previous_summary: str) -> str:
        transcript = self._serialize_for_summary(messages)
        if previous_summary:
            user_content = (
                f"## Existing Summary\n\n{previous_summary}\n\n"
                f"## New Conversation\n\n{transcript}"
            )
        else:
            user_content = transcript

        response = await self.router.complete(
            CompletionRequest(
                messages=[
                    Message(role=Role.SYSTEM, content=SUMMARY_SYSTEM_PROMPT),
                    Message(role=Role.USER, content=user_content),
                ],
                max_tokens=_SUMMARY_MAX_TOKENS,
                task=TaskType.ANALYSIS,
            )
        )
        return response.content.strip()

    @staticmethod
    def _serialize_for_summary(messages: list[StoredMessage]) -> str:
        lines = []
        for msg in messages:
            role = "Student" if msg.role == Role.USER else "Tutor"
            lines.append(f"**{role}:** {msg.content}")
        return "\n\n".join(lines)
