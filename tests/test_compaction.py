"""Tests for conversation compaction: thresholds, boundary, failure isolation."""

import pytest

from pai.agent.compaction import (
    SUMMARY_ACK,
    SUMMARY_PREFIX,
    ConversationCompactor,
    TokenEstimator,
)
from pai.agent.store import Conversation, MemoryStore, StoredMessage
from pai.ai.errors import ProviderError
from pai.ai.router import Router
from pai.ai.schemas import Role, TaskType
from tests.conftest import MockProvider


def _messages(n: int, text: str = "msg") -> list[StoredMessage]:
    roles = [Role.USER, Role.ASSISTANT]
    return [StoredMessage(role=roles[i % 2], content=f"{text} {i}") for i in range(n)]


async def _stored(store: MemoryStore, n: int, text: str = "msg") -> Conversation:
    conv_id = await store.create_conversation(Conversation(user_id="u1", messages=_messages(n, text)))
    return await store.get_conversation(conv_id)


# ---------------------------------------------------------------------------
# TokenEstimator
# ---------------------------------------------------------------------------


class TestTokenEstimator:
    def test_chars_over_four(self):
        est = TokenEstimator()
        assert est.estimate("") == 0
        assert est.estimate("abc") == 0
        assert est.estimate("a" * 400) == 100

    def test_estimate_messages_sums_content(self):
        est = TokenEstimator()
        msgs = [StoredMessage("user", "a" * 40), StoredMessage("assistant", "b" * 80)]
        assert est.estimate_messages(msgs) == 30


# ---------------------------------------------------------------------------
# Decision logic
# ---------------------------------------------------------------------------


class TestShouldCompact:
    def _compactor(self, **kwargs) -> ConversationCompactor:
        return ConversationCompactor(Router(), **kwargs)

    def test_under_both_thresholds(self):
        c = self._compactor(message_threshold=6, token_threshold=3000, keep_recent=2)
        assert not c.should_compact(Conversation(user_id="u", messages=_messages(6)))

    def test_message_threshold_exceeded(self):
        c = self._compactor(message_threshold=6, token_threshold=3000, keep_recent=2)
        assert c.should_compact(Conversation(user_id="u", messages=_messages(7)))

    def test_token_threshold_exceeded(self):
        c = self._compactor(message_threshold=100, token_threshold=200, keep_recent=2)
        conv = Conversation(user_id="u", messages=_messages(3, "x" * 400))
        assert c.should_compact(conv)

    def test_only_uncompacted_tail_counts(self):
        c = self._compactor(message_threshold=6, token_threshold=3000, keep_recent=2)
        conv = Conversation(user_id="u", messages=_messages(10), summary="s", compacted_at=5)
        assert not c.should_compact(conv)

    def test_compact_until(self):
        c = self._compactor(message_threshold=6, keep_recent=2)
        assert c.compact_until(Conversation(user_id="u", messages=_messages(7))) == 5
        already = Conversation(user_id="u", messages=_messages(7), summary="s", compacted_at=5)
        assert c.compact_until(already) is None

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            self._compactor(message_threshold=0)
        with pytest.raises(ValueError):
            self._compactor(keep_recent=-1)


# ---------------------------------------------------------------------------
# maybe_compact
# ---------------------------------------------------------------------------


class TestMaybeCompact:
    async def test_summarizes_and_advances_boundary(self):
        provider = MockProvider(summary="Covered linear equations.")
        router = Router()
        router.register("mock", provider)
        store = MemoryStore()
        conv = await _stored(store, 7)
        compactor = ConversationCompactor(router, message_threshold=6, keep_recent=2)

        result = await compactor.maybe_compact(conv, store)

        assert result.summary == "Covered linear equations."
        assert result.compacted_at == 5
        persisted = await store.get_conversation(conv.id)
        assert persisted.summary == "Covered linear equations."
        assert persisted.compacted_at == 5

        request = provider.calls.last
        assert request.task == TaskType.ANALYSIS
        assert request.messages[0].role == Role.SYSTEM
        assert "150 words" in request.messages[0].content
        transcript = request.messages[1].content
        assert "msg 0" in transcript and "msg 4" in transcript
        assert "msg 5" not in transcript

    async def test_previous_summary_passed_as_context(self):
        provider = MockProvider(summary="Updated summary.")
        router = Router()
        router.register("mock", provider)
        store = MemoryStore()
        conv = await _stored(store, 12)
        await store.set_summary(conv.id, "Earlier: fractions.", 3)
        conv = await store.get_conversation(conv.id)
        compactor = ConversationCompactor(router, message_threshold=6, keep_recent=2)

        result = await compactor.maybe_compact(conv, store)

        assert result.compacted_at == 10
        transcript = provider.calls.last.messages[1].content
        assert "Earlier: fractions." in transcript
        assert "msg 2" not in transcript
        assert "msg 3" in transcript and "msg 9" in transcript

    async def test_router_failure_leaves_conversation_untouched(self):
        router = Router()
        router.register("down", MockProvider(name="down", error=ProviderError("down", "boom")))
        store = MemoryStore()
        conv = await _stored(store, 7)
        compactor = ConversationCompactor(router, message_threshold=6, keep_recent=2)

        result = await compactor.maybe_compact(conv, store)

        assert result.summary == ""
        assert result.compacted_at == 0
        assert (await store.get_conversation(conv.id)).compacted_at == 0

    async def test_empty_summary_is_treated_as_failure(self):
        router = Router()
        router.register("mock", MockProvider(summary="   "))
        store = MemoryStore()
        conv = await _stored(store, 7)
        compactor = ConversationCompactor(router, message_threshold=6, keep_recent=2)

        result = await compactor.maybe_compact(conv, store)

        assert result.compacted_at == 0

    async def test_store_failure_is_isolated(self, mock_router):
        class BrokenStore(MemoryStore):
            async def set_summary(self, conversation_id, summary, compacted_at):
                raise RuntimeError("db down")

        store = BrokenStore()
        conv = await _stored(store, 7)
        compactor = ConversationCompactor(mock_router, message_threshold=6, keep_recent=2)

        result = await compactor.maybe_compact(conv, store)

        assert result.summary == ""
        assert result.compacted_at == 0

    async def test_no_call_below_threshold(self, mock_router, mock_provider):
        store = MemoryStore()
        conv = await _stored(store, 4)
        compactor = ConversationCompactor(mock_router, message_threshold=6, keep_recent=2)
        await compactor.maybe_compact(conv, store)
        assert mock_provider.calls.count == 0


# ---------------------------------------------------------------------------
# Context assembly
# ---------------------------------------------------------------------------


class TestContextMessages:
    def test_without_summary_uses_full_log(self):
        c = ConversationCompactor(Router())
        conv = Conversation(user_id="u", messages=_messages(4))
        assert [m.content for m in c.context_messages(conv)] == ["msg 0", "msg 1", "msg 2", "msg 3"]

    def test_with_summary_injects_exchange(self):
        c = ConversationCompactor(Router())
        conv = Conversation(user_id="u", messages=_messages(6), summary="Algebra basics.", compacted_at=4)

        context = c.context_messages(conv)

        assert context[0].role == Role.USER
        assert context[0].content == SUMMARY_PREFIX + "Algebra basics."
        assert context[1].role == Role.ASSISTANT
        assert context[1].content == SUMMARY_ACK
        assert [m.content for m in context[2:]] == ["msg 4", "msg 5"]
