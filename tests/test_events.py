"""Tests for event sinks and the background event logger."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from pai.events import (
    AI_RESPONSE,
    BackgroundEventLogger,
    Event,
    MemoryEventLogger,
    NopEventLogger,
)


def _make_event(event_type: str = "message_sent", conversation_id: str = "conv-1") -> Event:
    return Event(event_type=event_type, conversation_id=conversation_id, user_id="u1", data={"channel": "telegram"})


class TestSinks:
    async def test_memory_logger_records_copies(self):
        sink = MemoryEventLogger()
        event = _make_event()
        await sink.log_event(event)
        event.data["channel"] = "tampered"

        stored = sink.events()
        assert len(stored) == 1
        assert stored[0].data["channel"] == "telegram"

    async def test_memory_logger_rejects_empty_type(self):
        with pytest.raises(ValueError):
            await MemoryEventLogger().log_event(_make_event(event_type=""))

    async def test_nop_logger(self):
        assert await NopEventLogger().log_event(_make_event()) is None

    def test_event_timestamp_defaults_to_now(self):
        assert _make_event().created_at.tzinfo is not None


class TestBackgroundEventLogger:
    @pytest.mark.asyncio
    async def test_events_reach_sink(self):
        sink = MemoryEventLogger()
        logger = BackgroundEventLogger(sink)
        await logger.start()
        try:
            logger.submit(_make_event())
            logger.submit(_make_event(AI_RESPONSE))
            await asyncio.sleep(0.1)
            assert [e.event_type for e in sink.events()] == ["message_sent", AI_RESPONSE]
        finally:
            await logger.stop()

    @pytest.mark.asyncio
    async def test_queue_full_drops_newest(self):
        sink = MemoryEventLogger()
        logger = BackgroundEventLogger(sink, max_queue=1)
        # Not started: queue fills up
        logger.submit(_make_event("first"))
        logger.submit(_make_event("second"))
        assert logger.pending == 1
        assert logger.dropped == 1

        await logger.stop()
        assert [e.event_type for e in sink.events()] == ["first"]

    @pytest.mark.asyncio
    async def test_sink_error_does_not_stop_writer(self):
        sink = AsyncMock()
        sink.log_event.side_effect = [RuntimeError("db down"), None]
        logger = BackgroundEventLogger(sink)
        await logger.start()
        try:
            logger.submit(_make_event("first"))
            logger.submit(_make_event("second"))
            await asyncio.sleep(0.1)
            assert sink.log_event.await_count == 2
        finally:
            await logger.stop()

    @pytest.mark.asyncio
    async def test_stop_drains_remaining_events(self):
        sink = MemoryEventLogger()
        logger = BackgroundEventLogger(sink)
        for i in range(5):
            logger.submit(_make_event(f"e{i}"))

        await logger.stop()

        assert len(sink.events()) == 5
        assert logger.pending == 0

    @pytest.mark.asyncio
    async def test_log_event_is_non_blocking_submit(self):
        sink = AsyncMock()
        logger = BackgroundEventLogger(sink)
        await logger.log_event(_make_event())
        assert logger.pending == 1
        sink.log_event.assert_not_awaited()
        await logger.stop()
        sink.log_event.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self):
        logger = BackgroundEventLogger(MemoryEventLogger())
        await logger.start()
        task = logger._task
        await logger.start()
        assert logger._task is task
        await logger.stop()
