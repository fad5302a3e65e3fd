"""Tests for ConsolidationEngine — promoting today's messages to long-term memory."""

import asyncio
import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from brain.consolidation.engine import (
    STATUS_COMPLETED,
    STATUS_SKIPPED,
    ConsolidationEngine,
    ConsolidationResult,
)
from brain.consolidation.parsing import FAILED_SUMMARY
from brain.consolidation.summarizer import AnthropicSummarizer
from brain.errors import ConfigurationError, ConsolidationError, ConsolidationInProgress
from brain.memory.store import RecordStore

pytestmark = pytest.mark.usefixtures("_no_remote")

TODAY = datetime(2025, 3, 14, 23, 0, tzinfo=UTC)

_RESPONSE = json.dumps({
    "summary": "Talked about the garden",
    "topics": ["garden", "tomatoes"],
    "keyInsights": ["Water in the morning"],
})


class FakeSummarizer:
    """Records calls and returns a canned response."""

    def __init__(self, response: str = _RESPONSE) -> None:
        self.response = response
        self.calls: list[tuple[str, str]] = []

    async def summarize(self, system: str, prompt: str) -> str:
        self.calls.append((system, prompt))
        return self.response


def _engine(store: RecordStore, summarizer=None, **kwargs) -> ConsolidationEngine:
    kwargs.setdefault("clock", lambda: TODAY)
    kwargs.setdefault("timezone", "UTC")
    return ConsolidationEngine(store, summarizer, **kwargs)


# -- preconditions -------------------------------------------------------------


async def test_unconfigured_engine_raises(store: RecordStore) -> None:
    engine = _engine(store, None)

    assert engine.configured is False
    with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
        await engine.run()


async def test_nothing_to_consolidate_is_skipped(store: RecordStore) -> None:
    summarizer = FakeSummarizer()
    engine = _engine(store, summarizer)

    result = await engine.run()

    assert result.status == STATUS_SKIPPED
    assert result.message_count == 0
    assert summarizer.calls == []
    assert (await store.stats())["long_term"] == 0


async def test_yesterdays_messages_are_ignored(store: RecordStore, clock) -> None:
    clock.set(datetime(2025, 3, 13, 22, 0, tzinfo=UTC))
    await store.append("s1", "user", "yesterday")

    result = await _engine(store, FakeSummarizer()).run()

    assert result.status == STATUS_SKIPPED
    assert (await store.stats())["unconsolidated"] == 1


# -- happy path ----------------------------------------------------------------


async def test_consolidates_todays_messages(store: RecordStore) -> None:
    await store.append("s1", "user", "How do I grow tomatoes?")
    await store.append("s1", "assistant", "Lots of sun.")
    summarizer = FakeSummarizer()

    result = await _engine(store, summarizer).run()

    assert result.status == STATUS_COMPLETED
    assert result.message_count == 2
    assert result.marked_count == 2
    assert result.provenance == "Conversations from 2025-03-14"
    assert result.repaired is False

    entry = await store.get_long_term(result.entry_id)
    assert entry.summary == "Talked about the garden"
    assert entry.topics == ["garden", "tomatoes"]
    assert entry.key_insights == ["Water in the morning"]
    assert entry.consolidated_from == "Conversations from 2025-03-14"

    stats = await store.stats()
    assert stats["unconsolidated"] == 0
    assert stats["consolidated"] == 2


async def test_prompt_contains_transcript_and_context(store: RecordStore) -> None:
    await store.put_long_term("Earlier memory about compost", ["compost"], [], "p")
    await store.append("s1", "user", "How do I grow tomatoes?")
    summarizer = FakeSummarizer()

    await _engine(store, summarizer).run()

    system, prompt = summarizer.calls[0]
    assert "JSON" in system
    assert "user: How do I grow tomatoes?" in prompt
    assert "Earlier memory about compost" in prompt


async def test_context_size_limits_existing_memories(store: RecordStore, clock) -> None:
    for i in range(3):
        await store.put_long_term(f"memory number {i}", [], [], "p")
        clock.advance(1000)
    await store.append("s1", "user", "hi")
    summarizer = FakeSummarizer()

    await _engine(store, summarizer, context_size=1).run()

    _, prompt = summarizer.calls[0]
    assert "memory number 2" in prompt
    assert "memory number 1" not in prompt


async def test_second_run_same_day_is_skipped(store: RecordStore) -> None:
    await store.append("s1", "user", "hi")
    engine = _engine(store, FakeSummarizer())

    first = await engine.run()
    second = await engine.run()

    assert first.status == STATUS_COMPLETED
    assert second.status == STATUS_SKIPPED


# -- repair --------------------------------------------------------------------


async def test_unparseable_response_commits_sentinel(store: RecordStore) -> None:
    await store.append("s1", "user", "hi")

    result = await _engine(store, FakeSummarizer("Sorry, I can't help.")).run()

    assert result.status == STATUS_COMPLETED
    assert result.repaired is True
    entry = await store.get_long_term(result.entry_id)
    assert entry.summary == FAILED_SUMMARY
    assert entry.topics == []
    assert (await store.stats())["unconsolidated"] == 0


async def test_empty_model_reply_commits_sentinel(store: RecordStore) -> None:
    await store.append("s1", "user", "hi")
    response = MagicMock(content=[], stop_reason="end_turn")
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response)

    with patch("brain.llm.client._get_client", return_value=client):
        result = await _engine(store, AnthropicSummarizer()).run()

    assert result.status == STATUS_COMPLETED
    assert result.repaired is True
    entry = await store.get_long_term(result.entry_id)
    assert entry.summary == FAILED_SUMMARY
    assert (await store.stats())["unconsolidated"] == 0


# -- failures ------------------------------------------------------------------


async def test_summarizer_failure_leaves_messages_eligible(store: RecordStore) -> None:
    await store.append("s1", "user", "hi")
    summarizer = FakeSummarizer()
    summarizer.summarize = AsyncMock(side_effect=RuntimeError("API down"))

    with pytest.raises(ConsolidationError, match="API down"):
        await _engine(store, summarizer).run()

    stats = await store.stats()
    assert stats["unconsolidated"] == 1
    assert stats["long_term"] == 0


async def test_summarizer_timeout(store: RecordStore) -> None:
    await store.append("s1", "user", "hi")

    class SlowSummarizer:
        async def summarize(self, system: str, prompt: str) -> str:
            await asyncio.sleep(10)
            return _RESPONSE

    engine = _engine(store, SlowSummarizer(), timeout_seconds=0.01)
    with pytest.raises(ConsolidationError, match="timed out"):
        await engine.run()

    assert (await store.stats())["unconsolidated"] == 1
    assert engine.running is False


async def test_store_failure_before_mark_keeps_messages(store: RecordStore) -> None:
    await store.append("s1", "user", "hi")

    with (
        patch.object(store, "put_long_term", side_effect=OSError("disk full")),
        pytest.raises(OSError, match="disk full"),
    ):
        await _engine(store, FakeSummarizer()).run()

    assert (await store.stats())["unconsolidated"] == 1


async def test_mark_failure_can_duplicate_but_never_loses(store: RecordStore) -> None:
    await store.append("s1", "user", "hi")
    engine = _engine(store, FakeSummarizer())

    with (
        patch.object(store, "mark_consolidated", side_effect=OSError("lost")),
        pytest.raises(OSError),
    ):
        await engine.run()

    # The memory was stored but messages were not consumed; a retry promotes them again
    result = await engine.run()
    assert result.status == STATUS_COMPLETED
    assert (await store.stats())["long_term"] == 2


async def test_messages_appended_mid_cycle_stay_eligible(store: RecordStore) -> None:
    await store.append("s1", "user", "before")

    class AppendingSummarizer:
        async def summarize(self, system: str, prompt: str) -> str:
            await store.append("s1", "user", "during")
            return _RESPONSE

    result = await _engine(store, AppendingSummarizer()).run()

    assert result.marked_count == 1
    remaining = await store.unconsolidated_since(0)
    assert [m.content for m in remaining] == ["during"]


# -- single flight -------------------------------------------------------------


async def test_concurrent_run_is_rejected(store: RecordStore) -> None:
    await store.append("s1", "user", "hi")
    started = asyncio.Event()
    release = asyncio.Event()

    class BlockingSummarizer:
        async def summarize(self, system: str, prompt: str) -> str:
            started.set()
            await release.wait()
            return _RESPONSE

    engine = _engine(store, BlockingSummarizer())
    first = asyncio.create_task(engine.run())
    await started.wait()

    assert engine.running is True
    with pytest.raises(ConsolidationInProgress):
        await engine.run()

    release.set()
    result = await first
    assert result.status == STATUS_COMPLETED
    assert engine.running is False


def test_result_to_dict() -> None:
    result = ConsolidationResult(status=STATUS_SKIPPED)
    assert result.to_dict() == {
        "status": "skipped",
        "message_count": 0,
        "marked_count": 0,
        "entry_id": None,
        "provenance": None,
        "repaired": False,
    }
