"""Tests for RecordStore — libsql persistence for both memory tiers."""

from pathlib import Path
from unittest.mock import patch

import pytest

from brain.errors import StoreUnavailable
from brain.memory.store import RecordStore

pytestmark = pytest.mark.usefixtures("_no_remote")


# -- append --------------------------------------------------------------------


async def test_append_returns_entry(store: RecordStore, clock) -> None:
    entry = await store.append("s1", "user", "hello")

    assert entry.session_id == "s1"
    assert entry.role == "user"
    assert entry.content == "hello"
    assert entry.timestamp == clock.ms
    assert entry.consolidated is False
    assert entry.seq > 0


async def test_append_timestamps_never_go_backwards(
    store: RecordStore, clock
) -> None:
    first = await store.append("s1", "user", "one")
    clock.advance(-5000)
    second = await store.append("s1", "user", "two")

    assert second.timestamp == first.timestamp
    assert second.seq > first.seq


async def test_append_does_not_validate_role(store: RecordStore) -> None:
    entry = await store.append("s1", "narrator", "once upon a time")
    assert entry.role == "narrator"


# -- recent_sessions -----------------------------------------------------------


async def test_recent_sessions_orders_by_last_activity(
    store: RecordStore, clock
) -> None:
    await store.append("A", "user", "a1")
    clock.advance(1000)
    await store.append("B", "user", "b1")
    clock.advance(1000)
    await store.append("A", "assistant", "a2")
    clock.advance(1000)
    await store.append("B", "assistant", "b2")

    entries = await store.recent_sessions(2)

    assert [e.content for e in entries] == ["b1", "b2", "a1", "a2"]


async def test_recent_sessions_limits_session_count(
    store: RecordStore, clock
) -> None:
    for session in ("A", "B", "C"):
        await store.append(session, "user", session.lower())
        clock.advance(1000)

    entries = await store.recent_sessions(1)

    assert [e.session_id for e in entries] == ["C"]


async def test_recent_sessions_ties_broken_by_insertion(store: RecordStore) -> None:
    # Same clock value for every append
    await store.append("A", "user", "a")
    await store.append("B", "user", "b")

    entries = await store.recent_sessions(2)

    assert [e.session_id for e in entries] == ["B", "A"]


async def test_recent_sessions_empty(store: RecordStore) -> None:
    assert await store.recent_sessions(3) == []
    assert await store.recent_sessions(0) == []


# -- unconsolidated_since / mark_consolidated ----------------------------------


async def test_unconsolidated_since_filters_by_day_and_state(
    store: RecordStore, clock
) -> None:
    yesterday = await store.append("s1", "user", "old")
    clock.advance(24 * 3600 * 1000)
    today = await store.append("s1", "user", "new")

    result = await store.unconsolidated_since(yesterday.timestamp + 1)

    assert [e.id for e in result] == [today.id]


async def test_mark_consolidated_flips_flags(store: RecordStore, clock) -> None:
    a = await store.append("s1", "user", "a")
    await store.append("s1", "assistant", "b")

    marked = await store.mark_consolidated(a.timestamp)

    assert marked == 2
    assert await store.unconsolidated_since(a.timestamp) == []
    assert await store.mark_consolidated(a.timestamp) == 0


async def test_mark_consolidated_respects_through_seq(store: RecordStore) -> None:
    a = await store.append("s1", "user", "a")
    late = await store.append("s1", "user", "arrived mid-cycle")

    marked = await store.mark_consolidated(a.timestamp, through_seq=a.seq)

    assert marked == 1
    remaining = await store.unconsolidated_since(a.timestamp)
    assert [e.id for e in remaining] == [late.id]


async def test_mark_consolidated_leaves_older_days(store: RecordStore, clock) -> None:
    await store.append("s1", "user", "old")
    clock.advance(24 * 3600 * 1000)
    today = await store.append("s1", "user", "new")

    assert await store.mark_consolidated(today.timestamp) == 1
    assert len(await store.unconsolidated_since(0)) == 1


# -- clear_all -----------------------------------------------------------------


async def test_clear_all_deletes_everything(store: RecordStore) -> None:
    first = await store.append("s1", "user", "a")
    await store.append("s2", "user", "b")
    await store.mark_consolidated(first.timestamp, through_seq=first.seq)
    await store.put_long_term("kept", [], [], "Conversations from 2025-03-14")

    deleted = await store.clear_all()

    assert deleted == 2
    assert await store.recent_sessions(10) == []
    stats = await store.stats()
    assert stats["messages"] == 0
    assert stats["long_term"] == 1


async def test_clear_all_on_empty_store(store: RecordStore) -> None:
    assert await store.clear_all() == 0


# -- long-term -----------------------------------------------------------------


async def test_put_and_get_long_term(store: RecordStore) -> None:
    entry_id = await store.put_long_term(
        "Discussed caching",
        ["cache", "redis"],
        ["Use TTLs", "Evict LRU"],
        "Conversations from 2025-03-14",
    )

    entry = await store.get_long_term(entry_id)

    assert entry is not None
    assert entry.summary == "Discussed caching"
    assert entry.topics == ["cache", "redis"]
    assert entry.key_insights == ["Use TTLs", "Evict LRU"]
    assert entry.consolidated_from == "Conversations from 2025-03-14"


async def test_long_term_preserves_list_order(store: RecordStore) -> None:
    topics = ["zeta", "alpha", "mu", "beta"]
    entry_id = await store.put_long_term("s", topics, [], "p")

    entry = await store.get_long_term(entry_id)

    assert entry.topics == topics


async def test_get_long_term_not_found(store: RecordStore) -> None:
    assert await store.get_long_term("nope") is None


async def test_update_long_term_replaces_content(store: RecordStore) -> None:
    entry_id = await store.put_long_term("old", ["a", "b"], ["x"], "p1")

    updated = await store.update_long_term(entry_id, "new", ["c"], [], "p2")

    assert updated is True
    entry = await store.get_long_term(entry_id)
    assert entry.summary == "new"
    assert entry.topics == ["c"]
    assert entry.key_insights == []
    assert entry.consolidated_from == "p2"


async def test_update_long_term_missing(store: RecordStore) -> None:
    assert await store.update_long_term("nope", "s", [], [], "p") is False


async def test_recent_long_term_newest_first(store: RecordStore, clock) -> None:
    ids = []
    for i in range(3):
        ids.append(await store.put_long_term(f"m{i}", [], [], "p"))
        clock.advance(1000)

    entries = await store.recent_long_term(2)

    assert [e.id for e in entries] == [ids[2], ids[1]]


# -- stats ---------------------------------------------------------------------


async def test_stats(store: RecordStore) -> None:
    a = await store.append("s1", "user", "a")
    await store.append("s2", "user", "b")
    await store.mark_consolidated(a.timestamp, through_seq=a.seq)

    stats = await store.stats()

    assert stats == {
        "messages": 2,
        "consolidated": 1,
        "unconsolidated": 1,
        "sessions": 2,
        "long_term": 0,
    }


# -- persistence / errors ------------------------------------------------------


async def test_data_survives_new_instance(tmp_path: Path) -> None:
    first = RecordStore(db_path=tmp_path / "test.db")
    await first.append("s1", "user", "persisted")

    second = RecordStore(db_path=tmp_path / "test.db")
    entries = await second.recent_sessions(1)

    assert [e.content for e in entries] == ["persisted"]


async def test_connection_failure_is_store_unavailable(tmp_path: Path) -> None:
    store = RecordStore(db_path=tmp_path / "test.db")
    with (
        patch("brain.memory.store.get_connection", side_effect=OSError("disk gone")),
        pytest.raises(StoreUnavailable, match="disk gone"),
    ):
        await store.append("s1", "user", "x")


async def test_local_store_has_no_replicator(store: RecordStore) -> None:
    assert store.replicator is None


# -- singleton -----------------------------------------------------------------


def test_singleton_get() -> None:
    RecordStore._reset()
    try:
        a = RecordStore.get()
        b = RecordStore.get()
        assert a is b
    finally:
        RecordStore._reset()
