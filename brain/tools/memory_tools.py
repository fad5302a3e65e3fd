"""Memory tools — store, recall, search and consolidate conversation memory.

These are the operations exposed to the calling agent. Each returns a
``ToolResult``; expected failures (store unreachable, summarizer not
configured, consolidation busy, bad dates) come back as ``error`` text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pydantic import Field

from brain.consolidation.engine import STATUS_SKIPPED
from brain.errors import BrainError
from brain.memory.clock import parse_timestamp, to_iso
from brain.memory.filters import FilterEngine
from brain.memory.models import FilterSpec
from brain.tools.base import ToolParams, ToolResult
from brain.tools.registry import registry

if TYPE_CHECKING:
    from brain.consolidation.engine import ConsolidationEngine
    from brain.memory.models import LongTermEntry, MessageEntry
    from brain.memory.session import SessionTracker
    from brain.memory.store import RecordStore

logger = logging.getLogger(__name__)

_CATEGORY = "memory"

MAX_SESSIONS = 10
MAX_LONG_TERM = 50
MAX_SEARCH_RESULTS = 100


@dataclass
class _ToolContext:
    store: RecordStore
    tracker: SessionTracker
    engine: ConsolidationEngine
    filters: FilterEngine


# Set by init_memory_tools() during startup.
_context: _ToolContext | None = None


def init_memory_tools(
    store: RecordStore | None,
    tracker: SessionTracker | None = None,
    engine: ConsolidationEngine | None = None,
) -> None:
    """Wire the store, session tracker and engine into the tool functions.

    Called once during startup. Pass ``None`` as *store* to unwire (tests).
    """
    global _context  # noqa: PLW0603
    if store is None or tracker is None or engine is None:
        _context = None
        return
    _context = _ToolContext(
        store=store,
        tracker=tracker,
        engine=engine,
        filters=FilterEngine(store),
    )


def _get_context() -> _ToolContext:
    if _context is None:
        msg = "Memory tools not initialised; call init_memory_tools() first"
        raise RuntimeError(msg)
    return _context


def _clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def _message_dict(entry: MessageEntry) -> dict[str, Any]:
    return {
        "role": entry.role,
        "content": entry.content,
        "timestamp": to_iso(entry.timestamp),
    }


def _long_term_dict(entry: LongTermEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "summary": entry.summary,
        "topics": entry.topics,
        "key_insights": entry.key_insights,
        "consolidated_from": entry.consolidated_from,
        "timestamp": to_iso(entry.timestamp),
    }


# -- store_message -------------------------------------------------------------


class StoreMessageParams(ToolParams):
    role: Literal["user", "assistant", "system"] = Field(
        description="Who sent the message: user, assistant, or system"
    )
    content: str = Field(min_length=1, description="The message text to store")
    start_new_session: bool = Field(
        default=False,
        description="Start a new conversation session before storing this message",
    )


@registry.tool(
    name="store_message",
    description=(
        "Store a message in short-term conversation memory. Messages are grouped "
        "into sessions; set start_new_session to begin a new conversation."
    ),
    category=_CATEGORY,
    params_model=StoreMessageParams,
)
async def store_message(
    role: str, content: str, start_new_session: bool = False
) -> ToolResult:
    ctx = _get_context()
    if start_new_session:
        ctx.tracker.rotate()

    try:
        entry = await ctx.store.append(ctx.tracker.current, role, content)
    except BrainError as exc:
        return ToolResult(error=str(exc))

    return ToolResult(data={
        "message": "Message stored",
        "message_id": entry.id,
        "session_id": entry.session_id,
        "timestamp": to_iso(entry.timestamp),
    })


# -- get_recent ----------------------------------------------------------------


class GetRecentParams(ToolParams):
    session_count: int = Field(
        default=2,
        description=f"Number of recent conversation sessions to return (1-{MAX_SESSIONS})",
    )


@registry.tool(
    name="get_recent",
    description=(
        "Retrieve short-term memory: the messages of the most recently active "
        "conversation sessions, newest session first."
    ),
    category=_CATEGORY,
    params_model=GetRecentParams,
    read_only=True,
)
async def get_recent(session_count: int = 2) -> ToolResult:
    ctx = _get_context()
    count = _clamp(session_count, 1, MAX_SESSIONS)

    try:
        entries = await ctx.store.recent_sessions(count)
    except BrainError as exc:
        return ToolResult(error=str(exc))

    grouped: dict[str, list[MessageEntry]] = {}
    for entry in entries:
        grouped.setdefault(entry.session_id, []).append(entry)

    sessions = [
        {
            "session_id": session_id,
            "message_count": len(messages),
            "messages": [_message_dict(m) for m in messages],
        }
        for session_id, messages in grouped.items()
    ]
    return ToolResult(data={
        "session_count": len(sessions),
        "current_session_id": ctx.tracker.current,
        "sessions": sessions,
    })


# -- start_new_session ---------------------------------------------------------


@registry.tool(
    name="start_new_session",
    description="Start a new conversation session for subsequent messages.",
    category=_CATEGORY,
)
async def start_new_session() -> ToolResult:
    ctx = _get_context()
    session_id = ctx.tracker.rotate()
    return ToolResult(data={"message": "New session started", "session_id": session_id})


# -- get_long_term -------------------------------------------------------------


class GetLongTermParams(ToolParams):
    limit: int = Field(
        default=10,
        description=f"Number of long-term memories to return (1-{MAX_LONG_TERM})",
    )


@registry.tool(
    name="get_long_term",
    description=(
        "Retrieve consolidated long-term memories, newest first. These are "
        "summaries distilled from past conversations."
    ),
    category=_CATEGORY,
    params_model=GetLongTermParams,
    read_only=True,
)
async def get_long_term(limit: int = 10) -> ToolResult:
    ctx = _get_context()
    count = _clamp(limit, 1, MAX_LONG_TERM)

    try:
        memories = await ctx.store.recent_long_term(count)
    except BrainError as exc:
        return ToolResult(error=str(exc))

    return ToolResult(data={
        "count": len(memories),
        "memories": [_long_term_dict(m) for m in memories],
    })


# -- run_consolidation ---------------------------------------------------------


@registry.tool(
    name="run_consolidation",
    description=(
        "Consolidate today's unconsolidated short-term messages into a "
        "long-term memory now, instead of waiting for the scheduled run."
    ),
    category=_CATEGORY,
)
async def run_consolidation() -> ToolResult:
    ctx = _get_context()
    try:
        result = await ctx.engine.run()
    except BrainError as exc:
        return ToolResult(error=str(exc))

    if result.status == STATUS_SKIPPED:
        message = "No conversations to consolidate today"
    else:
        message = "Memory consolidation completed"
    return ToolResult(data={"message": message, **result.to_dict()})


# -- search --------------------------------------------------------------------


class SearchParams(ToolParams):
    query: str | None = Field(
        default=None,
        description="Text to look for in messages, summaries and key insights",
    )
    topics: list[str] | None = Field(
        default=None,
        description="Only long-term memories with a topic containing any of these",
    )
    start_date: str | int | float | None = Field(
        default=None,
        description="Earliest time, ISO-8601 (e.g. 2025-01-01T00:00:00Z) or epoch timestamp",
    )
    end_date: str | int | float | None = Field(
        default=None,
        description="Latest time (inclusive), ISO-8601 or epoch timestamp",
    )
    scope: Literal["short-term", "long-term", "both"] = Field(
        default="both",
        description="Which memory tier to search",
    )
    limit: int = Field(
        default=20,
        description=f"Maximum results per tier (1-{MAX_SEARCH_RESULTS})",
    )


@registry.tool(
    name="search",
    description=(
        "Search short-term and/or long-term memory by text, topics and date "
        "range. All given filters must match. Results are newest first."
    ),
    category=_CATEGORY,
    params_model=SearchParams,
    read_only=True,
)
async def search(
    query: str | None = None,
    topics: list[str] | None = None,
    start_date: str | float | None = None,
    end_date: str | float | None = None,
    scope: str = "both",
    limit: int = 20,
) -> ToolResult:
    ctx = _get_context()

    try:
        start_time = parse_timestamp(start_date) if start_date is not None else None
        end_time = parse_timestamp(end_date) if end_date is not None else None
    except ValueError as exc:
        return ToolResult(error=str(exc))

    spec = FilterSpec(
        query=query or None,
        topics=topics or [],
        start_time=start_time,
        end_time=end_time,
        limit=_clamp(limit, 1, MAX_SEARCH_RESULTS),
        scope=scope,
    )

    try:
        results = await ctx.filters.search(spec)
    except BrainError as exc:
        return ToolResult(error=str(exc))

    data: dict[str, Any] = {
        "filters": {
            "query": spec.query,
            "topics": spec.topics,
            "start": to_iso(start_time) if start_time is not None else None,
            "end": to_iso(end_time) if end_time is not None else None,
            "scope": spec.scope,
        }
    }
    if results.short_term is not None:
        data["short_term_results"] = {
            "count": len(results.short_term),
            "messages": [
                {"session_id": m.session_id, **_message_dict(m)} for m in results.short_term
            ],
        }
    if results.long_term is not None:
        data["long_term_results"] = {
            "count": len(results.long_term),
            "memories": [_long_term_dict(m) for m in results.long_term],
        }
    return ToolResult(data=data)


# -- clear_short_term ----------------------------------------------------------


@registry.tool(
    name="clear_short_term",
    description=(
        "Permanently delete ALL short-term messages, consolidated or not. "
        "Long-term memories are kept. Confirm with the user before calling."
    ),
    category=_CATEGORY,
    destructive=True,
)
async def clear_short_term() -> ToolResult:
    ctx = _get_context()
    try:
        deleted = await ctx.store.clear_all()
    except BrainError as exc:
        return ToolResult(error=str(exc))
    return ToolResult(data={"deleted": deleted})


# -- get_memory_stats ----------------------------------------------------------


@registry.tool(
    name="get_memory_stats",
    description="Counts of stored messages and long-term memories, plus consolidation status.",
    category=_CATEGORY,
    read_only=True,
)
async def get_memory_stats() -> ToolResult:
    ctx = _get_context()
    try:
        counts = await ctx.store.stats()
    except BrainError as exc:
        return ToolResult(error=str(exc))

    replicator = ctx.store.replicator
    replication = None
    if replicator is not None:
        replication = {
            "pending": replicator.pending,
            "failures": replicator.failure_count,
            "last_synced_at": (
                to_iso(replicator.last_synced_at) if replicator.last_synced_at else None
            ),
        }

    return ToolResult(data={
        **counts,
        "current_session_id": ctx.tracker.current,
        "consolidation": {
            "configured": ctx.engine.configured,
            "running": ctx.engine.running,
        },
        "replication": replication,
    })
