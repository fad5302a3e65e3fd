"""Filter engine — turns a FilterSpec into SQL predicates over both tiers.

Every criterion set on the FilterSpec is AND-ed. Text and topic matches are
case-insensitive substring matches against the store's case-folded columns,
so non-ASCII letters fold too. Time bounds are inclusive. Results come back
most recent first, capped by the spec's limit or the engine default.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from brain.config import settings
from brain.memory.models import FilterSpec, SearchResults

if TYPE_CHECKING:
    from brain.memory.store import RecordStore

logger = logging.getLogger(__name__)

_LIKE = "LIKE ? ESCAPE '\\'"


def like_pattern(text: str) -> str:
    """Case-folded ``%text%`` with LIKE wildcards in *text* escaped."""
    escaped = text.casefold().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def requested_topics(spec: FilterSpec) -> list[str]:
    return [topic.strip() for topic in spec.topics if topic and topic.strip()]


def _time_bounds(spec: FilterSpec, clauses: list[str], params: list) -> None:
    if spec.start_time is not None:
        clauses.append("timestamp >= ?")
        params.append(spec.start_time)
    if spec.end_time is not None:
        clauses.append("timestamp <= ?")
        params.append(spec.end_time)


def _join(clauses: list[str]) -> str:
    return " AND ".join(clauses) if clauses else "1 = 1"


def message_predicate(spec: FilterSpec) -> tuple[str, tuple]:
    """WHERE clause and parameters for the ``messages`` table."""
    clauses: list[str] = []
    params: list = []
    if spec.query:
        clauses.append(f"content_folded {_LIKE}")
        params.append(like_pattern(spec.query))
    _time_bounds(spec, clauses, params)
    return _join(clauses), tuple(params)


def long_term_predicate(spec: FilterSpec) -> tuple[str, tuple]:
    """WHERE clause and parameters for the ``long_term_memory`` table."""
    clauses: list[str] = []
    params: list = []
    if spec.query:
        pattern = like_pattern(spec.query)
        clauses.append(
            f"(summary_folded {_LIKE} OR EXISTS ("
            "SELECT 1 FROM long_term_insights i "
            f"WHERE i.entry_id = long_term_memory.id AND i.folded {_LIKE}))"
        )
        params.extend([pattern, pattern])

    topics = requested_topics(spec)
    if topics:
        any_topic = " OR ".join([f"t.folded {_LIKE}"] * len(topics))
        clauses.append(
            "EXISTS (SELECT 1 FROM long_term_topics t "
            f"WHERE t.entry_id = long_term_memory.id AND ({any_topic}))"
        )
        params.extend(like_pattern(topic) for topic in topics)

    _time_bounds(spec, clauses, params)
    return _join(clauses), tuple(params)


class FilterEngine:
    """Runs filtered searches against a RecordStore.

    Args:
        store: The record store to query. Nothing is cached between calls.
        default_limit: Cap used when a spec has no limit (default from settings).
    """

    def __init__(self, store: RecordStore, default_limit: int | None = None) -> None:
        self._store = store
        self._default_limit = default_limit or settings.search_default_limit

    async def search(self, spec: FilterSpec) -> SearchResults:
        limit = spec.limit or self._default_limit
        results = SearchResults()

        if spec.wants_short_term:
            # Messages carry no topics, so a topic filter can never match them.
            if requested_topics(spec):
                results.short_term = []
            else:
                where, params = message_predicate(spec)
                results.short_term = await self._store.select_messages(where, params, limit)

        if spec.wants_long_term:
            where, params = long_term_predicate(spec)
            results.long_term = await self._store.select_long_term(where, params, limit)

        logger.debug(
            "Search scope=%s short=%s long=%s",
            spec.scope,
            None if results.short_term is None else len(results.short_term),
            None if results.long_term is None else len(results.long_term),
        )
        return results
