"""ConsolidationEngine — promotes today's short-term messages into long-term memory.

One cycle runs select → context-build → summarize → validate/repair →
commit → consume, strictly in that order. Messages are only marked consumed
after the long-term entry is stored, so a failure anywhere before that leaves
them eligible for the next cycle (at-least-once promotion).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from brain.config import settings
from brain.consolidation.parsing import repair_consolidation
from brain.consolidation.prompt import (
    SYSTEM_PROMPT,
    build_consolidation_prompt,
    format_long_term_context,
    format_transcript,
)
from brain.errors import ConfigurationError, ConsolidationError, ConsolidationInProgress
from brain.memory.clock import local_now, start_of_day

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from brain.consolidation.summarizer import Summarizer
    from brain.memory.store import RecordStore

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_SKIPPED = "skipped"


@dataclass
class ConsolidationResult:
    """Outcome of one cycle.

    Attributes:
        status: ``"completed"`` or ``"skipped"`` (nothing to consolidate).
        message_count: Messages fed to the summarizer.
        marked_count: Messages flagged as consolidated.
        entry_id: ID of the new long-term memory.
        provenance: The ``consolidated_from`` label written.
        repaired: True when the model output had to be repaired.
    """

    status: str
    message_count: int = 0
    marked_count: int = 0
    entry_id: str | None = None
    provenance: str | None = None
    repaired: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ConsolidationEngine:
    """Runs consolidation cycles, one at a time per process.

    Args:
        store: RecordStore holding both tiers.
        summarizer: The summarization collaborator, or None if unconfigured.
        context_size: Existing long-term memories sent as context.
        timeout_seconds: Bound on the summarizer call; ``0`` disables it.
        timezone: IANA zone anchoring "today" (default from settings).
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        store: RecordStore,
        summarizer: Summarizer | None,
        *,
        context_size: int | None = None,
        timeout_seconds: float | None = None,
        timezone: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._summarizer = summarizer
        self._context_size = context_size or settings.consolidation_context_size
        if timeout_seconds is None:
            timeout_seconds = settings.consolidation_timeout_seconds
        self._timeout = timeout_seconds if timeout_seconds > 0 else None
        self._timezone = timezone or settings.memory_timezone
        self._clock = clock or (lambda: local_now(self._timezone))
        self._lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return self._summarizer is not None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self) -> ConsolidationResult:
        """Run one cycle.

        Raises:
            ConfigurationError: No summarizer is configured.
            ConsolidationInProgress: Another cycle holds the guard.
            ConsolidationError: Summarization failed or timed out.
            StoreUnavailable: The store could not be reached.
        """
        if self._summarizer is None:
            msg = "Summarization is not configured. Set ANTHROPIC_API_KEY."
            raise ConfigurationError(msg)
        if self._lock.locked():
            msg = "A consolidation cycle is already running"
            raise ConsolidationInProgress(msg)

        async with self._lock:
            return await self._cycle()

    async def _cycle(self) -> ConsolidationResult:
        now = self._clock()
        day_start = start_of_day(now)
        logger.info("Starting memory consolidation for %s", now.date().isoformat())

        messages = await self._store.unconsolidated_since(day_start)
        if not messages:
            logger.info("No conversations to consolidate today")
            return ConsolidationResult(status=STATUS_SKIPPED)

        existing = await self._store.recent_long_term(self._context_size)
        logger.info(
            "Found %d message(s) to consolidate; %d existing memories as context",
            len(messages),
            len(existing),
        )

        prompt = build_consolidation_prompt(
            format_transcript(messages, self._timezone),
            format_long_term_context(existing, self._timezone),
        )
        raw = await self._summarize(prompt)
        memory = repair_consolidation(raw)

        provenance = f"Conversations from {now.date().isoformat()}"
        try:
            entry_id = await self._store.put_long_term(
                memory.summary, memory.topics, memory.key_insights, provenance
            )
        except Exception:
            logger.exception(
                "Failed to store consolidated memory; %d message(s) remain eligible",
                len(messages),
            )
            raise

        marked = await self._store.mark_consolidated(
            day_start, through_seq=max(m.seq for m in messages)
        )
        logger.info("Memory consolidation complete: %s, %d message(s) consumed", entry_id, marked)

        return ConsolidationResult(
            status=STATUS_COMPLETED,
            message_count=len(messages),
            marked_count=marked,
            entry_id=entry_id,
            provenance=provenance,
            repaired=memory.repaired,
        )

    async def _summarize(self, prompt: str) -> str:
        try:
            async with asyncio.timeout(self._timeout):
                return await self._summarizer.summarize(SYSTEM_PROMPT, prompt)
        except TimeoutError as exc:
            msg = f"Summarization timed out after {self._timeout or 0:g}s"
            logger.warning(msg)
            raise ConsolidationError(msg) from exc
        except Exception as exc:
            logger.exception("Summarization call failed")
            msg = f"Summarization failed: {exc}"
            raise ConsolidationError(msg) from exc
