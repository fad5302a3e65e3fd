"""Best-effort remote mirroring of the local store.

Writes commit locally first; the replicator then pushes them to the remote
primary in a background task. Requests made while a sync is in flight
coalesce into a single follow-up sync. Failures are retried with exponential
backoff and finally logged as warnings. They never reach the caller of the
write that triggered them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from brain.config import settings
from brain.memory.clock import now_ms

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Replicator:
    """Runs *sync* in the background whenever a write asks for it.

    Args:
        sync: Async callable performing one sync attempt.
        max_attempts: Attempts per sync round (default from settings).
        backoff_seconds: Delay before the first retry; doubles each retry.
    """

    def __init__(
        self,
        sync: Callable[[], Awaitable[None]],
        *,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self._sync = sync
        self._max_attempts = max(1, max_attempts or settings.sync_max_attempts)
        self._backoff = (
            settings.sync_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self._task: asyncio.Task | None = None
        self._dirty = False
        self.failure_count = 0
        self.last_synced_at: int | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def request(self) -> None:
        """Mark the store dirty and make sure a sync task is running."""
        self._dirty = True
        if not self.pending:
            self._task = asyncio.create_task(self._run())

    async def flush(self) -> None:
        """Wait for any in-flight sync round (used at shutdown)."""
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        while self._dirty:
            self._dirty = False
            await self._sync_with_retry()

    async def _sync_with_retry(self) -> bool:
        delay = self._backoff
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._sync()
            except Exception:
                if attempt == self._max_attempts:
                    self.failure_count += 1
                    logger.warning(
                        "Remote sync failed after %d attempt(s); local data is intact",
                        attempt,
                        exc_info=True,
                    )
                    return False
                logger.info("Remote sync attempt %d failed, retrying in %.1fs", attempt, delay)
                await asyncio.sleep(delay)
                delay *= 2
            else:
                self.last_synced_at = now_ms()
                logger.debug("Remote sync complete")
                return True
        return False
