"""ConsolidationScheduler — runs the consolidation engine on a cron schedule."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from brain.config import settings
from brain.errors import ConsolidationInProgress

if TYPE_CHECKING:
    from datetime import datetime

    from brain.consolidation.engine import ConsolidationEngine

logger = logging.getLogger(__name__)

JOB_ID = "memory-consolidation"


class ConsolidationScheduler:
    """Manages the APScheduler lifecycle for the consolidation job.

    The job shares the engine's single-flight guard with manual triggers: if
    a cycle is already running when the timer fires, the timed run is skipped.

    Args:
        engine: The consolidation engine to run.
        schedule: Crontab expression (default from settings).
        timezone: IANA timezone string (default from settings).
    """

    def __init__(
        self,
        engine: ConsolidationEngine,
        schedule: str | None = None,
        timezone: str | None = None,
    ) -> None:
        self._engine = engine
        self._schedule = schedule or settings.consolidation_schedule
        self._timezone = timezone or settings.memory_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def next_run_time(self) -> datetime | None:
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Add the cron job and start the scheduler."""
        trigger = CronTrigger.from_crontab(self._schedule, timezone=self._timezone)
        self._scheduler.add_job(
            self._run,
            trigger=trigger,
            id=JOB_ID,
            name="Memory consolidation",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info(
            "Consolidation scheduled '%s' (tz=%s), next run %s",
            self._schedule,
            self._timezone,
            self.next_run_time,
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Consolidation scheduler stopped")

    # -- Internal --------------------------------------------------------------

    async def _run(self) -> None:
        """Callback invoked by APScheduler."""
        logger.info("Starting scheduled memory consolidation")
        try:
            result = await self._engine.run()
        except ConsolidationInProgress:
            logger.info("Consolidation already running; skipping scheduled run")
            return
        except Exception:
            logger.exception("Scheduled memory consolidation failed")
            return
        logger.info(
            "Scheduled memory consolidation %s (%d message(s))",
            result.status,
            result.message_count,
        )
