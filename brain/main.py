"""Brain memory server entry point."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from brain.config import settings

if TYPE_CHECKING:
    from brain.consolidation.engine import ConsolidationEngine
    from brain.consolidation.scheduler import ConsolidationScheduler

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


def _init_scheduler(engine: ConsolidationEngine) -> ConsolidationScheduler | None:
    """Create the consolidation scheduler, or None when it should not run."""
    from brain.consolidation.scheduler import ConsolidationScheduler

    if not settings.consolidation_enabled:
        logger.info("Scheduled consolidation is disabled")
        return None
    if not engine.configured:
        logger.warning(
            "Consolidation enabled but ANTHROPIC_API_KEY not set; scheduled consolidation disabled"
        )
        return None
    return ConsolidationScheduler(engine)


async def serve() -> None:
    """Wire the store, engine, scheduler and tools, then serve MCP over stdio."""
    from brain.consolidation.engine import ConsolidationEngine
    from brain.consolidation.summarizer import build_summarizer
    from brain.memory.session import SessionTracker
    from brain.memory.store import RecordStore
    from brain.server import build_server
    from brain.tools import registry
    from brain.tools.memory_tools import init_memory_tools

    location = settings.get_storage_location()
    logger.info(
        "Storage: %s%s",
        location.local_path,
        f" (replica of {location.sync_url})" if location.is_remote else "",
    )

    store = RecordStore.get()
    await store.stats()  # opens the database and creates the schema

    engine = ConsolidationEngine(store, build_summarizer())
    tracker = SessionTracker()
    init_memory_tools(store, tracker, engine)

    scheduler = _init_scheduler(engine)
    if scheduler is not None:
        await scheduler.start()

    try:
        await build_server(registry).run_async()
    finally:
        logger.info("Shutting down...")
        if scheduler is not None:
            await scheduler.stop()
        await store.close()


def main() -> None:
    """Start the memory server."""
    logger.info("Starting brain memory server")
    asyncio.run(serve())


if __name__ == "__main__":
    main()
