"""Background crawl loop for the news aggregator."""

import asyncio
import logging
import os
import threading

from news_aggregator.database import Database
from news_aggregator.pipeline import run_ingestion

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1800  # 30 minutes


async def crawl_once(db: Database, stop_event: threading.Event | None = None) -> int:
    """Run one crawl in a worker thread. Returns count of new articles."""
    result = await asyncio.to_thread(run_ingestion, db, stop_event=stop_event)
    if result.failed_sources:
        logger.warning("%d sources failed during crawl", result.failed_sources)
    return result.inserted


async def start_polling(db: Database, interval: int | None = None) -> None:
    """Run the crawl loop indefinitely."""
    if interval is None:
        interval = int(os.environ.get("NEWS_POLL_INTERVAL", DEFAULT_POLL_INTERVAL))
    logger.info("Poller started (interval: %ds)", interval)

    stop_event = threading.Event()
    try:
        while True:
            try:
                new_count = await crawl_once(db, stop_event)
                if new_count > 0:
                    logger.info("Poll cycle complete: %d new articles", new_count)
            except Exception as e:
                logger.error("Poll cycle failed: %s", e)

            await asyncio.sleep(interval)
    finally:
        # Let a crawl still running in its worker thread stop at the next source
        stop_event.set()
