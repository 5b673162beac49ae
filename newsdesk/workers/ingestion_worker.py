"""Ingestion worker - RSS aggregation into the pending queue."""
import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from newsdesk.config import Settings, settings as default_settings
from newsdesk.shared.extractors import canonicalize_url
from newsdesk.shared.pipeline import FeedFetcher
from newsdesk.shared.store import PendingStore

logger = logging.getLogger(__name__)


class IngestionWorker:
    """Worker for ingesting RSS feeds and queueing new candidates."""

    def __init__(
        self,
        store: Optional[PendingStore] = None,
        fetcher: Optional[FeedFetcher] = None,
        config: Optional[Settings] = None,
    ):
        """Initialize ingestion worker."""
        self.config = config or default_settings
        self.store = store or PendingStore(config=self.config)
        self.fetcher = fetcher or FeedFetcher(config=self.config)

    async def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run ingestion worker.

        Returns:
            Dictionary with ingestion results
        """
        start_time = time.time()
        logger.info("Starting ingestion worker...")

        candidates = await self.fetcher.fetch_all(now=now)
        logger.info(f"Fetched {len(candidates)} candidates from {len(self.config.feed_sources)} sources")

        existing = await self.store.existing_links()
        new_items = [c for c in candidates if canonicalize_url(c.link) not in existing]

        if new_items:
            await asyncio.gather(*(self.store.put(item) for item in new_items))

        duration = time.time() - start_time
        logger.info(
            f"Ingestion complete: {len(new_items)} new, {len(candidates) - len(new_items)} already queued, "
            f"duration: {duration:.2f}s"
        )

        return {
            "status": "completed",
            "items_fetched": len(candidates),
            "items_ingested": len(new_items),
            "items_skipped": len(candidates) - len(new_items),
            "ingested_ids": [item.id for item in new_items],
            "duration_seconds": duration,
        }
