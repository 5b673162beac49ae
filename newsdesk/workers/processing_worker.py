"""Processing worker - promote or dismiss pending entries."""
import logging
from typing import Optional, Sequence

from newsdesk.config import Settings, settings as default_settings
from newsdesk.schemas.models import CandidateItem, ExtractedNewsData
from newsdesk.shared.errors import PendingEntryNotFound
from newsdesk.shared.extraction import ExtractionClient
from newsdesk.shared.pipeline import PageScraper
from newsdesk.shared.store import PendingStore

logger = logging.getLogger(__name__)


class ProcessingWorker:
    """Worker that turns pending entries into structured news records."""

    def __init__(
        self,
        store: Optional[PendingStore] = None,
        scraper: Optional[PageScraper] = None,
        extraction_client: Optional[ExtractionClient] = None,
        config: Optional[Settings] = None,
    ):
        """Initialize processing worker."""
        self.config = config or default_settings
        self.store = store or PendingStore(config=self.config)
        self.scraper = scraper or PageScraper(self.store, config=self.config)
        self.extraction_client = extraction_client or ExtractionClient(config=self.config)

    async def promote(
        self,
        entry_id: str,
        known_brands: Optional[Sequence[str]] = None,
    ) -> ExtractedNewsData:
        """
        Extract a structured record from one pending entry and remove it.

        Feed candidates carry only a snippet, so their page is scraped first;
        the scraped document replaces the candidate in the queue until
        extraction succeeds.
        """
        entry = await self.store.get(entry_id)
        if entry is None:
            raise PendingEntryNotFound(entry_id)

        if isinstance(entry, CandidateItem):
            logger.info(f"Scraping candidate {entry.id} before extraction: {entry.link}")
            document = await self.scraper.scrape(entry.link)
            await self.store.delete(entry.id)
        else:
            document = entry

        record = await self.extraction_client.extract(document.text, known_brands)
        if not record.url:
            record.url = document.url

        await self.store.delete(document.id)
        logger.info(f"Promoted pending entry {entry_id}: {record.title}")
        return record

    async def dismiss(self, entry_id: str) -> None:
        """Discard a pending entry without promotion."""
        await self.store.delete(entry_id)
        logger.info(f"Dismissed pending entry {entry_id}")
