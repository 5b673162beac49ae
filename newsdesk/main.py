"""Main entrypoint for the newsdesk ingestion pipeline."""
import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from newsdesk.config import settings
from newsdesk.shared.errors import IngestionError
from newsdesk.shared.pipeline import PageScraper
from newsdesk.shared.store import PendingStore
from newsdesk.workers.ingestion_worker import IngestionWorker
from newsdesk.workers.processing_worker import ProcessingWorker

MODES = ["ingestion", "scrape", "pending", "promote", "dismiss"]

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
    datefmt="%Y-%m-%dT%H:%M:%S",
)

logger = logging.getLogger(__name__)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


async def run(args: argparse.Namespace) -> None:
    """Run the requested operation."""
    store = PendingStore(config=settings)

    if args.mode == "ingestion":
        config = settings
        if args.days is not None:
            config = settings.model_copy(update={"rss_window_days": args.days})
        result = await IngestionWorker(store=store, config=config).run()
        _emit(result)
    elif args.mode == "scrape":
        document = await PageScraper(store, config=settings).scrape(args.url)
        _emit({"success": True, "item": document.model_dump(mode="json", by_alias=True)})
    elif args.mode == "pending":
        entries = await store.list()
        _emit([entry.model_dump(mode="json", by_alias=True) for entry in entries])
    elif args.mode == "promote":
        record = await ProcessingWorker(store=store, config=settings).promote(args.id)
        _emit(record.model_dump(mode="json"))
    elif args.mode == "dismiss":
        await ProcessingWorker(store=store, config=settings).dismiss(args.id)
        _emit({"success": True})


def main():
    """Main entrypoint."""
    parser = argparse.ArgumentParser(description="Newsdesk intelligence ingestion")
    parser.add_argument("--mode", type=str, choices=MODES, default="ingestion", help="Operation to run")
    parser.add_argument("--url", type=str, help="Page URL for scrape mode")
    parser.add_argument("--id", type=str, help="Pending entry id for promote/dismiss modes")
    parser.add_argument("--days", type=int, default=None, help="Time window in days for ingestion mode")

    args = parser.parse_args()

    if args.mode == "scrape" and not args.url:
        parser.error("--url is required for scrape mode")
    if args.mode in ("promote", "dismiss") and not args.id:
        parser.error(f"--id is required for {args.mode} mode")

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except IngestionError as e:
        logger.error(f"{args.mode} failed ({e.kind}): {e.message}")
        _emit({"error": e.to_dict()})
        sys.exit(1)
    except Exception as e:
        logger.error(f"{args.mode} failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
