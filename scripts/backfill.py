"""Work through the progress table until it is drained or a limit is hit.

Each step crawls a bounded slice of the next pending/in-progress date
and records the checkpoint, exactly like the scheduled ``tick`` does,
but without polling the newest page and without waiting a minute
between steps.

Run: python scripts/backfill.py --max-steps 200 --pages-per-step 5
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from pathlib import Path

import click

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.config.settings import get_settings
from src.scrapers.crawler import Crawler
from src.scrapers.fetcher import FetchError, PageFetcher
from src.scrapers.registry import get_extractor, get_site
from src.storage.database import Database
from src.storage.progress import ProgressTracker

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("backfill")


async def run_backfill(db: Database, max_steps: int, pages_per_step: int, extractor: str) -> dict:
    settings = get_settings()
    tracker = ProgressTracker(db)
    stats = {"steps": 0, "completed": 0, "failed": 0, "new_urls": 0}

    async with PageFetcher() as fetcher:
        crawler = Crawler(
            db,
            fetcher,
            get_extractor(extractor, db.site),
            timeout=settings.crawl_timeout_seconds,
            page_delay=settings.page_delay_seconds,
        )
        while stats["steps"] < max_steps:
            try:
                advance = await crawler.advance_progress(tracker, page_budget=pages_per_step)
            except FetchError as e:
                # The checkpoint is untouched; stop and let the next run retry it.
                stats["failed"] += 1
                logger.error("Step failed: %s", e)
                break
            if advance is None:
                break
            stats["steps"] += 1
            stats["new_urls"] += advance.result.inserted_count
            if advance.checkpoint.status.value == "completed":
                stats["completed"] += 1
            if stats["steps"] % 25 == 0:
                logger.info("Progress: %d steps, %d dates completed, %d new URLs",
                            stats["steps"], stats["completed"], stats["new_urls"])
            await asyncio.sleep(settings.batch_delay_seconds)

    return stats


@click.command()
@click.option("--max-steps", default=100, help="Maximum number of progress steps.")
@click.option("--pages-per-step", default=5, help="Listing pages crawled per step.")
@click.option("--extractor", default=None, help="Extractor profile (default: ARCHIVER_EXTRACTOR).")
@click.option("--db", "db_path", default=None, help="Database path or URL.")
def main(max_steps, pages_per_step, extractor, db_path):
    """Backfill historical permalinks through the progress table."""
    settings = get_settings()
    db = Database(db_path or settings.require_database_url(), site=get_site(settings.site))
    db.create_tables()

    start = time.time()
    stats = asyncio.run(run_backfill(db, max_steps, pages_per_step, extractor or settings.extractor))
    logger.info(
        "DONE: %d steps, %d dates completed, %d new URLs, %d failures in %.1f minutes",
        stats["steps"], stats["completed"], stats["new_urls"], stats["failed"],
        (time.time() - start) / 60,
    )


if __name__ == "__main__":
    main()
