"""Crawl driver: walks listing pages and archives their permalinks.

The core loop (``Crawler.crawl``) fetches a listing page, extracts its
records, stores the unseen ones and follows the pager's "next" link
until one of these happens:

- the pager has no "next" link (pagination exhausted),
- the page budget is used up (``next_cursor`` is returned),
- the wall-clock deadline passes (``next_cursor`` is returned),
- a fetch fails.

Pages are visited strictly in order with a fixed pause between them.
There is no retry: a failed page ends the crawl and a later invocation
resumes from the cursor stored in the progress table.

Everything else in this module (per-date, batch, month/day and progress
crawls) is a sequence of ``crawl`` calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import date
from typing import Awaitable, Callable

from src.scrapers.base import BaseExtractor
from src.scrapers.fetcher import FetchError, PageFetcher
from src.storage.database import Database
from src.storage.progress import ProgressTracker
from src.validation.dates import (
    date_for_year,
    dates_between,
    format_yyyymmdd,
    month_days_between,
    parse_mmdd,
    parse_yyyymmdd,
)
from src.validation.schemas import (
    BatchCrawlResult,
    CrawlResult,
    HistoricalCrawlResult,
    MonthDayCrawlResult,
    ProgressAdvance,
    ProgressStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_PAGE_DELAY = 0.5
DEFAULT_BATCH_DELAY = 0.5


class Crawler:
    """Sequential listing crawler bound to one store, fetcher and extractor."""

    def __init__(
        self,
        db: Database,
        fetcher: PageFetcher,
        extractor: BaseExtractor,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        page_delay: float = DEFAULT_PAGE_DELAY,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        stop_on_known: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db
        self.site = db.site
        self.fetcher = fetcher
        self.extractor = extractor
        self.timeout = timeout
        self.page_delay = page_delay
        self.batch_delay = batch_delay
        self.stop_on_known = stop_on_known
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Pagination loop
    # ------------------------------------------------------------------

    async def crawl(self, start_url: str, page_budget: int | None = None) -> CrawlResult:
        """Crawl from ``start_url`` following "next" links.

        Raises ``FetchError`` if the very first page cannot be fetched.
        A failure on a later page stops the loop and returns what was
        collected so far, with ``error`` set and ``next_cursor`` pointing
        at the page that failed.
        """
        result = CrawlResult()
        current_url: str | None = start_url
        started = self._clock()

        logger.info("Crawl started at %s (page budget: %s)", start_url, page_budget)

        while current_url:
            if page_budget is not None and result.pages_scraped >= page_budget:
                break
            if self._clock() - started > self.timeout:
                logger.warning("Crawl deadline of %.0fs reached at %s", self.timeout, current_url)
                result.timed_out = True
                break

            try:
                logger.info("Fetching page %d: %s", result.pages_scraped + 1, current_url)
                html = await self.fetcher.fetch(current_url)
            except FetchError as exc:
                if result.pages_scraped == 0:
                    raise
                logger.error("Crawl stopped at %s: %s", current_url, exc)
                result.error = str(exc)
                break

            page = self.extractor.parse(html)
            inserted = self.db.insert_if_absent(page.records)
            existing = len(page.records) - inserted

            result.inserted_count += inserted
            result.existing_urls_count += existing
            result.pages_scraped += 1

            logger.info(
                "Page done: %s (%d new, %d existing, %.1fs elapsed)",
                current_url, inserted, existing, self._clock() - started,
            )

            current_url = page.next_url
            if self.stop_on_known and existing > 0 and inserted == 0:
                logger.info("Only already-archived URLs on this page; stopping early.")
                break

            if current_url and (page_budget is None or result.pages_scraped < page_budget):
                await self._sleep(self.page_delay)

        result.next_cursor = current_url
        logger.info(
            "Crawl finished: %d pages, %d new, %d existing%s",
            result.pages_scraped, result.inserted_count, result.existing_urls_count,
            f", resume at {result.next_cursor}" if result.next_cursor else "",
        )
        return result

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def scrape_latest(self, page_budget: int | None = None) -> CrawlResult:
        """Crawl the listing root (newest entries first)."""
        return await self.crawl(self.site.root_url, page_budget=page_budget)

    async def light_crawl(self, page_url: str | None = None) -> CrawlResult:
        """Single page crawl; the next page is returned as ``next_cursor``."""
        return await self.crawl(page_url or self.site.root_url, page_budget=1)

    async def scrape_date(self, yyyymmdd: str) -> HistoricalCrawlResult:
        """Full crawl of one date's listing."""
        parse_yyyymmdd(yyyymmdd)
        result = await self.crawl(self.site.date_url(yyyymmdd))
        return HistoricalCrawlResult(date=yyyymmdd, **result.model_dump())

    async def scrape_date_batch(
        self,
        start_date: str,
        end_date: str,
        max_days: int | None = None,
    ) -> BatchCrawlResult:
        """Crawl consecutive dates one after another, at most ``max_days`` of them."""
        start = parse_yyyymmdd(start_date, "startDate")
        end = parse_yyyymmdd(end_date, "endDate")
        dates = dates_between(start, end, max_days)
        logger.info("Batch crawl of %d dates (%s..%s)", len(dates), start_date, end_date)

        batch = BatchCrawlResult()
        for i, yyyymmdd in enumerate(dates):
            try:
                batch.add(await self.scrape_date(yyyymmdd))
            except FetchError as exc:
                logger.error("Crawl of %s failed: %s", yyyymmdd, exc)
                batch.failed_dates[yyyymmdd] = str(exc)
            if i < len(dates) - 1:
                await self._sleep(self.batch_delay)
        return batch

    def _years_for(self, month_day: str, today: date) -> list[str]:
        """``YYYYMMDD`` for ``month_day`` in every year the site has listings for it."""
        dates = []
        for year in range(self.site.first_year, today.year + 1):
            d = date_for_year(year, month_day)
            if d is None or d < self.site.first_day or d > today:
                continue
            dates.append(format_yyyymmdd(d))
        return dates

    async def scrape_month_day(self, month_day: str, today: date | None = None) -> MonthDayCrawlResult:
        """Crawl one month/day in every year of the site's history."""
        parse_mmdd(month_day)
        today = today or self.site.today()
        dates = self._years_for(month_day, today)
        logger.info("Crawling %s across %d years", month_day, len(dates))

        summary = MonthDayCrawlResult(month_day=month_day)
        for i, yyyymmdd in enumerate(dates):
            try:
                summary.add(await self.scrape_date(yyyymmdd))
            except FetchError as exc:
                logger.error("Crawl of %s failed: %s", yyyymmdd, exc)
                summary.failed_years[yyyymmdd[:4]] = str(exc)
            if i < len(dates) - 1:
                await self._sleep(self.batch_delay)
        return summary

    async def scrape_month_day_range(
        self,
        start: str,
        end: str,
        today: date | None = None,
    ) -> list[MonthDayCrawlResult]:
        """``scrape_month_day`` for each month/day from start to end (wraps at year end)."""
        parse_mmdd(start, "startDate")
        parse_mmdd(end, "endDate")
        month_days = month_days_between(start, end)
        logger.info("Crawling %d month/days: %s..%s", len(month_days), start, end)

        summaries = []
        for i, month_day in enumerate(month_days):
            summaries.append(await self.scrape_month_day(month_day, today=today))
            if i < len(month_days) - 1:
                await self._sleep(self.batch_delay)
        return summaries

    # ------------------------------------------------------------------
    # Checkpointed backfill
    # ------------------------------------------------------------------

    async def advance_progress(
        self,
        tracker: ProgressTracker,
        today: date | None = None,
        page_budget: int | None = 1,
    ) -> ProgressAdvance | None:
        """Crawl a bounded slice of the next date in the progress table.

        Returns None when no pending or in-progress date is left. On a
        fetch failure the checkpoint is left as it was and the error
        propagates.
        """
        today = today or self.site.today()
        checkpoint = tracker.next_pending_or_in_progress(today)
        if checkpoint is None:
            logger.info("No pending dates left in the progress table.")
            return None

        start_url = checkpoint.last_page_url or self.site.date_url(checkpoint.date)
        logger.info("Advancing %s (%s) from %s", checkpoint.date, checkpoint.status.value, start_url)

        result = await self.crawl(start_url, page_budget=page_budget)

        pages = checkpoint.pages_scraped + result.pages_scraped
        found = checkpoint.urls_found + result.records_found
        if result.error:
            status = checkpoint.status
        elif result.next_cursor is None:
            status = ProgressStatus.COMPLETED
        else:
            status = ProgressStatus.IN_PROGRESS

        updated = tracker.update(checkpoint.date, status, result.next_cursor, pages, found)
        return ProgressAdvance(
            date=checkpoint.date, start_url=start_url, result=result, checkpoint=updated,
        )

    async def tick(self, tracker: ProgressTracker, today: date | None = None, page_budget: int | None = 1) -> dict:
        """One periodic invocation: poll the newest page, then advance one date."""
        summary: dict = {"latest": None, "progress": None}
        try:
            summary["latest"] = await self.light_crawl()
        except FetchError as exc:
            logger.error("Light crawl failed: %s", exc)
        try:
            summary["progress"] = await self.advance_progress(tracker, today=today, page_budget=page_budget)
        except FetchError as exc:
            logger.error("Progress step failed: %s", exc)
        return summary
