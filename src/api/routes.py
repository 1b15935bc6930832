"""HTTP endpoints: the date redirect, manual crawls and progress status."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from src.config.settings import Settings, get_settings
from src.redirect.selector import DateSelector
from src.scrapers.crawler import Crawler
from src.scrapers.fetcher import FetchError, PageFetcher
from src.scrapers.registry import get_extractor, get_site
from src.storage.database import Database
from src.storage.progress import ProgressTracker
from src.validation.schemas import (
    BatchCrawlResult,
    CrawlResult,
    HistoricalCrawlResult,
    MonthDayCrawlResult,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_db: Database | None = None
_settings: Settings | None = None
_transport: httpx.AsyncBaseTransport | None = None


def configure_db(db: Database | None) -> None:
    global _db
    _db = db


def configure_settings(settings: Settings | None) -> None:
    global _settings
    _settings = settings


def configure_transport(transport: httpx.AsyncBaseTransport | None) -> None:
    """Route outgoing page fetches through ``transport`` (tests use MockTransport)."""
    global _transport
    _transport = transport


def current_settings() -> Settings:
    return _settings or get_settings()


def get_db() -> Database:
    global _db
    if _db is None:
        settings = current_settings()
        _db = Database(settings.require_database_url(), site=get_site(settings.site))
        _db.create_tables()
    return _db


@asynccontextmanager
async def _crawler() -> AsyncIterator[Crawler]:
    settings = current_settings()
    db = get_db()
    extractor = get_extractor(settings.extractor, db.site)
    async with PageFetcher(transport=_transport) as fetcher:
        yield Crawler(
            db,
            fetcher,
            extractor,
            timeout=settings.crawl_timeout_seconds,
            page_delay=settings.page_delay_seconds,
            batch_delay=settings.batch_delay_seconds,
            stop_on_known=settings.stop_on_known,
        )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _disabled() -> JSONResponse | None:
    if not current_settings().is_development:
        return _error(403, "Manual scraping is only available in development mode.")
    return None


async def _run(operation, serializer):
    """Run a crawl coroutine factory and map failures to JSON errors."""
    try:
        async with _crawler() as crawler:
            result = await operation(crawler)
    except ValueError as exc:
        return _error(400, str(exc))
    except FetchError as exc:
        logger.error("Crawl failed: %s", exc)
        return _error(502, str(exc))
    except Exception:
        logger.exception("Crawl failed unexpectedly")
        return _error(500, "Internal server error")
    return serializer(result)


# ── Redirect ──────────────────────────────────────────────────────────────


@router.get("/")
def random_redirect():
    """Redirect to a random past article written on today's month/day."""
    try:
        url = DateSelector(get_db()).pick()
    except Exception:
        logger.exception("Error selecting redirect target")
        return _error(500, "Failed to process redirect")

    if url is None:
        return PlainTextResponse("No matching historical article found for this date.", status_code=404)
    return RedirectResponse(url, status_code=302)


@router.get("/health")
def health():
    return {"status": "ok"}


# ── Crawl endpoints ───────────────────────────────────────────────────────


@router.api_route("/scrape", methods=["GET", "POST"])
async def scrape(max_pages: Optional[int] = Query(None, alias="maxPages", ge=1)):
    """Crawl the newest listing pages."""
    if (denied := _disabled()) is not None:
        return denied
    return await _run(lambda c: c.scrape_latest(page_budget=max_pages), _serialize_crawl)


@router.get("/scrape-historical")
async def scrape_historical(date: Optional[str] = Query(None)):
    """Crawl every listing page of one date (YYYYMMDD)."""
    if (denied := _disabled()) is not None:
        return denied
    if not date:
        return _error(400, "The date parameter is required (YYYYMMDD).")
    return await _run(lambda c: c.scrape_date(date), _serialize_historical)


@router.get("/scrape-historical-batch")
async def scrape_historical_batch(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    max_days: Optional[str] = Query(None, alias="maxDays"),
):
    """Crawl consecutive dates, capped at maxDays."""
    if (denied := _disabled()) is not None:
        return denied
    if not start_date or not end_date:
        return _error(400, "startDate and endDate are required (YYYYMMDD).")

    limit = current_settings().default_max_days
    if max_days is not None:
        if not max_days.isdigit() or int(max_days) < 1:
            return _error(400, "maxDays must be a positive integer.")
        limit = int(max_days)

    return await _run(
        lambda c: c.scrape_date_batch(start_date, end_date, limit), _serialize_batch,
    )


@router.get("/scrape/date/{month_day}")
async def scrape_month_day(month_day: str):
    """Crawl one month/day (MMDD) in every year of the site's history."""
    if (denied := _disabled()) is not None:
        return denied
    return await _run(lambda c: c.scrape_month_day(month_day), _serialize_month_day)


@router.get("/scrape/date-range")
async def scrape_month_day_range(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Crawl each month/day from startDate to endDate (MMDD, wraps at year end)."""
    if (denied := _disabled()) is not None:
        return denied
    if not start_date or not end_date:
        return _error(400, "startDate and endDate are required (MMDD).")
    return await _run(
        lambda c: c.scrape_month_day_range(start_date, end_date), _serialize_month_day_range,
    )


# ── Progress ──────────────────────────────────────────────────────────────


@router.get("/progress")
def progress():
    """Checkpoint counts by status plus the dates currently in progress."""
    tracker = ProgressTracker(get_db())
    return {
        "counts": tracker.status_counts(),
        "inProgress": [
            {
                "date": cp.date,
                "pagesScraped": cp.pages_scraped,
                "urlsFound": cp.urls_found,
                "lastPageUrl": cp.last_page_url,
            }
            for cp in tracker.list_in_progress()
        ],
    }


# ── Serialization helpers ─────────────────────────────────────────────────


def _serialize_crawl(result: CrawlResult) -> dict:
    return {
        "newUrls": result.inserted_count,
        "existingUrlsCount": result.existing_urls_count,
        "pagesScraped": result.pages_scraped,
        "nextCursor": result.next_cursor,
        "timedOut": result.timed_out,
        "error": result.error,
    }


def _serialize_historical(result: HistoricalCrawlResult) -> dict:
    return {"date": result.date, **_serialize_crawl(result)}


def _serialize_batch(batch: BatchCrawlResult) -> dict:
    return {
        "results": [_serialize_historical(r) for r in batch.results],
        "totalNewUrls": batch.total_new_urls,
        "totalExistingUrls": batch.total_existing_urls,
        "totalPagesScraped": batch.total_pages_scraped,
        "datesProcessed": batch.dates_processed,
        "failedDates": batch.failed_dates,
    }


def _serialize_month_day(summary: MonthDayCrawlResult) -> dict:
    return {
        "monthDay": summary.month_day,
        "results": [_serialize_historical(r) for r in summary.results],
        "totalNewUrls": summary.total_new_urls,
        "totalExistingUrls": summary.total_existing_urls,
        "totalPagesScraped": summary.total_pages_scraped,
        "yearsProcessed": summary.years_processed,
        "failedYears": summary.failed_years,
    }


def _serialize_month_day_range(summaries: list[MonthDayCrawlResult]) -> dict:
    return {
        "monthDays": [s.month_day for s in summaries],
        "totalNewUrls": sum(s.total_new_urls for s in summaries),
        "totalPagesScraped": sum(s.total_pages_scraped for s in summaries),
        "results": [_serialize_month_day(s) for s in summaries],
    }
