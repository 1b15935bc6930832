"""Pydantic v2 schemas for the archiver's data types.

These are the contract between the extractor, the crawl driver, the
stores and the HTTP/CLI surfaces. ORM rows are converted into these
before leaving the storage layer.
"""

from __future__ import annotations

import datetime as _dt
import logging
import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

# Alias datetime types so field names like "date" don't shadow them
Date = _dt.date
DateTime = _dt.datetime

TITLE_FALLBACK = "■"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ProgressStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ---------------------------------------------------------------------------
# Site profile
# ---------------------------------------------------------------------------

class SiteSelectors(BaseModel):
    listing_item: str = "div.section"
    permalink: str = "h3 a"
    pager: str = ".pager-l a"


class SiteConfig(BaseModel):
    """Static description of the one listing format the archiver understands."""

    key: str = "anond"
    name: str = ""
    origin: str
    first_day: Date
    timezone_offset_hours: int = 9
    permalink_digits: int = 14
    title_fallback: str = Field(default=TITLE_FALLBACK, min_length=1)
    next_marker: str = Field(default="次", min_length=1)
    selectors: SiteSelectors = Field(default_factory=SiteSelectors)

    @field_validator("origin")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def first_year(self) -> int:
        return self.first_day.year

    @property
    def root_url(self) -> str:
        return f"{self.origin}/"

    @property
    def timezone(self) -> _dt.timezone:
        return _dt.timezone(_dt.timedelta(hours=self.timezone_offset_hours))

    def today(self) -> Date:
        """Current calendar date in the site's fixed offset."""
        return DateTime.now(self.timezone).date()

    def date_url(self, yyyymmdd: str) -> str:
        return f"{self.origin}/{yyyymmdd}"

    def absolutize(self, href: str) -> str:
        """Resolve a link against the site origin unless already absolute."""
        href = href.strip()
        if href.startswith(("http://", "https://")):
            return href
        if not href.startswith("/"):
            href = "/" + href
        return f"{self.origin}{href}"


# ---------------------------------------------------------------------------
# Permalinks
# ---------------------------------------------------------------------------

def permalink_date_fields(url: str, origin: str, digits: int = 14) -> tuple[str | None, str | None]:
    """Return ``(year, monthday)`` sliced from a permalink at fixed offsets.

    The year starts right after ``origin + "/"``; the month/day follows it.
    Only URLs whose path is exactly ``digits`` digits are sliced; anything
    else yields ``(None, None)`` so a permalink format change cannot write
    garbage into the lookup columns.
    """
    offset = len(origin.rstrip("/")) + 1
    segment = url[offset:]
    if not url.startswith(origin.rstrip("/") + "/") or not re.fullmatch(rf"\d{{{digits}}}", segment):
        logger.warning("Permalink %r does not match the expected /%d-digit shape", url, digits)
        return None, None
    return url[offset:offset + 4], url[offset + 4:offset + 8]


# ---------------------------------------------------------------------------
# Extraction output
# ---------------------------------------------------------------------------

class ArticleRecord(BaseModel):
    """One permalink extracted from a listing page."""

    url: str = Field(..., min_length=1)
    title: str = TITLE_FALLBACK

    @field_validator("title", mode="before")
    @classmethod
    def fallback_blank_title(cls, v: Optional[str]) -> str:
        if v is None or not str(v).strip():
            return TITLE_FALLBACK
        return str(v).strip()


class ListingPage(BaseModel):
    """Parsed listing page: records in page order plus the next page link."""

    records: list[ArticleRecord] = Field(default_factory=list)
    next_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Crawl results
# ---------------------------------------------------------------------------

class CrawlResult(BaseModel):
    """Outcome of one run of the pagination loop."""

    inserted_count: int = 0
    existing_urls_count: int = 0
    pages_scraped: int = 0
    next_cursor: Optional[str] = None
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def records_found(self) -> int:
        return self.inserted_count + self.existing_urls_count

    @property
    def exhausted(self) -> bool:
        """True when pagination ended naturally (no cursor left, no error)."""
        return self.next_cursor is None and self.error is None


class HistoricalCrawlResult(CrawlResult):
    date: str


class BatchCrawlResult(BaseModel):
    """Aggregate of sequential per-date crawls."""

    results: list[HistoricalCrawlResult] = Field(default_factory=list)
    total_new_urls: int = 0
    total_existing_urls: int = 0
    total_pages_scraped: int = 0
    dates_processed: list[str] = Field(default_factory=list)
    failed_dates: dict[str, str] = Field(default_factory=dict)

    def add(self, result: HistoricalCrawlResult) -> None:
        self.results.append(result)
        self.total_new_urls += result.inserted_count
        self.total_existing_urls += result.existing_urls_count
        self.total_pages_scraped += result.pages_scraped
        self.dates_processed.append(result.date)


class MonthDayCrawlResult(BaseModel):
    """Aggregate of one month/day crawled across every operating year."""

    month_day: str
    results: list[HistoricalCrawlResult] = Field(default_factory=list)
    total_new_urls: int = 0
    total_existing_urls: int = 0
    total_pages_scraped: int = 0
    years_processed: list[str] = Field(default_factory=list)
    failed_years: dict[str, str] = Field(default_factory=dict)

    def add(self, result: HistoricalCrawlResult) -> None:
        self.results.append(result)
        self.total_new_urls += result.inserted_count
        self.total_existing_urls += result.existing_urls_count
        self.total_pages_scraped += result.pages_scraped
        self.years_processed.append(result.date[:4])


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

class ProgressCheckpoint(BaseModel):
    """Per-date crawl progress, as read from the progress table."""

    model_config = ConfigDict(from_attributes=True)

    date: str = Field(..., pattern=r"^\d{8}$")
    status: ProgressStatus = ProgressStatus.PENDING
    last_page_url: Optional[str] = None
    pages_scraped: int = Field(default=0, ge=0)
    urls_found: int = Field(default=0, ge=0)
    updated_at: Optional[DateTime] = None


class ProgressAdvance(BaseModel):
    """What one progress step did to one date's checkpoint."""

    date: str
    start_url: str
    result: CrawlResult
    checkpoint: ProgressCheckpoint
