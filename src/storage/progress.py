"""Per-date crawl checkpoints.

Every calendar date the site could have listings for gets one row in
``scrape_progress``. The crawler asks for the next date to work on,
crawls a bounded number of its listing pages, and writes back the
cumulative counters and the resume cursor.

Status only moves forward (pending -> in_progress -> completed); the
only way back is an explicit ``reset``.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func, insert, select

from src.storage.database import Database
from src.storage.models import ScrapeProgress
from src.validation.dates import dates_in_years, format_mmdd, forward_distance
from src.validation.schemas import ProgressCheckpoint, ProgressStatus

logger = logging.getLogger(__name__)

SEED_BATCH_SIZE = 100

_STATUS_RANK = {
    ProgressStatus.PENDING: 0,
    ProgressStatus.IN_PROGRESS: 1,
    ProgressStatus.COMPLETED: 2,
}


class ProgressTracker:
    """Reads and writes ``scrape_progress`` rows."""

    def __init__(self, db: Database):
        self.db = db
        self.site = db.site

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, yyyymmdd: str) -> ProgressCheckpoint | None:
        with self.db.get_session() as session:
            row = session.get(ScrapeProgress, yyyymmdd)
            return ProgressCheckpoint.model_validate(row) if row else None

    def next_pending_or_in_progress(self, today: date) -> ProgressCheckpoint | None:
        """Pick the date to crawl next.

        In-progress dates win over pending ones. Within a tier the date
        whose month/day comes soonest on or after today's (wrapping past
        Dec 31) wins; ties go to the earlier date.
        """
        today_md = format_mmdd(today)
        for status in (ProgressStatus.IN_PROGRESS, ProgressStatus.PENDING):
            with self.db.get_session() as session:
                dates = session.execute(
                    select(ScrapeProgress.date).where(ScrapeProgress.status == status.value)
                ).scalars().all()
            if not dates:
                continue
            chosen = min(dates, key=lambda d: (forward_distance(today_md, d[4:]), d))
            return self.get(chosen)
        return None

    def status_counts(self) -> dict[str, int]:
        with self.db.get_session() as session:
            rows = session.execute(
                select(ScrapeProgress.status, func.count(ScrapeProgress.date))
                .group_by(ScrapeProgress.status)
            ).all()
        counts = {s.value: 0 for s in ProgressStatus}
        counts.update({status: count for status, count in rows})
        return counts

    def list_in_progress(self, limit: int = 10) -> list[ProgressCheckpoint]:
        with self.db.get_session() as session:
            rows = session.execute(
                select(ScrapeProgress)
                .where(ScrapeProgress.status == ProgressStatus.IN_PROGRESS.value)
                .order_by(ScrapeProgress.date)
                .limit(limit)
            ).scalars().all()
            return [ProgressCheckpoint.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update(
        self,
        yyyymmdd: str,
        status: ProgressStatus,
        last_page_url: str | None,
        pages_scraped: int,
        urls_found: int,
    ) -> ProgressCheckpoint:
        """Store a checkpoint's new state.

        ``pages_scraped`` and ``urls_found`` are cumulative totals; the caller
        adds this invocation's increment to the previous values. A date that
        is already completed stays completed, and counters never go down.
        """
        status = ProgressStatus(status)
        with self.db.get_session() as session:
            row = session.get(ScrapeProgress, yyyymmdd)
            if row is None:
                row = ScrapeProgress(date=yyyymmdd, pages_scraped=0, urls_found=0)
                session.add(row)
            else:
                current = ProgressStatus(row.status)
                if _STATUS_RANK[status] < _STATUS_RANK[current]:
                    logger.warning(
                        "Ignoring %s -> %s for %s; use reset to re-crawl.",
                        current.value, status.value, yyyymmdd,
                    )
                    status = current
                    if current is ProgressStatus.COMPLETED:
                        last_page_url = None

            row.status = status.value
            row.last_page_url = last_page_url
            row.pages_scraped = max(row.pages_scraped or 0, pages_scraped)
            row.urls_found = max(row.urls_found or 0, urls_found)
            session.commit()
            return ProgressCheckpoint.model_validate(row)

    def reset(self, yyyymmdd: str) -> bool:
        """Put a date back to pending with zeroed counters. Returns False if unknown."""
        with self.db.get_session() as session:
            row = session.get(ScrapeProgress, yyyymmdd)
            if row is None:
                return False
            row.status = ProgressStatus.PENDING.value
            row.last_page_url = None
            row.pages_scraped = 0
            row.urls_found = 0
            session.commit()
        logger.info("Reset progress for %s", yyyymmdd)
        return True

    def _existing_dates(self) -> set[str]:
        with self.db.get_session() as session:
            return set(session.execute(select(ScrapeProgress.date)).scalars().all())

    def _insert_dates(self, dates: list[str]) -> int:
        """Insert pending rows for dates that have none yet. Returns rows added.

        Rows that appear between the read and the insert (an overlapping
        seed) are skipped rather than failing the whole seed.
        """
        existing = self._existing_dates()
        missing = [d for d in dates if d not in existing]

        added = 0
        with self.db.engine.begin() as conn:
            for start in range(0, len(missing), SEED_BATCH_SIZE):
                rows = [
                    {
                        "date": d,
                        "status": ProgressStatus.PENDING.value,
                        "pages_scraped": 0,
                        "urls_found": 0,
                    }
                    for d in missing[start:start + SEED_BATCH_SIZE]
                ]
                if self.db.supports_conflict_free_insert:
                    result = conn.execute(self.db.conflict_free_insert(ScrapeProgress, rows, "date"))
                    added += max(result.rowcount, 0)
                else:
                    conn.execute(insert(ScrapeProgress), rows)
                    added += len(rows)
                if (start + len(rows)) % 1000 == 0:
                    logger.info("Seeded %d/%d dates...", start + len(rows), len(missing))

        logger.info("Seeded %d dates (%d already present).", added, len(dates) - added)
        return added

    def seed_range(self, start_year: int, end_year: int) -> int:
        """Create a pending checkpoint for every date in the inclusive year range.

        Dates before the site's first day are skipped, and existing rows
        are left alone, so reseeding is safe.
        """
        dates = dates_in_years(start_year, end_year, first_day=self.site.first_day)
        return self._insert_dates(dates)

    def seed_missing(self, start_year: int, end_year: int) -> int:
        """Like ``seed_range`` but skips dates that already have archived URLs."""
        archived = self.db.archived_dates()
        logger.info("Archive already covers %d dates.", len(archived))
        dates = [
            d for d in dates_in_years(start_year, end_year, first_day=self.site.first_day)
            if d not in archived
        ]
        return self._insert_dates(dates)
