"""Random "on this day" redirect target selection.

Given today's date in the site's timezone, pick one past year the site
was running on this month/day, then one archived permalink from that
exact date. A miss is a normal outcome (returns None); other years are
not retried.
"""

from __future__ import annotations

import logging
import random
from datetime import date

from src.storage.database import Database
from src.validation.dates import format_mmdd

logger = logging.getLogger(__name__)


class DateSelector:
    def __init__(self, db: Database, rng: random.Random | None = None):
        self.db = db
        self.site = db.site
        self.rng = rng or random.Random()

    def year_window(self, today: date) -> tuple[int, int]:
        """Inclusive ``(start_year, end_year)`` of eligible past years.

        The first year only counts once today's month/day has reached the
        site's launch anniversary. The window is empty when start > end.
        """
        launch = self.site.first_day
        start_year = self.site.first_year
        if (today.month, today.day) < (launch.month, launch.day):
            start_year += 1
        return start_year, today.year - 1

    def pick(self, today: date | None = None) -> str | None:
        """Return a random archived permalink for today's month/day in a past year."""
        today = today or self.site.today()
        start_year, end_year = self.year_window(today)
        if start_year > end_year:
            logger.info("No eligible past years for %s", today)
            return None

        year = str(self.rng.randint(start_year, end_year))
        month_day = format_mmdd(today)
        url = self.db.random_article_url(year, month_day)
        if url is None:
            logger.info("No archived article for %s%s", year, month_day)
        return url
