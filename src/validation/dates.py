"""Calendar helpers and boundary validation for date parameters.

Dates travel through the archiver as ``YYYYMMDD`` strings (progress keys,
listing URLs) and month/days as ``MMDD`` strings (redirect matching,
cross-year crawls). Everything that accepts one from the outside goes
through the ``parse_*`` functions here, which raise ``ValueError`` with a
message suitable for a 400 response.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, timedelta
from typing import Iterator

# Leap year so that 0229 is a valid month/day.
REFERENCE_YEAR = 2024

_YYYYMMDD = re.compile(r"^\d{8}$")
_MMDD = re.compile(r"^\d{4}$")


def parse_yyyymmdd(value: str | None, name: str = "date") -> date:
    """Parse an 8-digit ``YYYYMMDD`` string into a date."""
    if not value:
        raise ValueError(f"{name} is required (YYYYMMDD).")
    if not _YYYYMMDD.match(value):
        raise ValueError(f"{name} must be in YYYYMMDD format.")
    try:
        return date(int(value[:4]), int(value[4:6]), int(value[6:]))
    except ValueError:
        raise ValueError(f"{name} is not a valid calendar date: {value}") from None


def parse_mmdd(value: str | None, name: str = "monthDay") -> str:
    """Validate a 4-digit ``MMDD`` string; returns it unchanged."""
    if not value or not _MMDD.match(value):
        raise ValueError(f"{name} must be in MMDD format (e.g. 0101).")
    month, day = int(value[:2]), int(value[2:])
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in {name}: {value}")
    if not 1 <= day <= calendar.monthrange(REFERENCE_YEAR, month)[1]:
        raise ValueError(f"Invalid day in {name}: {value}")
    return value


def format_yyyymmdd(d: date) -> str:
    return d.strftime("%Y%m%d")


def format_mmdd(d: date) -> str:
    return d.strftime("%m%d")


def date_for_year(year: int, month_day: str) -> date | None:
    """The calendar date for ``month_day`` in ``year``, or None if it doesn't exist."""
    try:
        return date(year, int(month_day[:2]), int(month_day[2:]))
    except ValueError:
        return None


def iter_dates(start: date, end: date) -> Iterator[date]:
    cur = start
    while cur <= end:
        yield cur
        cur += timedelta(days=1)


def dates_between(start: date, end: date, max_days: int | None = None) -> list[str]:
    """``YYYYMMDD`` strings from start to end inclusive, capped at ``max_days``."""
    if start > end:
        raise ValueError("startDate must not be after endDate.")
    dates = []
    for d in iter_dates(start, end):
        if max_days is not None and len(dates) >= max_days:
            break
        dates.append(format_yyyymmdd(d))
    return dates


def month_days_between(start: str, end: str) -> list[str]:
    """``MMDD`` strings from start to end inclusive, wrapping past Dec 31.

    ``month_days_between("1230", "0102")`` gives
    ``["1230", "1231", "0101", "0102"]``.
    """
    start_date = date(REFERENCE_YEAR, int(start[:2]), int(start[2:]))
    end_date = date(REFERENCE_YEAR, int(end[:2]), int(end[2:]))
    if start_date > end_date:
        days = [format_mmdd(d) for d in iter_dates(start_date, date(REFERENCE_YEAR, 12, 31))]
        days += [format_mmdd(d) for d in iter_dates(date(REFERENCE_YEAR, 1, 1), end_date)]
        return days
    return [format_mmdd(d) for d in iter_dates(start_date, end_date)]


def day_of_cycle(month_day: str) -> int:
    """Zero-based position of ``MMDD`` within a leap year."""
    d = date(REFERENCE_YEAR, int(month_day[:2]), int(month_day[2:]))
    return d.timetuple().tm_yday - 1


def forward_distance(from_month_day: str, to_month_day: str) -> int:
    """Days moving forward from one month/day to another, wrapping at year end."""
    days_in_cycle = 366
    return (day_of_cycle(to_month_day) - day_of_cycle(from_month_day)) % days_in_cycle


def dates_in_years(start_year: int, end_year: int, first_day: date | None = None) -> list[str]:
    """Every ``YYYYMMDD`` in the inclusive year range, not earlier than ``first_day``."""
    if start_year > end_year:
        return []
    start = date(start_year, 1, 1)
    if first_day is not None and first_day > start:
        start = first_day
    end = date(end_year, 12, 31)
    if start > end:
        return []
    return [format_yyyymmdd(d) for d in iter_dates(start, end)]
