"""Tests for the per-date progress tracker."""

from datetime import date

import pytest

from src.storage.progress import ProgressTracker
from src.validation.schemas import ArticleRecord, ProgressStatus

PENDING = ProgressStatus.PENDING
IN_PROGRESS = ProgressStatus.IN_PROGRESS
COMPLETED = ProgressStatus.COMPLETED


@pytest.fixture
def tracker(in_memory_db):
    return ProgressTracker(in_memory_db)


def add(tracker, *dates, status=PENDING, cursor=None):
    for d in dates:
        tracker.update(d, status, cursor, 0, 0)


class TestSeeding:
    def test_seed_starts_at_launch_day(self, tracker):
        added = tracker.seed_range(2006, 2007)
        # 2006-09-24..2006-12-31 is 99 days, 2007 has 365
        assert added == 464
        assert tracker.get("20060923") is None
        first = tracker.get("20060924")
        assert first.status is PENDING
        assert first.pages_scraped == 0
        assert first.urls_found == 0
        assert first.last_page_url is None

    def test_reseed_adds_nothing(self, tracker):
        tracker.seed_range(2007, 2007)
        assert tracker.seed_range(2007, 2007) == 0
        assert tracker.status_counts()["pending"] == 365

    def test_reseed_keeps_existing_state(self, tracker):
        tracker.seed_range(2007, 2007)
        tracker.update("20070101", COMPLETED, None, 3, 40)
        tracker.seed_range(2007, 2008)
        assert tracker.get("20070101").status is COMPLETED
        assert tracker.get("20080229") is not None

    def test_empty_range(self, tracker):
        assert tracker.seed_range(2008, 2007) == 0

    def test_seed_missing_skips_archived_dates(self, tracker, in_memory_db):
        in_memory_db.insert_if_absent([
            ArticleRecord(url="https://anond.hatelabo.jp/20060925120000"),
            ArticleRecord(url="https://anond.hatelabo.jp/20060925130000"),
        ])
        assert tracker.seed_missing(2006, 2006) == 98
        assert tracker.get("20060925") is None
        assert tracker.get("20060924") is not None


class TestSelection:
    def test_in_progress_before_pending(self, tracker):
        add(tracker, "20070105")
        add(tracker, "20070601", status=IN_PROGRESS, cursor="https://anond.hatelabo.jp/20070601?page=2")
        chosen = tracker.next_pending_or_in_progress(date(2024, 1, 5))
        assert chosen.date == "20070601"

    def test_nearest_month_day_wins(self, tracker):
        add(tracker, "20070101", "20061231", "20070601")
        chosen = tracker.next_pending_or_in_progress(date(2024, 12, 30))
        assert chosen.date == "20061231"

    def test_wraps_past_year_end(self, tracker):
        add(tracker, "20070101", "20061001")
        chosen = tracker.next_pending_or_in_progress(date(2024, 12, 31))
        assert chosen.date == "20070101"

    def test_today_itself_comes_first(self, tracker):
        add(tracker, "20070102", "20080101")
        chosen = tracker.next_pending_or_in_progress(date(2024, 1, 1))
        assert chosen.date == "20080101"

    def test_tie_goes_to_earlier_date(self, tracker):
        add(tracker, "20071005", "20061005", "20101005")
        chosen = tracker.next_pending_or_in_progress(date(2024, 10, 1))
        assert chosen.date == "20061005"

    def test_none_when_all_completed(self, tracker):
        add(tracker, "20070101", "20070102", status=COMPLETED)
        assert tracker.next_pending_or_in_progress(date(2024, 1, 1)) is None

    def test_none_when_empty(self, tracker):
        assert tracker.next_pending_or_in_progress(date(2024, 1, 1)) is None


class TestUpdate:
    def test_creates_missing_row(self, tracker):
        checkpoint = tracker.update("20070101", IN_PROGRESS, "https://anond.hatelabo.jp/20070101?page=2", 1, 25)
        assert checkpoint.status is IN_PROGRESS
        assert checkpoint.pages_scraped == 1
        assert checkpoint.updated_at is not None

    def test_cumulative_counters(self, tracker):
        tracker.update("20070101", IN_PROGRESS, "u2", 1, 25)
        checkpoint = tracker.update("20070101", COMPLETED, None, 2, 40)
        assert checkpoint.status is COMPLETED
        assert checkpoint.last_page_url is None
        assert checkpoint.pages_scraped == 2
        assert checkpoint.urls_found == 40

    def test_counters_never_decrease(self, tracker):
        tracker.update("20070101", IN_PROGRESS, "u2", 3, 60)
        checkpoint = tracker.update("20070101", IN_PROGRESS, "u3", 1, 10)
        assert checkpoint.pages_scraped == 3
        assert checkpoint.urls_found == 60
        assert checkpoint.last_page_url == "u3"

    def test_completed_does_not_regress(self, tracker):
        tracker.update("20070101", COMPLETED, None, 2, 40)
        checkpoint = tracker.update("20070101", IN_PROGRESS, "u2", 3, 41)
        assert checkpoint.status is COMPLETED
        assert checkpoint.last_page_url is None
        assert checkpoint.pages_scraped == 3

    def test_in_progress_does_not_return_to_pending(self, tracker):
        tracker.update("20070101", IN_PROGRESS, "u2", 1, 25)
        checkpoint = tracker.update("20070101", PENDING, "u2", 1, 25)
        assert checkpoint.status is IN_PROGRESS

    def test_accepts_status_string(self, tracker):
        checkpoint = tracker.update("20070101", "in_progress", "u2", 1, 1)
        assert checkpoint.status is IN_PROGRESS


class TestReporting:
    def test_status_counts_include_zeros(self, tracker):
        add(tracker, "20070101", "20070102")
        add(tracker, "20070103", status=COMPLETED)
        assert tracker.status_counts() == {"pending": 2, "in_progress": 0, "completed": 1}

    def test_list_in_progress(self, tracker):
        add(tracker, "20070103", "20070101", status=IN_PROGRESS, cursor="u")
        add(tracker, "20070102")
        assert [c.date for c in tracker.list_in_progress()] == ["20070101", "20070103"]
        assert len(tracker.list_in_progress(limit=1)) == 1


class TestReset:
    def test_reset_reinitializes(self, tracker):
        tracker.update("20070101", COMPLETED, None, 4, 90)
        assert tracker.reset("20070101")
        checkpoint = tracker.get("20070101")
        assert checkpoint.status is PENDING
        assert checkpoint.pages_scraped == 0
        assert checkpoint.urls_found == 0
        assert checkpoint.last_page_url is None

    def test_reset_unknown_date(self, tracker):
        assert not tracker.reset("20070101")


class TestOverlappingSeed:
    def test_rows_added_after_read_are_skipped(self, tracker, monkeypatch):
        tracker.seed_range(2007, 2007)
        # Another seed inserted 2007 between this seed's read and its insert
        monkeypatch.setattr(tracker, "_existing_dates", lambda: set())

        assert tracker.seed_range(2007, 2008) == 366
        assert tracker.status_counts()["pending"] == 365 + 366

    def test_overlap_keeps_existing_state(self, tracker, monkeypatch):
        tracker.seed_range(2007, 2007)
        tracker.update("20070101", COMPLETED, None, 3, 40)
        monkeypatch.setattr(tracker, "_existing_dates", lambda: set())

        tracker.seed_range(2007, 2007)
        assert tracker.get("20070101").status is COMPLETED
        assert tracker.get("20070101").pages_scraped == 3
