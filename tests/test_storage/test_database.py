"""Tests for the database layer and the deduplicating record store."""

import pytest
from sqlalchemy import event, inspect, select
from sqlalchemy.exc import OperationalError

from src.storage.database import INSERT_CHUNK_SIZE, Database
from src.storage.models import ArticleUrl
from src.validation.schemas import ArticleRecord


def records(*urls: str) -> list[ArticleRecord]:
    return [ArticleRecord(url=u, title=f"title {i}") for i, u in enumerate(urls)]


class TestDatabase:
    def test_create_tables(self, in_memory_db):
        """Tables should be created without errors."""
        stats = in_memory_db.stats()
        assert stats["total_articles"] == 0
        assert stats["total_checkpoints"] == 0

    def test_expected_tables(self, in_memory_db):
        tables = set(inspect(in_memory_db.engine).get_table_names())
        assert {"article_urls", "scrape_progress"} <= tables

    def test_file_database_creates_parent(self, tmp_path, site):
        db = Database(tmp_path / "nested" / "archive.db", site=site)
        db.create_tables()
        assert (tmp_path / "nested" / "archive.db").exists()

    def test_url_passthrough(self, site):
        db = Database("sqlite:///:memory:", site=site)
        assert db.engine.dialect.name == "sqlite"
        assert db.bulk_insert


class TestInsertIfAbsent:
    def test_returns_inserted_count(self, test_site_db):
        n = test_site_db.insert_if_absent(records(
            "https://site/20090101000000",
            "https://site/20090101000001",
            "https://site/20090102000000",
        ))
        assert n == 3
        assert test_site_db.get_article_count() == 3

    def test_idempotent(self, test_site_db):
        batch = records("https://site/20090101000000", "https://site/20090101000001")
        assert test_site_db.insert_if_absent(batch) == 2
        assert test_site_db.insert_if_absent(batch) == 0
        assert test_site_db.get_article_count() == 2

    def test_existing_row_not_overwritten(self, test_site_db):
        test_site_db.insert_if_absent([ArticleRecord(url="https://site/20090101000000", title="first")])
        test_site_db.insert_if_absent([ArticleRecord(url="https://site/20090101000000", title="second")])
        with test_site_db.get_session() as session:
            title = session.execute(select(ArticleUrl.title)).scalar_one()
        assert title == "first"

    def test_duplicates_within_one_batch(self, test_site_db):
        n = test_site_db.insert_if_absent(records(
            "https://site/20090101000000",
            "https://site/20090101000000",
        ))
        assert n == 1
        assert test_site_db.get_article_count() == 1

    def test_empty_batch(self, test_site_db):
        assert test_site_db.insert_if_absent([]) == 0

    def test_large_batch_spans_chunks(self, test_site_db):
        urls = [f"https://site/20090101{i:06d}" for i in range(450)]
        assert test_site_db.insert_if_absent(records(*urls)) == 450
        assert test_site_db.insert_if_absent(records(*urls)) == 0

    def test_statements_stay_under_sqlite_parameter_limit(self, test_site_db):
        counts = []

        def count_params(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith("INSERT"):
                counts.append(len(parameters))

        event.listen(test_site_db.engine, "before_cursor_execute", count_params)
        urls = [f"https://site/20090101{i:06d}" for i in range(INSERT_CHUNK_SIZE * 2 + 1)]
        test_site_db.insert_if_absent(records(*urls))

        assert len(counts) == 3
        assert max(counts) <= 999

    def test_mixed_new_and_existing(self, test_site_db):
        test_site_db.insert_if_absent(records("https://site/20090101000000"))
        n = test_site_db.insert_if_absent(records(
            "https://site/20090101000000",
            "https://site/20090101000001",
        ))
        assert n == 1

    def test_date_fields_derived(self, test_site_db):
        test_site_db.insert_if_absent([ArticleRecord(url="https://site/20090101000000", title="A")])
        with test_site_db.get_session() as session:
            row = session.execute(select(ArticleUrl)).scalar_one()
            assert row.url_year == "2009"
            assert row.url_monthday == "0101"
            assert row.title == "A"
            assert row.created_at is not None

    def test_malformed_permalink_gets_no_date_fields(self, test_site_db):
        test_site_db.insert_if_absent([ArticleRecord(url="https://site/about", title="About")])
        with test_site_db.get_session() as session:
            row = session.execute(select(ArticleUrl)).scalar_one()
            assert row.url_year is None
            assert row.url_monthday is None

    def test_production_origin_offsets(self, in_memory_db):
        in_memory_db.insert_if_absent([ArticleRecord(url="https://anond.hatelabo.jp/20240229123456")])
        with in_memory_db.get_session() as session:
            row = session.execute(select(ArticleUrl)).scalar_one()
            assert (row.url_year, row.url_monthday) == ("2024", "0229")


class TestPerRecordFallback:
    @pytest.fixture
    def fallback_db(self, test_site):
        db = Database(":memory:", site=test_site, bulk_insert=False)
        db.create_tables()
        return db

    def test_idempotent(self, fallback_db):
        batch = records("https://site/20090101000000", "https://site/20090101000001")
        assert not fallback_db.bulk_insert
        assert fallback_db.insert_if_absent(batch) == 2
        assert fallback_db.insert_if_absent(batch) == 0
        assert fallback_db.get_article_count() == 2

    def test_failing_record_is_skipped(self, fallback_db, monkeypatch):
        real_exists = fallback_db.url_exists

        def flaky_exists(url):
            if url.endswith("000001"):
                raise OperationalError("SELECT", {}, Exception("database is locked"))
            return real_exists(url)

        monkeypatch.setattr(fallback_db, "url_exists", flaky_exists)
        n = fallback_db.insert_if_absent(records(
            "https://site/20090101000000",
            "https://site/20090101000001",
            "https://site/20090101000002",
        ))
        assert n == 2
        assert fallback_db.get_article_count() == 2


class TestQueries:
    def test_url_exists(self, test_site_db):
        test_site_db.insert_if_absent(records("https://site/20090101000000"))
        assert test_site_db.url_exists("https://site/20090101000000")
        assert not test_site_db.url_exists("https://site/20090101000001")

    def test_count_by_year(self, test_site_db):
        test_site_db.insert_if_absent(records(
            "https://site/20090101000000",
            "https://site/20100101000000",
            "https://site/20100102000000",
        ))
        assert test_site_db.get_article_count(year="2010") == 2
        assert test_site_db.get_article_count(year="2011") == 0

    def test_random_article_url_matches_year_and_monthday(self, test_site_db):
        test_site_db.insert_if_absent(records(
            "https://site/20090101000000",
            "https://site/20090101000001",
            "https://site/20090102000000",
            "https://site/20100101000000",
        ))
        for _ in range(10):
            url = test_site_db.random_article_url("2009", "0101")
            assert url in {"https://site/20090101000000", "https://site/20090101000001"}

    def test_random_article_url_miss(self, test_site_db):
        test_site_db.insert_if_absent(records("https://site/20090101000000"))
        assert test_site_db.random_article_url("2009", "0102") is None

    def test_archived_dates(self, in_memory_db):
        in_memory_db.insert_if_absent([
            ArticleRecord(url="https://anond.hatelabo.jp/20060924120000"),
            ArticleRecord(url="https://anond.hatelabo.jp/20060924183001"),
            ArticleRecord(url="https://anond.hatelabo.jp/20070101000000"),
            ArticleRecord(url="https://anond.hatelabo.jp/about"),
        ])
        assert in_memory_db.archived_dates() == {"20060924", "20070101"}

    def test_stats(self, test_site_db):
        test_site_db.insert_if_absent(records(
            "https://site/20090101000000",
            "https://site/20100101000000",
        ))
        stats = test_site_db.stats()
        assert stats["total_articles"] == 2
        assert stats["years_with_data"] == 2
