"""Database interface for the archive store.

Provides engine/session setup plus the deduplicating record store: bulk
insert-if-absent keyed on the permalink, point existence checks and the
random point lookup behind the date redirect. Uses SQLAlchemy 2.0 with
SQLite by default; any URL SQLAlchemy understands can be passed instead
of a path.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import create_engine, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.storage.models import ArticleUrl, Base, ScrapeProgress
from src.validation.schemas import ArticleRecord, SiteConfig, permalink_date_fields

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data/anond_archive.db")

# Rows per INSERT statement. Each article row binds five parameters (url,
# title, url_year, url_monthday, created_at), so 150 rows stay under the
# 999-parameter limit of SQLite builds older than 3.32.
INSERT_CHUNK_SIZE = 150

_BULK_DIALECTS = ("sqlite", "postgresql")


def _engine_url(db_path: Path | str) -> str:
    raw = str(db_path)
    if "://" in raw:
        return raw
    if raw != ":memory:":
        Path(raw).parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{raw}"


class Database:
    """Manages the database connection and the deduplicating record store."""

    def __init__(
        self,
        db_path: Path | str | None = None,
        site: SiteConfig | None = None,
        echo: bool = False,
        bulk_insert: bool = True,
    ):
        if db_path is None:
            db_path = DEFAULT_DB_PATH
        if site is None:
            from src.scrapers.registry import get_site
            site = get_site()
        self.db_path = db_path
        self.site = site
        self.engine = create_engine(_engine_url(db_path), echo=echo)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self.supports_conflict_free_insert = self.engine.dialect.name in _BULK_DIALECTS
        self.bulk_insert = bulk_insert and self.supports_conflict_free_insert

    def create_tables(self) -> None:
        """Create all tables if they don't exist."""
        Base.metadata.create_all(self.engine)
        logger.info("Database tables created at %s", self.db_path)

    def get_session(self) -> Session:
        """Return a new SQLAlchemy session."""
        return self.SessionLocal()

    # ------------------------------------------------------------------
    # Record store
    # ------------------------------------------------------------------

    def _row(self, record: ArticleRecord) -> dict:
        year, monthday = permalink_date_fields(
            record.url, self.site.origin, self.site.permalink_digits,
        )
        return {
            "url": record.url,
            "title": record.title,
            "url_year": year,
            "url_monthday": monthday,
        }

    def conflict_free_insert(self, model, rows: list[dict], key: str):
        """``INSERT ... ON CONFLICT (key) DO NOTHING`` for SQLite and PostgreSQL."""
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        else:
            from sqlalchemy.dialects.sqlite import insert as dialect_insert
        return dialect_insert(model).values(rows).on_conflict_do_nothing(index_elements=[key])

    def insert_if_absent(self, records: Iterable[ArticleRecord]) -> int:
        """Insert records whose URL is not stored yet; return how many were new.

        Existing URLs are silently skipped, never overwritten. With a bulk
        capable backend each chunk is a single statement; otherwise records
        are inserted one by one and a failing record is logged and skipped.
        """
        rows = [self._row(r) for r in records]
        if not rows:
            return 0
        if not self.bulk_insert:
            return self._insert_each(rows)

        inserted = 0
        with self.engine.begin() as conn:
            for start in range(0, len(rows), INSERT_CHUNK_SIZE):
                chunk = rows[start:start + INSERT_CHUNK_SIZE]
                result = conn.execute(self.conflict_free_insert(ArticleUrl, chunk, "url"))
                inserted += max(result.rowcount, 0)
        return inserted

    def _insert_each(self, rows: list[dict]) -> int:
        inserted = 0
        for row in rows:
            try:
                if self.url_exists(row["url"]):
                    continue
                with self.engine.begin() as conn:
                    conn.execute(insert(ArticleUrl).values(**row))
                inserted += 1
            except SQLAlchemyError as exc:
                logger.error("Failed to store %s: %s", row["url"], exc)
        return inserted

    def url_exists(self, url: str) -> bool:
        """Check if a permalink is already archived."""
        with self.get_session() as session:
            result = session.execute(
                select(ArticleUrl.id).where(ArticleUrl.url == url)
            ).scalar_one_or_none()
            return result is not None

    def get_article_count(self, year: Optional[str] = None) -> int:
        """Return the number of archived permalinks, optionally for one year."""
        with self.get_session() as session:
            stmt = select(func.count(ArticleUrl.id))
            if year:
                stmt = stmt.where(ArticleUrl.url_year == year)
            return session.execute(stmt).scalar_one()

    def random_article_url(self, year: str, month_day: str) -> str | None:
        """Pick one archived permalink for ``year`` + ``month_day`` uniformly at random."""
        with self.get_session() as session:
            return session.execute(
                select(ArticleUrl.url)
                .where(ArticleUrl.url_year == year, ArticleUrl.url_monthday == month_day)
                .order_by(func.random())
                .limit(1)
            ).scalar_one_or_none()

    def archived_dates(self) -> set[str]:
        """Distinct ``YYYYMMDD`` segments embedded in stored permalinks."""
        offset = len(self.site.origin) + 2  # SQL substr is 1-based
        min_length = offset - 1 + self.site.permalink_digits
        with self.get_session() as session:
            rows = session.execute(
                select(func.substr(ArticleUrl.url, offset, 8))
                .where(func.length(ArticleUrl.url) >= min_length)
                .distinct()
            ).scalars().all()
        return {r for r in rows if r and r.isdigit()}

    def stats(self) -> dict:
        """Return summary statistics about the database."""
        with self.get_session() as session:
            total_articles = session.execute(
                select(func.count(ArticleUrl.id))
            ).scalar_one()
            years_with_data = session.execute(
                select(func.count(func.distinct(ArticleUrl.url_year)))
            ).scalar_one()
            total_checkpoints = session.execute(
                select(func.count(ScrapeProgress.date))
            ).scalar_one()
            return {
                "total_articles": total_articles,
                "years_with_data": years_with_data,
                "total_checkpoints": total_checkpoints,
            }
