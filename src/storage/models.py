"""SQLAlchemy 2.0 ORM models for the archive store.

Two tables: ``article_urls`` (one row per archived permalink, never
updated or deleted) and ``scrape_progress`` (one checkpoint per calendar
date, updated in place by the crawler).
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArticleUrl(Base):
    __tablename__ = "article_urls"
    __table_args__ = (
        Index("idx_article_urls_year_monthday", "url_year", "url_monthday"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Denormalized from fixed offsets of ``url`` at insert time.
    url_year: Mapped[str | None] = mapped_column(String(4), nullable=True)
    url_monthday: Mapped[str | None] = mapped_column(String(4), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class ScrapeProgress(Base):
    __tablename__ = "scrape_progress"

    date: Mapped[str] = mapped_column(String(8), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    last_page_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    pages_scraped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    urls_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)
