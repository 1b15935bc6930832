"""Shared pytest fixtures for the Anond Archiver test suite."""

from datetime import date
from pathlib import Path

import httpx
import pytest

from src.scrapers.fetcher import PageFetcher
from src.scrapers.registry import get_site
from src.storage.database import Database
from src.validation.schemas import SiteConfig

FIXTURES_DIR = Path(__file__).parent / "fixtures"
ANOND_FIXTURES_DIR = FIXTURES_DIR / "anond"


@pytest.fixture
def site() -> SiteConfig:
    """Return the production site profile from config/site.yaml."""
    return get_site("anond")


@pytest.fixture
def test_site() -> SiteConfig:
    """Return a profile for a fictional origin used in scenario tests."""
    return SiteConfig(key="test", name="Test", origin="https://site", first_day=date(2006, 9, 24))


@pytest.fixture
def listing_html() -> str:
    """Return the raw HTML of the front listing page fixture."""
    return (ANOND_FIXTURES_DIR / "listing_page_0.html").read_text(encoding="utf-8")


@pytest.fixture
def listing_htmls() -> dict[str, str]:
    """Return a dict of fixture name → HTML for all listing page fixtures."""
    result = {}
    for path in sorted(ANOND_FIXTURES_DIR.glob("listing_*.html")):
        result[path.stem] = path.read_text(encoding="utf-8")
    return result


@pytest.fixture
def in_memory_db(site):
    """Return a Database instance backed by an in-memory SQLite database."""
    db = Database(":memory:", site=site)
    db.create_tables()
    return db


@pytest.fixture
def test_site_db(test_site):
    """Return an in-memory Database bound to the fictional test origin."""
    db = Database(":memory:", site=test_site)
    db.create_tables()
    return db


def listing_markup(records: list[tuple[str, str]], next_href: str | None = None) -> str:
    """Build a minimal listing page in the site's markup.

    ``records`` is a list of ``(href, anchor_text)`` pairs.
    """
    sections = "\n".join(
        f'<div class="section">\n<h3><a href="{href}">{text}</a></h3>\n<p>本文</p>\n</div>'
        for href, text in records
    )
    pager = f'<div class="pager-l"><a href="{next_href}">次の25件&gt;</a></div>' if next_href else ""
    return f"<html><body>\n{pager}\n<div class=\"body\">\n{sections}\n</div>\n{pager}\n</body></html>"


class RecordingHandler:
    """``httpx.MockTransport`` handler serving canned pages by URL.

    Values are either an HTML string (served with 200) or an int status
    code. Unknown URLs get a 404. Requested URLs are kept in ``requests``.
    """

    def __init__(self, pages: dict[str, str | int]):
        self.pages = pages
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        page = self.pages.get(url, 404)
        if isinstance(page, int):
            return httpx.Response(page, text="error")
        return httpx.Response(200, text=page, headers={"Content-Type": "text/html; charset=utf-8"})


@pytest.fixture
def make_fetcher():
    """Return a factory: pages dict → (PageFetcher, RecordingHandler)."""
    def factory(pages: dict[str, str | int]):
        handler = RecordingHandler(pages)
        fetcher = PageFetcher(transport=httpx.MockTransport(handler))
        return fetcher, handler
    return factory


@pytest.fixture
def make_listing():
    """Return the ``listing_markup`` page builder."""
    return listing_markup
