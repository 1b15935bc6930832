"""Abstract base extractor for listing pages.

An extractor turns one listing page's raw markup into an ordered list of
``ArticleRecord`` (permalink + title) and the absolute URL of the next
listing page, if the pager offers one.  Extractors are pure: no I/O, no
storage access.  Two strategies exist (see ``src.scrapers.parsers``) and
are selected by deployment profile through the registry:

- ``tree``    full HTML parsing with selectolax; tolerant of odd markup.
- ``pattern`` targeted regular expressions over the fixed markup shape;
              cheaper per page, used for the frequent light crawls.

For well-formed pages both must return identical ``ListingPage`` objects.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from src.validation.schemas import ArticleRecord, ListingPage, SiteConfig

logger = logging.getLogger(__name__)


class BaseExtractor(ABC):
    """Config-driven extractor for the site's listing format."""

    profile: str = "base"

    def __init__(self, site: SiteConfig):
        self.site = site
        self.origin: str = site.origin
        self.selectors = site.selectors
        self.next_marker: str = site.next_marker
        self.title_fallback: str = site.title_fallback

    # ------------------------------------------------------------------
    # Strategy hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _extract_links(self, html: str) -> list[tuple[str, str]]:
        """Return ``(href, anchor_text)`` pairs in page order."""

    @abstractmethod
    def _extract_next_href(self, html: str) -> str | None:
        """Return the raw href of the pager's "next" anchor, if any."""

    # ------------------------------------------------------------------
    # Shared normalization
    # ------------------------------------------------------------------

    def _make_record(self, href: str, text: str) -> ArticleRecord:
        title = text.strip() or self.title_fallback
        return ArticleRecord(url=self.site.absolutize(href), title=title)

    def parse(self, html: str) -> ListingPage:
        """Parse one listing page. Never raises on malformed markup."""
        records: list[ArticleRecord] = []
        for href, text in self._extract_links(html):
            if not href or not href.strip():
                continue
            records.append(self._make_record(href, text))

        next_href = self._extract_next_href(html)
        next_url = self.site.absolutize(next_href) if next_href else None

        logger.debug(
            "[%s] Parsed %d records, next=%s", self.profile, len(records), next_url,
        )
        return ListingPage(records=records, next_url=next_url)
