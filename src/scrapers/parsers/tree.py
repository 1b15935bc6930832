"""Tree-based listing extractor.

Uses selectolax to walk ``div.section`` containers and the pager. This is
the full-fidelity strategy used for backfill crawls: it copes with
attribute order, extra classes and unclosed tags that the pattern
strategy would miss.
"""

from __future__ import annotations

import logging

from selectolax.parser import HTMLParser

from src.scrapers.base import BaseExtractor
from src.scrapers.registry import register_extractor

logger = logging.getLogger(__name__)


@register_extractor("tree")
class TreeExtractor(BaseExtractor):
    profile = "tree"

    def _extract_links(self, html: str) -> list[tuple[str, str]]:
        tree = HTMLParser(html)
        links: list[tuple[str, str]] = []

        for row in tree.css(self.selectors.listing_item):
            try:
                anchor = row.css_first(self.selectors.permalink)
                if not anchor:
                    continue
                href = anchor.attributes.get("href") or ""
                links.append((href, anchor.text() or ""))
            except Exception:
                logger.debug("[tree] Failed to parse listing row", exc_info=True)

        return links

    def _extract_next_href(self, html: str) -> str | None:
        tree = HTMLParser(html)
        for anchor in tree.css(self.selectors.pager):
            if self.next_marker in (anchor.text() or ""):
                href = anchor.attributes.get("href")
                if href:
                    return href
        return None
