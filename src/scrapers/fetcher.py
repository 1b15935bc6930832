"""HTTP page fetching for listing pages.

One GET per call, no retries: a failed page fails the crawl, and the
next scheduled invocation resumes from the stored cursor.
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "AnondArchiver/1.0 (url preservation; contact@example.com)"
BASE_TIMEOUT = 30.0


class FetchError(RuntimeError):
    """A listing page could not be fetched (network error or non-2xx status)."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PageFetcher:
    """Thin async wrapper around an ``httpx.AsyncClient``.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = BASE_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.user_agent},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self.transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> PageFetcher:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def fetch(self, url: str) -> str:
        """GET ``url`` and return its body text, or raise ``FetchError``."""
        client = await self._get_client()
        try:
            resp = await client.get(url)
        except httpx.RequestError as exc:
            raise FetchError(url, f"Request to {url} failed: {exc}") from exc

        if not resp.is_success:
            raise FetchError(
                url,
                f"Fetching {url} failed: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
            )
        return resp.text
