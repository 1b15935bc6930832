"""Tests for the page fetcher's error mapping."""

import httpx
import pytest

from src.scrapers.fetcher import DEFAULT_USER_AGENT, FetchError, PageFetcher


@pytest.mark.asyncio
async def test_returns_body(make_fetcher):
    fetcher, handler = make_fetcher({"https://anond.hatelabo.jp/": "<html>ok</html>"})
    async with fetcher:
        assert await fetcher.fetch("https://anond.hatelabo.jp/") == "<html>ok</html>"
    assert handler.requests == ["https://anond.hatelabo.jp/"]


@pytest.mark.asyncio
async def test_non_success_status_raises(make_fetcher):
    fetcher, _ = make_fetcher({"https://anond.hatelabo.jp/": 503})
    async with fetcher:
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://anond.hatelabo.jp/")
    assert exc_info.value.status_code == 503
    assert exc_info.value.url == "https://anond.hatelabo.jp/"


@pytest.mark.asyncio
async def test_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    fetcher = PageFetcher(transport=httpx.MockTransport(handler))
    async with fetcher:
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://anond.hatelabo.jp/")
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_single_attempt_no_retry(make_fetcher):
    fetcher, handler = make_fetcher({"https://anond.hatelabo.jp/": 500})
    async with fetcher:
        with pytest.raises(FetchError):
            await fetcher.fetch("https://anond.hatelabo.jp/")
    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_sends_user_agent():
    seen = {}

    def handler(request):
        seen["ua"] = request.headers.get("user-agent")
        return httpx.Response(200, text="")

    fetcher = PageFetcher(transport=httpx.MockTransport(handler))
    async with fetcher:
        await fetcher.fetch("https://anond.hatelabo.jp/")
    assert seen["ua"] == DEFAULT_USER_AGENT
