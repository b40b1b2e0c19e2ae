"""Unit tests for the Tavily search client."""

from __future__ import annotations

import json

import httpx
import pytest

from stylenya.core.cache import MemoryTTLCache, RedisTTLCache
from stylenya.core.exceptions import APIKeyMissingError, ExternalAPIError, RateLimitExceededError
from stylenya.integrations.tavily import TavilyClient, build_cache_key


def _transport(handler, calls: list[dict]) -> httpx.MockTransport:
    def _record(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content))
        return handler(request)

    return httpx.MockTransport(_record)


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "results": [
                {"url": "https://etsy.com/a", "title": "A", "content": "ideas", "score": 0.9},
                {"title": "no url"},
                {"url": "https://blog.com/b", "published_date": "2024-02-01"},
            ]
        },
    )


@pytest.mark.asyncio
async def test_search_posts_request_and_maps_hits() -> None:
    calls: list[dict] = []
    client = TavilyClient("key-123", cache_enabled=False, production=False, transport=_transport(_ok, calls))

    async with client:
        hits = await client.search("unicorn party", max_results=8, search_depth="basic", include_domains=["etsy.com"])

    assert [hit.url for hit in hits] == ["https://etsy.com/a", "https://blog.com/b"]
    assert hits[0].score == pytest.approx(0.9)
    assert hits[1].published_date == "2024-02-01"
    assert calls == [
        {
            "api_key": "key-123",
            "query": "unicorn party",
            "max_results": 8,
            "search_depth": "basic",
            "include_answer": False,
            "include_raw_content": False,
            "include_domains": ["etsy.com"],
        }
    ]


@pytest.mark.asyncio
async def test_search_uses_injected_cache_when_enabled() -> None:
    calls: list[dict] = []
    cache = MemoryTTLCache()
    client = TavilyClient(
        "key",
        cache=cache,
        cache_enabled=True,
        cache_ttl_seconds=60,
        production=False,
        transport=_transport(_ok, calls),
    )

    async with client:
        first = await client.search("q", max_results=5, mode="deep")
        second = await client.search("q", max_results=5, mode="deep")
        await client.search("q", max_results=5, mode="quick")

    assert first == second
    assert len(calls) == 2
    assert len(cache) == 2


def test_cache_key_depends_on_query_mode_and_locale() -> None:
    base = build_cache_key("q", mode="quick")

    assert base == build_cache_key("q")
    assert base != build_cache_key("q", mode="deep")
    assert base != build_cache_key("q", locale="es-ES")
    assert len(base) == 64


@pytest.mark.asyncio
async def test_missing_key_returns_nothing_outside_production() -> None:
    calls: list[dict] = []
    client = TavilyClient("", production=False, cache_enabled=False, transport=_transport(_ok, calls))

    async with client:
        assert await client.search("q", max_results=5) == []
    assert calls == []


@pytest.mark.asyncio
async def test_missing_key_raises_in_production() -> None:
    client = TavilyClient("", production=True, cache_enabled=False)

    async with client:
        with pytest.raises(APIKeyMissingError):
            await client.search("q", max_results=5)


@pytest.mark.asyncio
async def test_rate_limit_and_http_errors_are_wrapped() -> None:
    def _limited(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="slow down")

    def _broken(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    def _error_body(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "invalid api key"})

    for handler, expected in ((_limited, RateLimitExceededError), (_broken, ExternalAPIError), (_error_body, ExternalAPIError)):
        client = TavilyClient("key", production=False, cache_enabled=False, transport=_transport(handler, []))
        async with client:
            with pytest.raises(expected) as exc_info:
                await client.search("q", max_results=5)
        if handler is _broken:
            assert exc_info.value.status == 500
        if handler is _limited:
            assert exc_info.value.is_rate_limit is True


@pytest.mark.asyncio
async def test_network_failures_become_external_api_errors() -> None:
    def _fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    client = TavilyClient("key", production=False, cache_enabled=False, transport=httpx.MockTransport(_fail))

    async with client:
        with pytest.raises(ExternalAPIError, match="Network error"):
            await client.search("q", max_results=5)


@pytest.mark.asyncio
async def test_client_requires_context_manager() -> None:
    client = TavilyClient("key", production=False, cache_enabled=False)

    with pytest.raises(RuntimeError):
        await client.search("q", max_results=5)


@pytest.mark.asyncio
async def test_from_settings_owns_a_redis_cache_only_when_enabled() -> None:
    cached = TavilyClient.from_settings(api_key="key", cache_enabled=True, production=False)
    uncached = TavilyClient.from_settings(api_key="key", cache_enabled=False, production=False)
    injected = MemoryTTLCache()
    shared = TavilyClient.from_settings(api_key="key", cache=injected, cache_enabled=True, production=False)

    assert isinstance(cached.cache, RedisTTLCache)
    assert uncached.cache is None
    assert shared.cache is injected

    async with cached:
        pass
    assert cached.cache is None
