"""Tavily web-search integration used by the research pipeline."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

import httpx

from stylenya.config import settings
from stylenya.core.cache import RedisTTLCache, TTLCache
from stylenya.core.exceptions import APIKeyMissingError, ExternalAPIError, RateLimitExceededError
from stylenya.services.research.evidence import ResearchMode, SearchHit

logger = logging.getLogger(__name__)


def build_cache_key(
    query: str,
    *,
    mode: str = "quick",
    locale: str | None = None,
    geo: str | None = None,
    language: str | None = None,
) -> str:
    payload = json.dumps(
        {
            "query": query,
            "mode": mode or "quick",
            "locale": locale or "",
            "geo": geo or "",
            "language": language or "",
        },
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _to_hit(item: dict[str, Any]) -> SearchHit | None:
    url = item.get("url")
    if not isinstance(url, str) or not url:
        return None
    score = item.get("score")
    return SearchHit(
        url=url,
        title=item.get("title"),
        content=item.get("content"),
        score=float(score) if isinstance(score, (int, float)) else None,
        published_date=item.get("published_date"),
    )


class TavilyClient:
    """Client for the Tavily search API.

    Results are cached in the injected ``TTLCache`` when caching is enabled.
    Without an API key the client returns no results, except in production
    where a missing key is a configuration error.
    """

    BASE_URL = "https://api.tavily.com"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        cache: TTLCache | None = None,
        cache_enabled: bool | None = None,
        cache_ttl_seconds: float | None = None,
        timeout: float | None = None,
        production: bool | None = None,
        locale: str | None = None,
        geo: str | None = None,
        language: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.tavily_api_key
        self.cache = cache
        self.cache_enabled = settings.tavily_cache_enabled if cache_enabled is None else cache_enabled
        self.cache_ttl_seconds = (
            settings.tavily_cache_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
        )
        self.timeout = settings.tavily_timeout_seconds if timeout is None else timeout
        self.production = settings.is_production if production is None else production
        self.locale = locale
        self.geo = geo
        self.language = language
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._owned_cache: RedisTTLCache | None = None

    @classmethod
    def from_settings(cls, **kwargs: Any) -> TavilyClient:
        """Client configured from settings, caching in Redis when caching is enabled."""
        client = cls(**kwargs)
        if client.cache is None and client.cache_enabled:
            client._owned_cache = RedisTTLCache.from_url(settings.redis_url)
            client.cache = client._owned_cache
        return client

    async def __aenter__(self) -> TavilyClient:
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            timeout=self.timeout,
            headers={"Content-Type": "application/json"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._owned_cache is not None:
            await self._owned_cache.close()
            self._owned_cache = None
            self.cache = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    @property
    def _caching(self) -> bool:
        return self.cache_enabled and self.cache is not None

    async def search(
        self,
        query: str,
        *,
        max_results: int,
        search_depth: str = "basic",
        mode: ResearchMode = "quick",
        include_domains: list[str] | None = None,
        exclude_domains: list[str] | None = None,
    ) -> list[SearchHit]:
        """Search the web and return raw hits."""
        cache_key = build_cache_key(
            query, mode=mode, locale=self.locale, geo=self.geo, language=self.language
        )
        if self._caching:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.info("Tavily cache hit", extra={"mode": mode})
                return [hit for hit in (_to_hit(item) for item in cached) if hit is not None]

        if not self.api_key:
            if self.production:
                raise APIKeyMissingError("Tavily")
            logger.warning("Tavily API key missing; returning no results")
            return []

        body: dict[str, Any] = {
            "api_key": self.api_key,
            "query": query,
            "max_results": max_results,
            "search_depth": search_depth or "basic",
            "include_answer": False,
            "include_raw_content": False,
        }
        if include_domains:
            body["include_domains"] = include_domains
        if exclude_domains:
            body["exclude_domains"] = exclude_domains

        items = await self._make_request("search", body)
        if self._caching:
            await self.cache.set(cache_key, items, self.cache_ttl_seconds)
        return [hit for hit in (_to_hit(item) for item in items) if hit is not None]

    async def _make_request(self, endpoint: str, body: dict[str, Any]) -> list[dict[str, Any]]:
        logger.info("Tavily API request", extra={"endpoint": endpoint, "max_results": body.get("max_results")})
        try:
            response = await self.client.post(f"/{endpoint}", json=body)
        except httpx.HTTPError as e:
            logger.warning("Tavily HTTP error", extra={"endpoint": endpoint, "error": str(e)})
            raise ExternalAPIError("Tavily", f"Network error: {e}") from e

        if response.status_code == 429:
            logger.warning("Tavily rate limit hit", extra={"endpoint": endpoint})
            raise RateLimitExceededError("Tavily")
        if response.is_error:
            raise ExternalAPIError(
                "Tavily",
                f"search failed ({response.status_code}): {response.text[:500]}",
                status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalAPIError("Tavily", f"non-JSON body: {response.text[:300]}") from e

        if isinstance(data, dict) and data.get("error"):
            raise ExternalAPIError("Tavily", str(data["error"])[:500], status=response.status_code)

        results = data.get("results") if isinstance(data, dict) else None
        return [item for item in results or [] if isinstance(item, dict)]
