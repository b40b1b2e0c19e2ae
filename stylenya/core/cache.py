"""Injectable TTL key-value caches.

Callers own a cache instance and hand it to the components that need one
(for example the Tavily client). There is no process-wide cache object.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class TTLCache(Protocol):
    """Minimal async cache contract: lookup and store-with-expiry."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...


@dataclass(slots=True)
class _Entry:
    expires_at: float
    value: Any


class MemoryTTLCache:
    """In-process cache; entries expire lazily on read."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._store: dict[str, _Entry] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        self._store.clear()

    async def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._store[key]
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        # Non-positive TTLs still store the value for a minimal window.
        ttl = max(0.001, float(ttl_seconds))
        self._store[key] = _Entry(expires_at=self._clock() + ttl, value=value)


class RedisTTLCache:
    """Redis-backed cache storing JSON-encoded values under a key prefix."""

    def __init__(self, client: Redis, *, prefix: str = "stylenya:cache:") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisTTLCache:
        return cls(Redis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self._client.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            logger.warning("Dropping undecodable cache entry", extra={"cache_key": key})
            await self._client.delete(self._key(key))
            return None

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        ttl_ms = max(1, int(float(ttl_seconds) * 1000))
        await self._client.set(self._key(key), json.dumps(value, default=str), px=ttl_ms)

    async def close(self) -> None:
        await self._client.aclose()
