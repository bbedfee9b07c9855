"""Cache providers for access decisions.

Every cached value is JSON-compatible (bool, str, int, list, dict) so the
same resolver code runs against the in-process cache and Redis.

Provides:
- ``CacheProvider`` — the ``remember`` / ``forget`` protocol the engine consumes.
- ``InMemoryCache`` — TTL cache with an injectable clock (tests, single process).
- ``RedisCache`` — shared cache on the same Redis the services already use.
- ``build_cache()`` — pick a backend from :class:`AccessConfig`.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, TypeVar, runtime_checkable

import redis

from .config import AccessConfig
from .exceptions import CacheBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class CacheProvider(Protocol):
    """Minimal cache contract: compute-on-miss and explicit eviction."""

    def remember(self, key: str, ttl: int, compute: Callable[[], T]) -> T: ...

    def forget(self, key: str) -> None: ...


@dataclass
class CacheStats:
    """Hit/miss counters for a cache instance."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class InMemoryCache:
    """Thread-safe in-process TTL cache.

    ``compute`` runs outside the lock, so a compute function may itself call
    :meth:`remember` (the hierarchy walk does exactly that).

    Args:
        clock: Monotonic time source in seconds. Injected by tests.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Any]] = {}
        self.stats = CacheStats()

    def remember(self, key: str, ttl: int, compute: Callable[[], T]) -> T:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                expires_at, value = entry
                if now < expires_at:
                    self.stats.hits += 1
                    return value
                del self._entries[key]
                self.stats.evictions += 1
            self.stats.misses += 1

        value = compute()

        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)
        return value

    def forget(self, key: str) -> None:
        with self._lock:
            if self._entries.pop(key, None) is not None:
                self.stats.evictions += 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._clock() < entry[0]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisCache:
    """Redis-backed cache with JSON-encoded values.

    Args:
        client: A ``redis.Redis`` client created with ``decode_responses=True``.

    Example::

        cache = RedisCache.from_url("redis://localhost:6379/0")
        cache.remember("contextaccess:role_accessible_modules:7", 3600, compute)
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisCache:
        return cls(redis.from_url(url, decode_responses=True))

    def remember(self, key: str, ttl: int, compute: Callable[[], T]) -> T:
        try:
            raw = self._client.get(key)
        except redis.RedisError as e:
            raise CacheBackendError(f"Cache read failed for '{key}': {e}", key=key) from e

        if raw is not None:
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Discarding undecodable cache entry %s", key)

        value = compute()
        try:
            self._client.set(key, json.dumps(value), ex=ttl)
        except redis.RedisError as e:
            raise CacheBackendError(f"Cache write failed for '{key}': {e}", key=key) from e
        return value

    def forget(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as e:
            raise CacheBackendError(f"Cache delete failed for '{key}': {e}", key=key) from e

    def close(self) -> None:
        self._client.close()


def build_cache(config: AccessConfig) -> CacheProvider:
    """Return a RedisCache when ``redis_url`` is configured, else InMemoryCache."""
    if config.redis_url:
        logger.info("Access cache backend: redis")
        return RedisCache.from_url(config.redis_url)
    logger.info("Access cache backend: in-memory (REDIS_URL not set)")
    return InMemoryCache()


__all__ = [
    "CacheProvider",
    "CacheStats",
    "InMemoryCache",
    "RedisCache",
    "build_cache",
]
