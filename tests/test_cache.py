"""Tests for cache providers."""

from __future__ import annotations

import json
import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import redis

from contextaccess import CacheBackendError, CacheProvider, InMemoryCache, RedisCache


class TestInMemoryCache:
    @pytest.fixture
    def clock(self):
        return SimpleNamespace(now=0.0)

    @pytest.fixture
    def cache(self, clock):
        return InMemoryCache(clock=lambda: clock.now)

    def test_satisfies_protocol(self, cache) -> None:
        assert isinstance(cache, CacheProvider)

    def test_computes_once_within_ttl(self, cache, clock) -> None:
        compute = MagicMock(return_value=True)
        assert cache.remember("k", 10, compute) is True
        clock.now = 9.9
        assert cache.remember("k", 10, compute) is True
        compute.assert_called_once()
        assert cache.stats.hits == 1
        assert cache.stats.misses == 1
        assert cache.stats.hit_rate == 0.5

    def test_expires_after_ttl(self, cache, clock) -> None:
        cache.remember("k", 10, lambda: "old")
        clock.now = 10.0
        assert "k" not in cache
        assert cache.remember("k", 10, lambda: "new") == "new"
        assert cache.stats.evictions == 1

    def test_falsy_values_are_cached(self, cache) -> None:
        compute = MagicMock(return_value=False)
        cache.remember("k", 10, compute)
        cache.remember("k", 10, compute)
        compute.assert_called_once()

    def test_forget(self, cache) -> None:
        cache.remember("k", 10, lambda: 1)
        cache.forget("k")
        cache.forget("missing")
        assert "k" not in cache
        assert len(cache) == 0

    def test_nested_remember(self, cache) -> None:
        value = cache.remember("outer", 10, lambda: cache.remember("inner", 10, lambda: 2) + 1)
        assert value == 3
        assert "inner" in cache

    def test_clear(self, cache) -> None:
        cache.remember("a", 10, lambda: 1)
        cache.remember("b", 10, lambda: 2)
        cache.clear()
        assert len(cache) == 0

    def test_empty_hit_rate(self, cache) -> None:
        assert cache.stats.hit_rate == 0.0


class TestRedisCache:
    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.get.return_value = None
        return client

    def test_miss_computes_and_sets_with_ttl(self, client) -> None:
        cache = RedisCache(client)
        assert cache.remember("contextaccess:role_accessible_modules:7", 3600, lambda: [1, 3]) == [1, 3]
        client.set.assert_called_once_with(
            "contextaccess:role_accessible_modules:7", json.dumps([1, 3]), ex=3600
        )

    def test_hit_decodes_json(self, client) -> None:
        client.get.return_value = "true"
        compute = MagicMock()
        assert RedisCache(client).remember("k", 60, compute) is True
        compute.assert_not_called()
        client.set.assert_not_called()

    def test_undecodable_entry_recomputed(self, client, caplog) -> None:
        client.get.return_value = "{not json"
        with caplog.at_level(logging.WARNING, logger="contextaccess.cache"):
            assert RedisCache(client).remember("k", 60, lambda: "fresh") == "fresh"
        assert "undecodable" in caplog.text
        client.set.assert_called_once()

    def test_read_error(self, client) -> None:
        client.get.side_effect = redis.ConnectionError("refused")
        with pytest.raises(CacheBackendError) as exc_info:
            RedisCache(client).remember("k", 60, lambda: 1)
        assert exc_info.value.details == {"key": "k"}

    def test_write_error(self, client) -> None:
        client.set.side_effect = redis.TimeoutError("slow")
        with pytest.raises(CacheBackendError):
            RedisCache(client).remember("k", 60, lambda: 1)

    def test_forget(self, client) -> None:
        RedisCache(client).forget("k")
        client.delete.assert_called_once_with("k")

    def test_forget_error(self, client) -> None:
        client.delete.side_effect = redis.ConnectionError("refused")
        with pytest.raises(CacheBackendError):
            RedisCache(client).forget("k")
