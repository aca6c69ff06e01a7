from __future__ import annotations

import logging

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from apistats.store import InMemoryStatsStore, RedisStatsStore, StoreError, create_stats_store


class FailingRedisClient:
    async def zincrby(self, key, amount, member):
        raise RedisConnectionError("Connection refused")

    async def zrevrange(self, key, start, stop, withscores=False):
        if withscores:
            return [("Chrome", 4.0), ("Firefox", 1.0)]
        return ["Chrome", "Firefox"]


async def test_in_memory_store_counts_and_orders_members() -> None:
    store = InMemoryStatsStore()

    for member in ["Chrome", "Firefox", "Chrome", "Safari", "Chrome", "Firefox"]:
        await store.zincrby("api_requests:2026-03-14", 1, member)

    assert await store.exists("api_requests:2026-03-14") is True
    assert await store.exists("api_requests:2026-03-13") is False
    assert await store.zrevrange("api_requests:2026-03-14", 0, -1, withscores=True) == [
        ("Chrome", 3),
        ("Firefox", 2),
        ("Safari", 1),
    ]
    assert await store.zrevrange("api_requests:2026-03-14", 0, 0, withscores=True) == [("Chrome", 3)]
    assert await store.zrevrange("api_requests:2026-03-14", 0, 1) == ["Chrome", "Firefox"]


async def test_in_memory_store_expires_buckets(monkeypatch) -> None:
    clock = [1000.0]
    monkeypatch.setattr("apistats.store.monotonic", lambda: clock[0])
    store = InMemoryStatsStore()

    assert await store.expire("missing", 60) is False
    await store.zincrby("bucket", 1, "10.0.0.1")
    assert await store.expire("bucket", 60) is True

    clock[0] += 59
    assert await store.exists("bucket") is True
    clock[0] += 1
    assert await store.exists("bucket") is False
    assert await store.zrevrange("bucket", 0, -1, withscores=True) == []


async def test_in_memory_store_reset_clears_state() -> None:
    store = InMemoryStatsStore()
    await store.zincrby("bucket", 1, "10.0.0.1")

    await store.reset()

    assert await store.exists("bucket") is False


async def test_redis_store_wraps_backend_errors() -> None:
    store = RedisStatsStore(client=FailingRedisClient())

    with pytest.raises(StoreError, match="Connection refused"):
        await store.zincrby("api_requests:2026-03-14", 1, "Chrome")

    assert await store.zrevrange("api_requests:2026-03-14", 0, -1, withscores=True) == [
        ("Chrome", 4.0),
        ("Firefox", 1.0),
    ]
    assert await store.zrevrange("api_requests:2026-03-14", 0, -1) == ["Chrome", "Firefox"]


def test_create_stats_store_backends(caplog) -> None:
    store, shared = create_stats_store(backend="memory", redis_url=None)
    assert isinstance(store, InMemoryStatsStore)
    assert shared is False

    store, shared = create_stats_store(backend=" Redis ", redis_url="redis://localhost:6379/0")
    assert isinstance(store, RedisStatsStore)
    assert shared is True

    logger = logging.getLogger("tests.store")
    with caplog.at_level(logging.WARNING, logger="tests.store"):
        store, shared = create_stats_store(backend="auto", redis_url=None, logger=logger)
    assert isinstance(store, InMemoryStatsStore)
    assert shared is False
    assert any("stats_store_auto_fallback" in record.getMessage() for record in caplog.records)

    with pytest.raises(RuntimeError):
        create_stats_store(backend="redis", redis_url=None)
    with pytest.raises(ValueError):
        create_stats_store(backend="memcached", redis_url=None)
