"""Sorted-set store backends for daily request buckets."""

from __future__ import annotations

import logging
from threading import Lock
from time import monotonic
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from apistats.buckets import DEFAULT_KEY_PREFIX


class StoreError(RuntimeError):
    """Raised when the statistics store cannot be reached or misbehaves."""


class StatsStore(Protocol):
    """Minimal sorted-set capability used by the counters and the reporter."""

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        """Add `amount` to the score of `member` in the sorted set at `key`."""

    async def expire(self, key: str, seconds: int) -> bool:
        """Set (or refresh) the time-to-live of `key`."""

    async def exists(self, key: str) -> bool:
        """Return True when `key` currently exists."""

    async def zrevrange(
        self,
        key: str,
        start: int,
        stop: int,
        *,
        withscores: bool = False,
    ) -> list[tuple[str, float]] | list[str]:
        """Return members ordered by descending score, paired with scores when asked."""

    async def close(self) -> None:
        """Release backend resources if needed."""

    async def reset(self) -> None:
        """Clear stored buckets (primarily for test isolation)."""


class InMemoryStatsStore:
    """Process-local sorted sets with lazy TTL expiry."""

    def __init__(self) -> None:
        self._sets: dict[str, dict[str, float]] = {}
        self._expires_at: dict[str, float] = {}
        self._lock = Lock()

    def _purge_if_expired(self, key: str, now: float) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and deadline <= now:
            self._sets.pop(key, None)
            self._expires_at.pop(key, None)

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        with self._lock:
            self._purge_if_expired(key, monotonic())
            bucket = self._sets.setdefault(key, {})
            bucket[member] = bucket.get(member, 0) + amount
            return bucket[member]

    async def expire(self, key: str, seconds: int) -> bool:
        now = monotonic()
        with self._lock:
            self._purge_if_expired(key, now)
            if key not in self._sets:
                return False
            self._expires_at[key] = now + seconds
            return True

    async def exists(self, key: str) -> bool:
        with self._lock:
            self._purge_if_expired(key, monotonic())
            return key in self._sets

    async def zrevrange(
        self,
        key: str,
        start: int,
        stop: int,
        *,
        withscores: bool = False,
    ) -> list[tuple[str, float]] | list[str]:
        with self._lock:
            self._purge_if_expired(key, monotonic())
            bucket = dict(self._sets.get(key, {}))

        # Redis orders equal scores by member, reversed for ZREVRANGE.
        ordered = sorted(bucket.items(), key=lambda item: (item[1], item[0]), reverse=True)
        end = len(ordered) + stop + 1 if stop < 0 else stop + 1
        selected = ordered[start:end]
        if withscores:
            return selected
        return [member for member, _ in selected]

    async def close(self) -> None:
        return

    async def reset(self) -> None:
        with self._lock:
            self._sets.clear()
            self._expires_at.clear()


class RedisStatsStore:
    """Redis-backed buckets shared across app instances."""

    def __init__(
        self,
        *,
        redis_url: str | None = None,
        client: Redis | None = None,
        socket_timeout: float | None = None,
        prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        if client is None:
            if not redis_url:
                raise RuntimeError("RedisStatsStore requires redis_url or client")
            client = Redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=socket_timeout,
            )
        self._client = client
        self._prefix = prefix

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        try:
            return await self._client.zincrby(key, amount, member)
        except RedisError as exc:
            raise StoreError(f"zincrby failed for {key}: {exc}") from exc

    async def expire(self, key: str, seconds: int) -> bool:
        try:
            return bool(await self._client.expire(key, seconds))
        except RedisError as exc:
            raise StoreError(f"expire failed for {key}: {exc}") from exc

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except RedisError as exc:
            raise StoreError(f"exists failed for {key}: {exc}") from exc

    async def zrevrange(
        self,
        key: str,
        start: int,
        stop: int,
        *,
        withscores: bool = False,
    ) -> list[tuple[str, float]] | list[str]:
        try:
            result = await self._client.zrevrange(key, start, stop, withscores=withscores)
        except RedisError as exc:
            raise StoreError(f"zrevrange failed for {key}: {exc}") from exc
        if withscores:
            return [(str(member), float(score)) for member, score in result]
        return [str(member) for member in result]

    async def close(self) -> None:
        await self._client.aclose()

    async def reset(self) -> None:
        keys: list[str] = []
        try:
            async for key in self._client.scan_iter(match=f"{self._prefix}:*"):
                keys.append(str(key))
        except RedisError as exc:  # pragma: no cover - backend failure path
            raise StoreError("Stats store unavailable") from exc
        if keys:
            await self._client.delete(*keys)


def create_stats_store(
    *,
    backend: str,
    redis_url: str | None,
    socket_timeout: float | None = None,
    prefix: str = DEFAULT_KEY_PREFIX,
    logger: logging.Logger | None = None,
) -> tuple[StatsStore, bool]:
    """Create a configured stats store and indicate if it uses shared state."""

    normalized_backend = backend.strip().lower()
    if normalized_backend == "memory":
        return InMemoryStatsStore(), False

    if normalized_backend == "redis":
        if not redis_url:
            raise RuntimeError("STATS_BACKEND=redis requires REDIS_URL")
        store = RedisStatsStore(redis_url=redis_url, socket_timeout=socket_timeout, prefix=prefix)
        return store, True

    if normalized_backend == "auto":
        if redis_url:
            store = RedisStatsStore(
                redis_url=redis_url,
                socket_timeout=socket_timeout,
                prefix=prefix,
            )
            return store, True
        if logger:
            logger.warning("stats_store_auto_fallback backend=memory reason=redis_url_missing")
        return InMemoryStatsStore(), False

    raise ValueError(f"Unsupported STATS_BACKEND value: {backend}")
