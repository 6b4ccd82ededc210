"""
Adapters implementing application.ports.idempotency.IdempotencyStore.
"""
from __future__ import annotations

import asyncio
import time
from typing import Optional

from application.ports.idempotency import IdempotencyStore
from infrastructure.external.cache.redis_client import RedisClient


class RedisIdempotencyStore(IdempotencyStore):
    """`SET key 1 NX EX ttl`: only the first writer gets True."""

    def __init__(self, redis: RedisClient) -> None:
        self._redis = redis

    async def claim(self, key: str, ttl_seconds: int) -> bool:
        return await self._redis.set(key, "1", ttl=ttl_seconds, nx=True)

    async def release(self, key: str) -> None:
        await self._redis.delete(key)


class InMemoryIdempotencyStore(IdempotencyStore):
    """Process-local store for development and single-instance deployments."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._expires: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _cleanup_expired(self, now: float) -> None:
        expired = [k for k, expires_at in self._expires.items() if expires_at <= now]
        for k in expired:
            del self._expires[k]

    async def claim(self, key: str, ttl_seconds: int) -> bool:
        async with self._lock:
            now = self._clock()
            self._cleanup_expired(now)
            expires_at: Optional[float] = self._expires.get(key)
            if expires_at is not None and expires_at > now:
                return False
            self._expires[key] = now + ttl_seconds
            return True

    async def release(self, key: str) -> None:
        async with self._lock:
            self._expires.pop(key, None)
