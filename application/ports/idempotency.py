"""
Idempotency record port.

Implementations must make `claim` atomic: of any number of concurrent
callers for the same key exactly one receives True.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IdempotencyStore(Protocol):

    async def claim(self, key: str, ttl_seconds: int) -> bool: ...

    async def release(self, key: str) -> None: ...
