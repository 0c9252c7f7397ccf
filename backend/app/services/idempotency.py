"""
NightPlan Backend — Processed-Event Tracking
==============================================

What:  Remembers which eventIds a consumer has already processed.
Why:   The event channel delivers at least once; a redelivered event must
       not send a second notification or bump a counter twice.
How:   An atomic claim (SET NX in Redis) so two workers receiving the same
       redelivery cannot both process it. Claims expire after a TTL.
"""

import time
from typing import Dict, Optional, Protocol

import redis.asyncio as redis

from app.config import settings


class IdempotencyStore(Protocol):
    """
    Tracks whether an eventId has been processed.

    Contract: claim() returns True for exactly one caller per eventId until
    the claim expires or is released.
    """

    async def claim(self, event_id: str, ttl_seconds: int) -> bool:
        ...

    async def seen(self, event_id: str) -> bool:
        ...

    async def release(self, event_id: str) -> None:
        ...


class InMemoryIdempotencyStore:
    """Expiring in-process claims, for a single worker or tests."""

    def __init__(self) -> None:
        self._claims: Dict[str, float] = {}

    def _evict_expired(self) -> None:
        now = time.monotonic()
        expired = [k for k, exp in self._claims.items() if exp <= now]
        for k in expired:
            self._claims.pop(k, None)

    async def claim(self, event_id: str, ttl_seconds: int) -> bool:
        self._evict_expired()
        if event_id in self._claims:
            return False
        self._claims[event_id] = time.monotonic() + ttl_seconds
        return True

    async def seen(self, event_id: str) -> bool:
        self._evict_expired()
        return event_id in self._claims

    async def release(self, event_id: str) -> None:
        self._claims.pop(event_id, None)


class RedisIdempotencyStore:
    """Claims shared by every worker, stored as `<prefix>:<eventId>` keys."""

    def __init__(self, client: redis.Redis, key_prefix: Optional[str] = None):
        self._client = client
        self._prefix = (key_prefix or settings.idempotency_key_prefix).rstrip(":")

    def _key(self, event_id: str) -> str:
        return f"{self._prefix}:{event_id}"

    async def claim(self, event_id: str, ttl_seconds: int) -> bool:
        # SET NX returns None when the key already exists
        return bool(await self._client.set(self._key(event_id), "1", ex=ttl_seconds, nx=True))

    async def seen(self, event_id: str) -> bool:
        return bool(await self._client.exists(self._key(event_id)))

    async def release(self, event_id: str) -> None:
        await self._client.delete(self._key(event_id))
