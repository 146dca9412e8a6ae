"""
Redis-backed cache for read-query results.
Separated from business logic for clean architecture.

Invalidation relies on SCAN, never KEYS, so a purge does not block the
server. SCAN is O(N) over the keyspace; with a few hundred cached pages
that is well under a millisecond.
"""

import re
from typing import AsyncIterator, Optional, Sequence

import redis.asyncio as redis

from eventbooking.core.config import Settings
from eventbooking.core.logging import get_logger
from eventbooking.infrastructure.cache_backend import CacheBackend

logger = get_logger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def create_redis_client(settings: Settings) -> redis.Redis:
    """Create a pooled async client. Values are kept as raw bytes."""
    return redis.from_url(
        settings.REDIS_URL,
        decode_responses=False,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        retry_on_timeout=True,
        health_check_interval=30,
    )


class RedisCacheBackend(CacheBackend):
    """
    CacheBackend over redis-py's asyncio client.

    ``key_prefix`` namespaces every key so several deployments can share
    one Redis database; callers never see the prefix.
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "") -> None:
        self._client = client
        self._prefix = key_prefix
        # the prefix is literal text, the caller's pattern stays a glob
        self._match_prefix = _GLOB_SPECIAL.sub(r"\\\1", key_prefix)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[bytes]:
        return await self._client.get(self._key(key))

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        if ttl:
            await self._client.set(self._key(key), value, ex=ttl)
        else:
            await self._client.set(self._key(key), value)

    async def delete(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        return await self._client.delete(*(self._key(key) for key in keys))

    async def scan(self, match: str, count: int = 100) -> AsyncIterator[str]:
        async for raw in self._client.scan_iter(match=f"{self._match_prefix}{match}", count=count):
            key = raw.decode() if isinstance(raw, bytes) else raw
            yield key[len(self._prefix):]

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except Exception as e:
            logger.error("redis_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self._client.aclose()
