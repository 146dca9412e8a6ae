"""
Read-through caching for event, category and tag queries.

CACHING STRATEGY
================

What we cache:
  - Event listings (paginated, filtered), JSON-serialized pydantic models
  - Single events by id
  - Category and tag lists

TTL per key class bounds how long a missed invalidation can serve stale data:
  - events:list:*   5 minutes (purged on every event or booking write)
  - events:byId:*   no TTL    (purged on every write touching that event)
  - categories/tags 20 minutes

Concurrent misses on one key may both recompute; reads are idempotent so
the duplicate work is accepted instead of adding a single-flight lock.

The cache is an optimization only: every backend error is logged and the
call falls through to the store.
"""

from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from eventbooking.core.logging import get_logger
from eventbooking.core.metrics import record_cache_operation
from eventbooking.infrastructure.cache_backend import CacheBackend

logger = get_logger(__name__)

V = TypeVar("V")


@lru_cache(maxsize=None)
def _adapter(value_type: Any) -> TypeAdapter:
    return TypeAdapter(value_type)


def serialize(value: Any, value_type: Any) -> bytes:
    return _adapter(value_type).dump_json(value)


def deserialize(data: bytes, value_type: Any) -> Any:
    return _adapter(value_type).validate_json(data)


class ReadThroughCache:
    def __init__(self, backend: CacheBackend) -> None:
        self._backend = backend

    async def get_or_compute(
        self,
        key: str,
        ttl: Optional[int],
        compute: Callable[[], Awaitable[Optional[V]]],
        value_type: Any,
    ) -> Optional[V]:
        """
        Return the cached value for ``key`` or compute, store and return it.
        A ``None`` result from ``compute`` (e.g. unknown id) is not cached.
        """
        cached = await self._get(key)
        if cached is not None:
            try:
                value = deserialize(cached, value_type)
            except ValidationError as e:
                # Schema drift between deploys; treat as a miss and overwrite
                logger.warning("cache_decode_error", key=key, error=str(e))
                record_cache_operation("get", "error")
            else:
                logger.debug("cache_hit", key=key)
                record_cache_operation("get", "hit")
                return value
        else:
            logger.debug("cache_miss", key=key)
            record_cache_operation("get", "miss")

        value = await compute()
        if value is not None:
            await self._set(key, serialize(value, value_type), ttl)
        return value

    async def _get(self, key: str) -> Optional[bytes]:
        try:
            return await self._backend.get(key)
        except Exception as e:
            logger.error("cache_get_error", key=key, error=str(e))
            record_cache_operation("get", "error")
            return None

    async def _set(self, key: str, data: bytes, ttl: Optional[int]) -> None:
        try:
            await self._backend.set(key, data, ttl)
            logger.debug("cache_set", key=key, ttl=ttl)
            record_cache_operation("set", "stored")
        except Exception as e:
            logger.error("cache_set_error", key=key, error=str(e))
            record_cache_operation("set", "error")
