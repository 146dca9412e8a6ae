"""
Cache backend interface and the in-process implementation.

The rest of the code only needs exact get/set/delete plus a glob scan,
so any key/value product with key iteration can sit behind this.
"""

import fnmatch
import time
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Sequence


class CacheBackend(ABC):
    """Key/value store for serialized read results."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        ...

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        """Store ``value``; ``ttl`` in seconds, None for no expiry."""
        ...

    @abstractmethod
    async def delete(self, keys: Sequence[str]) -> int:
        """Delete keys in one batch and return how many existed."""
        ...

    @abstractmethod
    def scan(self, match: str, count: int = 100) -> AsyncIterator[str]:
        """Iterate keys matching a glob pattern (``*``, ``?``, ``[...]``)."""
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryCacheBackend(CacheBackend):
    """Dict-backed cache with lazy TTL expiry. Single process only."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[bytes, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[bytes]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def get(self, key: str) -> Optional[bytes]:
        return self._live(key)

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._entries[key] = (value, expires_at)

    async def delete(self, keys: Sequence[str]) -> int:
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                del self._entries[key]
                deleted += 1
        return deleted

    async def scan(self, match: str, count: int = 100) -> AsyncIterator[str]:
        for key in list(self._entries):
            if fnmatch.fnmatchcase(key, match) and self._live(key) is not None:
                yield key

    def keys(self) -> list[str]:
        return [key for key in list(self._entries) if self._live(key) is not None]
