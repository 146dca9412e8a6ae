"""
Cache invalidation after committed writes.

Invalidation strategy:
  - Each domain event maps to a fixed set of key patterns (write_effects).
    The mapping is pure data, independent of the cache product.
  - Literal keys are deleted in one batch; wildcard patterns are SCANned
    and their matches deleted in one batch per pattern.
  - Purge runs strictly after the store commit. A read landing between
    commit and purge can still repopulate a stale entry; that window is
    bounded by the key's TTL.
  - Purge never raises. Failures are logged and counted, the write that
    triggered it has already succeeded.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Optional

from eventbooking.core.config import Settings, get_settings
from eventbooking.core.logging import get_logger
from eventbooking.core.metrics import record_purge
from eventbooking.domain.events import (
    BookingCancelled,
    BookingCreated,
    BookingUpdated,
    CategoryChanged,
    DomainEvent,
    EventCreated,
    EventDeleted,
    EventUpdated,
    TagChanged,
)
from eventbooking.infrastructure.cache_backend import CacheBackend
from eventbooking.services.cache_keys import (
    CATEGORIES_ALL,
    EVENT_LIST_PREFIX,
    TAGS_ALL,
    event_detail_key,
)

logger = get_logger(__name__)

_GLOB_CHARS = frozenset("*?[")


@dataclass(frozen=True, order=True)
class KeyPattern:
    """A literal cache key or a glob pattern over keys."""

    value: str

    @property
    def is_literal(self) -> bool:
        return not any(ch in _GLOB_CHARS for ch in self.value)

    @classmethod
    def prefix(cls, prefix: str) -> "KeyPattern":
        return cls(f"{prefix}*")


ALL_EVENT_LISTS = KeyPattern.prefix(EVENT_LIST_PREFIX)


@dataclass(frozen=True)
class InvalidationPolicy:
    # Event writes normally leave category/tag lists alone.
    purge_taxonomy_on_event_write: bool = False


def write_effects(
    event: DomainEvent,
    policy: InvalidationPolicy = InvalidationPolicy(),
) -> frozenset[KeyPattern]:
    """Map a committed domain write to the cache key patterns it makes stale."""
    if isinstance(event, (EventCreated, EventDeleted)):
        return frozenset({KeyPattern(event_detail_key(event.event_id)), ALL_EVENT_LISTS})

    if isinstance(event, EventUpdated):
        patterns = {KeyPattern(event_detail_key(event.event_id)), ALL_EVENT_LISTS}
        if policy.purge_taxonomy_on_event_write:
            if event.category_changed:
                patterns.add(KeyPattern(CATEGORIES_ALL))
            if event.tags_changed:
                patterns.add(KeyPattern(TAGS_ALL))
        return frozenset(patterns)

    if isinstance(event, (BookingCreated, BookingCancelled, BookingUpdated)):
        return frozenset({KeyPattern(event_detail_key(event.event_id)), ALL_EVENT_LISTS})

    if isinstance(event, CategoryChanged):
        return frozenset({KeyPattern(CATEGORIES_ALL), ALL_EVENT_LISTS})

    if isinstance(event, TagChanged):
        return frozenset({KeyPattern(TAGS_ALL), ALL_EVENT_LISTS})

    raise TypeError(f"No cache effects registered for {type(event).__name__}")


@dataclass(frozen=True)
class PurgeResult:
    deleted: int = 0
    failed_patterns: tuple[str, ...] = ()
    timed_out: bool = False

    @property
    def complete(self) -> bool:
        return not self.failed_patterns and not self.timed_out


@dataclass
class _PurgeProgress:
    deleted: int = 0
    done: set[str] = field(default_factory=set)
    failed: set[str] = field(default_factory=set)


class InvalidationCoordinator:
    """Purges cache entries made stale by committed writes."""

    def __init__(
        self,
        backend: CacheBackend,
        settings: Optional[Settings] = None,
        policy: Optional[InvalidationPolicy] = None,
    ) -> None:
        settings = settings or get_settings()
        self._backend = backend
        self._timeout = settings.CACHE_PURGE_TIMEOUT
        self._attempts = max(1, settings.CACHE_PURGE_ATTEMPTS)
        self._scan_count = settings.CACHE_SCAN_COUNT
        self._background = settings.CACHE_INVALIDATION_BACKGROUND
        self._policy = policy or InvalidationPolicy(
            purge_taxonomy_on_event_write=settings.PURGE_TAXONOMY_ON_EVENT_WRITE,
        )
        self._pending: set[asyncio.Task] = set()

    def register_write_effect(self, event: DomainEvent) -> frozenset[KeyPattern]:
        return write_effects(event, self._policy)

    async def on_write_committed(self, event: DomainEvent) -> Optional[PurgeResult]:
        """
        Invalidate everything ``event`` made stale.
        Call only after the store transaction has committed.
        In background mode the purge is scheduled and None is returned.
        """
        patterns = self.register_write_effect(event)
        if self._background:
            task = asyncio.create_task(self.purge(patterns))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return None
        return await self.purge(patterns)

    async def drain(self) -> None:
        """Wait for background purges still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def purge(self, patterns: Iterable[KeyPattern]) -> PurgeResult:
        patterns = sorted(set(patterns))
        progress = _PurgeProgress()
        try:
            await asyncio.wait_for(self._purge_all(patterns, progress), timeout=self._timeout)
        except asyncio.TimeoutError:
            abandoned = {p.value for p in patterns} - progress.done
            logger.warning(
                "cache_purge_timeout",
                timeout=self._timeout,
                abandoned=sorted(abandoned),
                keys_deleted=progress.deleted,
            )
            record_purge("timeout", progress.deleted)
            return PurgeResult(
                deleted=progress.deleted,
                failed_patterns=tuple(sorted(abandoned | progress.failed)),
                timed_out=True,
            )

        result = PurgeResult(deleted=progress.deleted, failed_patterns=tuple(sorted(progress.failed)))
        if result.complete:
            logger.info("cache_invalidated", patterns=[p.value for p in patterns], keys_deleted=result.deleted)
            record_purge("complete", result.deleted)
        else:
            logger.warning(
                "cache_purge_partial",
                failed=list(result.failed_patterns),
                keys_deleted=result.deleted,
            )
            record_purge("partial", result.deleted)
        return result

    async def _purge_all(self, patterns: list[KeyPattern], progress: _PurgeProgress) -> None:
        literals = [p.value for p in patterns if p.is_literal]
        if literals:
            await self._attempt(literals, lambda: self._backend.delete(literals), progress)

        for pattern in patterns:
            if not pattern.is_literal:
                await self._attempt(
                    [pattern.value],
                    lambda pattern=pattern: self._purge_matching(pattern.value),
                    progress,
                )

    async def _purge_matching(self, match: str) -> int:
        keys = [key async for key in self._backend.scan(match, count=self._scan_count)]
        if not keys:
            return 0
        return await self._backend.delete(keys)

    async def _attempt(self, labels: list[str], operation, progress: _PurgeProgress) -> None:
        for attempt in range(1, self._attempts + 1):
            try:
                progress.deleted += await operation()
            except Exception as e:
                logger.error(
                    "cache_purge_error",
                    patterns=labels,
                    attempt=attempt,
                    error=str(e),
                )
                continue
            progress.done.update(labels)
            return
        progress.failed.update(labels)
        progress.done.update(labels)
