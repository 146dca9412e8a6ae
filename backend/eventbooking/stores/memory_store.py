"""In-process inventory store.

Each transaction takes per-row asyncio locks on first access "for update",
stages its writes, and applies them at commit after re-checking versions.
An exception inside the transaction discards the staged writes. Only valid
for a single process; replicas must share the SQL store instead.
"""

import asyncio
import itertools
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Optional

from eventbooking.core.logging import get_logger
from eventbooking.domain.errors import VersionConflict
from eventbooking.domain.models import (
    Booking,
    BookingStatus,
    Category,
    Event,
    EventPage,
    Tag,
    utcnow,
)
from eventbooking.stores.interfaces import InventoryStore, InventoryTransaction

logger = get_logger(__name__)

_DELETED = object()


class InMemoryTransaction(InventoryTransaction):
    def __init__(self, store: "InMemoryInventoryStore") -> None:
        self._store = store
        self._held: list[asyncio.Lock] = []
        self._held_keys: set[tuple[str, int]] = set()
        self._events: dict[int, object] = {}
        self._bookings: dict[int, Booking] = {}
        self._categories: dict[int, object] = {}
        self._tags: dict[int, object] = {}
        # version each event had when this transaction first staged it
        self._base_versions: dict[int, Optional[int]] = {}

    async def _lock(self, kind: str, row_id: int) -> None:
        key = (kind, row_id)
        if key in self._held_keys:
            return
        lock = self._store._row_locks[key]
        await lock.acquire()
        self._held.append(lock)
        self._held_keys.add(key)

    def _release(self) -> None:
        while self._held:
            self._held.pop().release()
        self._held_keys.clear()

    def _read_event(self, event_id: int) -> Optional[Event]:
        if event_id in self._events:
            staged = self._events[event_id]
            return None if staged is _DELETED else staged
        return self._store._events.get(event_id)

    async def get_event_for_update(self, event_id: int) -> Optional[Event]:
        await self._lock("event", event_id)
        return self._read_event(event_id)

    async def get_event(self, event_id: int) -> Optional[Event]:
        return self._read_event(event_id)

    async def save_event(self, event: Event, expected_version: int) -> Event:
        current = self._read_event(event.id)
        if current is None or current.version != expected_version:
            raise VersionConflict("event", event.id, expected_version)
        self._base_versions.setdefault(event.id, current.version)
        saved = replace(event, version=expected_version + 1, updated_at=utcnow())
        self._events[event.id] = saved
        return saved

    async def insert_event(self, event: Event) -> Event:
        saved = replace(event, id=next(self._store._event_ids), version=1)
        self._base_versions[saved.id] = None
        self._events[saved.id] = saved
        return saved

    async def delete_event(self, event_id: int) -> None:
        current = self._read_event(event_id)
        if current is not None:
            self._base_versions.setdefault(event_id, current.version)
        self._events[event_id] = _DELETED

    async def event_has_bookings(self, event_id: int) -> bool:
        return any(b.event_id == event_id for b in self._all_bookings())

    def _all_bookings(self) -> list[Booking]:
        merged = dict(self._store._bookings)
        merged.update(self._bookings)
        return list(merged.values())

    async def insert_booking(self, booking: Booking) -> Booking:
        saved = replace(booking, id=next(self._store._booking_ids))
        self._bookings[saved.id] = saved
        return saved

    async def get_booking(self, booking_id: int, for_update: bool = False) -> Optional[Booking]:
        if for_update:
            await self._lock("booking", booking_id)
        if booking_id in self._bookings:
            return self._bookings[booking_id]
        return self._store._bookings.get(booking_id)

    async def save_booking(self, booking: Booking) -> Booking:
        saved = replace(booking, updated_at=utcnow())
        self._bookings[saved.id] = saved
        return saved

    async def confirmed_ticket_total(self, event_id: int) -> int:
        return sum(
            b.ticket_count
            for b in self._all_bookings()
            if b.event_id == event_id and b.status is BookingStatus.CONFIRMED
        )

    def _read_named(self, staged: dict, committed: dict, row_id: int):
        if row_id in staged:
            value = staged[row_id]
            return None if value is _DELETED else value
        return committed.get(row_id)

    def _name_taken(
        self, staged: dict, committed: dict, name: str, exclude_id: Optional[int]
    ) -> bool:
        for row_id in set(committed) | set(staged):
            row = self._read_named(staged, committed, row_id)
            if row is not None and row.name == name and row_id != exclude_id:
                return True
        return False

    async def get_category(self, category_id: int) -> Optional[Category]:
        return self._read_named(self._categories, self._store._categories, category_id)

    async def insert_category(self, category: Category) -> Category:
        saved = replace(category, id=next(self._store._category_ids))
        self._categories[saved.id] = saved
        return saved

    async def save_category(self, category: Category) -> Category:
        self._categories[category.id] = category
        return category

    async def delete_category(self, category_id: int) -> None:
        self._categories[category_id] = _DELETED

    async def category_name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        return self._name_taken(self._categories, self._store._categories, name, exclude_id)

    async def category_in_use(self, category_id: int) -> bool:
        return any(e.category_id == category_id for e in self._live_events())

    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        return self._read_named(self._tags, self._store._tags, tag_id)

    async def insert_tag(self, tag: Tag) -> Tag:
        saved = replace(tag, id=next(self._store._tag_ids))
        self._tags[saved.id] = saved
        return saved

    async def save_tag(self, tag: Tag) -> Tag:
        self._tags[tag.id] = tag
        return tag

    async def delete_tag(self, tag_id: int) -> None:
        self._tags[tag_id] = _DELETED

    async def tag_name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        return self._name_taken(self._tags, self._store._tags, name, exclude_id)

    async def tag_in_use(self, tag_id: int) -> bool:
        return any(tag_id in e.tag_ids for e in self._live_events())

    def _live_events(self) -> list[Event]:
        ids = set(self._store._events) | set(self._events)
        return [e for e in (self._read_event(i) for i in ids) if e is not None]

    def _commit(self) -> None:
        store = self._store
        for event_id, base_version in self._base_versions.items():
            committed = store._events.get(event_id)
            committed_version = committed.version if committed else None
            if committed_version != base_version:
                raise VersionConflict("event", event_id, base_version or 0)
        _apply(store._events, self._events)
        store._bookings.update(self._bookings)
        _apply(store._categories, self._categories)
        _apply(store._tags, self._tags)


def _apply(target: dict, staged: dict) -> None:
    for row_id, value in staged.items():
        if value is _DELETED:
            target.pop(row_id, None)
        else:
            target[row_id] = value


class InMemoryInventoryStore(InventoryStore):
    """Single-process store used by tests, experiments and local runs."""

    def __init__(self) -> None:
        self._events: dict[int, Event] = {}
        self._bookings: dict[int, Booking] = {}
        self._categories: dict[int, Category] = {}
        self._tags: dict[int, Tag] = {}
        self._event_ids = itertools.count(1)
        self._booking_ids = itertools.count(1)
        self._category_ids = itertools.count(1)
        self._tag_ids = itertools.count(1)
        self._row_locks: defaultdict[tuple[str, int], asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryTransaction]:
        tx = InMemoryTransaction(self)
        try:
            yield tx
            # commit runs without awaiting, so it is atomic on the event loop
            tx._commit()
        except BaseException:
            logger.debug("memory_transaction_rolled_back")
            raise
        finally:
            tx._release()

    async def get_event(self, event_id: int) -> Optional[Event]:
        return self._events.get(event_id)

    async def list_events(
        self,
        page: int,
        page_size: int,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> EventPage:
        events = sorted(self._events.values(), key=lambda e: e.id)
        if search:
            needle = search.lower()
            events = [
                e for e in events
                if needle in e.name.lower() or needle in e.description.lower()
            ]
        if category:
            matching = {c.id for c in self._categories.values() if c.name == category}
            events = [e for e in events if e.category_id in matching]

        start = (page - 1) * page_size
        return EventPage(events=tuple(events[start:start + page_size]), total=len(events))

    async def get_category(self, category_id: int) -> Optional[Category]:
        return self._categories.get(category_id)

    async def list_categories(self) -> list[Category]:
        return sorted(self._categories.values(), key=lambda c: c.name)

    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        return self._tags.get(tag_id)

    async def list_tags(self) -> list[Tag]:
        return sorted(self._tags.values(), key=lambda t: t.name)

    async def get_booking(self, booking_id: int) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    async def list_user_bookings(self, user_id: str) -> list[Booking]:
        bookings = [
            b for b in self._bookings.values()
            if b.user_id == user_id and b.status is not BookingStatus.CANCELLED
        ]
        return _newest_first(bookings)

    async def list_event_bookings(self, event_id: int) -> list[Booking]:
        return _newest_first(b for b in self._bookings.values() if b.event_id == event_id)


def _newest_first(bookings) -> list[Booking]:
    return sorted(bookings, key=lambda b: (b.booking_date, b.id), reverse=True)
