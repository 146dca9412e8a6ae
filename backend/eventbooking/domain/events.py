"""Domain events emitted after a committed write.

The invalidation coordinator maps each of these to the cache keys it
makes stale.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class EventCreated:
    event_id: int


@dataclass(frozen=True)
class EventUpdated:
    event_id: int
    category_changed: bool = False
    tags_changed: bool = False


@dataclass(frozen=True)
class EventDeleted:
    event_id: int


@dataclass(frozen=True)
class BookingCreated:
    booking_id: int
    event_id: int


@dataclass(frozen=True)
class BookingCancelled:
    booking_id: int
    event_id: int


@dataclass(frozen=True)
class BookingUpdated:
    booking_id: int
    event_id: int


@dataclass(frozen=True)
class CategoryChanged:
    category_id: int


@dataclass(frozen=True)
class TagChanged:
    tag_id: int


EventWrite = Union[EventCreated, EventUpdated, EventDeleted]
BookingWrite = Union[BookingCreated, BookingCancelled, BookingUpdated]
DomainEvent = Union[EventWrite, BookingWrite, CategoryChanged, TagChanged]
