"""Domain models representing persisted inventory state.

These are plain values passed across the store boundary. ORM rows are in
eventbooking/models (persistence layer) and never leave the SQL store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus(str, Enum):
    """Confirmed may become Cancelled exactly once; Cancelled is terminal."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Event:
    """Domain representation of an Event and its ticket inventory."""

    id: Optional[int]
    name: str
    description: str
    venue_info: str
    price_minor: int
    capacity: int
    available_tickets: int
    is_active: bool = True
    version: int = 1
    category_id: Optional[int] = None
    tag_ids: tuple[int, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def sold_tickets(self) -> int:
        return self.capacity - self.available_tickets


@dataclass(frozen=True)
class Booking:
    """Domain representation of a Booking."""

    id: Optional[int]
    event_id: int
    user_id: str
    ticket_count: int
    total_price_minor: int
    status: BookingStatus = BookingStatus.CONFIRMED
    booking_date: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status is BookingStatus.CANCELLED


@dataclass(frozen=True)
class Category:
    id: Optional[int]
    name: str


@dataclass(frozen=True)
class Tag:
    id: Optional[int]
    name: str


@dataclass(frozen=True)
class EventPage:
    """One page of an event listing plus the unpaginated total."""

    events: tuple[Event, ...]
    total: int


@dataclass(frozen=True)
class InventoryAudit:
    """Counter versus booking ledger for one event."""

    event_id: int
    capacity: int
    available_tickets: int
    confirmed_tickets: int

    @property
    def consistent(self) -> bool:
        return (
            0 <= self.available_tickets <= self.capacity
            and self.capacity - self.available_tickets == self.confirmed_tickets
        )
