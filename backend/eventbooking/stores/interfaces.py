"""Store interfaces (repository pattern).

The booking engine only talks to these. Implementations must make every
operation inside ``transaction()`` commit or roll back together, and must
enforce row locking or version compare-and-swap in the store itself, not
in the calling process.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Awaitable, Callable, Optional, TypeVar

from eventbooking.domain.models import Booking, Category, Event, EventPage, Tag

T = TypeVar("T")


class InventoryTransaction(ABC):
    """Operations available inside one store transaction."""

    @abstractmethod
    async def get_event_for_update(self, event_id: int) -> Optional[Event]:
        """Return the event and hold its row until the transaction ends."""
        ...

    @abstractmethod
    async def get_event(self, event_id: int) -> Optional[Event]:
        ...

    @abstractmethod
    async def save_event(self, event: Event, expected_version: int) -> Event:
        """Write ``event`` if the stored version still equals ``expected_version``.

        Returns the saved event with its version incremented.

        Raises:
            VersionConflict: the row was changed (or removed) concurrently.
        """
        ...

    @abstractmethod
    async def insert_event(self, event: Event) -> Event:
        ...

    @abstractmethod
    async def delete_event(self, event_id: int) -> None:
        ...

    @abstractmethod
    async def event_has_bookings(self, event_id: int) -> bool:
        """True if any booking, in any status, references the event."""
        ...

    @abstractmethod
    async def insert_booking(self, booking: Booking) -> Booking:
        ...

    @abstractmethod
    async def get_booking(self, booking_id: int, for_update: bool = False) -> Optional[Booking]:
        ...

    @abstractmethod
    async def save_booking(self, booking: Booking) -> Booking:
        ...

    @abstractmethod
    async def confirmed_ticket_total(self, event_id: int) -> int:
        """Sum of ticket_count over the event's confirmed bookings."""
        ...

    @abstractmethod
    async def get_category(self, category_id: int) -> Optional[Category]:
        ...

    @abstractmethod
    async def insert_category(self, category: Category) -> Category:
        ...

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        ...

    @abstractmethod
    async def delete_category(self, category_id: int) -> None:
        ...

    @abstractmethod
    async def category_name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        """True if a category other than ``exclude_id`` already uses ``name``."""
        ...

    @abstractmethod
    async def category_in_use(self, category_id: int) -> bool:
        ...

    @abstractmethod
    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        ...

    @abstractmethod
    async def insert_tag(self, tag: Tag) -> Tag:
        ...

    @abstractmethod
    async def save_tag(self, tag: Tag) -> Tag:
        ...

    @abstractmethod
    async def delete_tag(self, tag_id: int) -> None:
        ...

    @abstractmethod
    async def tag_name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        ...

    @abstractmethod
    async def tag_in_use(self, tag_id: int) -> bool:
        ...


class InventoryStore(ABC):
    """Interface for durable event and booking state."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[InventoryTransaction]:
        """Open a transaction. Leaving the block normally commits; an exception rolls back."""
        ...

    async def run_in_transaction(self, fn: Callable[[InventoryTransaction], Awaitable[T]]) -> T:
        async with self.transaction() as tx:
            return await fn(tx)

    # Read side. These run outside any booking transaction.

    @abstractmethod
    async def get_event(self, event_id: int) -> Optional[Event]:
        ...

    @abstractmethod
    async def list_events(
        self,
        page: int,
        page_size: int,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> EventPage:
        """Return events ordered by id. ``category`` matches the category name."""
        ...

    @abstractmethod
    async def get_category(self, category_id: int) -> Optional[Category]:
        ...

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        ...

    @abstractmethod
    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        ...

    @abstractmethod
    async def list_tags(self) -> list[Tag]:
        ...

    @abstractmethod
    async def get_booking(self, booking_id: int) -> Optional[Booking]:
        ...

    @abstractmethod
    async def list_user_bookings(self, user_id: str) -> list[Booking]:
        """Return the user's non-cancelled bookings, newest first."""
        ...

    @abstractmethod
    async def list_event_bookings(self, event_id: int) -> list[Booking]:
        """Return every booking for the event, cancelled ones included, newest first."""
        ...

    async def close(self) -> None:
        return None
