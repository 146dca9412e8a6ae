"""
Booking engine: the only code allowed to change ticket inventory or booking status.

CONCURRENCY STRATEGY: Row lock + version compare-and-swap, with retry
=====================================================================

Problem:
  Two users try to book the last ticket simultaneously.
  Both read available_tickets=1, both decrement to 0, both succeed.
  Result: Oversell.

Solution:
  Every mutation runs inside one store transaction that

  1. reads the event row "for update" (row lock in the store)
  2. checks is_active and available_tickets >= requested
  3. writes the new counter with save_event(event, expected_version),
     which only succeeds if nobody bumped the version in between
  4. inserts or updates the booking row
  5. commits

  A version conflict rolls the whole transaction back and it is retried
  (bounded, jittered backoff). Business failures (sold out, inactive,
  forbidden) are returned before anything is written, so there is nothing
  to undo. The serialization point lives in the store, so this stays
  correct with many processes sharing one database.

After commit, the invalidation coordinator purges cached event views.
Cache problems never change the outcome returned here.
"""

from dataclasses import replace
from typing import Optional

from eventbooking.core.config import Settings, get_settings
from eventbooking.core.logging import get_logger
from eventbooking.domain.errors import ErrorKind, InventoryInvariantError, Outcome
from eventbooking.domain.events import BookingCancelled, BookingCreated, BookingUpdated
from eventbooking.domain.models import Booking, BookingStatus, Event, InventoryAudit
from eventbooking.services.invalidation import InvalidationCoordinator
from eventbooking.services.transactions import TransactionRunner
from eventbooking.stores.interfaces import InventoryStore, InventoryTransaction

logger = get_logger(__name__)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _with_available(event: Event, available: int) -> Event:
    if not 0 <= available <= event.capacity:
        raise InventoryInvariantError(
            f"Event {event.id} counter would become {available} (capacity {event.capacity})"
        )
    return replace(event, available_tickets=available)


class BookingEngine:
    """Reserve, cancel and resize bookings against a shared ticket pool."""

    def __init__(
        self,
        store: InventoryStore,
        invalidator: InvalidationCoordinator,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self._store = store
        self._invalidator = invalidator
        self._runner = TransactionRunner(store, settings)

    async def reserve_tickets(self, event_id: int, user_id: str, ticket_count: int) -> Outcome[Booking]:
        """Atomically take ``ticket_count`` tickets and create a confirmed booking."""
        if not _is_positive_int(ticket_count):
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "ticket_count must be a positive integer")
        if not _is_positive_int(event_id) or not user_id:
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "event_id and user_id are required")

        async def reserve(tx: InventoryTransaction) -> Outcome[Booking]:
            event = await tx.get_event_for_update(event_id)
            if event is None:
                return Outcome.failure(ErrorKind.EVENT_NOT_FOUND, f"Event {event_id} not found")
            if not event.is_active:
                return Outcome.failure(ErrorKind.EVENT_INACTIVE, f"Event {event_id} is not active")
            if event.available_tickets < ticket_count:
                logger.warning(
                    "booking_failed_no_tickets",
                    requested=ticket_count,
                    available=event.available_tickets,
                )
                return Outcome.failure(
                    ErrorKind.INSUFFICIENT_INVENTORY,
                    f"Not enough tickets. Requested: {ticket_count}, Available: {event.available_tickets}",
                )

            await tx.save_event(
                _with_available(event, event.available_tickets - ticket_count),
                expected_version=event.version,
            )
            booking = await tx.insert_booking(
                Booking(
                    id=None,
                    event_id=event.id,
                    user_id=user_id,
                    ticket_count=ticket_count,
                    total_price_minor=event.price_minor * ticket_count,
                    status=BookingStatus.CONFIRMED,
                )
            )
            return Outcome.success(booking)

        outcome = await self._runner.run("reserve", reserve, event_id=event_id, user_id=user_id)
        if outcome.ok:
            booking = outcome.value
            logger.info(
                "booking_created",
                booking_id=booking.id,
                user_id=user_id,
                event_id=event_id,
                tickets=ticket_count,
            )
            await self._invalidator.on_write_committed(BookingCreated(booking.id, event_id))
        return outcome

    async def cancel_booking(self, booking_id: int, requesting_user_id: str) -> Outcome[Booking]:
        """
        Cancel a booking and release its tickets back to the event.
        A second cancel returns ALREADY_CANCELLED with the stored booking and
        changes nothing.
        """
        if not _is_positive_int(booking_id) or not requesting_user_id:
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "booking_id and user_id are required")

        async def cancel(tx: InventoryTransaction) -> Outcome[Booking]:
            booking = await tx.get_booking(booking_id, for_update=True)
            if booking is None:
                return Outcome.failure(ErrorKind.BOOKING_NOT_FOUND, "Booking not found")
            if booking.is_cancelled:
                return Outcome.failure(
                    ErrorKind.ALREADY_CANCELLED, "Booking is already cancelled", value=booking
                )
            if booking.user_id != requesting_user_id:
                logger.warning("booking_cancel_forbidden", owner=booking.user_id, requester=requesting_user_id)
                return Outcome.failure(ErrorKind.FORBIDDEN, "You are not allowed to cancel this booking")

            event = await tx.get_event_for_update(booking.event_id)
            if event is None:
                raise InventoryInvariantError(
                    f"Booking {booking.id} references missing event {booking.event_id}"
                )
            await tx.save_event(
                _with_available(event, event.available_tickets + booking.ticket_count),
                expected_version=event.version,
            )
            cancelled = await tx.save_booking(replace(booking, status=BookingStatus.CANCELLED))
            return Outcome.success(cancelled)

        outcome = await self._runner.run("cancel", cancel, booking_id=booking_id)
        if outcome.ok:
            booking = outcome.value
            logger.info(
                "booking_cancelled",
                booking_id=booking.id,
                user_id=requesting_user_id,
                event_id=booking.event_id,
                tickets_restored=booking.ticket_count,
            )
            await self._invalidator.on_write_committed(BookingCancelled(booking.id, booking.event_id))
        return outcome

    async def update_booking_ticket_count(
        self,
        booking_id: int,
        requesting_user_id: str,
        new_ticket_count: int,
    ) -> Outcome[Booking]:
        """
        Grow or shrink a confirmed booking. Growing takes the difference from
        the event under the same rules as a reservation; shrinking releases it.
        The total is recomputed from the event's current price.
        """
        if not _is_positive_int(new_ticket_count):
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "ticket_count must be a positive integer")
        if not _is_positive_int(booking_id) or not requesting_user_id:
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "booking_id and user_id are required")

        changed = False

        async def update(tx: InventoryTransaction) -> Outcome[Booking]:
            nonlocal changed
            changed = False
            booking = await tx.get_booking(booking_id, for_update=True)
            if booking is None:
                return Outcome.failure(ErrorKind.BOOKING_NOT_FOUND, "Booking not found")
            if booking.is_cancelled:
                return Outcome.failure(
                    ErrorKind.ALREADY_CANCELLED, "Cannot update a cancelled booking", value=booking
                )
            if booking.user_id != requesting_user_id:
                return Outcome.failure(ErrorKind.FORBIDDEN, "You are not allowed to update this booking")

            delta = new_ticket_count - booking.ticket_count
            if delta == 0:
                return Outcome.success(booking)

            event = await tx.get_event_for_update(booking.event_id)
            if event is None:
                raise InventoryInvariantError(
                    f"Booking {booking.id} references missing event {booking.event_id}"
                )
            if delta > 0:
                if not event.is_active:
                    return Outcome.failure(ErrorKind.EVENT_INACTIVE, f"Event {event.id} is not active")
                if event.available_tickets < delta:
                    return Outcome.failure(
                        ErrorKind.INSUFFICIENT_INVENTORY,
                        f"Not enough tickets. Requested: {delta} more, Available: {event.available_tickets}",
                    )

            await tx.save_event(
                _with_available(event, event.available_tickets - delta),
                expected_version=event.version,
            )
            updated = await tx.save_booking(
                replace(
                    booking,
                    ticket_count=new_ticket_count,
                    total_price_minor=event.price_minor * new_ticket_count,
                )
            )
            changed = True
            return Outcome.success(updated)

        outcome = await self._runner.run("update", update, booking_id=booking_id)
        if outcome.ok and changed:
            booking = outcome.value
            logger.info(
                "booking_updated",
                booking_id=booking.id,
                event_id=booking.event_id,
                tickets=booking.ticket_count,
            )
            await self._invalidator.on_write_committed(BookingUpdated(booking.id, booking.event_id))
        return outcome

    async def audit_inventory(self, event_id: int) -> Outcome[InventoryAudit]:
        """Compare the stored counter with the confirmed bookings ledger."""

        async def audit(tx: InventoryTransaction) -> Outcome[InventoryAudit]:
            event = await tx.get_event(event_id)
            if event is None:
                return Outcome.failure(ErrorKind.EVENT_NOT_FOUND, f"Event {event_id} not found")
            confirmed = await tx.confirmed_ticket_total(event_id)
            return Outcome.success(
                InventoryAudit(
                    event_id=event_id,
                    capacity=event.capacity,
                    available_tickets=event.available_tickets,
                    confirmed_tickets=confirmed,
                )
            )

        outcome = await self._runner.run("audit", audit, event_id=event_id)
        if outcome.ok and not outcome.value.consistent:
            logger.error("inventory_mismatch", **outcome.value.__dict__)
        return outcome
