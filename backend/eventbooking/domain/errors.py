"""Error kinds and typed outcomes for inventory operations.

Business results (not found, sold out, forbidden) are returned as an
``Outcome`` carrying an ``ErrorKind``. Exceptions are kept for faults.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure kinds surfaced to callers."""

    INVALID_REQUEST = "invalid_request"
    EVENT_NOT_FOUND = "event_not_found"
    EVENT_INACTIVE = "event_inactive"
    INSUFFICIENT_INVENTORY = "insufficient_inventory"
    BOOKING_NOT_FOUND = "booking_not_found"
    FORBIDDEN = "forbidden"
    ALREADY_CANCELLED = "already_cancelled"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    STORE_UNAVAILABLE = "store_unavailable"
    TIMEOUT = "timeout"
    EVENT_HAS_BOOKINGS = "event_has_bookings"
    CAPACITY_BELOW_SOLD = "capacity_below_sold"
    CATEGORY_NOT_FOUND = "category_not_found"
    CATEGORY_IN_USE = "category_in_use"
    CATEGORY_EXISTS = "category_exists"
    TAG_NOT_FOUND = "tag_not_found"
    TAG_IN_USE = "tag_in_use"
    TAG_EXISTS = "tag_exists"


RETRYABLE_KINDS = frozenset(
    {ErrorKind.CONCURRENT_MODIFICATION, ErrorKind.STORE_UNAVAILABLE, ErrorKind.TIMEOUT}
)

# Suggested transport mapping for callers translating outcomes.
HTTP_STATUS_BY_KIND = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.EVENT_NOT_FOUND: 404,
    ErrorKind.BOOKING_NOT_FOUND: 404,
    ErrorKind.CATEGORY_NOT_FOUND: 404,
    ErrorKind.TAG_NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.EVENT_INACTIVE: 409,
    ErrorKind.INSUFFICIENT_INVENTORY: 409,
    ErrorKind.ALREADY_CANCELLED: 409,
    ErrorKind.CONCURRENT_MODIFICATION: 409,
    ErrorKind.EVENT_HAS_BOOKINGS: 409,
    ErrorKind.CAPACITY_BELOW_SOLD: 409,
    ErrorKind.CATEGORY_IN_USE: 409,
    ErrorKind.TAG_IN_USE: 409,
    ErrorKind.CATEGORY_EXISTS: 409,
    ErrorKind.TAG_EXISTS: 409,
    ErrorKind.STORE_UNAVAILABLE: 503,
    ErrorKind.TIMEOUT: 504,
}


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of an engine or catalog operation.

    ``value`` may be set on failure too: ``ALREADY_CANCELLED`` carries the
    booking as it is stored.
    """

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def retryable(self) -> bool:
        return self.error in RETRYABLE_KINDS

    @property
    def http_status(self) -> int:
        if self.error is None:
            return 200
        return HTTP_STATUS_BY_KIND[self.error]

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, message: str = "", value: Optional[T] = None) -> "Outcome[T]":
        return cls(value=value, error=error, message=message or error.value)


class InventoryError(Exception):
    """Base class for store-level faults."""


class VersionConflict(InventoryError):
    """A compare-and-swap write found a newer version than expected."""

    def __init__(self, entity: str, entity_id: int, expected_version: int) -> None:
        super().__init__(f"{entity} {entity_id} changed since version {expected_version}")
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version


class StoreUnavailableError(InventoryError):
    """The backing store could not be reached or rejected the transaction."""


class InventoryInvariantError(InventoryError):
    """Stored state violates an inventory invariant (corruption, not contention)."""

