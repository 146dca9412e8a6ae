from eventbooking.domain.errors import (
    ErrorKind,
    InventoryInvariantError,
    Outcome,
    StoreUnavailableError,
    VersionConflict,
)
from eventbooking.domain.models import (
    Booking,
    BookingStatus,
    Category,
    Event,
    EventPage,
    InventoryAudit,
    Tag,
)

__all__ = [
    "Booking",
    "BookingStatus",
    "Category",
    "Event",
    "EventPage",
    "InventoryAudit",
    "Tag",
    "ErrorKind",
    "Outcome",
    "VersionConflict",
    "StoreUnavailableError",
    "InventoryInvariantError",
]
