from eventbooking.schemas.event import EventCreate, EventUpdate, EventResponse, EventListResponse
from eventbooking.schemas.taxonomy import CategoryResponse, TagResponse

__all__ = [
    "EventCreate", "EventUpdate", "EventResponse", "EventListResponse",
    "CategoryResponse", "TagResponse",
]
