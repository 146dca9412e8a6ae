from eventbooking.models.event import Category, Event, Tag, event_tags
from eventbooking.models.booking import Booking

__all__ = ["Booking", "Category", "Event", "Tag", "event_tags"]
