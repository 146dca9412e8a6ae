"""
Read side: event, category and tag lookups through the cache.
Single-row taxonomy lookups and booking reads go straight to the store.
"""

from typing import Optional

from eventbooking.core.config import Settings, get_settings
from eventbooking.domain.models import Booking
from eventbooking.schemas.event import EventListResponse, EventResponse
from eventbooking.schemas.taxonomy import CategoryResponse, TagResponse
from eventbooking.services.cache_keys import (
    CATEGORIES_ALL,
    TAGS_ALL,
    event_detail_key,
    event_list_key,
)
from eventbooking.services.cache_service import ReadThroughCache
from eventbooking.stores.interfaces import InventoryStore


class EventQueries:
    def __init__(
        self,
        store: InventoryStore,
        cache: ReadThroughCache,
        settings: Optional[Settings] = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._settings = settings or get_settings()

    async def list_events(
        self,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> EventListResponse:
        """List events with pagination, optionally filtered by text and category name."""

        async def compute() -> EventListResponse:
            result = await self._store.list_events(page, page_size, search, category)
            return EventListResponse(
                events=[EventResponse.model_validate(e) for e in result.events],
                total=result.total,
                page=page,
                page_size=page_size,
            )

        return await self._cache.get_or_compute(
            event_list_key(page, page_size, search, category),
            self._settings.EVENT_LIST_CACHE_TTL,
            compute,
            EventListResponse,
        )

    async def get_event(self, event_id: int) -> Optional[EventResponse]:
        """Single event; None if it does not exist (misses are not cached)."""

        async def compute() -> Optional[EventResponse]:
            event = await self._store.get_event(event_id)
            return EventResponse.model_validate(event) if event else None

        return await self._cache.get_or_compute(
            event_detail_key(event_id),
            self._settings.EVENT_DETAIL_CACHE_TTL,
            compute,
            EventResponse,
        )

    async def list_categories(self) -> list[CategoryResponse]:
        async def compute() -> list[CategoryResponse]:
            return [CategoryResponse.model_validate(c) for c in await self._store.list_categories()]

        return await self._cache.get_or_compute(
            CATEGORIES_ALL,
            self._settings.CATEGORY_CACHE_TTL,
            compute,
            list[CategoryResponse],
        )

    async def list_tags(self) -> list[TagResponse]:
        async def compute() -> list[TagResponse]:
            return [TagResponse.model_validate(t) for t in await self._store.list_tags()]

        return await self._cache.get_or_compute(
            TAGS_ALL,
            self._settings.TAG_CACHE_TTL,
            compute,
            list[TagResponse],
        )

    async def get_category(self, category_id: int) -> Optional[CategoryResponse]:
        category = await self._store.get_category(category_id)
        return CategoryResponse.model_validate(category) if category else None

    async def get_tag(self, tag_id: int) -> Optional[TagResponse]:
        tag = await self._store.get_tag(tag_id)
        return TagResponse.model_validate(tag) if tag else None

    async def get_booking(self, booking_id: int) -> Optional[Booking]:
        return await self._store.get_booking(booking_id)

    async def list_user_bookings(self, user_id: str) -> list[Booking]:
        """A user's active bookings. Not cached; per-user lists change on every booking."""
        return await self._store.list_user_bookings(user_id)

    async def list_event_bookings(self, event_id: int) -> list[Booking]:
        """Every booking for an event, cancelled ones included. Not cached."""
        return await self._store.list_event_bookings(event_id)
