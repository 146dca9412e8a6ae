"""
Event catalog: admin writes to events, categories and tags.

Capacity changes go through resize_capacity so the ticket counter moves
with it; everything else about an event is edited with update_event.
Deletes are refused while anything still references the row.
"""

from dataclasses import replace
from typing import Optional

from eventbooking.core.config import Settings, get_settings
from eventbooking.core.logging import get_logger
from eventbooking.domain.errors import ErrorKind, Outcome
from eventbooking.domain.events import (
    CategoryChanged,
    EventCreated,
    EventDeleted,
    EventUpdated,
    TagChanged,
)
from eventbooking.domain.models import Category, Event, Tag
from eventbooking.schemas.event import EventCreate, EventUpdate
from eventbooking.services.invalidation import InvalidationCoordinator
from eventbooking.services.transactions import TransactionRunner
from eventbooking.stores.interfaces import InventoryStore, InventoryTransaction

logger = get_logger(__name__)


async def _missing_reference(
    tx: InventoryTransaction,
    category_id: Optional[int],
    tag_ids,
) -> Optional[Outcome]:
    if category_id is not None and await tx.get_category(category_id) is None:
        return Outcome.failure(ErrorKind.CATEGORY_NOT_FOUND, f"Category {category_id} not found")
    for tag_id in tag_ids or ():
        if await tx.get_tag(tag_id) is None:
            return Outcome.failure(ErrorKind.TAG_NOT_FOUND, f"Tag {tag_id} not found")
    return None


def _category_exists(name: str) -> Outcome:
    return Outcome.failure(ErrorKind.CATEGORY_EXISTS, f"Category '{name}' already exists")


def _tag_exists(name: str) -> Outcome:
    return Outcome.failure(ErrorKind.TAG_EXISTS, f"Tag '{name}' already exists")


class EventCatalog:
    def __init__(
        self,
        store: InventoryStore,
        invalidator: InvalidationCoordinator,
        settings: Optional[Settings] = None,
    ) -> None:
        self._invalidator = invalidator
        self._runner = TransactionRunner(store, settings or get_settings())

    async def create_event(self, event_data: EventCreate) -> Outcome[Event]:
        """Create a new event with its full capacity available."""

        async def create(tx: InventoryTransaction) -> Outcome[Event]:
            missing = await _missing_reference(tx, event_data.category_id, event_data.tag_ids)
            if missing:
                return missing
            event = await tx.insert_event(
                Event(
                    id=None,
                    name=event_data.name,
                    description=event_data.description,
                    venue_info=event_data.venue_info,
                    price_minor=event_data.price_minor,
                    capacity=event_data.capacity,
                    available_tickets=event_data.capacity,  # All tickets available initially
                    is_active=event_data.is_active,
                    category_id=event_data.category_id,
                    tag_ids=tuple(event_data.tag_ids),
                )
            )
            return Outcome.success(event)

        outcome = await self._runner.run("create_event", create)
        if outcome.ok:
            event = outcome.value
            logger.info("event_created", event_id=event.id, name=event.name, capacity=event.capacity)
            await self._invalidator.on_write_committed(EventCreated(event.id))
        return outcome

    async def update_event(self, event_id: int, changes: EventUpdate) -> Outcome[Event]:
        """Apply the fields set on ``changes``; inventory fields are not editable here."""
        fields = changes.model_dump(exclude_unset=True)
        if "tag_ids" in fields and fields["tag_ids"] is not None:
            fields["tag_ids"] = tuple(sorted(set(fields["tag_ids"])))
        for name, value in fields.items():
            # category_id is the only field that may be cleared
            if value is None and name != "category_id":
                return Outcome.failure(ErrorKind.INVALID_REQUEST, f"{name} cannot be cleared")
        flags = {}

        async def update(tx: InventoryTransaction) -> Outcome[Event]:
            event = await tx.get_event_for_update(event_id)
            if event is None:
                return Outcome.failure(ErrorKind.EVENT_NOT_FOUND, f"Event {event_id} not found")
            missing = await _missing_reference(tx, fields.get("category_id"), fields.get("tag_ids"))
            if missing:
                return missing

            flags["category_changed"] = (
                "category_id" in fields and fields["category_id"] != event.category_id
            )
            flags["tags_changed"] = (
                "tag_ids" in fields and set(fields["tag_ids"]) != set(event.tag_ids)
            )
            saved = await tx.save_event(replace(event, **fields), expected_version=event.version)
            return Outcome.success(saved)

        outcome = await self._runner.run("update_event", update, event_id=event_id)
        if outcome.ok:
            logger.info("event_updated", event_id=event_id, fields=sorted(fields))
            await self._invalidator.on_write_committed(EventUpdated(event_id, **flags))
        return outcome

    async def resize_capacity(self, event_id: int, new_capacity: int) -> Outcome[Event]:
        """Change capacity; sold tickets stay sold, the available count shifts by the same delta."""
        if not isinstance(new_capacity, int) or isinstance(new_capacity, bool) or new_capacity <= 0:
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "capacity must be a positive integer")

        async def resize(tx: InventoryTransaction) -> Outcome[Event]:
            event = await tx.get_event_for_update(event_id)
            if event is None:
                return Outcome.failure(ErrorKind.EVENT_NOT_FOUND, f"Event {event_id} not found")
            if new_capacity < event.sold_tickets:
                return Outcome.failure(
                    ErrorKind.CAPACITY_BELOW_SOLD,
                    f"{event.sold_tickets} tickets already sold; capacity cannot drop to {new_capacity}",
                )
            resized = replace(
                event,
                capacity=new_capacity,
                available_tickets=event.available_tickets + (new_capacity - event.capacity),
            )
            return Outcome.success(await tx.save_event(resized, expected_version=event.version))

        outcome = await self._runner.run("resize_capacity", resize, event_id=event_id)
        if outcome.ok:
            logger.info("event_resized", event_id=event_id, capacity=new_capacity)
            await self._invalidator.on_write_committed(EventUpdated(event_id))
        return outcome

    async def delete_event(self, event_id: int) -> Outcome[Event]:
        """Hard-delete an event that has never been booked."""

        async def delete(tx: InventoryTransaction) -> Outcome[Event]:
            event = await tx.get_event_for_update(event_id)
            if event is None:
                return Outcome.failure(ErrorKind.EVENT_NOT_FOUND, f"Event {event_id} not found")
            if await tx.event_has_bookings(event_id):
                return Outcome.failure(
                    ErrorKind.EVENT_HAS_BOOKINGS, "Cannot delete an event that has bookings"
                )
            await tx.delete_event(event_id)
            return Outcome.success(event)

        outcome = await self._runner.run("delete_event", delete, event_id=event_id)
        if outcome.ok:
            logger.info("event_deleted", event_id=event_id)
            await self._invalidator.on_write_committed(EventDeleted(event_id))
        return outcome

    async def create_category(self, name: str) -> Outcome[Category]:
        if not name or not name.strip():
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "Category name is required")
        name = name.strip()

        async def create(tx: InventoryTransaction) -> Outcome[Category]:
            if await tx.category_name_exists(name):
                return _category_exists(name)
            return Outcome.success(await tx.insert_category(Category(id=None, name=name)))

        outcome = await self._runner.run("create_category", create)
        if outcome.ok:
            await self._invalidator.on_write_committed(CategoryChanged(outcome.value.id))
        return outcome

    async def rename_category(self, category_id: int, name: str) -> Outcome[Category]:
        if not name or not name.strip():
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "Category name is required")
        name = name.strip()

        async def rename(tx: InventoryTransaction) -> Outcome[Category]:
            category = await tx.get_category(category_id)
            if category is None:
                return Outcome.failure(ErrorKind.CATEGORY_NOT_FOUND, f"Category {category_id} not found")
            if await tx.category_name_exists(name, exclude_id=category_id):
                return _category_exists(name)
            return Outcome.success(await tx.save_category(replace(category, name=name)))

        outcome = await self._runner.run("rename_category", rename, category_id=category_id)
        if outcome.ok:
            logger.info("category_renamed", category_id=category_id, name=name)
            await self._invalidator.on_write_committed(CategoryChanged(category_id))
        return outcome

    async def delete_category(self, category_id: int) -> Outcome[Category]:
        async def delete(tx: InventoryTransaction) -> Outcome[Category]:
            category = await tx.get_category(category_id)
            if category is None:
                return Outcome.failure(ErrorKind.CATEGORY_NOT_FOUND, f"Category {category_id} not found")
            if await tx.category_in_use(category_id):
                return Outcome.failure(
                    ErrorKind.CATEGORY_IN_USE, "Cannot delete category with associated events"
                )
            await tx.delete_category(category_id)
            return Outcome.success(category)

        outcome = await self._runner.run("delete_category", delete, category_id=category_id)
        if outcome.ok:
            await self._invalidator.on_write_committed(CategoryChanged(category_id))
        return outcome

    async def create_tag(self, name: str) -> Outcome[Tag]:
        if not name or not name.strip():
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "Tag name is required")
        name = name.strip()

        async def create(tx: InventoryTransaction) -> Outcome[Tag]:
            if await tx.tag_name_exists(name):
                return _tag_exists(name)
            return Outcome.success(await tx.insert_tag(Tag(id=None, name=name)))

        outcome = await self._runner.run("create_tag", create)
        if outcome.ok:
            await self._invalidator.on_write_committed(TagChanged(outcome.value.id))
        return outcome

    async def rename_tag(self, tag_id: int, name: str) -> Outcome[Tag]:
        if not name or not name.strip():
            return Outcome.failure(ErrorKind.INVALID_REQUEST, "Tag name is required")
        name = name.strip()

        async def rename(tx: InventoryTransaction) -> Outcome[Tag]:
            tag = await tx.get_tag(tag_id)
            if tag is None:
                return Outcome.failure(ErrorKind.TAG_NOT_FOUND, f"Tag {tag_id} not found")
            if await tx.tag_name_exists(name, exclude_id=tag_id):
                return _tag_exists(name)
            return Outcome.success(await tx.save_tag(replace(tag, name=name)))

        outcome = await self._runner.run("rename_tag", rename, tag_id=tag_id)
        if outcome.ok:
            logger.info("tag_renamed", tag_id=tag_id, name=name)
            await self._invalidator.on_write_committed(TagChanged(tag_id))
        return outcome

    async def delete_tag(self, tag_id: int) -> Outcome[Tag]:
        async def delete(tx: InventoryTransaction) -> Outcome[Tag]:
            tag = await tx.get_tag(tag_id)
            if tag is None:
                return Outcome.failure(ErrorKind.TAG_NOT_FOUND, f"Tag {tag_id} not found")
            if await tx.tag_in_use(tag_id):
                return Outcome.failure(ErrorKind.TAG_IN_USE, "Cannot delete tag with associated events")
            await tx.delete_tag(tag_id)
            return Outcome.success(tag)

        outcome = await self._runner.run("delete_tag", delete, tag_id=tag_id)
        if outcome.ok:
            await self._invalidator.on_write_committed(TagChanged(tag_id))
        return outcome
