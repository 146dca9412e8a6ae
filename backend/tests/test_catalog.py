"""
Tests for event, category and tag administration.
"""

import pytest

from conftest import create_event
from eventbooking.domain.errors import ErrorKind
from eventbooking.schemas.event import EventCreate, EventUpdate


@pytest.mark.asyncio
async def test_create_event_starts_fully_available(catalog):
    event = await create_event(catalog, capacity=40)

    assert event.id is not None
    assert event.capacity == 40
    assert event.available_tickets == 40
    assert event.version == 1


@pytest.mark.asyncio
async def test_create_event_with_unknown_category(catalog):
    outcome = await catalog.create_event(
        EventCreate(name="Orphan", price_minor=100, capacity=5, category_id=77)
    )
    assert outcome.error is ErrorKind.CATEGORY_NOT_FOUND


@pytest.mark.asyncio
async def test_create_event_with_unknown_tag(catalog):
    outcome = await catalog.create_event(
        EventCreate(name="Orphan", price_minor=100, capacity=5, tag_ids=[3])
    )
    assert outcome.error is ErrorKind.TAG_NOT_FOUND


@pytest.mark.asyncio
async def test_update_event_applies_only_set_fields(catalog, store, test_event):
    outcome = await catalog.update_event(test_event.id, EventUpdate(venue_info="Main Hall"))

    assert outcome.ok
    saved = await store.get_event(test_event.id)
    assert saved.venue_info == "Main Hall"
    assert saved.name == test_event.name
    assert saved.available_tickets == test_event.available_tickets
    assert saved.version == test_event.version + 1


@pytest.mark.asyncio
async def test_update_event_rejects_clearing_required_field(catalog, test_event):
    outcome = await catalog.update_event(test_event.id, EventUpdate(name=None))
    assert outcome.error is ErrorKind.INVALID_REQUEST


@pytest.mark.asyncio
async def test_update_event_sets_and_clears_category(catalog, store, test_event):
    category = (await catalog.create_category("Music")).value

    assert (await catalog.update_event(test_event.id, EventUpdate(category_id=category.id))).ok
    assert (await store.get_event(test_event.id)).category_id == category.id

    assert (await catalog.update_event(test_event.id, EventUpdate(category_id=None))).ok
    assert (await store.get_event(test_event.id)).category_id is None


@pytest.mark.asyncio
async def test_update_event_replaces_tags(catalog, store, test_event):
    outdoor = (await catalog.create_tag("outdoor")).value
    family = (await catalog.create_tag("family")).value

    outcome = await catalog.update_event(
        test_event.id, EventUpdate(tag_ids=[family.id, outdoor.id, family.id])
    )

    assert outcome.ok
    assert (await store.get_event(test_event.id)).tag_ids == tuple(sorted({outdoor.id, family.id}))


@pytest.mark.asyncio
async def test_update_unknown_event(catalog):
    outcome = await catalog.update_event(999, EventUpdate(name="Nope"))
    assert outcome.error is ErrorKind.EVENT_NOT_FOUND


@pytest.mark.asyncio
async def test_resize_capacity_up_adds_available_tickets(catalog, engine, store, test_event):
    await engine.reserve_tickets(test_event.id, "user-1", 4)

    outcome = await catalog.resize_capacity(test_event.id, 15)

    assert outcome.ok
    assert outcome.value.capacity == 15
    assert outcome.value.available_tickets == 11
    assert (await engine.audit_inventory(test_event.id)).value.consistent


@pytest.mark.asyncio
async def test_resize_capacity_down_to_sold_tickets(catalog, engine, test_event):
    await engine.reserve_tickets(test_event.id, "user-1", 4)

    outcome = await catalog.resize_capacity(test_event.id, 4)

    assert outcome.ok
    assert outcome.value.available_tickets == 0


@pytest.mark.asyncio
async def test_resize_capacity_below_sold_tickets(catalog, engine, store, test_event):
    await engine.reserve_tickets(test_event.id, "user-1", 4)

    outcome = await catalog.resize_capacity(test_event.id, 3)

    assert outcome.error is ErrorKind.CAPACITY_BELOW_SOLD
    assert (await store.get_event(test_event.id)).capacity == 10


@pytest.mark.asyncio
@pytest.mark.parametrize("capacity", [0, -5, "10"])
async def test_resize_capacity_rejects_invalid_values(catalog, test_event, capacity):
    outcome = await catalog.resize_capacity(test_event.id, capacity)
    assert outcome.error is ErrorKind.INVALID_REQUEST


@pytest.mark.asyncio
async def test_delete_unbooked_event(catalog, queries, store, test_event):
    await queries.get_event(test_event.id)

    outcome = await catalog.delete_event(test_event.id)

    assert outcome.ok
    assert await store.get_event(test_event.id) is None
    assert await queries.get_event(test_event.id) is None


@pytest.mark.asyncio
async def test_delete_event_with_bookings_is_refused(catalog, engine, store, test_event):
    booking = (await engine.reserve_tickets(test_event.id, "user-1", 1)).value
    await engine.cancel_booking(booking.id, "user-1")

    outcome = await catalog.delete_event(test_event.id)

    assert outcome.error is ErrorKind.EVENT_HAS_BOOKINGS
    assert await store.get_event(test_event.id) is not None


@pytest.mark.asyncio
async def test_category_in_use_cannot_be_deleted(catalog):
    category = (await catalog.create_category("Comedy")).value
    await create_event(catalog, capacity=5, category_id=category.id)

    outcome = await catalog.delete_category(category.id)

    assert outcome.error is ErrorKind.CATEGORY_IN_USE


@pytest.mark.asyncio
async def test_unused_category_can_be_deleted(catalog, queries):
    category = (await catalog.create_category("Comedy")).value

    assert (await catalog.delete_category(category.id)).ok
    assert await queries.list_categories() == []
    assert (await catalog.delete_category(category.id)).error is ErrorKind.CATEGORY_NOT_FOUND


@pytest.mark.asyncio
async def test_tag_in_use_cannot_be_deleted(catalog):
    tag = (await catalog.create_tag("outdoor")).value
    await create_event(catalog, capacity=5, tag_ids=[tag.id])

    outcome = await catalog.delete_tag(tag.id)

    assert outcome.error is ErrorKind.TAG_IN_USE


@pytest.mark.asyncio
async def test_blank_names_are_rejected(catalog):
    assert (await catalog.create_category("  ")).error is ErrorKind.INVALID_REQUEST
    assert (await catalog.create_tag("")).error is ErrorKind.INVALID_REQUEST


@pytest.mark.asyncio
async def test_list_events_filters_by_category_name(catalog, queries):
    music = (await catalog.create_category("Music")).value
    await create_event(catalog, capacity=5, name="Gig", category_id=music.id)
    await create_event(catalog, capacity=5, name="Lecture")

    listing = await queries.list_events(category="Music")

    assert [e.name for e in listing.events] == ["Gig"]
    assert listing.total == 1


@pytest.mark.asyncio
async def test_duplicate_category_name_is_refused(catalog, queries):
    assert (await catalog.create_category("Music")).ok

    duplicate = await catalog.create_category(" Music ")

    assert duplicate.error is ErrorKind.CATEGORY_EXISTS
    assert duplicate.http_status == 409
    assert [c.name for c in await queries.list_categories()] == ["Music"]


@pytest.mark.asyncio
async def test_duplicate_tag_name_is_refused(catalog, queries):
    assert (await catalog.create_tag("outdoor")).ok

    assert (await catalog.create_tag("outdoor")).error is ErrorKind.TAG_EXISTS
    assert [t.name for t in await queries.list_tags()] == ["outdoor"]


@pytest.mark.asyncio
async def test_deleted_category_name_can_be_reused(catalog):
    category = (await catalog.create_category("Comedy")).value
    await catalog.delete_category(category.id)

    assert (await catalog.create_category("Comedy")).ok


@pytest.mark.asyncio
async def test_rename_category(catalog, queries):
    category = (await catalog.create_category("Music")).value
    await queries.list_categories()

    outcome = await catalog.rename_category(category.id, "Live Music")

    assert outcome.ok
    assert outcome.value.name == "Live Music"
    assert [c.name for c in await queries.list_categories()] == ["Live Music"]
    assert (await queries.get_category(category.id)).name == "Live Music"


@pytest.mark.asyncio
async def test_rename_category_to_its_own_name(catalog):
    category = (await catalog.create_category("Music")).value

    assert (await catalog.rename_category(category.id, "Music")).ok


@pytest.mark.asyncio
async def test_rename_category_guards(catalog):
    music = (await catalog.create_category("Music")).value
    await catalog.create_category("Theatre")

    assert (await catalog.rename_category(music.id, "Theatre")).error is ErrorKind.CATEGORY_EXISTS
    assert (await catalog.rename_category(music.id, " ")).error is ErrorKind.INVALID_REQUEST
    assert (await catalog.rename_category(99, "Opera")).error is ErrorKind.CATEGORY_NOT_FOUND


@pytest.mark.asyncio
async def test_rename_category_refreshes_filtered_listing(catalog, queries):
    music = (await catalog.create_category("Music")).value
    await create_event(catalog, capacity=5, name="Gig", category_id=music.id)
    assert (await queries.list_events(category="Music")).total == 1

    await catalog.rename_category(music.id, "Live Music")

    assert (await queries.list_events(category="Music")).total == 0
    assert (await queries.list_events(category="Live Music")).total == 1


@pytest.mark.asyncio
async def test_rename_tag(catalog, queries):
    outdoor = (await catalog.create_tag("outdoor")).value
    await catalog.create_tag("family")
    await queries.list_tags()

    assert (await catalog.rename_tag(outdoor.id, "family")).error is ErrorKind.TAG_EXISTS
    assert (await catalog.rename_tag(42, "indoor")).error is ErrorKind.TAG_NOT_FOUND

    outcome = await catalog.rename_tag(outdoor.id, "open air")

    assert outcome.ok
    assert [t.name for t in await queries.list_tags()] == ["family", "open air"]
    assert (await queries.get_tag(outdoor.id)).name == "open air"


@pytest.mark.asyncio
async def test_taxonomy_lookups_by_id(catalog, queries):
    category = (await catalog.create_category("Music")).value
    tag = (await catalog.create_tag("outdoor")).value

    assert (await queries.get_category(category.id)).name == "Music"
    assert (await queries.get_tag(tag.id)).name == "outdoor"
    assert await queries.get_category(999) is None
    assert await queries.get_tag(999) is None
