"""
Tests for the SQLAlchemy store against an in-memory SQLite database.

SQLite ignores FOR UPDATE, so these run sequentially and exercise the
version check, constraints and query shapes rather than row locking.
"""

from dataclasses import replace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import eventbooking.models  # noqa: F401 - register tables on the metadata
from conftest import create_event, make_settings
from eventbooking.db.base import Base
from eventbooking.domain.errors import ErrorKind, InventoryInvariantError, VersionConflict
from eventbooking.domain.models import Event
from eventbooking.infrastructure.cache_backend import InMemoryCacheBackend
from eventbooking.main import BookingCore, build_core
from eventbooking.models.booking import Booking as BookingModel
from eventbooking.schemas.event import EventUpdate
from eventbooking.stores.sql_store import SqlAlchemyInventoryStore

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables, yield a session factory, then drop everything."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def sql_store(session_factory) -> SqlAlchemyInventoryStore:
    return SqlAlchemyInventoryStore(session_factory)


@pytest.fixture
def sql_core(sql_store) -> BookingCore:
    return build_core(make_settings(), store=sql_store, cache_backend=InMemoryCacheBackend())


@pytest.mark.asyncio
async def test_reserve_and_cancel_round_trip(sql_core, sql_store):
    event = await create_event(sql_core.catalog, capacity=5)

    booking = await sql_core.engine.reserve_tickets(event.id, "alice", 3)
    assert booking.ok
    assert (await sql_store.get_event(event.id)).available_tickets == 2

    assert (await sql_core.engine.reserve_tickets(event.id, "bob", 3)).error is (
        ErrorKind.INSUFFICIENT_INVENTORY
    )

    cancelled = await sql_core.engine.cancel_booking(booking.value.id, "alice")
    assert cancelled.ok
    assert cancelled.value.is_cancelled
    assert (await sql_store.get_event(event.id)).available_tickets == 5

    again = await sql_core.engine.cancel_booking(booking.value.id, "alice")
    assert again.error is ErrorKind.ALREADY_CANCELLED

    audit = await sql_core.engine.audit_inventory(event.id)
    assert audit.value.consistent
    assert audit.value.confirmed_tickets == 0


@pytest.mark.asyncio
async def test_sequential_reservations_stop_at_capacity(sql_core, sql_store):
    event = await create_event(sql_core.catalog, capacity=10)

    outcomes = [await sql_core.engine.reserve_tickets(event.id, f"user-{i}", 1) for i in range(12)]

    assert sum(o.ok for o in outcomes) == 10
    assert [o.error for o in outcomes[10:]] == [ErrorKind.INSUFFICIENT_INVENTORY] * 2
    assert (await sql_store.get_event(event.id)).available_tickets == 0


@pytest.mark.asyncio
async def test_update_booking_ticket_count(sql_core, sql_store):
    event = await create_event(sql_core.catalog, capacity=10, price_minor=1000)
    booking = (await sql_core.engine.reserve_tickets(event.id, "alice", 2)).value

    grown = await sql_core.engine.update_booking_ticket_count(booking.id, "alice", 5)

    assert grown.ok
    assert grown.value.total_price_minor == 5000
    assert (await sql_store.get_event(event.id)).available_tickets == 5


@pytest.mark.asyncio
async def test_stale_version_is_a_conflict(sql_store):
    async with sql_store.transaction() as tx:
        event = await tx.insert_event(
            Event(id=None, name="Gig", description="", venue_info="", price_minor=0,
                  capacity=10, available_tickets=10)
        )

    async with sql_store.transaction() as tx:
        current = await tx.get_event_for_update(event.id)
        saved = await tx.save_event(replace(current, available_tickets=9), expected_version=1)
        assert saved.version == 2

    with pytest.raises(VersionConflict):
        async with sql_store.transaction() as tx:
            await tx.save_event(replace(event, available_tickets=8), expected_version=1)

    assert (await sql_store.get_event(event.id)).available_tickets == 9


@pytest.mark.asyncio
async def test_check_constraint_blocks_negative_inventory(sql_store):
    with pytest.raises(InventoryInvariantError):
        async with sql_store.transaction() as tx:
            await tx.insert_event(
                Event(id=None, name="Broken", description="", venue_info="", price_minor=0,
                      capacity=5, available_tickets=6)
            )


@pytest.mark.asyncio
async def test_failed_transaction_rolls_back(sql_store):
    with pytest.raises(RuntimeError):
        async with sql_store.transaction() as tx:
            await tx.insert_event(
                Event(id=None, name="Ghost", description="", venue_info="", price_minor=0,
                      capacity=5, available_tickets=5)
            )
            raise RuntimeError("abort")

    assert (await sql_store.list_events(page=1, page_size=10)).total == 0


@pytest.mark.asyncio
async def test_list_events_search_category_and_paging(sql_core, sql_store):
    music = (await sql_core.catalog.create_category("Music")).value
    await create_event(sql_core.catalog, capacity=5, name="Jazz Night", category_id=music.id)
    await create_event(sql_core.catalog, capacity=5, name="Rock Night", category_id=music.id)
    await create_event(sql_core.catalog, capacity=5, name="Poetry Reading")

    jazz = await sql_store.list_events(page=1, page_size=10, search="JAZZ")
    in_music = await sql_store.list_events(page=1, page_size=10, category="Music")
    second_page = await sql_store.list_events(page=2, page_size=2)

    assert [e.name for e in jazz.events] == ["Jazz Night"]
    assert [e.name for e in in_music.events] == ["Jazz Night", "Rock Night"]
    assert in_music.total == 2
    assert [e.name for e in second_page.events] == ["Poetry Reading"]
    assert second_page.total == 3


@pytest.mark.asyncio
async def test_event_tags_are_persisted(sql_core, sql_store):
    outdoor = (await sql_core.catalog.create_tag("outdoor")).value
    family = (await sql_core.catalog.create_tag("family")).value
    event = await create_event(sql_core.catalog, capacity=5, tag_ids=[outdoor.id])
    assert event.tag_ids == (outdoor.id,)

    await sql_core.catalog.update_event(event.id, EventUpdate(tag_ids=[family.id]))

    assert (await sql_store.get_event(event.id)).tag_ids == (family.id,)
    assert (await sql_core.catalog.delete_tag(outdoor.id)).ok
    assert (await sql_core.catalog.delete_tag(family.id)).error is ErrorKind.TAG_IN_USE
    assert [t.name for t in await sql_store.list_tags()] == ["family"]


@pytest.mark.asyncio
async def test_delete_guards(sql_core, sql_store):
    category = (await sql_core.catalog.create_category("Talks")).value
    booked = await create_event(sql_core.catalog, capacity=5, category_id=category.id)
    unbooked = await create_event(sql_core.catalog, capacity=5)
    await sql_core.engine.reserve_tickets(booked.id, "alice", 1)

    assert (await sql_core.catalog.delete_event(booked.id)).error is ErrorKind.EVENT_HAS_BOOKINGS
    assert (await sql_core.catalog.delete_category(category.id)).error is ErrorKind.CATEGORY_IN_USE
    assert (await sql_core.catalog.delete_event(unbooked.id)).ok
    assert await sql_store.get_event(unbooked.id) is None


@pytest.mark.asyncio
async def test_user_bookings_newest_first_without_cancelled(sql_core, sql_store):
    event = await create_event(sql_core.catalog, capacity=10)
    first = (await sql_core.engine.reserve_tickets(event.id, "alice", 1)).value
    second = (await sql_core.engine.reserve_tickets(event.id, "alice", 1)).value
    third = (await sql_core.engine.reserve_tickets(event.id, "alice", 1)).value
    await sql_core.engine.cancel_booking(second.id, "alice")

    bookings = await sql_store.list_user_bookings("alice")

    assert [b.id for b in bookings] == [third.id, first.id]


@pytest.mark.asyncio
async def test_duplicate_names_are_outcomes_not_errors(sql_core, sql_store):
    assert (await sql_core.catalog.create_category("Music")).ok
    assert (await sql_core.catalog.create_tag("outdoor")).ok

    category = await sql_core.catalog.create_category("Music")
    tag = await sql_core.catalog.create_tag("outdoor")

    assert category.error is ErrorKind.CATEGORY_EXISTS
    assert tag.error is ErrorKind.TAG_EXISTS
    assert [c.name for c in await sql_store.list_categories()] == ["Music"]
    assert [t.name for t in await sql_store.list_tags()] == ["outdoor"]


@pytest.mark.asyncio
async def test_rename_category_and_tag(sql_core, sql_store):
    music = (await sql_core.catalog.create_category("Music")).value
    await sql_core.catalog.create_category("Theatre")
    outdoor = (await sql_core.catalog.create_tag("outdoor")).value
    await create_event(sql_core.catalog, capacity=5, name="Gig", category_id=music.id)

    assert (await sql_core.catalog.rename_category(music.id, "Theatre")).error is (
        ErrorKind.CATEGORY_EXISTS
    )
    assert (await sql_core.catalog.rename_category(music.id, "Live Music")).ok
    assert (await sql_core.catalog.rename_tag(outdoor.id, "open air")).ok

    assert (await sql_store.get_category(music.id)).name == "Live Music"
    assert (await sql_store.get_tag(outdoor.id)).name == "open air"
    assert (await sql_store.list_events(page=1, page_size=10, category="Live Music")).total == 1
    assert await sql_store.get_category(999) is None


@pytest.mark.asyncio
async def test_booking_reads(sql_core, sql_store):
    event = await create_event(sql_core.catalog, capacity=10)
    other = await create_event(sql_core.catalog, capacity=10)
    first = (await sql_core.engine.reserve_tickets(event.id, "alice", 1)).value
    second = (await sql_core.engine.reserve_tickets(event.id, "bob", 2)).value
    await sql_core.engine.reserve_tickets(other.id, "alice", 1)
    await sql_core.engine.cancel_booking(first.id, "alice")

    found = await sql_store.get_booking(second.id)
    bookings = await sql_store.list_event_bookings(event.id)

    assert found.user_id == "bob"
    assert found.ticket_count == 2
    assert await sql_store.get_booking(999) is None
    assert [b.id for b in bookings] == [second.id, first.id]
    assert bookings[1].is_cancelled


@pytest.mark.asyncio
async def test_relationships_are_never_lazy_loaded(sql_core, session_factory):
    event = await create_event(sql_core.catalog, capacity=5)
    booking = (await sql_core.engine.reserve_tickets(event.id, "alice", 1)).value

    async with session_factory() as session:
        row = await session.get(BookingModel, booking.id)
        with pytest.raises(InvalidRequestError):
            row.event
