"""
SQLAlchemy implementation of the InventoryStore.

CONCURRENCY STRATEGY: row lock plus version compare-and-swap
=============================================================

  1. SELECT ... FOR UPDATE on the event row. Concurrent bookings for the
     same event queue behind the lock instead of double-spending.
  2. UPDATE events SET ..., version = version + 1
     WHERE id = :event_id AND version = :expected_version
  3. If rows_affected == 0 the row changed underneath us -> VersionConflict,
     the transaction rolls back and the engine retries.

  On PostgreSQL step 1 already serializes writers and step 2 never fails.
  Backends that ignore FOR UPDATE (SQLite) still get correctness from the
  version check. CHECK constraints on the table are the last safety net.
"""

from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy import delete, exists, func, insert, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventbooking.core.logging import get_logger
from eventbooking.domain.errors import (
    InventoryInvariantError,
    StoreUnavailableError,
    VersionConflict,
)
from eventbooking.domain.models import Booking, BookingStatus, Category, Event, EventPage, Tag
from eventbooking.models.booking import Booking as BookingModel
from eventbooking.models.event import Category as CategoryModel
from eventbooking.models.event import Event as EventModel
from eventbooking.models.event import Tag as TagModel
from eventbooking.models.event import event_tags
from eventbooking.stores.interfaces import InventoryStore, InventoryTransaction

logger = get_logger(__name__)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _event_from_row(row: EventModel, tag_ids: tuple[int, ...]) -> Event:
    return Event(
        id=row.id,
        name=row.name,
        description=row.description,
        venue_info=row.venue_info,
        price_minor=row.price_minor,
        capacity=row.capacity,
        available_tickets=row.available_tickets,
        is_active=row.is_active,
        version=row.version,
        category_id=row.category_id,
        tag_ids=tag_ids,
        created_at=_as_aware(row.created_at),
        updated_at=_as_aware(row.updated_at),
    )


def _booking_from_row(row: BookingModel) -> Booking:
    return Booking(
        id=row.id,
        event_id=row.event_id,
        user_id=row.user_id,
        ticket_count=row.ticket_count,
        total_price_minor=row.total_price_minor,
        status=BookingStatus(row.status),
        booking_date=_as_aware(row.booking_date),
        updated_at=_as_aware(row.updated_at),
    )


async def _tag_ids_for(session: AsyncSession, event_ids: list[int]) -> dict[int, tuple[int, ...]]:
    found: dict[int, list[int]] = {event_id: [] for event_id in event_ids}
    if not event_ids:
        return {}
    result = await session.execute(
        select(event_tags.c.event_id, event_tags.c.tag_id)
        .where(event_tags.c.event_id.in_(event_ids))
        .order_by(event_tags.c.tag_id)
    )
    for event_id, tag_id in result.all():
        found[event_id].append(tag_id)
    return {event_id: tuple(ids) for event_id, ids in found.items()}


class SqlAlchemyTransaction(InventoryTransaction):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _load_event(self, event_id: int, for_update: bool) -> Optional[Event]:
        query = select(EventModel).where(EventModel.id == event_id)
        if for_update:
            query = query.with_for_update()
        # populate_existing so a re-read inside the transaction sees the row as locked
        query = query.execution_options(populate_existing=True)
        row = (await self._session.execute(query)).scalar_one_or_none()
        if row is None:
            return None
        tags = await _tag_ids_for(self._session, [row.id])
        return _event_from_row(row, tags[row.id])

    async def get_event_for_update(self, event_id: int) -> Optional[Event]:
        return await self._load_event(event_id, for_update=True)

    async def get_event(self, event_id: int) -> Optional[Event]:
        return await self._load_event(event_id, for_update=False)

    async def save_event(self, event: Event, expected_version: int) -> Event:
        now = datetime.now(timezone.utc)
        result = await self._session.execute(
            update(EventModel)
            .where(
                EventModel.id == event.id,
                EventModel.version == expected_version,
            )
            .values(
                name=event.name,
                description=event.description,
                venue_info=event.venue_info,
                price_minor=event.price_minor,
                capacity=event.capacity,
                available_tickets=event.available_tickets,
                is_active=event.is_active,
                category_id=event.category_id,
                version=EventModel.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise VersionConflict("event", event.id, expected_version)

        current_tags = (await _tag_ids_for(self._session, [event.id]))[event.id]
        if set(current_tags) != set(event.tag_ids):
            await self._replace_tags(event.id, event.tag_ids)

        return replace(
            event,
            version=expected_version + 1,
            updated_at=now,
            tag_ids=tuple(sorted(set(event.tag_ids))),
        )

    async def _replace_tags(self, event_id: int, tag_ids: tuple[int, ...]) -> None:
        await self._session.execute(delete(event_tags).where(event_tags.c.event_id == event_id))
        if tag_ids:
            await self._session.execute(
                insert(event_tags),
                [{"event_id": event_id, "tag_id": tag_id} for tag_id in sorted(set(tag_ids))],
            )

    async def insert_event(self, event: Event) -> Event:
        row = EventModel(
            name=event.name,
            description=event.description,
            venue_info=event.venue_info,
            price_minor=event.price_minor,
            capacity=event.capacity,
            available_tickets=event.available_tickets,
            is_active=event.is_active,
            category_id=event.category_id,
            version=1,
        )
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        await self._replace_tags(row.id, event.tag_ids)
        return _event_from_row(row, tuple(sorted(set(event.tag_ids))))

    async def delete_event(self, event_id: int) -> None:
        await self._session.execute(delete(event_tags).where(event_tags.c.event_id == event_id))
        await self._session.execute(
            delete(EventModel)
            .where(EventModel.id == event_id)
            .execution_options(synchronize_session=False)
        )

    async def event_has_bookings(self, event_id: int) -> bool:
        result = await self._session.execute(
            select(exists().where(BookingModel.event_id == event_id))
        )
        return bool(result.scalar())

    async def insert_booking(self, booking: Booking) -> Booking:
        row = BookingModel(
            event_id=booking.event_id,
            user_id=booking.user_id,
            ticket_count=booking.ticket_count,
            total_price_minor=booking.total_price_minor,
            status=booking.status.value,
            booking_date=booking.booking_date,
        )
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return _booking_from_row(row)

    async def get_booking(self, booking_id: int, for_update: bool = False) -> Optional[Booking]:
        query = select(BookingModel).where(BookingModel.id == booking_id)
        if for_update:
            query = query.with_for_update()
        row = (
            await self._session.execute(query.execution_options(populate_existing=True))
        ).scalar_one_or_none()
        return _booking_from_row(row) if row else None

    async def save_booking(self, booking: Booking) -> Booking:
        now = datetime.now(timezone.utc)
        result = await self._session.execute(
            update(BookingModel)
            .where(BookingModel.id == booking.id)
            .values(
                ticket_count=booking.ticket_count,
                total_price_minor=booking.total_price_minor,
                status=booking.status.value,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InventoryInvariantError(f"Booking {booking.id} vanished while locked")
        return replace(booking, updated_at=now)

    async def confirmed_ticket_total(self, event_id: int) -> int:
        result = await self._session.execute(
            select(func.coalesce(func.sum(BookingModel.ticket_count), 0)).where(
                BookingModel.event_id == event_id,
                BookingModel.status == BookingStatus.CONFIRMED.value,
            )
        )
        return int(result.scalar())

    async def get_category(self, category_id: int) -> Optional[Category]:
        row = await self._session.get(CategoryModel, category_id)
        return Category(id=row.id, name=row.name) if row else None

    async def insert_category(self, category: Category) -> Category:
        row = CategoryModel(name=category.name)
        self._session.add(row)
        await self._session.flush()
        return Category(id=row.id, name=row.name)

    async def save_category(self, category: Category) -> Category:
        await self._session.execute(
            update(CategoryModel)
            .where(CategoryModel.id == category.id)
            .values(name=category.name)
            .execution_options(synchronize_session=False)
        )
        return category

    async def delete_category(self, category_id: int) -> None:
        await self._session.execute(delete(CategoryModel).where(CategoryModel.id == category_id))

    async def category_name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        condition = exists().where(CategoryModel.name == name)
        if exclude_id is not None:
            condition = condition.where(CategoryModel.id != exclude_id)
        return bool((await self._session.execute(select(condition))).scalar())

    async def category_in_use(self, category_id: int) -> bool:
        result = await self._session.execute(
            select(exists().where(EventModel.category_id == category_id))
        )
        return bool(result.scalar())

    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        row = await self._session.get(TagModel, tag_id)
        return Tag(id=row.id, name=row.name) if row else None

    async def insert_tag(self, tag: Tag) -> Tag:
        row = TagModel(name=tag.name)
        self._session.add(row)
        await self._session.flush()
        return Tag(id=row.id, name=row.name)

    async def save_tag(self, tag: Tag) -> Tag:
        await self._session.execute(
            update(TagModel)
            .where(TagModel.id == tag.id)
            .values(name=tag.name)
            .execution_options(synchronize_session=False)
        )
        return tag

    async def delete_tag(self, tag_id: int) -> None:
        await self._session.execute(delete(TagModel).where(TagModel.id == tag_id))

    async def tag_name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        condition = exists().where(TagModel.name == name)
        if exclude_id is not None:
            condition = condition.where(TagModel.id != exclude_id)
        return bool((await self._session.execute(select(condition))).scalar())

    async def tag_in_use(self, tag_id: int) -> bool:
        result = await self._session.execute(
            select(exists().where(event_tags.c.tag_id == tag_id))
        )
        return bool(result.scalar())


class SqlAlchemyInventoryStore(InventoryStore):
    """Relational store; the single source of truth across replicas."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlAlchemyTransaction]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield SqlAlchemyTransaction(session)
        except IntegrityError as e:
            logger.error("store_integrity_violation", error=str(e.orig))
            raise InventoryInvariantError(str(e.orig)) from e
        except (DBAPIError, OSError) as e:
            logger.error("store_unavailable", error=str(e))
            raise StoreUnavailableError(str(e)) from e

    @asynccontextmanager
    async def _read_session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except (DBAPIError, OSError) as e:
            logger.error("store_unavailable", error=str(e))
            raise StoreUnavailableError(str(e)) from e

    async def get_event(self, event_id: int) -> Optional[Event]:
        async with self._read_session() as session:
            row = await session.get(EventModel, event_id)
            if row is None:
                return None
            tags = await _tag_ids_for(session, [row.id])
            return _event_from_row(row, tags[row.id])

    async def list_events(
        self,
        page: int,
        page_size: int,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> EventPage:
        query = select(EventModel)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(EventModel.name.ilike(pattern), EventModel.description.ilike(pattern))
            )
        if category:
            query = query.join(CategoryModel, CategoryModel.id == EventModel.category_id).where(
                CategoryModel.name == category
            )

        async with self._read_session() as session:
            count_query = select(func.count()).select_from(query.subquery())
            total = (await session.execute(count_query)).scalar()

            events_query = (
                query
                .order_by(EventModel.id.asc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            rows = list((await session.execute(events_query)).scalars().all())
            tags = await _tag_ids_for(session, [row.id for row in rows])

        return EventPage(
            events=tuple(_event_from_row(row, tags[row.id]) for row in rows),
            total=total,
        )

    async def get_category(self, category_id: int) -> Optional[Category]:
        async with self._read_session() as session:
            row = await session.get(CategoryModel, category_id)
            return Category(id=row.id, name=row.name) if row else None

    async def list_categories(self) -> list[Category]:
        async with self._read_session() as session:
            result = await session.execute(select(CategoryModel).order_by(CategoryModel.name))
            return [Category(id=row.id, name=row.name) for row in result.scalars().all()]

    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        async with self._read_session() as session:
            row = await session.get(TagModel, tag_id)
            return Tag(id=row.id, name=row.name) if row else None

    async def list_tags(self) -> list[Tag]:
        async with self._read_session() as session:
            result = await session.execute(select(TagModel).order_by(TagModel.name))
            return [Tag(id=row.id, name=row.name) for row in result.scalars().all()]

    async def get_booking(self, booking_id: int) -> Optional[Booking]:
        async with self._read_session() as session:
            row = await session.get(BookingModel, booking_id)
            return _booking_from_row(row) if row else None

    async def list_user_bookings(self, user_id: str) -> list[Booking]:
        async with self._read_session() as session:
            result = await session.execute(
                select(BookingModel)
                .where(
                    BookingModel.user_id == user_id,
                    BookingModel.status != BookingStatus.CANCELLED.value,
                )
                .order_by(BookingModel.booking_date.desc(), BookingModel.id.desc())
            )
            return [_booking_from_row(row) for row in result.scalars().all()]

    async def list_event_bookings(self, event_id: int) -> list[Booking]:
        async with self._read_session() as session:
            result = await session.execute(
                select(BookingModel)
                .where(BookingModel.event_id == event_id)
                .order_by(BookingModel.booking_date.desc(), BookingModel.id.desc())
            )
            return [_booking_from_row(row) for row in result.scalars().all()]

    async def close(self) -> None:
        bind = self._session_factory.kw.get("bind")
        if bind is not None:
            await bind.dispose()


