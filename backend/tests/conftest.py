"""
Pytest fixtures for the booking core.

Engine, catalog and query tests run against the in-process store and
cache so they need neither PostgreSQL nor Redis. SQL store tests get
their own SQLite engine (see test_sql_store.py).
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from eventbooking.core.config import Settings
from eventbooking.domain.models import Event
from eventbooking.infrastructure.cache_backend import InMemoryCacheBackend
from eventbooking.main import BookingCore, build_core
from eventbooking.schemas.event import EventCreate
from eventbooking.stores.memory_store import InMemoryInventoryStore


class BrokenCacheBackend(InMemoryCacheBackend):
    """Every call fails the way a dropped Redis connection does."""

    async def get(self, key):
        raise ConnectionError("cache down")

    async def set(self, key, value, ttl=None):
        raise ConnectionError("cache down")

    async def delete(self, keys):
        raise ConnectionError("cache down")

    async def scan(self, match, count=100):
        raise ConnectionError("cache down")
        yield  # pragma: no cover


def make_settings(**overrides) -> Settings:
    """Settings with fast retries and short timeouts, independent of the environment."""
    values = dict(
        ENVIRONMENT="test",
        REDIS_ENABLED=False,
        BOOKING_MAX_RETRY_ATTEMPTS=3,
        BOOKING_RETRY_BASE_DELAY=0.001,
        BOOKING_RETRY_MAX_JITTER=0.001,
        STORE_TRANSACTION_TIMEOUT=1.0,
        CACHE_PURGE_TIMEOUT=0.5,
        CACHE_PURGE_ATTEMPTS=2,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> InMemoryInventoryStore:
    return InMemoryInventoryStore()


@pytest.fixture
def cache_backend() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()


@pytest_asyncio.fixture
async def core(settings, store, cache_backend) -> AsyncGenerator[BookingCore, None]:
    core = build_core(settings, store=store, cache_backend=cache_backend)
    yield core
    await core.invalidator.drain()


@pytest.fixture
def engine(core: BookingCore):
    return core.engine


@pytest.fixture
def catalog(core: BookingCore):
    return core.catalog


@pytest.fixture
def queries(core: BookingCore):
    return core.queries


async def create_event(catalog, capacity: int = 10, **fields) -> Event:
    data = dict(name="Test Concert", description="A test event", venue_info="Test Venue", price_minor=2500)
    data.update(fields)
    outcome = await catalog.create_event(EventCreate(capacity=capacity, **data))
    assert outcome.ok, outcome.message
    return outcome.value


@pytest_asyncio.fixture
async def test_event(catalog) -> Event:
    """An active event with 10 tickets at 25.00."""
    return await create_event(catalog, capacity=10)


@pytest_asyncio.fixture
async def small_event(catalog) -> Event:
    """An active event with 5 tickets."""
    return await create_event(catalog, capacity=5, name="Small Room")


@pytest_asyncio.fixture
async def inactive_event(catalog) -> Event:
    return await create_event(catalog, capacity=10, name="Cancelled Show", is_active=False)
