"""
Event Booking Core - composition root

Wires the booking subsystem:
- Inventory store (PostgreSQL via SQLAlchemy, or in-memory for local runs)
- Redis read-through cache with pattern-based invalidation
- Booking engine and event catalog emitting invalidations after commit
- Structured logging and Prometheus metrics

Callers (HTTP handlers, workers) obtain a BookingCore from ``lifespan()``
and translate Outcome error kinds to their own transport.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from eventbooking.core.config import Settings, get_settings
from eventbooking.core.logging import get_logger, setup_logging
from eventbooking.db.session import get_session_factory
from eventbooking.infrastructure.cache_backend import CacheBackend, InMemoryCacheBackend
from eventbooking.infrastructure.redis_client import RedisCacheBackend, create_redis_client
from eventbooking.services.booking_service import BookingEngine
from eventbooking.services.cache_service import ReadThroughCache
from eventbooking.services.event_service import EventCatalog
from eventbooking.services.invalidation import InvalidationCoordinator
from eventbooking.services.query_service import EventQueries
from eventbooking.stores.interfaces import InventoryStore
from eventbooking.stores.sql_store import SqlAlchemyInventoryStore

logger = get_logger(__name__)


@dataclass
class BookingCore:
    store: InventoryStore
    cache_backend: CacheBackend
    invalidator: InvalidationCoordinator
    engine: BookingEngine
    catalog: EventCatalog
    queries: EventQueries

    async def close(self) -> None:
        await self.invalidator.drain()
        await self.cache_backend.close()
        await self.store.close()


def build_cache_backend(settings: Settings) -> CacheBackend:
    if not settings.REDIS_ENABLED:
        logger.warning("redis_disabled", message="Using in-process cache")
        return InMemoryCacheBackend()
    return RedisCacheBackend(create_redis_client(settings), key_prefix=settings.CACHE_KEY_PREFIX)


def build_core(
    settings: Optional[Settings] = None,
    store: Optional[InventoryStore] = None,
    cache_backend: Optional[CacheBackend] = None,
) -> BookingCore:
    settings = settings or get_settings()
    store = store or SqlAlchemyInventoryStore(get_session_factory())
    cache_backend = cache_backend or build_cache_backend(settings)

    invalidator = InvalidationCoordinator(cache_backend, settings)
    return BookingCore(
        store=store,
        cache_backend=cache_backend,
        invalidator=invalidator,
        engine=BookingEngine(store, invalidator, settings),
        catalog=EventCatalog(store, invalidator, settings),
        queries=EventQueries(store, ReadThroughCache(cache_backend), settings),
    )


@asynccontextmanager
async def lifespan(settings: Optional[Settings] = None) -> AsyncIterator[BookingCore]:
    """Application lifecycle: startup and shutdown hooks."""
    settings = settings or get_settings()
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    core = build_core(settings)
    if await core.cache_backend.ping():
        logger.info("cache_ready")
    else:
        logger.warning("cache_unavailable", message="Running with cache errors; reads fall through to the store")

    try:
        yield core
    finally:
        await core.close()
        logger.info("application_shutdown")
