"""
Bounded, retrying execution of store transactions.

Version conflicts roll the transaction back and retry with jittered
exponential backoff. Timeouts and store outages are not retried here;
they are returned to the caller as retryable outcomes.
"""

import asyncio
import random
import time
from typing import Awaitable, Callable, Optional

from eventbooking.core.config import Settings, get_settings
from eventbooking.core.logging import get_logger, operation_context
from eventbooking.core.metrics import (
    booking_latency,
    record_booking_attempt,
    record_db_error,
    record_db_retry,
)
from eventbooking.domain.errors import ErrorKind, Outcome, StoreUnavailableError, VersionConflict
from eventbooking.stores.interfaces import InventoryStore, InventoryTransaction

logger = get_logger(__name__)

TransactionFn = Callable[[InventoryTransaction], Awaitable[Outcome]]


class TransactionRunner:
    def __init__(self, store: InventoryStore, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self._store = store
        self._max_attempts = max(1, settings.BOOKING_MAX_RETRY_ATTEMPTS)
        self._base_delay = settings.BOOKING_RETRY_BASE_DELAY
        self._max_jitter = settings.BOOKING_RETRY_MAX_JITTER
        self._timeout = settings.STORE_TRANSACTION_TIMEOUT

    def _backoff(self, attempt: int) -> float:
        return self._base_delay * (2 ** (attempt - 1)) + random.uniform(0, self._max_jitter)

    async def run(self, operation: str, fn: TransactionFn, **context) -> Outcome:
        """
        Run ``fn`` inside a store transaction, retrying on version conflicts.
        Each attempt is bounded by STORE_TRANSACTION_TIMEOUT; an expired
        attempt is cancelled, which rolls its transaction back.
        """
        started = time.perf_counter()
        with operation_context(operation, **context):
            outcome = await self._run_attempts(operation, fn)
            booking_latency.labels(operation=operation).observe(time.perf_counter() - started)
            record_booking_attempt(operation, outcome.error.value if outcome.error else "ok")
            return outcome

    async def _run_attempts(self, operation: str, fn: TransactionFn) -> Outcome:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._store.run_in_transaction(fn),
                    timeout=self._timeout,
                )
            except VersionConflict as e:
                logger.info(
                    "transaction_retry",
                    attempt=attempt,
                    reason="version_conflict",
                    entity=e.entity,
                    entity_id=e.entity_id,
                )
                record_db_retry(operation)
                if attempt == self._max_attempts:
                    break
                await asyncio.sleep(self._backoff(attempt))
            except asyncio.TimeoutError:
                logger.error("transaction_timeout", timeout=self._timeout, attempt=attempt)
                record_db_error("timeout")
                return Outcome.failure(
                    ErrorKind.TIMEOUT,
                    f"Store transaction exceeded {self._timeout}s and was rolled back",
                )
            except StoreUnavailableError as e:
                record_db_error("unavailable")
                return Outcome.failure(ErrorKind.STORE_UNAVAILABLE, str(e))

        logger.warning("transaction_retries_exhausted", attempts=self._max_attempts)
        return Outcome.failure(
            ErrorKind.CONCURRENT_MODIFICATION,
            "Operation failed due to high demand. Please try again.",
        )
