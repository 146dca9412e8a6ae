"""
Metrics instrumentation for observability.
Prometheus-compatible collectors; the host process decides how to expose them.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking engine operations',
    ['operation', 'result']  # reserve/cancel/update, ok or error kind
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking engine operation latency',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0]
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Database retry attempts due to version conflicts',
    ['operation']
)

db_errors = Counter(
    'db_errors_total',
    'Store failures surfaced to callers',
    ['kind']  # unavailable, timeout
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss/error
)

cache_purges = Counter(
    'cache_purges_total',
    'Cache invalidation runs',
    ['result']  # complete, partial, timeout
)

cache_keys_purged = Counter(
    'cache_keys_purged_total',
    'Cache keys deleted by invalidation'
)


def metrics_payload() -> tuple[bytes, str]:
    """Render the default registry for a scrape endpoint."""
    return generate_latest(), CONTENT_TYPE_LATEST


# Convenience functions for instrumentation
def record_booking_attempt(operation: str, result: str):
    """Record booking engine outcome. Result: ok or an error kind value."""
    booking_attempts.labels(operation=operation, result=result).inc()


def record_db_retry(operation: str):
    db_retries.labels(operation=operation).inc()


def record_db_error(kind: str):
    db_errors.labels(kind=kind).inc()


def record_cache_operation(operation: str, result: str):
    """Record cache operation. Result: hit, miss, stored, error"""
    cache_operations.labels(operation=operation, result=result).inc()


def record_purge(result: str, deleted: int = 0):
    cache_purges.labels(result=result).inc()
    if deleted:
        cache_keys_purged.inc(deleted)
