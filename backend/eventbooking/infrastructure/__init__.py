"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .cache_backend import CacheBackend, InMemoryCacheBackend
from .redis_client import RedisCacheBackend, create_redis_client

__all__ = ['CacheBackend', 'InMemoryCacheBackend', 'RedisCacheBackend', 'create_redis_client']
