"""Cache adapters implementing CachePort."""

from storepulse.adapters.cache.in_memory import InMemoryCache
from storepulse.adapters.cache.redis import RedisCache
from storepulse.adapters.cache.sqlite import SQLiteCache

__all__ = [
    "InMemoryCache",
    "RedisCache",
    "SQLiteCache",
]
