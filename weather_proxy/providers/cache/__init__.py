"""Cache stores backing the cache-aside weather service"""

from .base import CacheStore
from .factory import create_cache_store
from .memory import MemoryCacheStore

__all__ = [
    "CacheStore",
    "MemoryCacheStore",
    "create_cache_store",
]
