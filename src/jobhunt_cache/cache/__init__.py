"""In-memory caching: the bounded store and the manager façade."""

from .manager import CacheManager
from .memory import MemoryCache
from .models import CacheEntry, CachePriority, CacheStats

__all__ = [
    "CacheManager",
    "MemoryCache",
    "CacheEntry",
    "CachePriority",
    "CacheStats",
]
