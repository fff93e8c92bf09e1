"""jobhunt_cache

In-process cache for the JobHunt application: a bounded TTL store with tag
and pattern invalidation and LRU eviction, a manager façade with
compute-and-cache and memoization helpers, and the metrics recorder the
cache reports to.
"""

from .cache import (
    CacheEntry,
    CacheManager,
    CachePriority,
    CacheStats,
    MemoryCache,
)
from .monitoring import Counter, Histogram, MetricSample, PerformanceMonitor
from .utils import CacheConfig, CacheManagerConfig, MonitoringConfig

__all__ = [
    "CacheManager",
    "MemoryCache",
    "CacheEntry",
    "CachePriority",
    "CacheStats",
    "PerformanceMonitor",
    "Counter",
    "Histogram",
    "MetricSample",
    "CacheConfig",
    "CacheManagerConfig",
    "MonitoringConfig",
]

__version__ = "0.1.0"
