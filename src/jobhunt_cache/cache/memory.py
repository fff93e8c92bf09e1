from __future__ import annotations

import logging
import re
import threading
import time
import typing as t
from collections import OrderedDict

import anyio

from jobhunt_cache.monitoring.metrics import PerformanceMonitor

from .models import CacheEntry, CachePriority, CacheStats

_logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0

Tags = t.Optional[t.Union[str, t.Iterable[str]]]
Pattern = t.Union[str, "re.Pattern[str]"]


class MemoryCache:
    """Bounded in-process store with per-entry TTL, tags and LRU eviction.

    Recency order lives in the ``OrderedDict``: inserts and successful reads
    move a key to the end, so the first key is always the least recently
    accessed one. Expired entries are dropped when a read finds them and by
    :meth:`sweep`, which the background sweeper calls periodically.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        *,
        clock: t.Callable[[], float] = time.monotonic,
        monitor: t.Optional[PerformanceMonitor] = None,
    ) -> None:
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._max_entries = max(1, int(max_entries))
        self._default_ttl = float(default_ttl_seconds)
        if sweep_interval_seconds <= 0:
            raise ValueError(f"sweep_interval_seconds must be positive, got {sweep_interval_seconds!r}")
        self._sweep_interval = float(sweep_interval_seconds)
        self._clock = clock
        self._monitor = monitor
        self._lock = threading.RLock()
        self._sweep_scope: t.Optional[anyio.CancelScope] = None
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def monitor(self) -> t.Optional[PerformanceMonitor]:
        return self._monitor

    @property
    def sweeper_running(self) -> bool:
        return self._sweep_scope is not None

    def set(
        self,
        key: str,
        value: t.Any,
        *,
        ttl_seconds: t.Optional[float] = None,
        tags: Tags = None,
        priority: t.Optional[t.Union[str, CachePriority]] = None,
    ) -> None:
        start = time.perf_counter()
        ttl = self._default_ttl if ttl_seconds is None else float(ttl_seconds)
        level = CachePriority.MEDIUM if priority is None else CachePriority(priority)
        if isinstance(tags, str):
            tags = (tags,)
        tag_set = frozenset(tags or ())

        with self._lock:
            if ttl <= 0:
                # Already expired on arrival: nothing is admitted.
                self._store.pop(key, None)
                size = len(self._store)
                _logger.debug("Cache set dropped key=%s ttl=%s cache_size=%d", key, ttl, size)
                return
            if key not in self._store and len(self._store) >= self._max_entries:
                self._evict_lru()
            now = self._clock()
            self._store[key] = CacheEntry(
                value=value,
                expires_at=now + ttl,
                created_at=now,
                tags=tag_set,
                priority=level,
                access_count=1,
                last_accessed=now,
            )
            self._store.move_to_end(key)
            size = len(self._store)

        duration_ms = (time.perf_counter() - start) * 1000.0
        _logger.debug(
            "Cache set key=%s ttl=%s priority=%s tags=%s cache_size=%d",
            key,
            ttl,
            level.value,
            sorted(tag_set),
            size,
        )
        self._record(
            "cache_set_operation",
            duration_ms,
            {"operation": "set", "cache_size": size, "ttl": ttl},
        )

    def get(self, key: str, default: t.Any = None) -> t.Any:
        found, value = self._lookup(key)
        return value if found else default

    def has(self, key: str) -> bool:
        found, _ = self._lookup(key)
        return found

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __len__(self) -> int:
        return len(self._store)

    def keys(self) -> t.List[str]:
        with self._lock:
            return list(self._store.keys())

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def invalidate_by_tag(self, tag: str) -> int:
        with self._lock:
            doomed = [key for key, entry in self._store.items() if tag in entry.tags]
            for key in doomed:
                del self._store[key]
        _logger.debug("Cache invalidated tag=%s removed=%d", tag, len(doomed))
        return len(doomed)

    def invalidate_by_pattern(self, pattern: Pattern) -> int:
        regex = re.compile(pattern)
        with self._lock:
            doomed = [key for key in self._store if regex.search(key)]
            for key in doomed:
                del self._store[key]
        _logger.debug("Cache invalidated pattern=%s removed=%d", regex.pattern, len(doomed))
        return len(doomed)

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            doomed = [key for key, entry in self._store.items() if entry.is_expired(now)]
            for key in doomed:
                del self._store[key]
        if doomed:
            _logger.debug("Cache sweep removed=%d", len(doomed))
        return len(doomed)

    def get_stats(self) -> CacheStats:
        by_priority = {p.value: 0 for p in CachePriority}
        expired = 0
        with self._lock:
            now = self._clock()
            for entry in self._store.values():
                if entry.is_expired(now):
                    expired += 1
                by_priority[entry.priority.value] += 1
            total = len(self._store)
            return CacheStats(
                total_entries=total,
                expired_entries=expired,
                active_entries=total - expired,
                max_entries=self._max_entries,
                by_priority=by_priority,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    async def run_sweeper(self, *, task_status: t.Any = anyio.TASK_STATUS_IGNORED) -> None:
        """Sweep expired entries every ``sweep_interval_seconds`` until cancelled.

        Intended to be started with ``await task_group.start(cache.run_sweeper)``.
        Reads never depend on it; it only reclaims memory early.
        """
        with anyio.CancelScope() as scope:
            self._sweep_scope = scope
            task_status.started()
            try:
                while True:
                    await anyio.sleep(self._sweep_interval)
                    try:
                        self.sweep()
                    except Exception:
                        _logger.warning("Cache sweep failed", exc_info=True)
            finally:
                self._sweep_scope = None

    def destroy(self) -> None:
        if self._sweep_scope is not None:
            self._sweep_scope.cancel()
        self.clear()

    def _lookup(self, key: str) -> t.Tuple[bool, t.Any]:
        start = time.perf_counter()
        found, value = False, None
        with self._lock:
            entry = self._store.get(key)
            now = self._clock()
            if entry is None:
                outcome = "miss"
            elif entry.is_expired(now):
                del self._store[key]
                outcome = "expired"
            else:
                entry.touch(now)
                self._store.move_to_end(key)
                found, value = True, entry.value
                outcome = "hit"
            if found:
                self._hits += 1
            else:
                self._misses += 1
            size = len(self._store)

        duration_ms = (time.perf_counter() - start) * 1000.0
        labels: t.Dict[str, t.Any] = {"operation": "get", "hit": found, "cache_size": size}
        if entry is None:
            _logger.debug("Cache miss key=%s cache_size=%d", key, size)
        elif found:
            _logger.debug("Cache hit key=%s access_count=%d cache_size=%d", key, entry.access_count, size)
            labels["access_count"] = entry.access_count
        else:
            _logger.debug("Cache expired key=%s expired_at=%s cache_size=%d", key, entry.expires_at, size)
            labels["expired"] = True
        self._record("cache_get_operation", duration_ms, labels)
        self._count("cache_requests_total", result=outcome)
        return found, value

    def _evict_lru(self) -> None:
        # Caller holds the lock.
        if not self._store:
            return
        key, entry = self._store.popitem(last=False)
        self._evictions += 1
        _logger.debug(
            "Cache evicted key=%s last_accessed=%s access_count=%d",
            key,
            entry.last_accessed,
            entry.access_count,
        )
        self._count("cache_evictions_total")

    def _record(self, name: str, duration_ms: float, labels: t.Dict[str, t.Any]) -> None:
        if self._monitor is None:
            return
        try:
            self._monitor.record_metric(name, duration_ms, labels)
        except Exception:
            _logger.debug("Metric recording failed for %s", name, exc_info=True)

    def _count(self, name: str, **labels: t.Any) -> None:
        if self._monitor is None:
            return
        try:
            self._monitor.increment(name, **labels)
        except Exception:
            _logger.debug("Metric increment failed for %s", name, exc_info=True)
