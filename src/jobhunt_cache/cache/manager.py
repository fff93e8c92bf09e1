from __future__ import annotations

import functools
import inspect
import itertools
import json
import logging
import threading
import typing as t

import anyio

from jobhunt_cache.monitoring.metrics import PerformanceMonitor
from jobhunt_cache.utils.config import CacheManagerConfig

from .memory import MemoryCache, Pattern, Tags
from .models import CachePriority, CacheStats

_logger = logging.getLogger(__name__)

T = t.TypeVar("T")

Priority = t.Optional[t.Union[str, CachePriority]]

_MISSING = object()

_memo_ids = itertools.count(1)


class _InFlight:
    """A factory call other callers for the same key can wait on."""

    def __init__(self) -> None:
        self.done = anyio.Event()
        self.completed = False
        self.value: t.Any = None
        self.error: t.Optional[Exception] = None


class CacheManager:
    """Cache façade with a default TTL policy, compute-and-cache helpers and memoization.

    Build one per process (or per test) and pass it to whatever needs caching.
    ``get_instance`` remains for code that wants a shared default.
    """

    _instance: t.ClassVar[t.Optional["CacheManager"]] = None
    _instance_lock: t.ClassVar[threading.Lock] = threading.Lock()

    def __init__(
        self,
        cache: t.Optional[MemoryCache] = None,
        *,
        config: t.Optional[CacheManagerConfig] = None,
        monitor: t.Optional[PerformanceMonitor] = None,
        default_ttl_seconds: t.Optional[float] = None,
    ) -> None:
        config = config or CacheManagerConfig()
        if cache is None:
            if monitor is None and config.monitoring.enabled:
                monitor = PerformanceMonitor(max_samples_per_metric=config.monitoring.max_samples_per_metric)
            cache = MemoryCache(
                max_entries=config.cache.max_entries,
                default_ttl_seconds=config.cache.default_ttl_seconds,
                sweep_interval_seconds=config.cache.sweep_interval_seconds,
                monitor=monitor,
            )
        elif monitor is None:
            monitor = cache.monitor
        elif monitor is not cache.monitor:
            raise ValueError("monitor must be the one the injected cache reports to")
        self._cache = cache
        self._monitor = monitor
        if default_ttl_seconds is None:
            default_ttl_seconds = config.cache.default_ttl_seconds
        self._default_ttl = float(default_ttl_seconds)
        self._pending: t.Dict[str, _InFlight] = {}
        self._task_group: t.Optional[t.Any] = None
        self._destroyed = False

    @classmethod
    def from_config(cls, config: CacheManagerConfig) -> "CacheManager":
        return cls(config=config)

    @classmethod
    def get_instance(cls, config: t.Optional[CacheManagerConfig] = None) -> "CacheManager":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls(config=config)
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._instance_lock:
            if cls._instance is not None:
                cls._instance.destroy()
            cls._instance = None

    @property
    def cache(self) -> MemoryCache:
        return self._cache

    @property
    def monitor(self) -> t.Optional[PerformanceMonitor]:
        return self._monitor

    @property
    def default_ttl_seconds(self) -> float:
        return self._default_ttl

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def set(
        self,
        key: str,
        value: t.Any,
        *,
        ttl_seconds: t.Optional[float] = None,
        tags: Tags = None,
        priority: Priority = None,
    ) -> None:
        self._ensure_alive()
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        self._cache.set(key, value, ttl_seconds=ttl, tags=tags, priority=priority)

    def get(self, key: str, default: t.Any = None) -> t.Any:
        self._ensure_alive()
        return self._cache.get(key, default)

    def has(self, key: str) -> bool:
        self._ensure_alive()
        return self._cache.has(key)

    def delete(self, key: str) -> bool:
        self._ensure_alive()
        return self._cache.delete(key)

    def clear(self) -> None:
        self._ensure_alive()
        self._cache.clear()

    def invalidate_by_tag(self, tag: str) -> int:
        self._ensure_alive()
        return self._cache.invalidate_by_tag(tag)

    def invalidate_by_pattern(self, pattern: Pattern) -> int:
        self._ensure_alive()
        return self._cache.invalidate_by_pattern(pattern)

    def sweep(self) -> int:
        self._ensure_alive()
        return self._cache.sweep()

    def get_stats(self) -> CacheStats:
        self._ensure_alive()
        return self._cache.get_stats()

    async def get_or_set(
        self,
        key: str,
        factory: t.Callable[[], t.Any],
        *,
        ttl_seconds: t.Optional[float] = None,
        tags: Tags = None,
        priority: Priority = None,
    ) -> t.Any:
        """Return the cached value for ``key`` or compute, store and return it.

        Concurrent callers missing on the same key share a single ``factory``
        call. If the factory raises, nothing is stored and every waiting
        caller sees the same exception.
        """
        self._ensure_alive()
        while True:
            cached = self._cache.get(key, _MISSING)
            if cached is not _MISSING:
                return cached
            pending = self._pending.get(key)
            if pending is None:
                break
            await pending.done.wait()
            if pending.error is not None:
                raise pending.error
            if pending.completed:
                return pending.value
            # the computing caller was cancelled; race for the slot again

        pending = _InFlight()
        self._pending[key] = pending
        try:
            value = factory()
            if inspect.isawaitable(value):
                value = await value
            self.set(key, value, ttl_seconds=ttl_seconds, tags=tags, priority=priority)
            pending.value = value
            pending.completed = True
            return value
        except Exception as exc:
            pending.error = exc
            _logger.debug("Cache factory failed key=%s error=%r", key, exc)
            raise
        finally:
            if self._pending.get(key) is pending:
                del self._pending[key]
            pending.done.set()

    def memoize(
        self,
        fn: t.Optional[t.Callable[..., t.Awaitable[T]]] = None,
        *,
        get_key: t.Optional[t.Callable[..., str]] = None,
        ttl_seconds: t.Optional[float] = None,
        tags: Tags = None,
        priority: Priority = None,
    ) -> t.Any:
        """Cache results of an async function.

        Works as ``manager.memoize(fn)`` or as ``@manager.memoize(get_key=...)``.
        Without ``get_key`` the key is the function's qualified name, a sequence
        number unique to this wrapper and the JSON form of its arguments (dict
        keys sorted); arguments that JSON cannot encode need an explicit
        ``get_key``.
        """

        def decorator(func: t.Callable[..., t.Awaitable[T]]) -> t.Callable[..., t.Awaitable[T]]:
            name = getattr(func, "__qualname__", None) or getattr(func, "__name__", type(func).__name__)
            # The sequence number keeps closures sharing a qualname apart.
            prefix = f"{getattr(func, '__module__', None) or ''}.{name}#{next(_memo_ids)}:"

            def make_key(*args: t.Any, **kwargs: t.Any) -> str:
                if get_key is not None:
                    return get_key(*args, **kwargs)
                try:
                    return prefix + json.dumps([list(args), kwargs], sort_keys=True)
                except TypeError as exc:
                    raise TypeError(
                        f"cannot derive a cache key for {name} arguments; pass get_key="
                    ) from exc

            @functools.wraps(func)
            async def wrapper(*args: t.Any, **kwargs: t.Any) -> T:
                key = make_key(*args, **kwargs)
                return await self.get_or_set(
                    key,
                    lambda: func(*args, **kwargs),
                    ttl_seconds=ttl_seconds,
                    tags=tags,
                    priority=priority,
                )

            def invalidate(*args: t.Any, **kwargs: t.Any) -> bool:
                return self.delete(make_key(*args, **kwargs))

            wrapper.cache_key = make_key  # type: ignore[attr-defined]
            wrapper.invalidate = invalidate  # type: ignore[attr-defined]
            return wrapper

        if fn is not None:
            return decorator(fn)
        return decorator

    def destroy(self) -> None:
        self._destroyed = True
        self._cache.destroy()

    async def __aenter__(self) -> "CacheManager":
        self._ensure_alive()
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        try:
            await task_group.start(self._cache.run_sweeper)
        except BaseException:
            task_group.cancel_scope.cancel()
            await task_group.__aexit__(None, None, None)
            raise
        self._task_group = task_group
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        task_group, self._task_group = self._task_group, None
        try:
            if task_group is not None:
                task_group.cancel_scope.cancel()
                # The body's exception propagates on its own; keep it out of the group.
                await task_group.__aexit__(None, None, None)
        finally:
            self.destroy()

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("cache_manager_destroyed")
