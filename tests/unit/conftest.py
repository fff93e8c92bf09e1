"""Shared fixtures and fakes for unit tests."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from jobhunt_cache.cache.manager import CacheManager
from jobhunt_cache.cache.memory import MemoryCache
from jobhunt_cache.monitoring.metrics import PerformanceMonitor


class FakeClock:
    """Manually advanced stand-in for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Deterministic clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def monitor():
    """Fresh performance monitor."""
    return PerformanceMonitor()


@pytest.fixture
def failing_monitor():
    """Monitor whose every call raises."""
    broken = Mock(spec=PerformanceMonitor)
    broken.record_metric.side_effect = RuntimeError("metrics backend down")
    broken.increment.side_effect = RuntimeError("metrics backend down")
    return broken


@pytest.fixture
def memory_cache(clock, monitor):
    """Small cache driven by the fake clock."""
    cache = MemoryCache(max_entries=10, default_ttl_seconds=60, clock=clock, monitor=monitor)
    yield cache
    cache.destroy()


@pytest.fixture
def manager(clock, monitor):
    """Manager over a fake-clock cache, torn down after the test."""
    cache = MemoryCache(max_entries=100, default_ttl_seconds=300, clock=clock, monitor=monitor)
    mgr = CacheManager(cache, monitor=monitor, default_ttl_seconds=300)
    yield mgr
    mgr.destroy()
