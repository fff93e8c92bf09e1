from __future__ import annotations

import threading
import time
import typing as t
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Optional, Tuple

T = t.TypeVar("T")

# Millisecond buckets; in-process cache operations sit at the low end.
DEFAULT_BUCKETS_MS: List[float] = [0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 50.0, 100.0, 500.0, 1000.0]


def _label_key(labels: Mapping[str, Any]) -> Tuple:
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


@dataclass
class Counter:
    name: str
    help: str
    values: Dict[Tuple, float] = field(default_factory=dict)

    def inc(self, value: float = 1.0, **labels: Any) -> None:
        key = _label_key(labels)
        self.values[key] = self.values.get(key, 0.0) + value

    def get(self, **labels: Any) -> float:
        return self.values.get(_label_key(labels), 0.0)

    def total(self) -> float:
        return sum(self.values.values())


@dataclass
class Histogram:
    name: str
    help: str
    buckets: List[float]
    counts: Dict[Tuple, List[int]] = field(default_factory=dict)

    def observe(self, val: float, **labels: Any) -> None:
        key = _label_key(labels)
        if key not in self.counts:
            # trailing slot holds values above the last bucket
            self.counts[key] = [0 for _ in range(len(self.buckets) + 1)]
        for i, b in enumerate(self.buckets):
            if val <= b:
                self.counts[key][i] += 1
                break
        else:
            self.counts[key][-1] += 1

    def count(self, **labels: Any) -> int:
        return sum(self.counts.get(_label_key(labels), []))


@dataclass
class MetricSample:
    value: float
    timestamp: float
    labels: Dict[str, str] = field(default_factory=dict)


class PerformanceMonitor:
    """Collects timing samples and counters reported by the cache layer.

    Samples are kept per metric name in a bounded history; every sample is
    also folded into a per-name histogram so distributions survive history
    truncation.
    """

    def __init__(self, max_samples_per_metric: int = 1000, clock: t.Callable[[], float] = time.time) -> None:
        self._max_samples = max(1, int(max_samples_per_metric))
        self._clock = clock
        self._lock = threading.RLock()
        self._samples: Dict[str, Deque[MetricSample]] = {}
        self._counters: Dict[str, Counter] = {}
        self._histograms: Dict[str, Histogram] = {}

    def counter(self, name: str, help: str = "") -> Counter:
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name, help)
            return self._counters[name]

    def histogram(self, name: str, help: str = "", buckets: Optional[List[float]] = None) -> Histogram:
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name, help, buckets=list(buckets or DEFAULT_BUCKETS_MS))
            return self._histograms[name]

    def record_metric(self, name: str, value: float, labels: Optional[Mapping[str, Any]] = None) -> None:
        str_labels = {k: str(v) for k, v in (labels or {}).items()}
        with self._lock:
            history = self._samples.get(name)
            if history is None:
                history = deque(maxlen=self._max_samples)
                self._samples[name] = history
            history.append(MetricSample(value=float(value), timestamp=self._clock(), labels=str_labels))
            self.histogram(name).observe(float(value), **str_labels)

    def increment(self, name: str, value: float = 1.0, **labels: Any) -> None:
        with self._lock:
            self.counter(name).inc(value, **labels)

    def latest(self, name: str) -> Optional[MetricSample]:
        with self._lock:
            history = self._samples.get(name)
            if not history:
                return None
            return history[-1]

    def samples(self, name: str, since: Optional[float] = None) -> List[MetricSample]:
        with self._lock:
            history = list(self._samples.get(name, ()))
        if since is None:
            return history
        return [s for s in history if s.timestamp > since]

    def average(self, name: str) -> float:
        history = self.samples(name)
        if not history:
            return 0.0
        return sum(s.value for s in history) / len(history)

    async def measure(
        self,
        fn: t.Callable[[], t.Awaitable[T]],
        operation_name: Optional[str] = None,
    ) -> Tuple[T, float]:
        """Await ``fn`` and return its result with the elapsed milliseconds.

        The duration is only recorded when ``operation_name`` is given. A
        failing ``fn`` propagates and records nothing.
        """
        start = time.perf_counter()
        result = await fn()
        duration_ms = (time.perf_counter() - start) * 1000.0
        if operation_name:
            self.record_metric(operation_name, duration_ms)
        return result, duration_ms

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "counters": {name: dict(c.values) for name, c in self._counters.items()},
                "samples": {name: len(h) for name, h in self._samples.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()
            self._counters.clear()
            self._histograms.clear()
