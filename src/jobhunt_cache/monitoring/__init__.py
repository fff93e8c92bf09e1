"""Metrics recording for the cache layer."""

from .metrics import Counter, Histogram, MetricSample, PerformanceMonitor

__all__ = [
    "Counter",
    "Histogram",
    "MetricSample",
    "PerformanceMonitor",
]
