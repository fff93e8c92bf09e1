"""Utility module for configuration."""

from .config import CacheConfig, CacheManagerConfig, MonitoringConfig

__all__ = [
    "CacheConfig",
    "CacheManagerConfig",
    "MonitoringConfig",
]
