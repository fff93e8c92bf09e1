from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

ENV_PREFIX = "JOBHUNT_CACHE_"


@dataclass
class CacheConfig:
    max_entries: int = 1000
    default_ttl_seconds: float = 300.0
    sweep_interval_seconds: float = 60.0


@dataclass
class MonitoringConfig:
    enabled: bool = True
    max_samples_per_metric: int = 1000


@dataclass
class CacheManagerConfig:
    cache: CacheConfig = dataclasses.field(default_factory=CacheConfig)
    monitoring: MonitoringConfig = dataclasses.field(default_factory=MonitoringConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheManagerConfig":
        def build(dc_cls, key):
            values = data.get(key, {})
            return dc_cls(**values)

        return cls(
            cache=build(CacheConfig, "cache"),
            monitoring=build(MonitoringConfig, "monitoring"),
        )

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "CacheManagerConfig":
        env = os.environ if environ is None else environ
        cache_defaults = CacheConfig()
        monitoring_defaults = MonitoringConfig()
        return cls(
            cache=CacheConfig(
                max_entries=_env_int(env, prefix + "MAX_ENTRIES", cache_defaults.max_entries),
                default_ttl_seconds=_env_float(
                    env, prefix + "DEFAULT_TTL_SECONDS", cache_defaults.default_ttl_seconds
                ),
                sweep_interval_seconds=_env_float(
                    env, prefix + "SWEEP_INTERVAL_SECONDS", cache_defaults.sweep_interval_seconds
                ),
            ),
            monitoring=MonitoringConfig(
                enabled=_env_bool(env, prefix + "METRICS_ENABLED", monitoring_defaults.enabled),
                max_samples_per_metric=_env_int(
                    env, prefix + "METRICS_MAX_SAMPLES", monitoring_defaults.max_samples_per_metric
                ),
            ),
        )


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default
