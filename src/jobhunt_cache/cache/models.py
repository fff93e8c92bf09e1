from __future__ import annotations

import enum
import typing as t
from dataclasses import dataclass, field


class CachePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class CacheEntry:
    value: t.Any
    expires_at: float
    created_at: float
    tags: t.FrozenSet[str] = frozenset()
    priority: CachePriority = CachePriority.MEDIUM
    access_count: int = 1
    last_accessed: float = 0.0

    def is_expired(self, now: float) -> bool:
        # Shared by read-time expiry and the sweeper.
        return now > self.expires_at

    def touch(self, now: float) -> None:
        self.access_count += 1
        self.last_accessed = now


@dataclass
class CacheStats:
    total_entries: int
    expired_entries: int
    active_entries: int
    max_entries: int
    by_priority: t.Dict[str, int] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return self.hits / lookups
