"""Eviction policies for the cache store.

Each policy scores an entry; the store removes the lowest-scoring quarter of
its entries when a capacity limit would be exceeded. Scores are only compared
within one eviction pass, so policies are free to pick any scale.

Available policies:
- WeightedScorePolicy: access frequency, remaining lifetime, recency and size
- LRUPolicy: least recently accessed first
- LFUPolicy: least frequently accessed first
- SizeAwarePolicy: largest entries first
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from .common import CacheEntry

EVICTION_FRACTION = 0.25


class EvictionPolicy(ABC):
    """Scores cache entries; lower scores are evicted first."""

    name = "base"

    @abstractmethod
    def score(self, entry: CacheEntry, now: float) -> float:
        """Score an entry at time ``now`` (epoch seconds)."""


class WeightedScorePolicy(EvictionPolicy):
    """Default policy combining frequency, freshness, recency and size.

    All time quantities are in milliseconds::

        access_count * 1000
        + max(0, ttl - age) * 0.1
        + max(0, 1h - since_last_access) * 0.5
        - size * 0.001
    """

    name = "weighted"

    access_weight = 1000.0
    remaining_ttl_weight = 0.1
    recency_weight = 0.5
    recency_window_ms = 3_600_000.0
    size_weight = 0.001

    def score(self, entry: CacheEntry, now: float) -> float:
        age_ms = (now - entry.created_at) * 1000.0
        ttl_ms = entry.ttl * 1000.0
        since_access_ms = (now - entry.last_accessed_at) * 1000.0

        return (
            entry.access_count * self.access_weight
            + max(0.0, ttl_ms - age_ms) * self.remaining_ttl_weight
            + max(0.0, self.recency_window_ms - since_access_ms) * self.recency_weight
            - entry.size * self.size_weight
        )


class LRUPolicy(EvictionPolicy):
    name = "lru"

    def score(self, entry: CacheEntry, now: float) -> float:
        return entry.last_accessed_at


class LFUPolicy(EvictionPolicy):
    name = "lfu"

    def score(self, entry: CacheEntry, now: float) -> float:
        return float(entry.access_count)


class SizeAwarePolicy(EvictionPolicy):
    name = "size"

    def score(self, entry: CacheEntry, now: float) -> float:
        return -float(entry.size)


_POLICIES: Dict[str, type] = {
    WeightedScorePolicy.name: WeightedScorePolicy,
    LRUPolicy.name: LRUPolicy,
    LFUPolicy.name: LFUPolicy,
    SizeAwarePolicy.name: SizeAwarePolicy,
}


def get_policy(name: str) -> EvictionPolicy:
    """Instantiate a policy by name (weighted, lru, lfu, size)."""
    try:
        return _POLICIES[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown eviction policy '{name}'. Available: {', '.join(sorted(_POLICIES))}"
        ) from None


def eviction_count(entry_count: int, fraction: float = EVICTION_FRACTION) -> int:
    """Number of entries to remove from a store holding ``entry_count``."""
    if entry_count <= 0:
        return 0
    return math.ceil(entry_count * fraction)


def select_victims(
    entries: Sequence[CacheEntry],
    policy: EvictionPolicy,
    now: float,
    fraction: float = EVICTION_FRACTION,
) -> List[CacheEntry]:
    """Pick the lowest-scoring ``ceil(len(entries) * fraction)`` entries.

    ``sorted`` is stable, so equal scores keep the order of ``entries``
    (insertion order for the store's dict).
    """
    count = eviction_count(len(entries), fraction)
    if count == 0:
        return []
    ranked = sorted(entries, key=lambda entry: policy.score(entry, now))
    return ranked[:count]
