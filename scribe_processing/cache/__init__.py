"""Caching for collaborator results.

Components:
    - CacheStore: TTL cache with scored eviction and lazy durable hydration
    - EvictionPolicy implementations: weighted (default), LRU, LFU, size-aware
    - DurableStore backends: in-memory, SQLite (WAL), memory-fallback wrapper
    - make_cache_key: content-based keys for collaborator calls
"""

from .backends import DurableStore, FallbackDurableStore, InMemoryDurableStore, SQLiteDurableStore
from .common import CacheEntry, CacheStats, make_cache_key
from .compression import compress_value, strip_empty_fields
from .eviction import (
    EvictionPolicy,
    LFUPolicy,
    LRUPolicy,
    SizeAwarePolicy,
    WeightedScorePolicy,
    get_policy,
    select_victims,
)
from .store import CacheStore

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "DurableStore",
    "EvictionPolicy",
    "FallbackDurableStore",
    "InMemoryDurableStore",
    "LFUPolicy",
    "LRUPolicy",
    "SQLiteDurableStore",
    "SizeAwarePolicy",
    "WeightedScorePolicy",
    "compress_value",
    "get_policy",
    "make_cache_key",
    "select_victims",
    "strip_empty_fields",
]
