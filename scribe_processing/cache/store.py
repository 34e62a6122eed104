"""TTL cache with usage-weighted eviction and an optional durable mirror.

The in-memory map is authoritative for the lifetime of the process. Entries
written with ``persist=True`` are mirrored to a ``DurableStore`` under
``<key_prefix><key>`` and are hydrated back lazily on an in-memory miss, so a
fresh store over the same backend sees entries written by an earlier one.

Example:
    ```python
    async with CacheStore(durable=SQLiteDurableStore("cache.db")) as cache:
        cached = await cache.get(key)
        if cached is None:
            cached = await summarize(text, language)
            await cache.set(key, cached, ttl=3600, persist=True)
    ```
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .backends import DurableStore
from .common import CacheEntry, CacheStats, serialize_data
from .compression import DEFAULT_COMPRESSION_THRESHOLD, compress_value
from .eviction import EvictionPolicy, WeightedScorePolicy, select_victims

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0
DEFAULT_MAX_SIZE = 100
DEFAULT_MAX_MEMORY_BYTES = 50 * 1024 * 1024
DEFAULT_SWEEP_INTERVAL = 60.0
DEFAULT_KEY_PREFIX = "cache_"


class CacheStore:
    """Asynchronous key-value cache with per-entry TTL.

    All methods must be called from the event loop that owns the store. No
    locks are taken: map mutations never straddle an ``await``.

    Attributes:
        durable: Optional durable backend for persisted entries
        default_ttl: TTL in seconds used when ``set`` gets none
        max_size: Default entry-count ceiling
        max_memory_bytes: Ceiling for the estimated memory footprint
        compression_threshold: Serialized size above which empty fields are stripped
        sweep_interval: Seconds between periodic expiry sweeps
        eviction_policy: Policy scoring entries for eviction
        key_prefix: Prefix of durable keys owned by this store
    """

    def __init__(
        self,
        durable: Optional[DurableStore] = None,
        default_ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        max_memory_bytes: int = DEFAULT_MAX_MEMORY_BYTES,
        compression_threshold: int = DEFAULT_COMPRESSION_THRESHOLD,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        eviction_policy: Optional[EvictionPolicy] = None,
        clock: Callable[[], float] = time.time,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if max_memory_bytes < 1:
            raise ValueError("max_memory_bytes must be positive")
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be positive")

        self.durable = durable
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.max_memory_bytes = max_memory_bytes
        self.compression_threshold = compression_threshold
        self.sweep_interval = sweep_interval
        self.eviction_policy = eviction_policy or WeightedScorePolicy()
        self.key_prefix = key_prefix
        self._clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._memory_usage = 0
        self._sweep_task: Optional[asyncio.Task] = None

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._sets = 0

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> "CacheStore":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def start(self) -> None:
        """Start the periodic sweep on the running loop. Idempotent."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.debug(f"Cache sweep started (every {self.sweep_interval}s)")

    async def close(self) -> None:
        """Stop the periodic sweep."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}")

    # ------------------------------------------------------------------ #
    # Public operations
    # ------------------------------------------------------------------ #

    async def set(
        self,
        key: str,
        data: Any,
        ttl: Optional[float] = None,
        max_size: Optional[int] = None,
        persist: bool = False,
        compress: bool = True,
    ) -> None:
        """Insert or overwrite ``key``.

        Args:
            key: Cache key
            data: JSON-serializable value
            ttl: Lifetime in seconds, defaults to ``default_ttl``
            max_size: Entry-count ceiling for this call, defaults to ``max_size``
            persist: Mirror the entry to the durable store
            compress: Allow stripping empty fields from large payloads
        """
        entry_ttl = self.default_ttl if ttl is None else ttl
        if entry_ttl <= 0:
            raise ValueError("ttl must be positive")
        size_limit = self.max_size if max_size is None else max_size
        if size_limit < 1:
            raise ValueError("max_size must be at least 1")

        if compress:
            data, compressed = compress_value(data, self.compression_threshold)
            if compressed:
                logger.debug(f"Stripped empty fields from large cache payload '{key}'")

        now = self._clock()
        entry = CacheEntry(
            key=key,
            data=data,
            created_at=now,
            ttl=entry_ttl,
            size=len(serialize_data(data)),
            persist=persist,
        )

        await self._ensure_capacity(entry, size_limit)
        self._store(entry)
        self._sets += 1

        if persist:
            await self._durable_set(entry)
        elif self.durable is not None:
            # An older persisted value must not outlive this overwrite
            await self._durable_delete(key)

    async def get(self, key: str) -> Any:
        """Return cached data, or None on a miss or an expired entry."""
        entry = await self._lookup(key)
        if entry is None:
            self._misses += 1
            return None

        entry.touch(self._clock())
        self._hits += 1
        return entry.data

    async def has(self, key: str) -> bool:
        """Whether a live entry exists. Access statistics are not touched."""
        return await self._lookup(key) is not None

    async def delete(self, key: str) -> bool:
        """Remove ``key`` from memory and the durable store.

        Returns:
            True if an in-memory entry was removed
        """
        removed = self._discard(key) is not None
        await self._durable_delete(key)
        return removed

    async def clear(self) -> int:
        """Remove every entry, including all durable keys under the prefix.

        Returns:
            Number of in-memory entries removed
        """
        count = len(self._entries)
        self._entries.clear()
        self._memory_usage = 0

        if self.durable is not None:
            try:
                keys = await self.durable.list_keys(self.key_prefix)
            except Exception as e:
                logger.warning(f"Failed to list persisted cache keys: {e}")
                keys = []
            for storage_key in keys:
                await self._durable_delete(self._logical_key(storage_key))

        logger.info(f"Cache cleared: removed {count} entries")
        return count

    async def sweep(self) -> int:
        """Remove every expired in-memory entry and its durable mirror.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._discard(key)
            await self._durable_delete(key)

        if expired:
            logger.info(f"Cache sweep: removed {len(expired)} expired entries")
        return len(expired)

    async def warm(self) -> int:
        """Eagerly load every live persisted entry into memory.

        Returns:
            Number of entries loaded
        """
        if self.durable is None:
            return 0

        try:
            storage_keys = await self.durable.list_keys(self.key_prefix)
        except Exception as e:
            logger.warning(f"Failed to load persisted cache: {e}")
            return 0

        loaded = 0
        for storage_key in storage_keys:
            key = self._logical_key(storage_key)
            if key in self._entries:
                continue
            if await self._hydrate(key) is not None:
                loaded += 1

        logger.info(f"Cache warmed with {loaded} persisted entries")
        return loaded

    def get_stats(self) -> CacheStats:
        """Derived, read-only snapshot of the cache state."""
        entries = list(self._entries.values())
        lookups = self._hits + self._misses
        created = [entry.created_at for entry in entries]

        return CacheStats(
            size=len(entries),
            hit_rate=self._hits / lookups if lookups else 0.0,
            memory_usage=self._memory_usage,
            oldest_item=min(created) if created else None,
            newest_item=max(created) if created else None,
            average_access_count=(
                sum(entry.access_count for entry in entries) / len(entries) if entries else 0.0
            ),
            eviction_rate=self._evictions / self._sets if self._sets else 0.0,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            sets=self._sets,
            extra={"eviction_policy": self.eviction_policy.name},
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> List[str]:
        return list(self._entries)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _storage_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _logical_key(self, storage_key: str) -> str:
        return storage_key[len(self.key_prefix):]

    def _store(self, entry: CacheEntry) -> None:
        self._discard(entry.key)
        self._entries[entry.key] = entry
        self._memory_usage += entry.estimated_bytes

    def _discard(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._memory_usage -= entry.estimated_bytes
        return entry

    async def _lookup(self, key: str) -> Optional[CacheEntry]:
        """Live entry for ``key`` after expiry checks and lazy hydration."""
        entry = self._entries.get(key)
        if entry is None:
            return await self._hydrate(key)

        if entry.is_expired(self._clock()):
            self._discard(key)
            await self._durable_delete(key)
            logger.debug(f"Cache entry '{key}' expired")
            return None
        return entry

    async def _hydrate(self, key: str) -> Optional[CacheEntry]:
        """Load ``key`` from the durable store into memory if it is still live."""
        if self.durable is None:
            return None

        try:
            raw = await self.durable.get(self._storage_key(key))
        except Exception as e:
            logger.warning(f"Failed to load cache item from durable store: {e}")
            return None
        if raw is None:
            return None

        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable persisted cache entry '{key}': {e}")
            await self._durable_delete(key)
            return None

        if entry.is_expired(self._clock()):
            await self._durable_delete(key)
            return None

        # Another coroutine may have written the key while we awaited I/O
        current = self._entries.get(key)
        if current is not None:
            return current

        entry.key = key
        await self._ensure_capacity(entry, self.max_size)
        self._store(entry)
        logger.debug(f"Hydrated cache entry '{key}' from durable store")
        return entry

    def _over_capacity(self, entry: CacheEntry, size_limit: int) -> bool:
        existing = self._entries.get(entry.key)
        if existing is None and len(self._entries) + 1 > size_limit:
            return True
        projected = self._memory_usage + entry.estimated_bytes
        if existing is not None:
            projected -= existing.estimated_bytes
        return projected > self.max_memory_bytes

    async def _ensure_capacity(self, entry: CacheEntry, size_limit: int) -> None:
        if self._over_capacity(entry, size_limit):
            await self.check_capacity_and_evict()

    async def check_capacity_and_evict(self) -> int:
        """Evict the lowest-scoring quarter of the entries.

        Returns:
            Number of entries evicted
        """
        victims = select_victims(list(self._entries.values()), self.eviction_policy, self._clock())
        for victim in victims:
            self._discard(victim.key)
        self._evictions += len(victims)

        for victim in victims:
            await self._durable_delete(victim.key)

        if victims:
            logger.info(
                f"Evicted {len(victims)} cache entries ({self.eviction_policy.name} policy)"
            )
        return len(victims)

    async def _durable_set(self, entry: CacheEntry) -> None:
        if self.durable is None:
            return
        try:
            await self.durable.set(self._storage_key(entry.key), entry.to_json())
        except Exception as e:
            logger.warning(f"Failed to persist cache item '{entry.key}': {e}")

    async def _durable_delete(self, key: str) -> None:
        if self.durable is None:
            return
        try:
            await self.durable.delete(self._storage_key(key))
        except Exception as e:
            logger.warning(f"Failed to remove cache item '{key}' from durable store: {e}")
