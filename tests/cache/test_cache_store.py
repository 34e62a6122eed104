"""Tests for CacheStore: TTL, eviction, compression, statistics and persistence."""
from __future__ import annotations

import asyncio
import json

import pytest

from scribe_processing.cache import CacheEntry, CacheStore, InMemoryDurableStore, LRUPolicy
from scribe_processing.cache.backends import DurableStore
from scribe_processing.errors import DurableStoreError


class FailingDurableStore(DurableStore):
    """Durable backend that rejects every call."""

    def __init__(self):
        self.attempts = 0

    async def _fail(self, operation, key=None):
        self.attempts += 1
        raise DurableStoreError(operation, key, OSError("read-only file system"))

    async def get(self, key):
        await self._fail("get", key)

    async def set(self, key, value):
        await self._fail("set", key)

    async def delete(self, key):
        await self._fail("delete", key)

    async def list_keys(self, prefix=""):
        await self._fail("list_keys")


@pytest.fixture
def cache(fake_clock):
    return CacheStore(clock=fake_clock)


class TestConstruction:
    """Tests for constructor validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"default_ttl": 0},
            {"max_size": 0},
            {"max_memory_bytes": 0},
            {"sweep_interval": -1},
        ],
    )
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            CacheStore(**kwargs)

    def test_defaults(self):
        cache = CacheStore()
        assert cache.default_ttl == 300.0
        assert cache.max_size == 100
        assert cache.max_memory_bytes == 50 * 1024 * 1024
        assert cache.compression_threshold == 10 * 1024
        assert cache.eviction_policy.name == "weighted"


class TestGetSet:
    """Tests for basic reads and writes."""

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache):
        await cache.set("summary:1", {"summary": "Meeting notes"})
        assert await cache.get("summary:1") == {"summary": "Meeting notes"}

    @pytest.mark.asyncio
    async def test_missing_key(self, cache):
        assert await cache.get("nope") is None

    @pytest.mark.asyncio
    async def test_overwrite_replaces_entry(self, cache):
        await cache.set("k", "first")
        await cache.set("k", "second")
        assert await cache.get("k") == "second"
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_invalid_ttl_rejected(self, cache):
        with pytest.raises(ValueError):
            await cache.set("k", "v", ttl=0)

    @pytest.mark.asyncio
    async def test_get_records_access(self, cache, fake_clock):
        await cache.set("k", "v")
        fake_clock.advance(5)
        await cache.get("k")
        await cache.get("k")

        entry = cache._entries["k"]
        assert entry.access_count == 2
        assert entry.last_accessed_at == fake_clock.now

    @pytest.mark.asyncio
    async def test_has_does_not_touch_statistics(self, cache):
        await cache.set("k", "v")
        assert await cache.has("k") is True
        assert await cache.has("missing") is False

        stats = cache.get_stats()
        assert stats.hits == 0
        assert stats.misses == 0
        assert cache._entries["k"].access_count == 0

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.set("k", "v")
        assert await cache.delete("k") is True
        assert await cache.delete("k") is False
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_clear(self, cache):
        for i in range(3):
            await cache.set(f"k{i}", i)
        assert await cache.clear() == 3
        assert len(cache) == 0
        assert cache.get_stats().memory_usage == 0


class TestExpiry:
    """Tests for TTL handling."""

    @pytest.mark.asyncio
    async def test_entry_alive_at_exact_ttl(self, cache, fake_clock):
        """Expiry is strict: an entry aged exactly its TTL is still served."""
        await cache.set("k", "v", ttl=10)
        fake_clock.advance(10)
        assert await cache.get("k") == "v"

    @pytest.mark.asyncio
    async def test_entry_expired_after_ttl(self, cache, fake_clock):
        await cache.set("k", "v", ttl=10)
        fake_clock.advance(10.001)
        assert await cache.get("k") is None
        assert "k" not in cache

    @pytest.mark.asyncio
    async def test_default_ttl_applies(self, fake_clock):
        cache = CacheStore(default_ttl=60, clock=fake_clock)
        await cache.set("k", "v")
        fake_clock.advance(61)
        assert await cache.has("k") is False

    @pytest.mark.asyncio
    async def test_access_does_not_extend_lifetime(self, cache, fake_clock):
        await cache.set("k", "v", ttl=10)
        fake_clock.advance(8)
        await cache.get("k")
        fake_clock.advance(3)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(self, cache, fake_clock):
        await cache.set("short", 1, ttl=5)
        await cache.set("long", 2, ttl=500)
        fake_clock.advance(6)

        assert await cache.sweep() == 1
        assert cache.keys() == ["long"]

    @pytest.mark.asyncio
    async def test_periodic_sweep(self, fake_clock):
        cache = CacheStore(clock=fake_clock, sweep_interval=0.01)
        async with cache:
            assert cache.running is True
            await cache.set("k", "v", ttl=1)
            fake_clock.advance(2)
            for _ in range(50):
                if "k" not in cache:
                    break
                await asyncio.sleep(0.01)
            assert "k" not in cache
        assert cache.running is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, cache):
        cache.start()
        task = cache._sweep_task
        cache.start()
        assert cache._sweep_task is task
        await cache.close()
        await cache.close()


class TestEviction:
    """Tests for capacity-triggered eviction."""

    @pytest.mark.asyncio
    async def test_full_cache_evicts_lowest_score(self, fake_clock):
        cache = CacheStore(max_size=4, clock=fake_clock)
        for key in ("a", "b", "c", "d"):
            await cache.set(key, "x")
        for key in ("a", "b", "c"):
            await cache.get(key)

        await cache.set("e", "x")

        assert sorted(cache.keys()) == ["a", "b", "c", "e"]
        assert cache.get_stats().evictions == 1

    @pytest.mark.asyncio
    async def test_quarter_rounded_up_is_evicted(self, fake_clock):
        cache = CacheStore(max_size=10, clock=fake_clock)
        for i in range(10):
            await cache.set(f"k{i}", i)
        await cache.set("new", 99)
        # ceil(10 * 0.25) = 3 victims, ties broken by insertion order
        assert cache.keys() == ["k3", "k4", "k5", "k6", "k7", "k8", "k9", "new"]

    @pytest.mark.asyncio
    async def test_overwrite_does_not_trigger_size_eviction(self, fake_clock):
        cache = CacheStore(max_size=2, clock=fake_clock)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.set("b", 3)
        assert sorted(cache.keys()) == ["a", "b"]
        assert cache.get_stats().evictions == 0

    @pytest.mark.asyncio
    async def test_per_call_max_size(self, fake_clock):
        cache = CacheStore(max_size=100, clock=fake_clock)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.set("c", 3, max_size=2)
        assert cache.keys() == ["b", "c"]

    @pytest.mark.asyncio
    async def test_memory_limit_triggers_eviction(self, fake_clock):
        value = "x" * 18  # serialized as 20 chars, estimated at 40 bytes
        cache = CacheStore(max_memory_bytes=100, clock=fake_clock)
        await cache.set("a", value)
        await cache.set("b", value)
        assert cache.get_stats().memory_usage == 80

        await cache.set("c", value)
        assert cache.keys() == ["b", "c"]
        assert cache.get_stats().memory_usage == 80

    @pytest.mark.asyncio
    async def test_custom_policy(self, fake_clock):
        cache = CacheStore(max_size=4, eviction_policy=LRUPolicy(), clock=fake_clock)
        for key in ("a", "b", "c", "d"):
            await cache.set(key, key)
            fake_clock.advance(1)
        await cache.get("a")
        await cache.set("e", "e")
        assert "b" not in cache
        assert "a" in cache

    @pytest.mark.asyncio
    async def test_explicit_eviction_on_empty_cache(self, cache):
        assert await cache.check_capacity_and_evict() == 0


class TestCompression:
    """Tests for the empty-field stripping on large payloads."""

    @pytest.mark.asyncio
    async def test_large_payload_loses_empty_fields(self, fake_clock):
        cache = CacheStore(compression_threshold=100, clock=fake_clock)
        await cache.set("k", {"text": "t" * 200, "language": None, "notes": ""})
        assert await cache.get("k") == {"text": "t" * 200}

    @pytest.mark.asyncio
    async def test_small_payload_kept_verbatim(self, fake_clock):
        cache = CacheStore(compression_threshold=1000, clock=fake_clock)
        await cache.set("k", {"text": "short", "language": None})
        assert await cache.get("k") == {"text": "short", "language": None}

    @pytest.mark.asyncio
    async def test_compression_can_be_disabled_per_call(self, fake_clock):
        cache = CacheStore(compression_threshold=100, clock=fake_clock)
        payload = {"text": "t" * 200, "detected_language": None}
        await cache.set("k", payload, compress=False)
        assert await cache.get("k") == payload


class TestStats:
    """Tests for get_stats."""

    @pytest.mark.asyncio
    async def test_empty_cache(self, cache):
        stats = cache.get_stats()
        assert stats.size == 0
        assert stats.hit_rate == 0.0
        assert stats.oldest_item is None
        assert stats.newest_item is None
        assert stats.eviction_rate == 0.0

    @pytest.mark.asyncio
    async def test_counters_and_derived_values(self, cache, fake_clock):
        start = fake_clock.now
        await cache.set("a", "v")
        fake_clock.advance(10)
        await cache.set("b", "v")

        await cache.get("a")
        await cache.get("a")
        await cache.get("b")
        await cache.get("missing")

        stats = cache.get_stats()
        assert stats.size == 2
        assert stats.hits == 3
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(0.75)
        assert stats.average_access_count == pytest.approx(1.5)
        assert stats.oldest_item == start
        assert stats.newest_item == start + 10
        assert stats.memory_usage == 2 * 2 * len('"v"')
        assert stats.sets == 2

    @pytest.mark.asyncio
    async def test_eviction_rate(self, fake_clock):
        cache = CacheStore(max_size=2, clock=fake_clock)
        for key in ("a", "b", "c", "d"):
            await cache.set(key, 1)
        stats = cache.get_stats()
        assert stats.evictions == 2
        assert stats.eviction_rate == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_to_dict(self, cache):
        await cache.set("a", "v")
        data = cache.get_stats().to_dict()
        assert data["size"] == 1
        assert data["eviction_policy"] == "weighted"
        assert "memory_usage_mb" in data


class TestPersistence:
    """Tests for the durable mirror and lazy hydration."""

    @pytest.mark.asyncio
    async def test_persisted_entry_visible_to_new_store(self, fake_clock):
        durable = InMemoryDurableStore()
        first = CacheStore(durable=durable, clock=fake_clock)
        await first.set("summary:1", {"summary": "done"}, ttl=3600, persist=True)
        assert "cache_summary:1" in durable

        second = CacheStore(durable=durable, clock=fake_clock)
        assert await second.get("summary:1") == {"summary": "done"}
        assert "summary:1" in second

    @pytest.mark.asyncio
    async def test_non_persisted_entry_stays_in_memory(self, fake_clock):
        durable = InMemoryDurableStore()
        cache = CacheStore(durable=durable, clock=fake_clock)
        await cache.set("k", "v")
        assert len(durable) == 0

    @pytest.mark.asyncio
    async def test_expired_persisted_entry_removed_on_read(self, fake_clock):
        durable = InMemoryDurableStore()
        await CacheStore(durable=durable, clock=fake_clock).set("k", "v", ttl=5, persist=True)

        fake_clock.advance(6)
        fresh = CacheStore(durable=durable, clock=fake_clock)
        assert await fresh.get("k") is None
        assert "cache_k" not in durable

    @pytest.mark.asyncio
    async def test_corrupt_persisted_entry_discarded(self, fake_clock):
        durable = InMemoryDurableStore({"cache_k": "{not json"})
        cache = CacheStore(durable=durable, clock=fake_clock)
        assert await cache.get("k") is None
        assert "cache_k" not in durable

    @pytest.mark.asyncio
    async def test_delete_removes_durable_copy(self, fake_clock):
        durable = InMemoryDurableStore()
        cache = CacheStore(durable=durable, clock=fake_clock)
        await cache.set("k", "v", persist=True)
        await cache.delete("k")
        assert len(durable) == 0

    @pytest.mark.asyncio
    async def test_clear_removes_only_prefixed_keys(self, fake_clock):
        durable = InMemoryDurableStore({"foreign": "x"})
        cache = CacheStore(durable=durable, clock=fake_clock)
        await cache.set("a", 1, persist=True)
        await cache.set("b", 2, persist=True)

        await cache.clear()
        assert await durable.list_keys() == ["foreign"]

    @pytest.mark.asyncio
    async def test_evicted_persisted_entry_leaves_durable_store(self, fake_clock):
        durable = InMemoryDurableStore()
        cache = CacheStore(durable=durable, max_size=1, clock=fake_clock)
        await cache.set("a", 1, persist=True)
        await cache.set("b", 2, persist=True)
        assert await durable.list_keys() == ["cache_b"]

    @pytest.mark.asyncio
    async def test_non_persisted_overwrite_drops_durable_copy(self, fake_clock):
        durable = InMemoryDurableStore()
        cache = CacheStore(durable=durable, clock=fake_clock)
        await cache.set("k", "v1", persist=True)
        await cache.set("k", "v2")

        assert "cache_k" not in durable
        assert await cache.get("k") == "v2"
        assert await CacheStore(durable=durable, clock=fake_clock).get("k") is None

    @pytest.mark.asyncio
    async def test_evicted_overwrite_not_rehydrated(self, fake_clock):
        durable = InMemoryDurableStore()
        cache = CacheStore(durable=durable, max_size=1, clock=fake_clock)
        await cache.set("a", 1, persist=True)
        await cache.set("a", 2)
        await cache.set("b", 3)

        assert "a" not in cache
        assert await cache.get("a") is None
        assert len(durable) == 0

    @pytest.mark.asyncio
    async def test_sweep_leaves_no_durable_copy(self, fake_clock):
        durable = InMemoryDurableStore()
        cache = CacheStore(durable=durable, clock=fake_clock)
        await cache.set("k", "v1", ttl=5, persist=True)
        await cache.set("k", "v2", ttl=5)

        fake_clock.advance(6)
        assert await cache.sweep() == 1
        assert len(durable) == 0
        assert await CacheStore(durable=durable, clock=fake_clock).get("k") is None

    @pytest.mark.asyncio
    async def test_warm_loads_live_entries(self, fake_clock):
        durable = InMemoryDurableStore()
        writer = CacheStore(durable=durable, clock=fake_clock)
        await writer.set("live", 1, ttl=100, persist=True)
        await writer.set("dying", 2, ttl=1, persist=True)
        fake_clock.advance(2)

        reader = CacheStore(durable=durable, clock=fake_clock)
        assert await reader.warm() == 1
        assert reader.keys() == ["live"]

    @pytest.mark.asyncio
    async def test_stored_format(self, fake_clock):
        durable = InMemoryDurableStore()
        cache = CacheStore(durable=durable, clock=fake_clock)
        await cache.set("k", {"a": 1}, ttl=30, persist=True)

        entry = CacheEntry.from_json(await durable.get("cache_k"))
        assert entry.data == {"a": 1}
        assert entry.ttl == 30
        assert entry.created_at == fake_clock.now
        assert json.loads(await durable.get("cache_k"))["persist"] is True

    @pytest.mark.asyncio
    async def test_durable_failures_are_swallowed(self, fake_clock, caplog):
        durable = FailingDurableStore()
        cache = CacheStore(durable=durable, clock=fake_clock)

        await cache.set("k", "v", persist=True)
        assert await cache.get("k") == "v"
        assert await cache.get("missing") is None
        assert await cache.delete("k") is True
        assert await cache.clear() == 0
        assert await cache.warm() == 0

        assert durable.attempts > 0
        assert "Failed to persist cache item 'k'" in caplog.text
