"""
Tests for the LRU data cache and its JSON snapshots.
"""

import asyncio
import json
from datetime import date, datetime, timedelta

from eohub.models import Depth
from eohub.services.cache import DataCache, make_cache_key
from eohub.services.persistence import CacheSnapshotStore

from conftest import make_response


class TestCacheKey:
    """Tests for make_cache_key."""

    def test_rounds_to_three_decimals(self) -> None:
        """Coordinates that differ beyond 3 decimals share a key."""
        a = make_cache_key("SMAP_L3", 37.50001, 127.00004, None, Depth.SURFACE)
        b = make_cache_key("SMAP_L3", 37.5, 127.0, None, Depth.SURFACE)
        assert a == b

    def test_distinct_parameters_distinct_keys(self) -> None:
        """Product, date and depth all take part in the key."""
        base = make_cache_key("SMAP_L3", 37.5, 127.0)
        assert base != make_cache_key("SMAP_L4", 37.5, 127.0)
        assert base != make_cache_key("SMAP_L3", 37.5, 127.0, date(2024, 5, 1))
        assert base != make_cache_key("SMAP_L3", 37.5, 127.0, None, Depth.ROOT_ZONE)
        assert base != make_cache_key("SMAP_L3", 37.51, 127.0)

    def test_negative_zero_normalized(self) -> None:
        """-0.0 and 0.0 produce the same key."""
        assert make_cache_key("MODIS_NDVI", -0.0001, 0.0) == make_cache_key(
            "MODIS_NDVI", 0.0, 0.0
        )

    def test_depth_enum_and_string_agree(self) -> None:
        assert make_cache_key("SMAP_L4", 1.0, 2.0, None, Depth.ROOT_ZONE) == make_cache_key(
            "SMAP_L4", 1.0, 2.0, None, "rootZone"
        )


class TestLRU:
    """Tests for eviction and recency."""

    def test_evicts_least_recently_used(self) -> None:
        """Inserting into a full cache removes exactly the LRU key."""

        async def scenario():
            cache = DataCache(max_size=2)
            await cache.set("k1", make_response())
            await cache.set("k2", make_response())
            await cache.set("k3", make_response())
            return cache

        cache = asyncio.run(scenario())
        assert len(cache) == 2
        assert not cache.has("k1")
        assert cache.has("k2") and cache.has("k3")
        assert cache.get_stats().evictions == 1

    def test_get_updates_recency(self) -> None:
        """A read moves the key to most recently used."""

        async def scenario():
            cache = DataCache(max_size=2)
            await cache.set("k1", make_response())
            await cache.set("k2", make_response())
            assert await cache.get("k1") is not None
            await cache.set("k3", make_response())
            return cache

        cache = asyncio.run(scenario())
        assert cache.has("k1")
        assert not cache.has("k2")
        assert cache.keys() == ["k1", "k3"]

    def test_overwrite_does_not_evict(self) -> None:
        """Replacing an existing key in a full cache keeps everything."""

        async def scenario():
            cache = DataCache(max_size=2)
            await cache.set("k1", make_response())
            await cache.set("k2", make_response())
            await cache.set("k1", make_response(values=[0.4]))
            return cache

        cache = asyncio.run(scenario())
        assert len(cache) == 2
        assert cache.keys() == ["k2", "k1"]

    def test_size_never_exceeds_capacity(self) -> None:
        async def scenario():
            cache = DataCache(max_size=3)
            for i in range(10):
                await cache.set(f"k{i}", make_response())
                assert len(cache) <= 3
            return cache

        cache = asyncio.run(scenario())
        assert cache.keys() == ["k7", "k8", "k9"]

    def test_hit_and_miss_stats(self) -> None:
        async def scenario():
            cache = DataCache(max_size=2)
            await cache.set("k1", make_response())
            await cache.get("k1")
            await cache.get("missing")
            return cache.get_stats()

        stats = asyncio.run(scenario())
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.to_dict()["hit_rate"] == "50.00%"


class TestCleanup:
    """Tests for age-based cleanup."""

    def test_removes_old_entries_only(self) -> None:
        """Entries older than max age go, younger ones stay."""
        now = datetime.now()

        async def scenario():
            cache = DataCache(max_size=10)
            await cache.set("old", make_response(), cached_at=now - timedelta(hours=25))
            await cache.set("new", make_response(), cached_at=now - timedelta(hours=1))
            removed = await cache.cleanup(timedelta(hours=24))
            return cache, removed

        cache, removed = asyncio.run(scenario())
        assert removed == 1
        assert cache.keys() == ["new"]

    def test_max_age_boundary(self) -> None:
        """One second past max age is removed, one second short is kept."""
        now = datetime.now()
        max_age = timedelta(hours=24)

        async def scenario():
            cache = DataCache(max_size=10)
            await cache.set("past", make_response(), cached_at=now - (max_age + timedelta(seconds=1)))
            await cache.set("short", make_response(), cached_at=now - (max_age - timedelta(seconds=1)))
            removed = await cache.cleanup(max_age)
            return cache, removed

        cache, removed = asyncio.run(scenario())
        assert removed == 1
        assert cache.keys() == ["short"]

    def test_offline_priority_survives_until_retention(self) -> None:
        """Priority entries outlive max age but not the offline retention."""
        now = datetime.now()

        async def scenario():
            cache = DataCache(max_size=10, offline_retention=timedelta(days=7))
            await cache.set(
                "kept", make_response(), offline_priority=True, cached_at=now - timedelta(days=2)
            )
            await cache.set(
                "too_old", make_response(), offline_priority=True, cached_at=now - timedelta(days=8)
            )
            await cache.set("plain", make_response(), cached_at=now - timedelta(days=2))
            await cache.cleanup(timedelta(hours=24))
            return cache

        cache = asyncio.run(scenario())
        assert cache.keys() == ["kept"]

    def test_prioritize_and_offline_entries(self) -> None:
        now = datetime.now()

        async def scenario():
            cache = DataCache(max_size=10)
            await cache.set("recent", make_response())
            await cache.set("old", make_response(), cached_at=now - timedelta(hours=5))
            await cache.set("flagged", make_response(), cached_at=now - timedelta(hours=5))
            flagged = await cache.prioritize_for_offline(["flagged", "missing"])
            return cache, flagged

        cache, flagged = asyncio.run(scenario())
        assert flagged == 1
        assert {e.key for e in cache.get_offline_entries()} == {"recent", "flagged"}


class TestPersistence:
    """Tests for snapshot write and rehydration."""

    def test_reload_restores_entries_and_order(self, tmp_path) -> None:
        """A new cache on the same file sees the same keys in LRU order."""
        path = tmp_path / "cache.json"

        async def scenario():
            first = DataCache(max_size=5, store=CacheSnapshotStore(path))
            await first.set("k1", make_response(values=[0.1]))
            await first.set("k2", make_response(values=[0.2]))
            await first.get("k1")

            second = DataCache(max_size=5, store=CacheSnapshotStore(path))
            count = await second.load()
            entry = await second.get("k2")
            return second, count, entry

        second, count, entry = asyncio.run(scenario())
        assert count == 2
        assert entry.payload.values == [0.2]
        assert second.keys() == ["k1", "k2"]

    def test_snapshot_format(self, tmp_path) -> None:
        path = tmp_path / "cache.json"

        async def scenario():
            cache = DataCache(max_size=5, store=CacheSnapshotStore(path))
            await cache.set("k1", make_response())

        asyncio.run(scenario())
        data = json.loads(path.read_text())
        assert set(data) == {"entries", "access_order", "timestamp"}
        assert data["entries"][0][0] == "k1"
        assert data["access_order"] == ["k1"]

    def test_snapshot_is_bounded(self, tmp_path) -> None:
        """Only the most recent entries younger than the age limit are written."""
        store = CacheSnapshotStore(tmp_path / "cache.json", max_entries=2)
        now = datetime.now()

        async def scenario():
            cache = DataCache(max_size=10, store=store)
            await cache.set("ancient", make_response(), cached_at=now - timedelta(hours=7))
            for key in ("a", "b", "c"):
                await cache.set(key, make_response())

        asyncio.run(scenario())
        entries, order = store.read()
        assert order == ["b", "c"]
        assert [e.key for e in entries] == ["b", "c"]

    def test_corrupt_snapshot_starts_empty(self, tmp_path) -> None:
        """An unreadable snapshot is discarded instead of failing startup."""
        path = tmp_path / "cache.json"
        path.write_text("{not json")

        async def scenario():
            cache = DataCache(max_size=5, store=CacheSnapshotStore(path))
            return await cache.load(), cache

        count, cache = asyncio.run(scenario())
        assert count == 0
        assert len(cache) == 0

    def test_undecodable_snapshot_starts_empty(self, tmp_path) -> None:
        path = tmp_path / "cache.json"
        path.write_bytes(b'{"entries": ["\xff\xfe"]}')

        async def scenario():
            cache = DataCache(max_size=5, store=CacheSnapshotStore(path))
            return await cache.load(), cache

        count, cache = asyncio.run(scenario())
        assert count == 0
        assert len(cache) == 0

    def test_export_import_round_trip(self) -> None:
        async def scenario():
            source = DataCache(max_size=5)
            await source.set("k1", make_response())
            await source.set("k2", make_response())
            snapshot = source.export_snapshot()

            target = DataCache(max_size=5)
            imported = await target.import_snapshot(snapshot)
            return target, imported

        target, imported = asyncio.run(scenario())
        assert imported == 2
        assert target.keys() == ["k1", "k2"]
