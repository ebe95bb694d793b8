"""
DataCache - Async LRU cache of data responses with TTL cleanup and persistence.

Features:
- Bounded size with least-recently-used eviction
- Age-based cleanup that spares offline-priority entries
- Snapshot to disk after every mutation, rehydration on startup
- All mutations serialized by one asyncio lock
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from loguru import logger

from eohub.exceptions import CacheCorruptionError
from eohub.models import CacheEntry, DataResponse, Depth
from eohub.services.persistence import CacheSnapshotStore

DEFAULT_CLEANUP_AGE = timedelta(hours=24)


def make_cache_key(
    product: str,
    latitude: float,
    longitude: float,
    reference_date: date | None = None,
    depth: Depth | str | None = None,
) -> str:
    """
    Build the cache key for a logical request.

    Coordinates are rounded to 3 decimals (~110m), so requests that differ
    only beyond that land in the same slot.
    """
    lat = round(latitude, 3) + 0.0  # normalizes -0.0
    lon = round(longitude, 3) + 0.0
    date_part = reference_date.isoformat() if reference_date else "latest"
    if isinstance(depth, Depth):
        depth = depth.value
    return f"{product}|{lat:.3f}|{lon:.3f}|{date_part}|{depth or '-'}"


class DataCache:
    """
    LRU cache of DataResponse payloads.

    Recency is tracked by a dict of entries plus a list of keys ordered from
    least to most recently used; both are updated together under the lock.

    Usage:
        cache = DataCache(max_size=100, store=CacheSnapshotStore("cache.json"))
        await cache.load()

        entry = await cache.get(key)
        if entry is None:
            await cache.set(key, response)
    """

    def __init__(
        self,
        max_size: int = 100,
        store: CacheSnapshotStore | None = None,
        offline_retention: timedelta = timedelta(days=7),
        offline_recent_age: timedelta = timedelta(hours=2),
        debug: bool = False,
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._entries: dict[str, CacheEntry] = {}
        self._access_order: list[str] = []
        self._max_size = max_size
        self._store = store
        self._offline_retention = offline_retention
        self._offline_recent_age = offline_recent_age
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

    @property
    def max_size(self) -> int:
        return self._max_size

    async def load(self, max_age: timedelta = DEFAULT_CLEANUP_AGE) -> int:
        """
        Rehydrate from the snapshot store and drop expired entries.

        A corrupt snapshot is logged and the cache starts empty.

        Returns:
            Number of entries kept
        """
        if self._store is None:
            return 0

        try:
            entries, order = await asyncio.to_thread(self._store.read)
        except CacheCorruptionError as e:
            logger.warning(f"Discarding cache snapshot: {e}")
            entries, order = [], []

        async with self._lock:
            self._entries = {entry.key: entry for entry in entries}
            known = [k for k in dict.fromkeys(order) if k in self._entries]
            missing = [k for k in self._entries if k not in known]
            self._access_order = missing + known
            while len(self._entries) > self._max_size:
                self._evict_lru()

        removed = await self.cleanup(max_age)
        logger.info(
            f"Loaded {len(self._entries)} cache entries ({removed} expired on load)"
        )
        return len(self._entries)

    async def get(self, key: str) -> CacheEntry | None:
        """Return the entry for key and mark it most recently used."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key}")
                return None

            self._touch(key)
            self._stats.hits += 1
            self._log(f"HIT: {key}")
            return entry

    async def set(
        self,
        key: str,
        payload: DataResponse,
        offline_priority: bool = False,
        cached_at: datetime | None = None,
    ) -> CacheEntry:
        """
        Insert or replace an entry.

        If the cache is full and key is new, exactly one least recently used
        entry is evicted first.
        """
        async with self._lock:
            existing = self._entries.get(key)
            entry = CacheEntry(
                key=key,
                payload=payload,
                cached_at=cached_at or datetime.now(),
                offline_priority=offline_priority
                or (existing.offline_priority if existing else False),
            )

            if existing is None and len(self._entries) >= self._max_size:
                self._evict_lru()

            self._entries[key] = entry
            self._touch(key)
            self._log(f"SET: {key}")
            await self._persist()
            return entry

    def has(self, key: str) -> bool:
        return key in self._entries

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if not self._remove(key):
                return False
            self._log(f"DELETE: {key}")
            await self._persist()
            return True

    async def clear(self) -> None:
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._access_order.clear()
            self._log(f"CLEAR: {count} entries removed")
            await self._persist()

    async def cleanup(self, max_age: timedelta = DEFAULT_CLEANUP_AGE) -> int:
        """
        Remove entries older than max_age.

        Offline-priority entries survive until they also exceed the
        offline retention period.

        Returns:
            Number of entries removed
        """
        now = datetime.now()
        async with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if now - entry.cached_at > max_age
                and (
                    not entry.offline_priority
                    or now - entry.cached_at > self._offline_retention
                )
            ]
            for key in expired:
                self._remove(key)

            if expired:
                logger.info(f"Cleaned up {len(expired)} expired cache entries")
                await self._persist()
            return len(expired)

    async def prioritize_for_offline(self, keys: list[str]) -> int:
        """Flag entries to be kept for offline use. Returns how many were flagged."""
        async with self._lock:
            flagged = 0
            for key in keys:
                entry = self._entries.get(key)
                if entry is not None and not entry.offline_priority:
                    self._entries[key] = entry.model_copy(
                        update={"offline_priority": True}
                    )
                    flagged += 1
            if flagged:
                await self._persist()
            return flagged

    def get_offline_entries(self) -> list[CacheEntry]:
        """Entries reliable enough for offline use: flagged or recent."""
        now = datetime.now()
        return [
            entry
            for entry in self._entries.values()
            if entry.offline_priority
            or now - entry.cached_at < self._offline_recent_age
        ]

    def export_snapshot(self) -> dict[str, Any]:
        """Full, unfiltered dump of the cache for backup."""
        return {
            "entries": [
                [key, entry.model_dump(mode="json")]
                for key, entry in self._entries.items()
            ],
            "access_order": list(self._access_order),
            "max_size": self._max_size,
            "exported_at": datetime.now().isoformat(),
        }

    async def import_snapshot(self, data: dict[str, Any]) -> int:
        """Replace the cache contents with an exported snapshot."""
        entries = [CacheEntry.model_validate(raw) for _, raw in data.get("entries", [])]
        order = [k for k in data.get("access_order", []) if isinstance(k, str)]

        async with self._lock:
            self._entries = {entry.key: entry for entry in entries}
            known = [k for k in dict.fromkeys(order) if k in self._entries]
            self._access_order = [k for k in self._entries if k not in known] + known
            while len(self._entries) > self._max_size:
                self._evict_lru()
            await self._persist()
            logger.info(f"Imported {len(self._entries)} cache entries")
            return len(self._entries)

    def keys(self) -> list[str]:
        """Keys from least to most recently used."""
        return list(self._access_order)

    def __len__(self) -> int:
        return len(self._entries)

    def _touch(self, key: str) -> None:
        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)

    def _remove(self, key: str) -> bool:
        if key not in self._entries:
            return False
        del self._entries[key]
        if key in self._access_order:
            self._access_order.remove(key)
        return True

    def _evict_lru(self) -> None:
        """Evict the least recently used entry. Caller holds the lock."""
        if not self._access_order:
            return
        lru_key = self._access_order.pop(0)
        self._entries.pop(lru_key, None)
        self._stats.evictions += 1
        self._log(f"EVICT: {lru_key}")

    async def _persist(self) -> None:
        """Write a snapshot. Caller holds the lock so writes stay ordered."""
        if self._store is None:
            return
        snapshot = self._store.build_snapshot(self._entries, self._access_order)
        try:
            await asyncio.to_thread(self._store.write, snapshot)
        except OSError as e:
            logger.warning(f"Failed to persist cache snapshot: {e}")

    def get_stats(self) -> "CacheStats":
        """Diagnostics only; not used for correctness."""
        now = datetime.now()
        ages = [(now - e.cached_at).total_seconds() for e in self._entries.values()]
        self._stats.size = len(self._entries)
        self._stats.max_size = self._max_size
        self._stats.estimated_bytes = sum(
            len(e.model_dump_json()) for e in self._entries.values()
        )
        self._stats.oldest_entry_age = max(ages) if ages else 0.0
        self._stats.newest_entry_age = min(ages) if ages else 0.0
        return self._stats

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[DataCache] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0
    estimated_bytes: int = 0
    oldest_entry_age: float = 0.0  # seconds
    newest_entry_age: float = 0.0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    @property
    def utilization_percent(self) -> int:
        if self.max_size == 0:
            return 0
        return round(self.size / self.max_size * 100)

    def to_dict(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "max_size": self.max_size,
            "utilization_percent": self.utilization_percent,
            "estimated_size_kb": round(self.estimated_bytes / 1024),
            "oldest_entry_age": self.oldest_entry_age,
            "newest_entry_age": self.newest_entry_age,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
