"""
Durable JSON snapshots of the data cache.

Snapshot layout:
    {
        "entries": [[key, entry], ...],
        "access_order": [key, ...],   # least recently used first
        "timestamp": "2024-05-01T12:00:00"
    }
"""

import json
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from eohub.exceptions import CacheCorruptionError
from eohub.models import CacheEntry


class CacheSnapshotStore:
    """Reads and writes bounded cache snapshots to a JSON file."""

    def __init__(
        self,
        path: str | Path,
        max_entries: int = 50,
        max_age: timedelta = timedelta(hours=6),
    ):
        self.path = Path(path)
        self.max_entries = max_entries
        self.max_age = max_age

    def build_snapshot(
        self,
        entries: dict[str, CacheEntry],
        access_order: list[str],
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Keep the most recently used entries that are young enough to persist."""
        now = now or datetime.now()
        recent = [
            key
            for key in access_order
            if key in entries and now - entries[key].cached_at < self.max_age
        ][-self.max_entries :]

        return {
            "entries": [[key, entries[key].model_dump(mode="json")] for key in recent],
            "access_order": recent,
            "timestamp": now.isoformat(),
        }

    def write(self, snapshot: dict[str, Any]) -> None:
        """Write a snapshot, replacing the previous file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f)
        os.replace(tmp_path, self.path)

    def read(self) -> tuple[list[CacheEntry], list[str]]:
        """
        Load entries and access order from disk.

        Returns:
            (entries, access_order); both empty if no snapshot exists

        Raises:
            CacheCorruptionError: If the file exists but cannot be parsed
        """
        if not self.path.exists():
            return [], []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheCorruptionError(f"Unreadable cache snapshot {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("entries", []), list):
            raise CacheCorruptionError(f"Cache snapshot {self.path} has no entry list")

        entries: list[CacheEntry] = []
        try:
            for pair in data.get("entries", []):
                key, raw = pair
                entry = CacheEntry.model_validate(raw)
                if entry.key != key:
                    entry = entry.model_copy(update={"key": key})
                entries.append(entry)
        except (TypeError, ValueError, ValidationError) as e:
            raise CacheCorruptionError(f"Malformed cache entry in {self.path}: {e}") from e

        access_order = data.get("access_order") or []
        if not isinstance(access_order, list) or not all(
            isinstance(k, str) for k in access_order
        ):
            raise CacheCorruptionError(f"Malformed access order in {self.path}")

        return entries, access_order

    def remove(self) -> None:
        if self.path.exists():
            self.path.unlink()
