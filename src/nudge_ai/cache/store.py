"""Memory and disk backends for the cache layer."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path

from pydantic import JsonValue

from nudge_ai.core.datetime_utils import parse_datetime, serialize_datetime

LOGGER = logging.getLogger(__name__)


class CacheStrategy(str, Enum):
    """Where an entry is kept."""

    MEMORY_ONLY = "memory"
    DISK_ONLY = "disk"
    HYBRID = "hybrid"

    @property
    def uses_memory(self) -> bool:
        return self is not CacheStrategy.DISK_ONLY

    @property
    def uses_disk(self) -> bool:
        return self is not CacheStrategy.MEMORY_ONLY


@dataclass(slots=True)
class CacheEntry:
    """Cached value with its expiration policy."""

    key: str
    value: JsonValue
    created_at: datetime
    ttl_seconds: float | None
    strategy: CacheStrategy

    @property
    def expires_at(self) -> datetime | None:
        if self.ttl_seconds is None:
            return None
        return self.created_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime) -> bool:
        """Check if the entry has outlived its TTL at ``now``."""
        expires_at = self.expires_at
        return expires_at is not None and now >= expires_at

    def to_json(self) -> str:
        return json.dumps(
            {
                "key": self.key,
                "value": self.value,
                "created_at": serialize_datetime(self.created_at),
                "ttl_seconds": self.ttl_seconds,
                "strategy": self.strategy.value,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> CacheEntry:
        payload = json.loads(raw)
        created_at = parse_datetime(payload["created_at"])
        if created_at is None:
            raise ValueError("Cache entry missing created_at")
        ttl = payload.get("ttl_seconds")
        return cls(
            key=str(payload["key"]),
            value=payload["value"],
            created_at=created_at,
            ttl_seconds=float(ttl) if ttl is not None else None,
            strategy=CacheStrategy(payload["strategy"]),
        )


class MemoryCache:
    """Bounded in-process entry map; evicts the oldest fifth when full."""

    def __init__(self, max_items: int = 100) -> None:
        if max_items <= 0:
            raise ValueError("max_items must be positive")
        self._max_items = max_items
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries.pop(entry.key, None)
            self._entries[entry.key] = entry
            if len(self._entries) > self._max_items:
                self._evict_oldest()

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def entries(self) -> list[CacheEntry]:
        with self._lock:
            return list(self._entries.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_oldest(self) -> None:
        overflow = max(1, self._max_items // 5)
        ordered = sorted(self._entries.values(), key=lambda entry: entry.created_at)
        for entry in ordered[:overflow]:
            del self._entries[entry.key]
        LOGGER.debug("Evicted %d oldest memory cache entries", overflow)


class DiskCache:
    """One JSON file per entry inside a cache directory."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._directory

    def load(self, key: str) -> CacheEntry | None:
        path = self._path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            LOGGER.warning("Discarding unreadable cache file %s: %s", path.name, exc)
            path.unlink(missing_ok=True)
            return None
        if entry.key != key:
            # digest collision; treat as a miss
            return None
        return entry

    def save(self, entry: CacheEntry) -> None:
        path = self._path_for(entry.key)
        handle, temp_name = tempfile.mkstemp(
            dir=self._directory, prefix=".tmp-", suffix=".json"
        )
        try:
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                stream.write(entry.to_json())
            os.replace(temp_name, path)
        except OSError:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        path.unlink(missing_ok=True)
        return True

    def clear(self) -> int:
        count = 0
        for path in self._directory.glob("*.json"):
            path.unlink(missing_ok=True)
            count += 1
        return count

    def entries(self) -> Iterator[CacheEntry]:
        """Yield every readable entry on disk."""
        for path in sorted(self._directory.glob("*.json")):
            try:
                yield CacheEntry.from_json(path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                continue
            except (ValueError, KeyError, TypeError) as exc:
                LOGGER.warning("Skipping unreadable cache file %s: %s", path.name, exc)

    def size_bytes(self) -> int:
        total = 0
        for path in self._directory.glob("*.json"):
            try:
                total += path.stat().st_size
            except FileNotFoundError:
                continue
        return total

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._directory / f"{digest}.json"


__all__ = ["CacheEntry", "CacheStrategy", "DiskCache", "MemoryCache"]
