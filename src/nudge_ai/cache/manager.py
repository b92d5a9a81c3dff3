"""Cache manager combining memory and disk storage with TTL support."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from pydantic import JsonValue, TypeAdapter, ValidationError

from nudge_ai.core.config import CacheSettings
from nudge_ai.core.datetime_utils import utc_now
from .store import CacheEntry, CacheStrategy, DiskCache, MemoryCache

LOGGER = logging.getLogger(__name__)

NEVER_EXPIRES = math.inf
KEY_DELIMITER = "_"

_JSON_ADAPTER: TypeAdapter[JsonValue] = TypeAdapter(JsonValue)

Populator = Callable[[], Awaitable[JsonValue]]


@dataclass(frozen=True, slots=True)
class CacheResult:
    """Value returned by the network/cache read patterns."""

    value: JsonValue
    from_cache: bool


class CacheManager:
    """Key/value cache with memory, disk and hybrid strategies.

    Expired entries are dropped lazily when read. Concurrent population of the
    same key is collapsed into a single call (see :meth:`get_or_populate`).
    """

    def __init__(
        self,
        directory: Path | None = None,
        *,
        default_ttl_seconds: float | None = 3600.0,
        memory_max_items: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._memory = MemoryCache(memory_max_items)
        self._disk = DiskCache(directory) if directory is not None else None
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._inflight: dict[str, asyncio.Future[JsonValue]] = {}
        self._background: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> CacheManager:
        return cls(
            settings.directory,
            default_ttl_seconds=settings.default_ttl_seconds,
            memory_max_items=settings.memory_max_items,
        )

    # Basic operations ---------------------------------------------------------
    def get(self, key: str) -> JsonValue | None:
        """Return the cached value for ``key`` or ``None`` when absent/expired."""
        now = self._clock()
        entry = self._memory.get(key)
        if entry is not None:
            if not entry.is_expired(now):
                LOGGER.debug("Memory cache hit for key: %s", key)
                return entry.value
            LOGGER.debug("Memory cache expired for key: %s", key)
            self._memory.remove(key)

        if self._disk is None:
            LOGGER.debug("Cache miss for key: %s", key)
            return None

        entry = self._disk.load(key)
        if entry is None:
            LOGGER.debug("Cache miss for key: %s", key)
            return None
        if entry.is_expired(now):
            LOGGER.debug("Disk cache expired for key: %s", key)
            self._disk.remove(key)
            return None
        if entry.strategy.uses_memory:
            self._memory.put(entry)
            LOGGER.debug("Promoted disk cache entry into memory: %s", key)
        else:
            LOGGER.debug("Disk cache hit for key: %s", key)
        return entry.value

    def set(
        self,
        key: str,
        value: JsonValue,
        strategy: CacheStrategy = CacheStrategy.HYBRID,
        ttl_seconds: float | None = None,
    ) -> None:
        """Store ``value`` under ``key``.

        ``ttl_seconds`` defaults to the manager's default TTL; pass
        :data:`NEVER_EXPIRES` for entries that only die on removal. Without a
        cache directory the hybrid strategy keeps entries in memory only.
        """
        if value is None:
            raise ValueError("None cannot be cached; remove the key instead")
        try:
            validated = _JSON_ADAPTER.validate_python(value)
        except ValidationError as exc:
            raise ValueError(f"Cache value for {key!r} is not JSON data") from exc
        if strategy is CacheStrategy.DISK_ONLY and self._disk is None:
            raise ValueError("Disk-only caching needs a cache directory")

        entry = CacheEntry(
            key=key,
            value=validated,
            created_at=self._clock(),
            ttl_seconds=self._resolve_ttl(ttl_seconds),
            strategy=strategy,
        )
        if strategy.uses_memory:
            self._memory.put(entry)
        else:
            self._memory.remove(key)
        if self._disk is not None:
            if strategy.uses_disk:
                self._disk.save(entry)
            else:
                self._disk.remove(key)
        LOGGER.debug(
            "Cache set for key: %s (strategy: %s, TTL: %s)",
            key,
            strategy.value,
            entry.ttl_seconds,
        )

    def remove(self, key: str) -> bool:
        """Drop ``key`` from every backend. Returns ``True`` if anything was removed."""
        removed = self._memory.remove(key)
        if self._disk is not None:
            removed = self._disk.remove(key) or removed
        return removed

    def clear(self) -> int:
        """Remove every entry from memory and disk."""
        count = self._memory.clear()
        if self._disk is not None:
            count += self._disk.clear()
        LOGGER.info("Cleared %d cache entries", count)
        return count

    def invalidate(self, prefix: str) -> int:
        """Remove entries whose key starts with ``prefix``."""
        keys = {key for key in self._memory.keys() if key.startswith(prefix)}
        if self._disk is not None:
            keys.update(
                entry.key for entry in self._disk.entries() if entry.key.startswith(prefix)
            )
        for key in keys:
            self.remove(key)
        LOGGER.info("Invalidated %d cache entries with prefix: %s", len(keys), prefix)
        return len(keys)

    def cleanup_expired(self) -> int:
        """Eagerly remove expired entries to reclaim space."""
        now = self._clock()
        removed = 0
        for entry in self._memory.entries():
            if entry.is_expired(now) and self._memory.remove(entry.key):
                removed += 1
        if self._disk is not None:
            for entry in list(self._disk.entries()):
                if entry.is_expired(now) and self._disk.remove(entry.key):
                    removed += 1
        if removed:
            LOGGER.debug("Cleaned up %d expired cache entries", removed)
        return removed

    def size_bytes(self) -> int:
        """Approximate bytes held in memory plus bytes used on disk."""
        memory_bytes = sum(
            len(json.dumps(entry.value)) for entry in self._memory.entries()
        )
        disk_bytes = self._disk.size_bytes() if self._disk is not None else 0
        return memory_bytes + disk_bytes

    # Population and read patterns --------------------------------------------
    async def get_or_populate(
        self,
        key: str,
        populate: Populator,
        *,
        strategy: CacheStrategy = CacheStrategy.HYBRID,
        ttl_seconds: float | None = None,
    ) -> JsonValue:
        """Return the cached value or compute, store and return it.

        At most one ``populate`` call runs per key; concurrent callers await
        the same result.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        async def populate_and_store() -> JsonValue:
            current = self.get(key)
            if current is not None:
                return current
            value = await populate()
            self.set(key, value, strategy, ttl_seconds)
            return value

        return await self._single_flight(key, populate_and_store)

    async def network_first(
        self,
        key: str,
        fetch: Populator,
        *,
        strategy: CacheStrategy = CacheStrategy.HYBRID,
        ttl_seconds: float | None = None,
        recoverable: tuple[type[Exception], ...] = (Exception,),
    ) -> CacheResult:
        """Fetch a fresh value, falling back to the cache when the fetch fails."""

        async def fetch_and_store() -> JsonValue:
            value = await fetch()
            self.set(key, value, strategy, ttl_seconds)
            return value

        try:
            value = await self._single_flight(key, fetch_and_store)
        except recoverable as exc:
            cached = self.get(key)
            if cached is None:
                raise
            LOGGER.warning("Fetch for %s failed, serving cached copy: %s", key, exc)
            return CacheResult(cached, from_cache=True)
        return CacheResult(value, from_cache=False)

    async def network_then_cache(
        self,
        key: str,
        fetch: Populator,
        *,
        strategy: CacheStrategy = CacheStrategy.HYBRID,
        ttl_seconds: float | None = None,
    ) -> CacheResult:
        """Return a cached value immediately and refresh it in the background."""

        async def fetch_and_store() -> JsonValue:
            value = await fetch()
            self.set(key, value, strategy, ttl_seconds)
            return value

        cached = self.get(key)
        if cached is None:
            value = await self._single_flight(key, fetch_and_store)
            return CacheResult(value, from_cache=False)

        async def refresh() -> None:
            try:
                await self._single_flight(key, fetch_and_store)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.warning("Background refresh for %s failed: %s", key, exc)

        task = asyncio.get_running_loop().create_task(refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return CacheResult(cached, from_cache=True)

    async def wait_for_refreshes(self) -> None:
        """Wait until scheduled background refreshes have finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding background refreshes."""
        for task in list(self._background):
            task.cancel()
        await self.wait_for_refreshes()

    def pending_keys(self) -> list[str]:
        """Keys with a population currently in flight."""
        return list(self._inflight)

    @staticmethod
    def make_key(*parts: str | int | float | None) -> str:
        """Join semantic key parts with the fixed delimiter.

        Floats are rendered with four decimals so equal coordinates always
        produce the same key.
        """
        rendered: list[str] = []
        for part in parts:
            if part is None:
                rendered.append("none")
            elif isinstance(part, float):
                rendered.append(f"{part:.4f}")
            else:
                rendered.append(str(part))
        return KEY_DELIMITER.join(rendered)

    # Internal helpers --------------------------------------------------------
    def _resolve_ttl(self, ttl_seconds: float | None) -> float | None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if ttl is None or math.isinf(ttl):
            return None
        if ttl < 0:
            raise ValueError("ttl_seconds must not be negative")
        return ttl

    async def _single_flight(
        self, key: str, factory: Callable[[], Awaitable[JsonValue]]
    ) -> JsonValue:
        while True:
            pending = self._inflight.get(key)
            if pending is None:
                break
            LOGGER.debug("Awaiting in-flight population for key: %s", key)
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if pending.cancelled() and task is not None and not task.cancelling():
                    # the populating caller was cancelled; take over
                    continue
                raise

        future: asyncio.Future[JsonValue] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await factory()
        except Exception as exc:
            future.set_exception(exc)
            # mark retrieved so an unawaited failure is not reported at GC
            future.exception()
            raise
        except BaseException:
            future.cancel()
            raise
        else:
            future.set_result(value)
            return value
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]


__all__ = ["CacheManager", "CacheResult", "KEY_DELIMITER", "NEVER_EXPIRES"]
