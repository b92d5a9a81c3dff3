"""Tests for the cache layer."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from nudge_ai.cache import NEVER_EXPIRES, CacheManager, CacheStrategy


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _manager(tmp_path: Path | None = None, clock: _Clock | None = None) -> CacheManager:
    return CacheManager(
        tmp_path / "cache" if tmp_path is not None else None,
        default_ttl_seconds=60,
        clock=clock or _Clock(),
    )


def test_entry_expires_after_ttl_without_removal() -> None:
    clock = _Clock()
    cache = _manager(clock=clock)
    cache.set("greeting", {"text": "hi"}, CacheStrategy.MEMORY_ONLY, ttl_seconds=1)

    assert cache.get("greeting") == {"text": "hi"}
    clock.advance(1)
    assert cache.get("greeting") is None


def test_never_expires_survives_default_ttl() -> None:
    clock = _Clock()
    cache = _manager(clock=clock)
    cache.set("pinned", [1, 2, 3], CacheStrategy.MEMORY_ONLY, ttl_seconds=NEVER_EXPIRES)
    clock.advance(10_000)
    assert cache.get("pinned") == [1, 2, 3]


def test_disk_entry_rehydrates_into_memory_after_restart(tmp_path: Path) -> None:
    clock = _Clock()
    first = _manager(tmp_path, clock)
    first.set("categories", ["romantic", "support"], CacheStrategy.HYBRID)

    restarted = _manager(tmp_path, clock)
    assert restarted.get("categories") == ["romantic", "support"]
    # memory now holds the entry even if the file disappears
    for path in (tmp_path / "cache").glob("*.json"):
        path.unlink()
    assert restarted.get("categories") == ["romantic", "support"]


def test_disk_only_entry_is_not_promoted(tmp_path: Path) -> None:
    cache = _manager(tmp_path)
    cache.set("report", {"count": 3}, CacheStrategy.DISK_ONLY)
    assert cache.get("report") == {"count": 3}
    for path in (tmp_path / "cache").glob("*.json"):
        path.unlink()
    assert cache.get("report") is None


def test_set_rejects_non_json_values_and_missing_directory() -> None:
    cache = _manager()
    with pytest.raises(ValueError):
        cache.set("bad", object())  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        cache.set("none", None)
    with pytest.raises(ValueError):
        cache.set("disk", "value", CacheStrategy.DISK_ONLY)


def test_remove_clear_and_invalidate(tmp_path: Path) -> None:
    cache = _manager(tmp_path)
    cache.set("ai_recs_romantic", 1)
    cache.set("ai_recs_support", 2)
    cache.set("other", 3)

    assert cache.invalidate("ai_recs_") == 2
    assert cache.get("ai_recs_romantic") is None
    assert cache.remove("other") is True
    assert cache.remove("other") is False
    cache.set("again", 4)
    assert cache.clear() >= 1
    assert cache.get("again") is None


def test_cleanup_expired_and_size(tmp_path: Path) -> None:
    clock = _Clock()
    cache = _manager(tmp_path, clock)
    cache.set("short", "x" * 100, ttl_seconds=1)
    cache.set("long", "y", ttl_seconds=100)
    assert cache.size_bytes() > 100

    clock.advance(5)
    assert cache.cleanup_expired() == 2  # memory and disk copies
    assert cache.get("long") == "y"


def test_make_key_is_deterministic() -> None:
    key = CacheManager.make_key("ai_recs", "romantic", 37.774929, -122.419416, None)
    assert key == "ai_recs_romantic_37.7749_-122.4194_none"
    assert key == CacheManager.make_key("ai_recs", "romantic", 37.77493, -122.41942, None)


@pytest.mark.asyncio
async def test_concurrent_population_runs_once() -> None:
    cache = _manager()
    calls = 0
    release = asyncio.Event()

    async def populate() -> list[str]:
        nonlocal calls
        calls += 1
        await release.wait()
        return ["romantic", "playful"]

    first = asyncio.create_task(cache.get_or_populate("recs", populate))
    second = asyncio.create_task(cache.get_or_populate("recs", populate))
    await asyncio.sleep(0)
    release.set()

    assert await first == ["romantic", "playful"]
    assert await second == ["romantic", "playful"]
    assert calls == 1
    assert cache.pending_keys() == []


@pytest.mark.asyncio
async def test_failed_population_is_shared_and_not_cached() -> None:
    cache = _manager()
    calls = 0

    async def populate() -> str:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0)
        raise RuntimeError("boom")

    results = await asyncio.gather(
        cache.get_or_populate("key", populate),
        cache.get_or_populate("key", populate),
        return_exceptions=True,
    )
    assert all(isinstance(result, RuntimeError) for result in results)
    assert calls == 1
    assert cache.get("key") is None


@pytest.mark.asyncio
async def test_cancelled_populator_releases_key_for_waiter() -> None:
    cache = _manager()
    started = asyncio.Event()
    calls = 0

    async def slow() -> str:
        nonlocal calls
        calls += 1
        started.set()
        await asyncio.sleep(10)
        return "slow"

    async def fast() -> str:
        nonlocal calls
        calls += 1
        return "fast"

    owner = asyncio.create_task(cache.get_or_populate("key", slow))
    await started.wait()
    waiter = asyncio.create_task(cache.get_or_populate("key", fast))
    await asyncio.sleep(0)

    owner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await owner

    assert await asyncio.wait_for(waiter, timeout=1) == "fast"
    assert calls == 2
    assert cache.pending_keys() == []


@pytest.mark.asyncio
async def test_network_first_prefers_fresh_value_then_cache() -> None:
    cache = _manager()
    responses: list[object] = ["v1", RuntimeError("offline")]

    async def fetch() -> str:
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return str(response)

    fresh = await cache.network_first("cats", fetch)
    assert (fresh.value, fresh.from_cache) == ("v1", False)

    stale = await cache.network_first("cats", fetch)
    assert (stale.value, stale.from_cache) == ("v1", True)


@pytest.mark.asyncio
async def test_network_first_raises_without_cached_copy() -> None:
    cache = _manager()

    async def fetch() -> str:
        raise ConnectionError("offline")

    with pytest.raises(ConnectionError):
        await cache.network_first("cats", fetch)


@pytest.mark.asyncio
async def test_network_then_cache_returns_cached_and_refreshes() -> None:
    cache = _manager()
    cache.set("recs", "old", CacheStrategy.MEMORY_ONLY)
    fetched = 0

    async def fetch() -> str:
        nonlocal fetched
        fetched += 1
        return "new"

    result = await cache.network_then_cache("recs", fetch, strategy=CacheStrategy.MEMORY_ONLY)
    assert (result.value, result.from_cache) == ("old", True)

    await cache.wait_for_refreshes()
    assert fetched == 1
    assert cache.get("recs") == "new"
