"""Tests for the TTL caches."""

from __future__ import annotations

import threading

from caprec.recommendations.cache import TTLCache
from caprec.recommendations.schemas import ProjectContext, ProjectContextCacheEntry

from conftest import FakeClock


def _entry(path: str, timestamp: float) -> ProjectContextCacheEntry:
    return ProjectContextCacheEntry(context=ProjectContext(path=path), timestamp=timestamp)


class TestTTLCache:
    def test_fresh_entry_is_returned(self, clock: FakeClock) -> None:
        cache: TTLCache[str, ProjectContextCacheEntry] = TTLCache(1000, clock)
        entry = _entry("/p", clock())
        cache.set("/p", entry)

        clock.advance(999)
        assert cache.get("/p") is entry

    def test_entry_expires_at_ttl(self, clock: FakeClock) -> None:
        """``now - timestamp < ttl`` is fresh; equality is already stale."""
        cache: TTLCache[str, ProjectContextCacheEntry] = TTLCache(1000, clock)
        cache.set("/p", _entry("/p", clock()))

        clock.advance(1000)
        assert cache.get("/p") is None

    def test_stale_entry_is_evicted_on_read(self, clock: FakeClock) -> None:
        cache: TTLCache[str, ProjectContextCacheEntry] = TTLCache(10, clock)
        cache.set("/p", _entry("/p", clock()))
        assert len(cache) == 1

        clock.advance(50)
        cache.get("/p")
        assert len(cache) == 0

    def test_per_call_ttl_override(self, clock: FakeClock) -> None:
        cache: TTLCache[str, ProjectContextCacheEntry] = TTLCache(10, clock)
        cache.set("/p", _entry("/p", clock()))
        clock.advance(50)

        assert cache.get("/p", ttl_ms=100) is not None

    def test_delete_and_clear(self, clock: FakeClock) -> None:
        cache: TTLCache[str, ProjectContextCacheEntry] = TTLCache(1000, clock)
        cache.set("a", _entry("a", clock()))
        cache.set("b", _entry("b", clock()))

        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert "a" not in cache
        assert "b" in cache

        cache.clear()
        assert len(cache) == 0

    def test_last_writer_wins(self, clock: FakeClock) -> None:
        cache: TTLCache[str, ProjectContextCacheEntry] = TTLCache(1000, clock)
        first = _entry("/p", clock())
        second = _entry("/p", clock())
        cache.set("/p", first)
        cache.set("/p", second)

        assert cache.get("/p") is second

    def test_concurrent_writers(self) -> None:
        """Parallel inserts leave a consistent map."""
        cache: TTLCache[int, ProjectContextCacheEntry] = TTLCache(60_000)

        def writer(offset: int) -> None:
            for i in range(200):
                cache.set(i, _entry(f"/p/{offset}/{i}", cache.now()))
                cache.get(i)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 200
