"""Tests for LRUCache and TokenCache."""
from __future__ import annotations

import pytest

from context_weaver.cache.lru import LRUCache, TokenCache, content_hash
from context_weaver.errors import ConfigurationError


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestLRUCacheConstruction:
    def test_zero_capacity_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            LRUCache(capacity=0)

    def test_non_positive_ttl_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            LRUCache(capacity=2, default_ttl=0)

    def test_configuration_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            LRUCache(capacity=-1)


# ---------------------------------------------------------------------------
# Recency
# ---------------------------------------------------------------------------


class TestLRUCacheRecency:
    def test_access_protects_from_eviction(self) -> None:
        cache: LRUCache[str, int] = LRUCache(capacity=3)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") == 1
        cache.set("d", 4)
        assert cache.get("b") is None
        assert cache.keys() == ["c", "a", "d"]

    def test_overwrite_moves_to_most_recent(self) -> None:
        cache: LRUCache[str, int] = LRUCache(capacity=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        cache.set("c", 3)
        assert "b" not in cache
        assert cache.get("a") == 10

    def test_has_does_not_refresh_recency(self) -> None:
        cache: LRUCache[str, int] = LRUCache(capacity=2)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.has("a")
        cache.set("c", 3)
        assert not cache.has("a")

    def test_delete(self) -> None:
        cache: LRUCache[str, int] = LRUCache(capacity=2)
        cache.set("a", 1)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert len(cache) == 0

    def test_get_default(self) -> None:
        cache: LRUCache[str, int] = LRUCache(capacity=2)
        assert cache.get("missing", 7) == 7


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


class TestLRUCacheExpiry:
    def test_expired_entry_evicted_on_read(self) -> None:
        clock = FakeClock()
        cache: LRUCache[str, int] = LRUCache(capacity=3, default_ttl=10, clock=clock)
        cache.set("a", 1)
        clock.now = 5
        assert cache.get("a") == 1
        clock.now = 11
        assert cache.size == 1
        assert cache.get("a") is None
        assert cache.size == 0

    def test_per_entry_ttl_overrides_default(self) -> None:
        clock = FakeClock()
        cache: LRUCache[str, int] = LRUCache(capacity=3, clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("forever", 2)
        clock.now = 100
        assert cache.get("short") is None
        assert cache.get("forever") == 2

    def test_has_reports_expired_as_absent(self) -> None:
        clock = FakeClock()
        cache: LRUCache[str, int] = LRUCache(capacity=3, default_ttl=1, clock=clock)
        cache.set("a", 1)
        clock.now = 2
        assert "a" not in cache


# ---------------------------------------------------------------------------
# Memoization and stats
# ---------------------------------------------------------------------------


class TestLRUCacheCompute:
    def test_get_or_compute_calls_once(self) -> None:
        cache: LRUCache[str, int] = LRUCache(capacity=2)
        calls: list[int] = []

        def compute() -> int:
            calls.append(1)
            return 42

        assert cache.get_or_compute("k", compute) == 42
        assert cache.get_or_compute("k", compute) == 42
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_get_or_compute_async(self) -> None:
        cache: LRUCache[str, str] = LRUCache(capacity=2)

        async def compute() -> str:
            return "value"

        assert await cache.get_or_compute_async("k", compute) == "value"
        assert cache.get("k") == "value"

    def test_stats_track_hits_and_misses(self) -> None:
        cache: LRUCache[str, int] = LRUCache(capacity=2)
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(0.5)
        assert stats.to_dict()["capacity"] == 2

    def test_clear_resets_stats(self) -> None:
        cache: LRUCache[str, int] = LRUCache(capacity=2)
        cache.set("a", 1)
        cache.get("a")
        cache.clear()
        assert len(cache) == 0
        assert cache.stats().hits == 0
        assert cache.stats().hit_rate == 0.0


# ---------------------------------------------------------------------------
# TokenCache
# ---------------------------------------------------------------------------


class TestTokenCache:
    def test_identical_content_shares_entry(self) -> None:
        cache = TokenCache(capacity=10)
        calls: list[str] = []

        def counter(text: str) -> int:
            calls.append(text)
            return len(text)

        assert cache.get_token_count("hello there", counter) == 11
        assert cache.get_token_count("hello there", counter) == 11
        assert calls == ["hello there"]

    def test_key_is_content_hash(self) -> None:
        cache = TokenCache(capacity=10)
        cache.get_token_count("abc", len)
        assert cache.keys() == [content_hash("abc")]

    def test_content_hash_is_deterministic(self) -> None:
        assert content_hash("same") == content_hash("same")
        assert content_hash("same") != content_hash("different")

    def test_entries_expire_after_ttl(self) -> None:
        clock = FakeClock()
        cache = TokenCache(capacity=10, ttl=60, clock=clock)
        cache.get_token_count("abc", len)
        clock.now = 61
        assert cache.stats().size == 1
        assert not cache.has(content_hash("abc"))
