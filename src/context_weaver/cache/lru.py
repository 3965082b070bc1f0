"""Least-recently-used cache with optional per-entry TTL.

``get``, ``set`` and ``delete`` are O(1): entries live in an ``OrderedDict``
whose order is the recency order (most recently used at the end).  Expiry
is checked lazily; an expired entry is evicted by the read that finds it,
never by a background sweep.

Classes
-------
- CacheStats  — hit/miss counters snapshot
- LRUCache    — generic LRU cache
- TokenCache  — content-addressed cache for token counts
"""
from __future__ import annotations

import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

from context_weaver.errors import ConfigurationError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache usage counters."""

    size: int
    capacity: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, float]:
        """Serialise to a plain dict."""
        return {
            "size": self.size,
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
        }


@dataclass
class _Entry(Generic[V]):
    value: V
    stored_at: float
    ttl: float | None

    def expired(self, now: float) -> bool:
        return self.ttl is not None and now > self.stored_at + self.ttl


class LRUCache(Generic[K, V]):
    """Fixed-capacity cache evicting the least recently used entry.

    Parameters
    ----------
    capacity:
        Maximum number of entries.  Must be >= 1.
    default_ttl:
        Time-to-live in seconds applied to entries stored without an
        explicit ``ttl``.  ``None`` (default) means entries never expire.
    clock:
        Monotonic time source in seconds.  Injectable for tests.

    Example
    -------
    >>> cache = LRUCache(capacity=2)
    >>> cache.set("a", 1); cache.set("b", 2); _ = cache.get("a"); cache.set("c", 3)
    >>> cache.keys()
    ['a', 'c']
    """

    def __init__(
        self,
        capacity: int = 1000,
        default_ttl: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ConfigurationError(f"capacity must be >= 1, got {capacity!r}.")
        if default_ttl is not None and default_ttl <= 0:
            raise ConfigurationError(f"default_ttl must be > 0, got {default_ttl!r}.")
        self.capacity = capacity
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[K, _Entry[V]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def get(self, key: K, default: V | None = None) -> V | None:
        """Return the value for ``key`` and mark it most recently used.

        Expired entries are evicted and count as a miss.
        """
        value = self._lookup(key)
        if value is _MISSING:
            return default
        return value  # type: ignore[return-value]

    def set(self, key: K, value: V, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``, evicting the LRU entry when full."""
        effective_ttl = ttl if ttl is not None else self.default_ttl
        entry = _Entry(value=value, stored_at=self._clock(), ttl=effective_ttl)
        if key in self._entries:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            return
        if len(self._entries) >= self.capacity:
            self._entries.popitem(last=False)
        self._entries[key] = entry

    def delete(self, key: K) -> bool:
        """Remove ``key``.  Returns True if it was present."""
        return self._entries.pop(key, _MISSING) is not _MISSING

    def has(self, key: K) -> bool:
        """Return True if ``key`` is present and unexpired.

        Does not affect recency or hit/miss counters.
        """
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.expired(self._clock()):
            del self._entries[key]
            return False
        return True

    def get_or_compute(
        self, key: K, compute: Callable[[], V], ttl: float | None = None
    ) -> V:
        """Return the cached value or compute, store and return it."""
        value = self._lookup(key)
        if value is not _MISSING:
            return value  # type: ignore[return-value]
        computed = compute()
        self.set(key, computed, ttl)
        return computed

    async def get_or_compute_async(
        self, key: K, compute: Callable[[], Awaitable[V]], ttl: float | None = None
    ) -> V:
        """Async variant of ``get_or_compute``."""
        value = self._lookup(key)
        if value is not _MISSING:
            return value  # type: ignore[return-value]
        computed = await compute()
        self.set(key, computed, ttl)
        return computed

    def clear(self) -> None:
        """Remove all entries and reset statistics."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def size(self) -> int:
        return len(self._entries)

    def keys(self) -> list[K]:
        """Return keys from least to most recently used."""
        return list(self._entries)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            capacity=self.capacity,
            hits=self._hits,
            misses=self._misses,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return self.has(key)  # type: ignore[arg-type]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={len(self._entries)}, capacity={self.capacity})"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _lookup(self, key: K) -> object:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return _MISSING
        if entry.expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return _MISSING
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.value


def content_hash(content: str) -> str:
    """Return a hex digest identifying ``content``.

    The key depends only on the text, never on which session produced it.
    """
    return hashlib.blake2b(content.encode("utf-8"), digest_size=16).hexdigest()


class TokenCache(LRUCache[str, int]):
    """LRU cache of token counts keyed by a hash of the counted text.

    Identical content shares one entry across all sessions.  Entries live
    for one hour by default.
    """

    DEFAULT_TTL: float = 3600.0

    def __init__(
        self,
        capacity: int = 5000,
        ttl: float = DEFAULT_TTL,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(capacity, ttl, clock=clock)

    def get_token_count(self, content: str, counter: Callable[[str], int]) -> int:
        """Return the cached count for ``content`` or compute it with ``counter``."""
        return self.get_or_compute(content_hash(content), lambda: counter(content))


__all__ = ["CacheStats", "LRUCache", "TokenCache", "content_hash"]
