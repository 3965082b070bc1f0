"""Bloom filters for fast "definitely not seen" checks.

The bit-array size ``m`` and hash count ``k`` are derived at construction
from the expected item count ``n`` and target false-positive rate ``p``::

    m = ceil(-n * ln(p) / ln(2)^2)
    k = ceil((m / n) * ln(2))

Two independent 32-bit hashes (FNV-1a and DJB2) are combined by double
hashing, ``h_i = h1 + i * h2``, to simulate ``k`` hash functions.  A filter
never grows; ``clear()`` is the only reset.

Classes
-------
- BloomStats          — size, hash count, and fill rate snapshot
- BloomFilter         — bit-array filter, add and query only
- CountingBloomFilter — 8-bit counter filter that also supports removal
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from context_weaver.errors import ConfigurationError

_MASK32 = 0xFFFFFFFF


def _fnv1a(item: str) -> int:
    value = 2166136261
    for char in item:
        value ^= ord(char)
        value = (value * 16777619) & _MASK32
    return value


def _djb2(item: str) -> int:
    value = 5381
    for char in item:
        value = (((value << 5) + value) ^ ord(char)) & _MASK32
    return value


def optimal_parameters(expected_items: int, false_positive_rate: float) -> tuple[int, int]:
    """Return ``(size_in_bits, hash_count)`` for the given targets.

    Raises
    ------
    ConfigurationError
        If ``expected_items < 1`` or the rate is not strictly between 0 and 1.
    """
    if expected_items < 1:
        raise ConfigurationError(
            f"expected_items must be >= 1, got {expected_items!r}."
        )
    if not 0.0 < false_positive_rate < 1.0:
        raise ConfigurationError(
            f"false_positive_rate must be in (0, 1), got {false_positive_rate!r}."
        )
    size = math.ceil(-expected_items * math.log(false_positive_rate) / (math.log(2) ** 2))
    hash_count = max(1, math.ceil((size / expected_items) * math.log(2)))
    return size, hash_count


@dataclass(frozen=True)
class BloomStats:
    """Filter geometry and occupancy."""

    size: int
    hash_count: int
    fill_rate: float


class _BaseBloom:
    def __init__(self, expected_items: int, false_positive_rate: float) -> None:
        self.size, self.hash_count = optimal_parameters(expected_items, false_positive_rate)
        self.expected_items = expected_items
        self.false_positive_rate = false_positive_rate

    def _indexes(self, item: str) -> list[int]:
        h1 = _fnv1a(item)
        h2 = _djb2(item)
        return [(h1 + i * h2) % self.size for i in range(self.hash_count)]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(size={self.size}, hash_count={self.hash_count})"
        )


class BloomFilter(_BaseBloom):
    """Probabilistic set membership with no false negatives.

    Parameters
    ----------
    expected_items:
        Number of items the filter is sized for.  Default: 10000.
    false_positive_rate:
        Target false-positive probability at ``expected_items``.
        Default: 0.01.

    Example
    -------
    >>> bloom = BloomFilter(100)
    >>> bloom.add("a")
    >>> bloom.might_contain("a")
    True
    """

    def __init__(self, expected_items: int = 10000, false_positive_rate: float = 0.01) -> None:
        super().__init__(expected_items, false_positive_rate)
        self._bits = bytearray(math.ceil(self.size / 8))

    def add(self, item: str) -> None:
        """Record ``item`` in the filter."""
        for index in self._indexes(item):
            self._bits[index >> 3] |= 1 << (index & 7)

    def might_contain(self, item: str) -> bool:
        """Return False if ``item`` was definitely never added.

        True means "probably added"; false positives are bounded by the
        configured rate and never corrected.
        """
        return all(
            self._bits[index >> 3] & (1 << (index & 7))
            for index in self._indexes(item)
        )

    def stats(self) -> BloomStats:
        set_bits = sum(bin(byte).count("1") for byte in self._bits)
        return BloomStats(
            size=self.size,
            hash_count=self.hash_count,
            fill_rate=set_bits / self.size,
        )

    def clear(self) -> None:
        """Reset every bit to zero."""
        self._bits = bytearray(len(self._bits))

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and self.might_contain(item)


class CountingBloomFilter(_BaseBloom):
    """Bloom filter with saturating 8-bit counters so items can be removed.

    Uses one byte per slot instead of one bit.  Removing an item that was
    never added may introduce false negatives for colliding items, so
    ``remove`` is a no-op unless ``might_contain`` is True.
    """

    _MAX_COUNT = 255

    def __init__(self, expected_items: int = 10000, false_positive_rate: float = 0.01) -> None:
        super().__init__(expected_items, false_positive_rate)
        self._counts = bytearray(self.size)

    def add(self, item: str) -> None:
        for index in self._indexes(item):
            if self._counts[index] < self._MAX_COUNT:
                self._counts[index] += 1

    def remove(self, item: str) -> None:
        if not self.might_contain(item):
            return
        for index in self._indexes(item):
            if self._counts[index] > 0:
                self._counts[index] -= 1

    def might_contain(self, item: str) -> bool:
        return all(self._counts[index] for index in self._indexes(item))

    def stats(self) -> BloomStats:
        occupied = sum(1 for count in self._counts if count)
        return BloomStats(
            size=self.size,
            hash_count=self.hash_count,
            fill_rate=occupied / self.size,
        )

    def clear(self) -> None:
        self._counts = bytearray(self.size)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and self.might_contain(item)


__all__ = ["BloomFilter", "BloomStats", "CountingBloomFilter", "optimal_parameters"]
