"""Caching subpackage.

Public surface
--------------
- LRUCache            — O(1) LRU cache with optional per-entry TTL
- TokenCache          — content-addressed cache of token counts
- BloomFilter         — approximate set membership, no false negatives
- CountingBloomFilter — bloom filter that supports ``remove``
"""
from __future__ import annotations

from context_weaver.cache.bloom import (
    BloomFilter,
    BloomStats,
    CountingBloomFilter,
    optimal_parameters,
)
from context_weaver.cache.lru import CacheStats, LRUCache, TokenCache, content_hash

__all__ = [
    "BloomFilter",
    "BloomStats",
    "CacheStats",
    "CountingBloomFilter",
    "LRUCache",
    "TokenCache",
    "content_hash",
    "optimal_parameters",
]
