"""Storage collaborator subpackage.

All adapters implement the ``AsyncStorageAdapter`` ABC.  Optional adapters
import their third-party library when constructed, so the package remains
importable without those extras.

Public surface
--------------
- AsyncStorageAdapter — abstract base class
- InMemoryStorage     — dicts guarded by asyncio.Lock (default)
- SQLiteStorage       — relational rows via aiosqlite (requires aiosqlite)
- RedisStorage        — JSON blobs via redis.asyncio (requires redis>=5)
"""
from __future__ import annotations

from context_weaver.storage.base import AsyncStorageAdapter
from context_weaver.storage.memory import InMemoryStorage
from context_weaver.storage.redis import RedisStorage
from context_weaver.storage.sqlite import SQLiteStorage

__all__ = [
    "AsyncStorageAdapter",
    "InMemoryStorage",
    "RedisStorage",
    "SQLiteStorage",
]
