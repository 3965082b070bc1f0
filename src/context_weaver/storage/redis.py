"""Redis storage collaborator — requires redis[asyncio] (guarded import).

Each session is stored as two Redis strings holding JSON:

- ``<key_prefix><session_id>:messages`` — a JSON array of messages
- ``<key_prefix><session_id>:summary``  — the summary text

Every write refreshes the TTL of both keys when ``ttl_seconds`` is set, so
an active session never expires mid-conversation.

Classes
-------
- RedisStorage  — redis.asyncio-backed async storage
"""
from __future__ import annotations

import asyncio
import json
from typing import Any

from context_weaver.session.state import Message
from context_weaver.storage.base import AsyncStorageAdapter, apply_updates, check_updates

_REDIS_IMPORT_ERROR = (
    "RedisStorage requires the 'redis' package with asyncio support. "
    "Install it with: pip install redis  or  pip install 'context-weaver[redis]'"
)


class RedisStorage(AsyncStorageAdapter):
    """Persists sessions in a Redis instance using ``redis.asyncio``.

    Parameters
    ----------
    host:
        Redis server hostname.  Defaults to ``"localhost"``.
    port:
        Redis server port.  Defaults to ``6379``.
    db:
        Redis logical database index.  Defaults to ``0``.
    password:
        Optional authentication password.
    key_prefix:
        String prepended to all keys.  Defaults to ``"context_weaver:"``.
    ttl_seconds:
        Optional TTL refreshed on every write.  When ``None`` (default)
        keys persist until explicitly deleted.
    url:
        If supplied, overrides host/port/db/password and is used as a
        Redis connection URL (e.g. ``"redis://localhost:6379/0"``).
    client:
        A pre-built ``redis.asyncio.Redis`` client created with
        ``decode_responses=True``.  Overrides every connection argument.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
        key_prefix: str = "context_weaver:",
        ttl_seconds: int | None = None,
        url: str | None = None,
        client: Any = None,
    ) -> None:
        try:
            import redis.asyncio as redis_asyncio
        except ImportError as exc:
            raise ImportError(_REDIS_IMPORT_ERROR) from exc

        if client is not None:
            self._client = client
        elif url is not None:
            self._client = redis_asyncio.Redis.from_url(url, decode_responses=True)
        else:
            self._client = redis_asyncio.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,
            )
        self._key_prefix = key_prefix
        self._ttl_seconds = ttl_seconds
        # Read-modify-write of the message blob is serialised in-process.
        self._lock: asyncio.Lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _messages_key(self, session_id: str) -> str:
        return f"{self._key_prefix}{session_id}:messages"

    def _summary_key(self, session_id: str) -> str:
        return f"{self._key_prefix}{session_id}:summary"

    async def _load(self, session_id: str) -> list[Message]:
        raw: str | None = await self._client.get(self._messages_key(session_id))
        if raw is None:
            return []
        return [Message.model_validate(item) for item in json.loads(raw)]

    async def _store(self, session_id: str, messages: list[Message]) -> None:
        payload = json.dumps([m.model_dump(mode="json") for m in messages])
        await self._put(self._messages_key(session_id), payload)
        await self._refresh_ttl(session_id)

    async def _put(self, key: str, value: str) -> None:
        if self._ttl_seconds is not None:
            await self._client.setex(key, self._ttl_seconds, value)
        else:
            await self._client.set(key, value)

    async def _refresh_ttl(self, session_id: str) -> None:
        if self._ttl_seconds is None:
            return
        await self._client.expire(self._messages_key(session_id), self._ttl_seconds)
        await self._client.expire(self._summary_key(session_id), self._ttl_seconds)

    # ------------------------------------------------------------------
    # AsyncStorageAdapter interface
    # ------------------------------------------------------------------

    async def get_messages(self, session_id: str) -> list[Message]:
        return await self._load(session_id)

    async def add_message(self, session_id: str, message: Message) -> None:
        async with self._lock:
            messages = await self._load(session_id)
            messages.append(message)
            await self._store(session_id, messages)

    async def update_message(
        self, session_id: str, message_id: str, updates: dict[str, Any]
    ) -> bool:
        check_updates(updates)
        async with self._lock:
            messages = await self._load(session_id)
            for index, message in enumerate(messages):
                if message.id == message_id:
                    messages[index] = apply_updates(message, updates)
                    await self._store(session_id, messages)
                    return True
            return False

    async def delete_message(self, session_id: str, message_id: str) -> bool:
        async with self._lock:
            messages = await self._load(session_id)
            remaining = [m for m in messages if m.id != message_id]
            if len(remaining) == len(messages):
                return False
            await self._store(session_id, remaining)
            return True

    async def get_summary(self, session_id: str) -> str | None:
        value: str | None = await self._client.get(self._summary_key(session_id))
        return str(value) if value is not None else None

    async def set_summary(self, session_id: str, summary: str) -> None:
        await self._put(self._summary_key(session_id), summary)
        await self._refresh_ttl(session_id)

    async def clear_session(self, session_id: str) -> None:
        await self._client.delete(
            self._messages_key(session_id), self._summary_key(session_id)
        )

    async def has_session(self, session_id: str) -> bool:
        count: int = await self._client.exists(
            self._messages_key(session_id), self._summary_key(session_id)
        )
        return count > 0

    async def list_sessions(self) -> list[str]:
        """Return all session ids under the configured prefix.

        Uses Redis SCAN to avoid blocking the server.
        """
        prefix_len = len(self._key_prefix)
        session_ids: dict[str, None] = {}
        cursor: int = 0
        while True:
            cursor, keys = await self._client.scan(
                cursor=cursor, match=f"{self._key_prefix}*", count=100
            )
            for key in keys:
                session_id, _, _suffix = str(key)[prefix_len:].rpartition(":")
                if session_id:
                    session_ids[session_id] = None
            if cursor == 0:
                break
        return list(session_ids)

    def __repr__(self) -> str:
        return (
            f"RedisStorage(key_prefix={self._key_prefix!r}, "
            f"ttl_seconds={self._ttl_seconds!r})"
        )


__all__ = ["RedisStorage"]
