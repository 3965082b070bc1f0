"""In-memory storage collaborator.

Stores messages and summaries in plain Python dicts guarded by
``asyncio.Lock``.  All data is lost when the process exits.  This adapter
is the reference collaborator and is used by default.

Classes
-------
- InMemoryStorage  — dict-backed ephemeral async storage
"""
from __future__ import annotations

import asyncio
from typing import Any

from context_weaver.session.state import Message
from context_weaver.storage.base import AsyncStorageAdapter, apply_updates, check_updates


class InMemoryStorage(AsyncStorageAdapter):
    """Ephemeral storage adapter backed by Python dicts.

    Messages are copied on the way in and on the way out, so callers can
    never mutate stored state through a returned object.
    """

    def __init__(self) -> None:
        self._messages: dict[str, list[Message]] = {}
        self._summaries: dict[str, str] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # AsyncStorageAdapter interface
    # ------------------------------------------------------------------

    async def get_messages(self, session_id: str) -> list[Message]:
        async with self._lock:
            return [m.model_copy(deep=True) for m in self._messages.get(session_id, [])]

    async def add_message(self, session_id: str, message: Message) -> None:
        async with self._lock:
            self._messages.setdefault(session_id, []).append(message.model_copy(deep=True))

    async def update_message(
        self, session_id: str, message_id: str, updates: dict[str, Any]
    ) -> bool:
        check_updates(updates)
        async with self._lock:
            messages = self._messages.get(session_id, [])
            for index, message in enumerate(messages):
                if message.id == message_id:
                    messages[index] = apply_updates(message, updates).model_copy(deep=True)
                    return True
            return False

    async def delete_message(self, session_id: str, message_id: str) -> bool:
        async with self._lock:
            messages = self._messages.get(session_id)
            if not messages:
                return False
            remaining = [m for m in messages if m.id != message_id]
            self._messages[session_id] = remaining
            return len(remaining) != len(messages)

    async def get_summary(self, session_id: str) -> str | None:
        async with self._lock:
            return self._summaries.get(session_id)

    async def set_summary(self, session_id: str, summary: str) -> None:
        async with self._lock:
            self._summaries[session_id] = summary

    async def clear_session(self, session_id: str) -> None:
        async with self._lock:
            self._messages.pop(session_id, None)
            self._summaries.pop(session_id, None)

    async def has_session(self, session_id: str) -> bool:
        async with self._lock:
            return bool(self._messages.get(session_id)) or session_id in self._summaries

    async def list_sessions(self) -> list[str]:
        """Return all session ids with messages or a summary, in insertion order."""
        async with self._lock:
            return list(dict.fromkeys([*self._messages, *self._summaries]))

    # ------------------------------------------------------------------
    # Extras
    # ------------------------------------------------------------------

    async def clear_all(self) -> None:
        """Remove every session."""
        async with self._lock:
            self._messages.clear()
            self._summaries.clear()

    def __len__(self) -> int:
        return len(set(self._messages) | set(self._summaries))

    def __repr__(self) -> str:
        return f"InMemoryStorage(sessions={len(self)})"


__all__ = ["InMemoryStorage"]
