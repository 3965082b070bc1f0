"""Abstract base class for the message storage collaborator.

The selection engine never persists anything itself: every read and write
of messages and summaries goes through an ``AsyncStorageAdapter``.  How the
data is encoded (JSON blobs, relational rows, ...) is the adapter's concern.

Classes
-------
- AsyncStorageAdapter  — abstract base for all storage collaborators
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from context_weaver.session.state import Message

# Fields of ``Message`` that ``update_message`` may change.
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {"role", "content", "timestamp", "pinned", "importance", "metadata"}
)


class AsyncStorageAdapter(ABC):
    """Protocol for async persistence of per-session messages and summaries.

    All methods are coroutines.  Implementations should use ``asyncio.Lock``
    for in-process safety where needed.  Operations on an unknown session
    behave as if the session were empty; they never raise for that reason.
    """

    @abstractmethod
    async def get_messages(self, session_id: str) -> list[Message]:
        """Return the messages of ``session_id`` in insertion order.

        Returns
        -------
        list[Message]
            Copies of the stored messages; an empty list for an unknown
            session.
        """

    @abstractmethod
    async def add_message(self, session_id: str, message: Message) -> None:
        """Append ``message`` to ``session_id``, creating the session if needed."""

    @abstractmethod
    async def update_message(
        self, session_id: str, message_id: str, updates: dict[str, Any]
    ) -> bool:
        """Apply ``updates`` to one stored message.

        Parameters
        ----------
        session_id:
            Session holding the message.
        message_id:
            Id of the message to change.
        updates:
            Partial field values; keys must be in ``UPDATABLE_FIELDS``.

        Returns
        -------
        bool
            True if the message existed and was updated, False otherwise.
        """

    @abstractmethod
    async def delete_message(self, session_id: str, message_id: str) -> bool:
        """Remove one message.  Returns False if it was not present."""

    @abstractmethod
    async def get_summary(self, session_id: str) -> str | None:
        """Return the stored summary of ``session_id``, or None."""

    @abstractmethod
    async def set_summary(self, session_id: str, summary: str) -> None:
        """Store ``summary`` for ``session_id``, replacing any previous one."""

    @abstractmethod
    async def clear_session(self, session_id: str) -> None:
        """Remove all messages and the summary of ``session_id``."""

    @abstractmethod
    async def has_session(self, session_id: str) -> bool:
        """Return True if ``session_id`` holds any messages or a summary."""

    async def list_sessions(self) -> list[str]:
        """Return known session ids.  Adapters that cannot enumerate return []."""
        return []


def check_updates(updates: dict[str, Any]) -> dict[str, Any]:
    """Return ``updates`` unchanged after rejecting unknown field names.

    Raises
    ------
    ValueError
        If a key is not in ``UPDATABLE_FIELDS``.
    """
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update message fields: {sorted(unknown)!r}")
    return updates


def apply_updates(message: Message, updates: dict[str, Any]) -> Message:
    """Return a validated copy of ``message`` with ``updates`` applied.

    Raises
    ------
    ValueError
        If a key is not in ``UPDATABLE_FIELDS`` or a value fails ``Message``
        validation (``pydantic.ValidationError`` is a ``ValueError``).
    """
    check_updates(updates)
    return Message.model_validate({**message.model_dump(), **updates})


__all__ = ["AsyncStorageAdapter", "UPDATABLE_FIELDS", "apply_updates", "check_updates"]
