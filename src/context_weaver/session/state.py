"""Conversation domain models.

All types are Pydantic BaseModel subclasses to enable runtime validation
and JSON serialisation.  The storage collaborator owns ``Message`` records;
the selection engine only reads and derives from them.

Classes
-------
- MessageRole   — enum of provider-compatible roles
- Message       — one stored conversation message
- LLMMessage    — the ``{role, content}`` shape handed to a model
- ContextResult — output of a context selection pass
- SessionStats  — aggregate counts for one session
"""
from __future__ import annotations

import secrets
import string
import time
from enum import Enum
from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, Field

_ID_ALPHABET = string.ascii_lowercase + string.digits


def now_ms() -> int:
    """Return the current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def generate_id() -> str:
    """Return a unique message id of the form ``msg_<ms>_<random>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"msg_{now_ms()}_{suffix}"


class MessageRole(str, Enum):
    """Message roles compatible with common chat-completion APIs."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION = "function"
    TOOL = "tool"


class LLMMessage(BaseModel):
    """A message in the minimal shape expected by model providers."""

    role: MessageRole
    content: str

    model_config = {"frozen": True, "use_enum_values": False}


class Message(BaseModel):
    """A single message in a conversation history.

    Parameters
    ----------
    id:
        Unique identifier for the message.
    role:
        The role of the sender.
    content:
        Raw text content.
    timestamp:
        Creation time in epoch milliseconds.
    pinned:
        When True the message is preferred over all unpinned history.
    importance:
        Optional importance in [0.0, 1.0].  Once present it is authoritative
        and never recomputed.
    metadata:
        Arbitrary caller data carried through unchanged.
    """

    id: str = Field(default_factory=generate_id)
    role: MessageRole
    content: str
    timestamp: int = Field(default_factory=now_ms)
    pinned: bool = False
    importance: float | None = Field(default=None, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": False}

    def to_llm(self) -> LLMMessage:
        """Return the provider-facing ``{role, content}`` view."""
        return LLMMessage(role=self.role, content=self.content)


class ContextResult(BaseModel):
    """Result of a ``get_context`` call.

    Parameters
    ----------
    messages:
        Messages ready to send to a model, in chronological order.
    token_count:
        Estimated tokens consumed by ``messages``.
    message_count:
        ``len(messages)``.
    was_summarized:
        True when a stored summary was included.
    pinned_count:
        Number of pinned messages included.
    strategy_used:
        Label of the selection strategy.
    """

    messages: list[LLMMessage] = Field(default_factory=list)
    token_count: int = 0
    message_count: int = 0
    was_summarized: bool = False
    pinned_count: int = 0
    strategy_used: str = "smart-auto"


class SessionStats(BaseModel):
    """Aggregate statistics for one session."""

    total_messages: int = 0
    pinned_messages: int = 0
    estimated_tokens: int = 0
    has_summary: bool = False
    oldest_message: int | None = None
    newest_message: int | None = None


_T = TypeVar("_T")


def sort_by_timestamp(messages: Iterable[_T]) -> list[_T]:
    """Return a new list sorted oldest first; ties keep their input order."""
    return sorted(messages, key=lambda m: m.timestamp)  # type: ignore[attr-defined]


def partition_messages(messages: Iterable[Message]) -> tuple[list[Message], list[Message]]:
    """Split messages into ``(pinned, unpinned)`` preserving order."""
    pinned: list[Message] = []
    unpinned: list[Message] = []
    for message in messages:
        if message.pinned:
            pinned.append(message)
        else:
            unpinned.append(message)
    return pinned, unpinned


__all__ = [
    "ContextResult",
    "LLMMessage",
    "Message",
    "MessageRole",
    "SessionStats",
    "generate_id",
    "now_ms",
    "partition_messages",
    "sort_by_timestamp",
]
