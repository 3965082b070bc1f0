"""Exception hierarchy for context-weaver.

Every error raised by the library derives from ``ContextWeaverError`` and
carries a stable machine-readable ``code`` plus an optional ``context``
mapping with the values that triggered it.

Classes
-------
- ContextWeaverError        — base class
- TokenLimitExceededError   — a request cannot fit the token budget
- SessionNotFoundError      — unknown session id
- MessageNotFoundError      — unknown message id within a session
- StorageError              — a storage collaborator operation failed
- SummarizationError        — an external summarizer failed
- ConfigurationError        — invalid construction parameters
- ValidationError           — malformed input data (e.g. imports)
"""
from __future__ import annotations

from typing import Any


class ContextWeaverError(Exception):
    """Base class for all context-weaver errors.

    Parameters
    ----------
    message:
        Human-readable description.
    code:
        Stable error code, e.g. ``"STORAGE_ERROR"``.
    context:
        Optional key-value data describing the failure.
    """

    def __init__(
        self,
        message: str,
        code: str = "CONTEXT_WEAVER_ERROR",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.context: dict[str, Any] = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict."""
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "context": dict(self.context),
        }

    def __str__(self) -> str:
        return self.message


class TokenLimitExceededError(ContextWeaverError):
    """Raised when a request cannot be satisfied within the token limit."""

    def __init__(
        self, requested: int, limit: int, context: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            f"Token limit exceeded: requested {requested} tokens, but limit is {limit}",
            "TOKEN_LIMIT_EXCEEDED",
            {"requested": requested, "limit": limit, **(context or {})},
        )


class SessionNotFoundError(ContextWeaverError, KeyError):
    """Raised when a requested session does not exist."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(
            f"Session not found: {session_id}",
            "SESSION_NOT_FOUND",
            {"session_id": session_id},
        )


class MessageNotFoundError(ContextWeaverError, KeyError):
    """Raised when a message id is not present in a session."""

    def __init__(self, session_id: str, message_id: str) -> None:
        self.session_id = session_id
        self.message_id = message_id
        super().__init__(
            f"Message not found: {message_id} in session {session_id}",
            "MESSAGE_NOT_FOUND",
            {"session_id": session_id, "message_id": message_id},
        )


class StorageError(ContextWeaverError):
    """Raised when a storage collaborator operation fails.

    The underlying exception is kept on ``original`` and is also chained
    as ``__cause__`` by callers using ``raise ... from``.
    """

    def __init__(self, operation: str, original: BaseException | None = None) -> None:
        self.operation = operation
        self.original = original
        detail = f" - {original}" if original is not None else ""
        super().__init__(
            f"Storage operation failed: {operation}{detail}",
            "STORAGE_ERROR",
            {"operation": operation},
        )


class SummarizationError(ContextWeaverError):
    """Raised when the configured summarizer fails."""

    def __init__(self, message: str, original: BaseException | None = None) -> None:
        self.original = original
        super().__init__(
            f"Summarization failed: {message}",
            "SUMMARIZATION_ERROR",
            {"original_message": message},
        )


class ConfigurationError(ContextWeaverError, ValueError):
    """Raised at construction time when configuration values are invalid."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            f"Invalid configuration: {message}", "CONFIGURATION_ERROR", context
        )


class ValidationError(ContextWeaverError, ValueError):
    """Raised when input data fails structural validation."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(f"Validation failed: {message}", "VALIDATION_ERROR", context)


def is_context_weaver_error(error: object) -> bool:
    """Return True when ``error`` is a ``ContextWeaverError`` instance."""
    return isinstance(error, ContextWeaverError)


def wrap_error(error: BaseException, operation: str) -> ContextWeaverError:
    """Wrap an arbitrary exception in a ``ContextWeaverError``.

    Library errors are returned unchanged; any other exception becomes a
    ``StorageError`` naming ``operation``.
    """
    if isinstance(error, ContextWeaverError):
        return error
    return StorageError(operation, error)


__all__ = [
    "ConfigurationError",
    "ContextWeaverError",
    "MessageNotFoundError",
    "SessionNotFoundError",
    "StorageError",
    "SummarizationError",
    "TokenLimitExceededError",
    "ValidationError",
    "is_context_weaver_error",
    "wrap_error",
]
