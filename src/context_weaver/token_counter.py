"""Approximate token counting.

Token counts in context-weaver are an estimate, not a guarantee of
provider-exact numbers.  The default heuristic assumes roughly four
characters per token for English text and adds small surcharges for
whitespace runs and punctuation, which tends to overestimate slightly.

Callers that need exact counts inject their own counter, for example one
built with ``create_tiktoken_counter``.
"""
from __future__ import annotations

import math
import re
from typing import Any, Callable, Iterable, Mapping

TokenCounter = Callable[[str], int]

# Per-message overhead for role and structural tokens.
MESSAGE_OVERHEAD: int = 4
# Base overhead for the messages array as a whole.
CONVERSATION_OVERHEAD: int = 3

_WHITESPACE_RE = re.compile(r"\s+")
_SPECIAL_RE = re.compile(r"[^\w\s]")


def default_token_counter(text: str) -> int:
    """Estimate the token count of ``text``.

    Returns 0 for empty text, otherwise
    ``ceil(ceil(len/4) + 0.1 * whitespace_runs + 0.2 * punctuation)``.
    """
    if not text:
        return 0
    base_estimate = math.ceil(len(text) / 4)
    spaces = len(_WHITESPACE_RE.findall(text))
    special_chars = len(_SPECIAL_RE.findall(text))
    return math.ceil(base_estimate + spaces * 0.1 + special_chars * 0.2)


def _content_of(message: Any) -> str:
    if isinstance(message, Mapping):
        return str(message.get("content", ""))
    return str(getattr(message, "content", ""))


def count_message_tokens(message: Any, counter: TokenCounter = default_token_counter) -> int:
    """Estimate tokens for one message including structural overhead.

    ``message`` may be a model with a ``content`` attribute or a plain
    mapping with a ``"content"`` key.
    """
    return counter(_content_of(message)) + MESSAGE_OVERHEAD


def count_messages_tokens(
    messages: Iterable[Any], counter: TokenCounter = default_token_counter
) -> int:
    """Estimate tokens for a whole message list including array overhead."""
    total = sum(count_message_tokens(message, counter) for message in messages)
    return total + CONVERSATION_OVERHEAD


def create_tiktoken_counter(encoder: Any) -> TokenCounter:
    """Build a counter from any encoder exposing ``encode(text) -> sequence``.

    Example
    -------
    >>> import tiktoken  # doctest: +SKIP
    >>> counter = create_tiktoken_counter(tiktoken.encoding_for_model("gpt-4"))  # doctest: +SKIP
    """

    def _count(text: str) -> int:
        if not text:
            return 0
        return len(encoder.encode(text))

    return _count


_TIKTOKEN_IMPORT_ERROR = (
    "tiktoken_counter requires the 'tiktoken' package. "
    "Install it with: pip install tiktoken  or  pip install 'context-weaver[tiktoken]'"
)


def tiktoken_counter(encoding_name: str = "cl100k_base") -> TokenCounter:
    """Return a counter backed by the named tiktoken encoding.

    Raises
    ------
    ImportError
        If ``tiktoken`` is not installed.
    """
    try:
        import tiktoken
    except ImportError as exc:
        raise ImportError(_TIKTOKEN_IMPORT_ERROR) from exc
    return create_tiktoken_counter(tiktoken.get_encoding(encoding_name))


__all__ = [
    "CONVERSATION_OVERHEAD",
    "MESSAGE_OVERHEAD",
    "TokenCounter",
    "count_message_tokens",
    "count_messages_tokens",
    "create_tiktoken_counter",
    "default_token_counter",
    "tiktoken_counter",
]
