"""Smart context selection over a growing conversation history.

``SmartContextWeaver`` composes the importance scorer, the semantic index,
the local summarizer and the caches into one operation, ``get_context``,
that returns the subset of a session's history worth sending to a model
on this turn.  The returned messages never exceed the token budget.

Selection order
---------------
1. The stored summary, as a synthetic system message, if it fits.
2. Pinned messages, oldest first, each checked against the remaining budget.
3. Every other message, scored and (with a query) boosted when it is among
   the query's most similar messages.  Messages below the threshold are
   dropped; the rest are packed greedily by score.
4. The result is re-sorted into chronological order.

History is compacted by ``add``: once unpinned messages exceed
``summarize_multiplier * token_limit`` tokens, everything but the most
recent ``recent_keep`` unpinned messages is summarized into the session
summary and deleted.

Mutations of one session (``add``, ``pin``, ``unpin``, ``clear``,
``import_session``, ``summarize``) are serialised by a per-session
``asyncio.Lock``.  ``get_context`` only reads and takes no lock.

Classes
-------
- SmartContextConfig  — validated orchestrator settings
- SmartContextWeaver  — the orchestrator
- SessionHandle       — the orchestrator bound to one session id
"""
from __future__ import annotations

import asyncio
import weakref
import functools
import logging
from dataclasses import asdict
from typing import Any, Awaitable, Callable, Iterable, TypeVar

import pydantic
from pydantic import BaseModel, Field

from context_weaver.cache.bloom import BloomFilter
from context_weaver.cache.lru import LRUCache, TokenCache
from context_weaver.context.semantic_index import SearchResult, SemanticIndex
from context_weaver.context.summarizer import LocalSummarizer
from context_weaver.errors import (
    ConfigurationError,
    ContextWeaverError,
    SummarizationError,
    ValidationError,
    wrap_error,
)
from context_weaver.selective.importance_scorer import AutoImportance
from context_weaver.session.state import (
    ContextResult,
    LLMMessage,
    Message,
    MessageRole,
    SessionStats,
    partition_messages,
    sort_by_timestamp,
)
from context_weaver.storage.base import AsyncStorageAdapter
from context_weaver.storage.memory import InMemoryStorage
from context_weaver.token_counter import TokenCounter, count_message_tokens, default_token_counter

logger = logging.getLogger(__name__)

Summarizer = Callable[[list[Message]], Awaitable[str]]

_T = TypeVar("_T")

# Packing stops at the first overflowing candidate once this many
# scored messages are in.
PACKING_STOP_COUNT: int = 10

SUMMARY_PREFIX: str = "Previous context: "


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class SmartContextConfig(BaseModel):
    """Settings for ``SmartContextWeaver``.

    Use ``SmartContextConfig.from_options`` (or pass keyword options to the
    weaver) to get ``ConfigurationError`` instead of a pydantic error on
    invalid values.

    Parameters
    ----------
    token_limit:
        Default budget for ``get_context`` and the base of the
        auto-summarization trigger.
    enable_semantic:
        Boost messages similar to the current query.
    enable_auto_importance:
        Score new messages with ``AutoImportance``; when False they get 0.5.
    enable_local_summary:
        Use ``LocalSummarizer`` when no external summarizer is supplied.
    cache_size:
        Capacity of the token-count cache.
    context_cache_size:
        Capacity of the query-less ``get_context`` result cache.
    context_cache_ttl:
        Lifetime in seconds of a cached ``get_context`` result.
    recent_keep:
        Unpinned messages left untouched by auto-summarization.
    min_batch_to_summarize:
        Auto-summarization only runs on batches larger than this.
    summarize_multiplier:
        Auto-summarize once unpinned tokens exceed this times ``token_limit``.
    semantic_top_k:
        Number of query-similar messages that receive the boost.
    semantic_boost:
        Score added to query-similar messages (result capped at 1.0).
    auto_pin_threshold:
        New messages scoring at or above this are pinned unless the caller
        decides explicitly.
    expected_sessions:
        Sizing of the seen-sessions bloom filter.
    """

    token_limit: int = Field(default=4000, ge=1)
    enable_semantic: bool = True
    enable_auto_importance: bool = True
    enable_local_summary: bool = True
    cache_size: int = Field(default=5000, ge=1)
    context_cache_size: int = Field(default=100, ge=1)
    context_cache_ttl: float = Field(default=30.0, gt=0)
    recent_keep: int = Field(default=10, ge=0)
    min_batch_to_summarize: int = Field(default=5, ge=0)
    summarize_multiplier: float = Field(default=2.0, gt=0)
    semantic_top_k: int = Field(default=5, ge=1)
    semantic_boost: float = Field(default=0.3, ge=0.0, le=1.0)
    auto_pin_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    expected_sessions: int = Field(default=10000, ge=1)

    model_config = {"frozen": True, "extra": "forbid"}

    @classmethod
    def from_options(cls, **options: Any) -> "SmartContextConfig":
        """Build a config, raising ``ConfigurationError`` on invalid values."""
        try:
            return cls(**options)
        except pydantic.ValidationError as exc:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
            raise ConfigurationError(
                f"invalid value for {', '.join(fields)}", {"fields": fields}
            ) from exc


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


def _compare_candidates(a: tuple[Message, float], b: tuple[Message, float]) -> int:
    """Higher score first; near ties (within 0.1) favour the newer message."""
    (message_a, score_a), (message_b, score_b) = a, b
    if abs(score_a - score_b) > 0.1:
        return -1 if score_a > score_b else 1
    return message_b.timestamp - message_a.timestamp


class SmartContextWeaver:
    """Select the context to send to a model, per session.

    Parameters
    ----------
    config:
        Pre-built settings.  Mutually exclusive with keyword ``options``.
    storage:
        Storage collaborator.  Defaults to a fresh ``InMemoryStorage``.
    token_counter:
        ``(text) -> int`` estimate.  Defaults to ``default_token_counter``.
    summarizer:
        Async callable turning a batch of messages into summary text.
    **options:
        Fields of ``SmartContextConfig``.

    Raises
    ------
    ConfigurationError
        If any option is invalid.

    Example
    -------
    >>> weaver = SmartContextWeaver(token_limit=2000)  # doctest: +SKIP
    >>> await weaver.add("s1", "user", "My budget is $500")  # doctest: +SKIP
    >>> result = await weaver.get_context("s1", current_query="hotels")  # doctest: +SKIP
    """

    def __init__(
        self,
        config: SmartContextConfig | None = None,
        *,
        storage: AsyncStorageAdapter | None = None,
        token_counter: TokenCounter | None = None,
        summarizer: Summarizer | None = None,
        **options: Any,
    ) -> None:
        if config is not None and options:
            raise ConfigurationError("pass either a config object or keyword options, not both")
        self.config = config if config is not None else SmartContextConfig.from_options(**options)
        self._storage = storage if storage is not None else InMemoryStorage()
        self._counter = token_counter if token_counter is not None else default_token_counter
        self._summarizer = summarizer

        self._scorer = AutoImportance()
        self._local_summarizer = LocalSummarizer()
        self._index = SemanticIndex()
        self._indexed_sessions: dict[str, str] = {}
        self._token_cache = TokenCache(capacity=self.config.cache_size)
        self._context_cache: LRUCache[str, ContextResult] = LRUCache(
            self.config.context_cache_size, self.config.context_cache_ttl
        )
        self._seen_sessions = BloomFilter(self.config.expected_sessions)
        # A lock lives only while some coroutine holds or waits on it.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._generations: dict[str, int] = {}

    @property
    def storage(self) -> AsyncStorageAdapter:
        return self._storage

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add(
        self,
        session_id: str,
        role: MessageRole | str,
        content: str,
        *,
        pinned: bool | None = None,
        importance: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Store a new message and return its id.

        Importance is assigned once here and never recomputed: the caller's
        value if given, 1.0 when pinned, otherwise the auto-importance score
        (0.5 with auto-importance disabled).  When ``pinned`` is None the
        message is pinned if its importance reaches ``auto_pin_threshold``.

        Raises
        ------
        ValidationError
            If ``role`` or ``importance`` is invalid.
        StorageError
            If the storage collaborator fails.
        SummarizationError
            If the external summarizer fails during auto-summarization.
        """
        message = self._new_message(role, content, pinned, importance, metadata)
        async with self._lock_for(session_id):
            existing = await self._storage_call(
                "get_messages", self._storage.get_messages(session_id)
            )
            if message.importance is None:
                message.importance = self._initial_importance(message, len(existing))
            if pinned is None and message.importance >= self.config.auto_pin_threshold:
                message.pinned = True

            await self._storage_call("add_message", self._storage.add_message(session_id, message))
            self._seen_sessions.add(session_id)
            if self.config.enable_semantic:
                self._index.add(message)
                self._indexed_sessions[message.id] = session_id
            self._invalidate(session_id)
            logger.debug(
                "SmartContextWeaver: added %s to session %r (importance=%.2f, pinned=%s)",
                message.id,
                session_id,
                message.importance,
                message.pinned,
            )
            await self._maybe_summarize(session_id, [*existing, message])
        return message.id

    async def pin(self, session_id: str, message_id: str) -> bool:
        """Pin a message and set its importance to 1.0.

        Returns False (a no-op) when the message does not exist.
        """
        return await self._set_pinned(session_id, message_id, {"pinned": True, "importance": 1.0})

    async def unpin(self, session_id: str, message_id: str) -> bool:
        """Unpin a message, keeping its importance.  Unknown ids are a no-op."""
        return await self._set_pinned(session_id, message_id, {"pinned": False})

    async def clear(self, session_id: str) -> None:
        """Delete every message and the summary of ``session_id``."""
        async with self._lock_for(session_id):
            messages = await self._storage_call(
                "get_messages", self._storage.get_messages(session_id)
            )
            await self._storage_call("clear_session", self._storage.clear_session(session_id))
            self._unindex(messages)
            self._invalidate(session_id)
        logger.debug("SmartContextWeaver: cleared session %r", session_id)

    async def summarize(self, session_id: str) -> str | None:
        """Summarize all but the most recent unpinned messages now.

        Returns the new session summary, or None when no summarizer is
        available or there is nothing to summarize.
        """
        if self._summarizer is None and not self.config.enable_local_summary:
            logger.info(
                "SmartContextWeaver: no summarizer configured; summarize(%r) skipped",
                session_id,
            )
            return None
        async with self._lock_for(session_id):
            messages = await self._storage_call(
                "get_messages", self._storage.get_messages(session_id)
            )
            batch = self._summarizable(messages)
            if not batch:
                return None
            return await self._summarize_batch(session_id, batch)

    async def import_session(
        self,
        session_id: str,
        messages: Iterable[Message],
        summary: str | None = None,
        *,
        overwrite: bool = False,
    ) -> int:
        """Load pre-built messages into ``session_id``.

        Messages are stored as given; their importance and pin state are
        not recomputed.  Returns the number of messages written.

        Raises
        ------
        ValidationError
            If the session already exists and ``overwrite`` is False.
        """
        batch = list(messages)
        async with self._lock_for(session_id):
            exists = await self._storage_call("has_session", self._storage.has_session(session_id))
            if exists and not overwrite:
                raise ValidationError(
                    f"session {session_id!r} already exists", {"session_id": session_id}
                )
            if exists:
                old = await self._storage_call(
                    "get_messages", self._storage.get_messages(session_id)
                )
                await self._storage_call("clear_session", self._storage.clear_session(session_id))
                self._unindex(old)
            for message in batch:
                await self._storage_call(
                    "add_message", self._storage.add_message(session_id, message)
                )
                if self.config.enable_semantic:
                    self._index.add(message)
                    self._indexed_sessions[message.id] = session_id
            if summary:
                await self._storage_call(
                    "set_summary", self._storage.set_summary(session_id, summary)
                )
            self._seen_sessions.add(session_id)
            self._invalidate(session_id)
        logger.debug(
            "SmartContextWeaver: imported %d messages into session %r", len(batch), session_id
        )
        return len(batch)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def get_context(
        self,
        session_id: str,
        *,
        max_tokens: int | None = None,
        current_query: str | None = None,
        importance_threshold: float = 0.3,
    ) -> ContextResult:
        """Return the messages to send to the model for this turn.

        Parameters
        ----------
        session_id:
            Session to select from.  Unknown sessions yield an empty result.
        max_tokens:
            Budget for the returned messages.  Defaults to ``token_limit``.
        current_query:
            The pending user input; enables the semantic boost.
        importance_threshold:
            Unpinned messages scoring below this are never included.

        Returns
        -------
        ContextResult
            ``token_count`` is always ``<= max_tokens``.
        """
        budget = self.config.token_limit if max_tokens is None else max_tokens
        if budget < 0:
            raise ValidationError(f"max_tokens must be >= 0, got {budget!r}")

        generation = self._generations.get(session_id, 0)
        cache_key: str | None = None
        if not current_query:
            cache_key = f"{session_id}\x00{budget}\x00{importance_threshold}"
            cached = self._context_cache.get(cache_key)
            if cached is not None:
                return cached.model_copy(deep=True)

        messages = await self._storage_call("get_messages", self._storage.get_messages(session_id))
        summary = await self._storage_call("get_summary", self._storage.get_summary(session_id))
        position = {message.id: index for index, message in enumerate(messages)}
        used = 0

        summary_message: LLMMessage | None = None
        if summary:
            summary_message = LLMMessage(role=MessageRole.SYSTEM, content=SUMMARY_PREFIX + summary)
            cost = self.message_tokens(summary_message)
            if cost <= budget:
                used += cost
            else:
                logger.debug("SmartContextWeaver: summary (%d tokens) dropped", cost)
                summary_message = None

        pinned, unpinned = partition_messages(messages)
        included: list[Message] = []
        for message in sort_by_timestamp(pinned):
            cost = self.message_tokens(message)
            if used + cost <= budget:
                included.append(message)
                used += cost
            else:
                logger.debug(
                    "SmartContextWeaver: pinned %s (%d tokens) does not fit; skipped",
                    message.id,
                    cost,
                )
        pinned_count = len(included)

        relevant: set[str] = set()
        if current_query and self.config.enable_semantic and unpinned:
            relevant = {
                m.id
                for m in self._index.find_relevant(
                    current_query, unpinned, self.config.semantic_top_k
                )
            }

        candidates: list[tuple[Message, float]] = []
        for message in unpinned:
            score = self._selection_score(message, position[message.id])
            if message.id in relevant:
                score = min(1.0, score + self.config.semantic_boost)
            if score >= importance_threshold:
                candidates.append((message, score))
        candidates.sort(key=functools.cmp_to_key(_compare_candidates))

        packed = 0
        for message, _score in candidates:
            cost = self.message_tokens(message)
            if used + cost <= budget:
                included.append(message)
                used += cost
                packed += 1
            elif packed >= PACKING_STOP_COUNT:
                break

        included.sort(key=lambda m: (m.timestamp, position[m.id]))
        llm_messages = [m.to_llm() for m in included]
        if summary_message is not None:
            llm_messages.insert(0, summary_message)

        result = ContextResult(
            messages=llm_messages,
            token_count=used,
            message_count=len(llm_messages),
            was_summarized=summary_message is not None,
            pinned_count=pinned_count,
        )
        # A mutation during the storage reads makes this result stale.
        if cache_key is not None and self._generations.get(session_id, 0) == generation:
            self._context_cache.set(cache_key, result.model_copy(deep=True))
        logger.debug(
            "SmartContextWeaver: session %r -> %d messages, %d/%d tokens",
            session_id,
            result.message_count,
            used,
            budget,
        )
        return result

    def search(
        self, query: str, *, session_id: str | None = None, top_k: int = 5, min_score: float = 0.1
    ) -> list[SearchResult]:
        """Search messages added through this weaver by TF-IDF similarity.

        With ``session_id`` only that session's messages are returned.
        """
        if session_id is None:
            return self._index.search(query, top_k, min_score)
        hits = self._index.search(query, len(self._index), min_score)
        return [h for h in hits if self._indexed_sessions.get(h.message.id) == session_id][:top_k]

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    async def get_messages(self, session_id: str) -> list[Message]:
        return await self._storage_call("get_messages", self._storage.get_messages(session_id))

    async def get_summary(self, session_id: str) -> str | None:
        return await self._storage_call("get_summary", self._storage.get_summary(session_id))

    async def has_session(self, session_id: str) -> bool:
        """Return True if the storage collaborator holds ``session_id``."""
        return await self._storage_call("has_session", self._storage.has_session(session_id))

    def seen_session(self, session_id: str) -> bool:
        """Fast check: False means this weaver never wrote to ``session_id``.

        Backed by a bloom filter, so True may be a false positive.
        """
        return self._seen_sessions.might_contain(session_id)

    async def get_session_stats(self, session_id: str) -> SessionStats:
        messages = await self.get_messages(session_id)
        summary = await self.get_summary(session_id)
        timestamps = [m.timestamp for m in messages]
        return SessionStats(
            total_messages=len(messages),
            pinned_messages=sum(1 for m in messages if m.pinned),
            estimated_tokens=sum(self.message_tokens(m) for m in messages),
            has_summary=bool(summary),
            oldest_message=min(timestamps) if timestamps else None,
            newest_message=max(timestamps) if timestamps else None,
        )

    def get_stats(self) -> dict[str, dict[str, Any]]:
        """Return cache and index statistics for this weaver."""
        return {
            "token_cache": self._token_cache.stats().to_dict(),
            "context_cache": self._context_cache.stats().to_dict(),
            "semantic_index": self._index.stats(),
            "sessions": asdict(self._seen_sessions.stats()),
        }

    def session(self, session_id: str) -> "SessionHandle":
        """Return a handle bound to ``session_id``."""
        return SessionHandle(self, session_id)

    def message_tokens(self, message: Message | LLMMessage) -> int:
        """Estimated tokens of one message, including role overhead."""
        return count_message_tokens(message, self._cached_count)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _cached_count(self, text: str) -> int:
        return self._token_cache.get_token_count(text, self._counter)

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())

    async def _storage_call(self, operation: str, awaitable: Awaitable[_T]) -> _T:
        try:
            return await awaitable
        except ContextWeaverError:
            raise
        except Exception as exc:
            raise wrap_error(exc, operation) from exc

    def _new_message(
        self,
        role: MessageRole | str,
        content: str,
        pinned: bool | None,
        importance: float | None,
        metadata: dict[str, Any] | None,
    ) -> Message:
        try:
            return Message(
                role=MessageRole(role),
                content=content,
                pinned=bool(pinned),
                importance=importance,
                metadata=dict(metadata or {}),
            )
        except (ValueError, pydantic.ValidationError) as exc:
            raise ValidationError(str(exc), {"role": str(role), "importance": importance}) from exc

    def _initial_importance(self, message: Message, index: int) -> float:
        if message.pinned:
            return 1.0
        if not self.config.enable_auto_importance:
            return 0.5
        return self._scorer.score(message, index)

    def _selection_score(self, message: Message, index: int) -> float:
        if self.config.enable_auto_importance:
            return self._scorer.score(message, index)
        return message.importance if message.importance is not None else 0.5

    async def _set_pinned(self, session_id: str, message_id: str, updates: dict[str, Any]) -> bool:
        async with self._lock_for(session_id):
            updated = await self._storage_call(
                "update_message", self._storage.update_message(session_id, message_id, updates)
            )
            if updated:
                self._invalidate(session_id)
            else:
                logger.debug(
                    "SmartContextWeaver: %s not in session %r; pin state unchanged",
                    message_id,
                    session_id,
                )
        return bool(updated)

    def _invalidate(self, session_id: str) -> None:
        self._generations[session_id] = self._generations.get(session_id, 0) + 1
        prefix = f"{session_id}\x00"
        for key in self._context_cache.keys():
            if key.startswith(prefix):
                self._context_cache.delete(key)

    def _unindex(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self._index.remove(message.id)
            self._indexed_sessions.pop(message.id, None)

    def _summarizable(self, messages: list[Message]) -> list[Message]:
        unpinned = sort_by_timestamp(m for m in messages if not m.pinned)
        return unpinned[: max(len(unpinned) - self.config.recent_keep, 0)]

    async def _maybe_summarize(self, session_id: str, messages: list[Message]) -> None:
        if self._summarizer is None and not self.config.enable_local_summary:
            return
        unpinned_tokens = sum(self.message_tokens(m) for m in messages if not m.pinned)
        if unpinned_tokens <= self.config.token_limit * self.config.summarize_multiplier:
            return
        batch = self._summarizable(messages)
        if len(batch) <= self.config.min_batch_to_summarize:
            return
        await self._summarize_batch(session_id, batch)

    async def _summarize_batch(self, session_id: str, batch: list[Message]) -> str:
        if self._summarizer is not None:
            try:
                text = await self._summarizer(batch)
            except Exception as exc:
                raise SummarizationError(str(exc), exc) from exc
        else:
            text = self._local_summarizer.summarize_for_context(batch)

        previous = await self._storage_call("get_summary", self._storage.get_summary(session_id))
        summary = f"{previous} {text}" if previous else text
        await self._storage_call("set_summary", self._storage.set_summary(session_id, summary))
        for message in batch:
            await self._storage_call(
                "delete_message", self._storage.delete_message(session_id, message.id)
            )
        self._unindex(batch)
        self._invalidate(session_id)
        logger.debug(
            "SmartContextWeaver: summarized %d messages for session %r", len(batch), session_id
        )
        return summary


# ---------------------------------------------------------------------------
# Per-session surface
# ---------------------------------------------------------------------------


class SessionHandle:
    """``SmartContextWeaver`` operations bound to one session id."""

    def __init__(self, weaver: SmartContextWeaver, session_id: str) -> None:
        self._weaver = weaver
        self.session_id = session_id

    async def add(self, role: MessageRole | str, content: str, **options: Any) -> str:
        return await self._weaver.add(self.session_id, role, content, **options)

    async def get_context(self, **options: Any) -> ContextResult:
        return await self._weaver.get_context(self.session_id, **options)

    async def pin(self, message_id: str) -> bool:
        return await self._weaver.pin(self.session_id, message_id)

    async def unpin(self, message_id: str) -> bool:
        return await self._weaver.unpin(self.session_id, message_id)

    async def clear(self) -> None:
        await self._weaver.clear(self.session_id)

    async def summarize(self) -> str | None:
        return await self._weaver.summarize(self.session_id)

    async def messages(self) -> list[Message]:
        return await self._weaver.get_messages(self.session_id)

    async def stats(self) -> SessionStats:
        return await self._weaver.get_session_stats(self.session_id)

    def __repr__(self) -> str:
        return f"SessionHandle(session_id={self.session_id!r})"


__all__ = [
    "PACKING_STOP_COUNT",
    "SUMMARY_PREFIX",
    "SessionHandle",
    "SmartContextConfig",
    "SmartContextWeaver",
    "Summarizer",
]
