"""Tests for SmartContextWeaver and SessionHandle.

Most tests use a constant token counter (10 tokens of content per message,
14 with role overhead) so budgets translate directly into message counts.
"""
from __future__ import annotations

import asyncio
import gc
from unittest.mock import AsyncMock

import pytest

from context_weaver.errors import (
    ConfigurationError,
    StorageError,
    SummarizationError,
    ValidationError,
)
from context_weaver.session.state import Message, MessageRole
from context_weaver.session.weaver import (
    SUMMARY_PREFIX,
    SessionHandle,
    SmartContextConfig,
    SmartContextWeaver,
)
from context_weaver.storage.memory import InMemoryStorage

PER_MESSAGE = 14


def _ten(_text: str) -> int:
    return 10


def _weaver(**options) -> SmartContextWeaver:
    options.setdefault("token_counter", _ten)
    return SmartContextWeaver(**options)


class _FailingStorage(InMemoryStorage):
    async def get_messages(self, session_id: str) -> list[Message]:
        raise OSError("disk unavailable")


class _RejectingStorage(InMemoryStorage):
    async def get_messages(self, session_id: str) -> list[Message]:
        raise ValidationError("bad session id")


class _GatedStorage(InMemoryStorage):
    """Parks the next ``get_summary`` call until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate: asyncio.Event | None = None
        self.parked = asyncio.Event()

    async def get_summary(self, session_id: str) -> str | None:
        gate, self.gate = self.gate, None
        if gate is not None:
            self.parked.set()
            await gate.wait()
        return await super().get_summary(session_id)


def _stored(content: str, importance: float, timestamp: int) -> Message:
    return Message(role="user", content=content, importance=importance, timestamp=timestamp)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfiguration:
    def test_defaults(self) -> None:
        config = SmartContextWeaver().config
        assert config.token_limit == 4000
        assert config.semantic_boost == pytest.approx(0.3)
        assert config.auto_pin_threshold == pytest.approx(0.9)

    def test_invalid_value_raises_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError, match="token_limit"):
            SmartContextWeaver(token_limit=0)

    def test_unknown_option_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            SmartContextWeaver(tokens=100)

    def test_config_and_options_are_exclusive(self) -> None:
        with pytest.raises(ConfigurationError):
            SmartContextWeaver(SmartContextConfig(), token_limit=10)

    def test_config_object_used(self) -> None:
        config = SmartContextConfig(token_limit=123)
        assert SmartContextWeaver(config).config is config

    @pytest.mark.asyncio
    async def test_empty_injected_storage_is_used(self) -> None:
        storage = InMemoryStorage()
        assert len(storage) == 0
        weaver = SmartContextWeaver(storage=storage)
        assert weaver.storage is storage

        await weaver.add("s1", "user", "hello")
        assert await storage.list_sessions() == ["s1"]


# ---------------------------------------------------------------------------
# add / pin / unpin
# ---------------------------------------------------------------------------


class TestAdd:
    @pytest.mark.asyncio
    async def test_importance_assigned_once(self) -> None:
        weaver = _weaver()
        first = await weaver.add("s1", "user", "hello there friend")
        second = await weaver.add("s1", "user", "hello there friend")
        stored = {m.id: m for m in await weaver.get_messages("s1")}
        assert stored[first].importance == pytest.approx(0.8)
        assert stored[second].importance == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_high_importance_auto_pins(self) -> None:
        weaver = _weaver()
        message_id = await weaver.add("s1", "assistant", "My name is Alice")
        (stored,) = await weaver.get_messages("s1")
        assert stored.id == message_id
        assert stored.pinned is True

    @pytest.mark.asyncio
    async def test_explicit_pinned_false_disables_auto_pin(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "assistant", "My name is Alice", pinned=False)
        (stored,) = await weaver.get_messages("s1")
        assert stored.pinned is False
        assert stored.importance == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_pinned_message_gets_full_importance(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "plain", pinned=True)
        (stored,) = await weaver.get_messages("s1")
        assert stored.importance == 1.0

    @pytest.mark.asyncio
    async def test_auto_importance_disabled(self) -> None:
        weaver = _weaver(enable_auto_importance=False)
        await weaver.add("s1", "user", "My budget is $500")
        (stored,) = await weaver.get_messages("s1")
        assert stored.importance == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_invalid_role_and_importance(self) -> None:
        weaver = _weaver()
        with pytest.raises(ValidationError):
            await weaver.add("s1", "narrator", "hi")
        with pytest.raises(ValidationError):
            await weaver.add("s1", "user", "hi", importance=2.0)

    @pytest.mark.asyncio
    async def test_concurrent_adds_to_one_session(self) -> None:
        weaver = _weaver()
        await asyncio.gather(*(weaver.add("s1", "user", f"note {i}") for i in range(20)))
        assert len(await weaver.get_messages("s1")) == 20

    @pytest.mark.asyncio
    async def test_session_tracking(self) -> None:
        weaver = _weaver()
        assert weaver.seen_session("s1") is False
        await weaver.add("s1", "user", "hi")
        assert weaver.seen_session("s1") is True
        assert await weaver.has_session("s1") is True
        assert await weaver.has_session("s2") is False


class TestPinning:
    @pytest.mark.asyncio
    async def test_pin_and_unpin(self) -> None:
        weaver = _weaver()
        message_id = await weaver.add("s1", "assistant", "plain reply")
        assert await weaver.pin("s1", message_id) is True
        (stored,) = await weaver.get_messages("s1")
        assert stored.pinned is True and stored.importance == 1.0

        assert await weaver.unpin("s1", message_id) is True
        (stored,) = await weaver.get_messages("s1")
        assert stored.pinned is False and stored.importance == 1.0

    @pytest.mark.asyncio
    async def test_unknown_message_is_a_no_op(self) -> None:
        weaver = _weaver()
        assert await weaver.pin("s1", "ghost") is False
        assert await weaver.unpin("s1", "ghost") is False


# ---------------------------------------------------------------------------
# get_context
# ---------------------------------------------------------------------------


class TestGetContext:
    @pytest.mark.asyncio
    async def test_never_exceeds_budget(self) -> None:
        weaver = SmartContextWeaver()
        for i in range(30):
            await weaver.add("s1", "user" if i % 2 == 0 else "assistant", f"message number {i} " * 5)
        for budget in (0, 17, 50, 120, 333):
            result = await weaver.get_context("s1", max_tokens=budget)
            assert result.token_count <= budget
            assert result.token_count == sum(weaver.message_tokens(m) for m in result.messages)
            assert result.message_count == len(result.messages)

    @pytest.mark.asyncio
    async def test_budget_message_kept_for_unrelated_query(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "My budget is $500")
        await weaver.add("s1", "user", "ok")
        await weaver.add("s1", "user", "Show me hotels")

        everything = await weaver.get_context("s1", current_query="Show me hotels")
        assert [m.content for m in everything.messages] == [
            "My budget is $500",
            "ok",
            "Show me hotels",
        ]

        tight = await weaver.get_context(
            "s1", max_tokens=2 * PER_MESSAGE, current_query="Show me hotels"
        )
        assert [m.content for m in tight.messages] == ["My budget is $500", "Show me hotels"]

    @pytest.mark.asyncio
    async def test_pinned_messages_come_first(self) -> None:
        weaver = _weaver()
        ids = [await weaver.add("s1", "user", f"plain note {i}") for i in range(5)]
        await weaver.pin("s1", ids[3])

        result = await weaver.get_context("s1", max_tokens=2 * PER_MESSAGE)
        assert [m.content for m in result.messages] == ["plain note 0", "plain note 3"]
        assert result.pinned_count == 1

    @pytest.mark.asyncio
    async def test_oversized_pinned_message_is_skipped(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "plain", pinned=True)
        result = await weaver.get_context("s1", max_tokens=PER_MESSAGE - 1)
        assert result.messages == []
        assert result.token_count == 0
        assert result.pinned_count == 0

    @pytest.mark.asyncio
    async def test_threshold_filters_unpinned(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "hello there friend")
        await weaver.add("s1", "user", "hello again friend")
        result = await weaver.get_context("s1", importance_threshold=0.5)
        assert [m.content for m in result.messages] == ["hello there friend"]

    @pytest.mark.asyncio
    async def test_summary_leads_the_context(self) -> None:
        weaver = _weaver()
        await weaver.import_session(
            "s1", [Message(role="user", content="next question")], "talked about Paris"
        )
        result = await weaver.get_context("s1")
        assert result.was_summarized is True
        assert result.messages[0].role is MessageRole.SYSTEM
        assert result.messages[0].content == SUMMARY_PREFIX + "talked about Paris"
        assert result.messages[1].content == "next question"

    @pytest.mark.asyncio
    async def test_summary_dropped_when_it_does_not_fit(self) -> None:
        weaver = _weaver()
        await weaver.import_session("s1", [], "talked about Paris")
        result = await weaver.get_context("s1", max_tokens=5)
        assert result.was_summarized is False
        assert result.messages == []

    @pytest.mark.asyncio
    async def test_unknown_session_is_empty(self) -> None:
        result = await _weaver().get_context("ghost")
        assert result.messages == []
        assert result.token_count == 0

    @pytest.mark.asyncio
    async def test_negative_budget_rejected(self) -> None:
        with pytest.raises(ValidationError):
            await _weaver().get_context("s1", max_tokens=-1)

    @pytest.mark.asyncio
    async def test_result_cache_is_invalidated_by_writes(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "first note")
        first = await weaver.get_context("s1")
        again = await weaver.get_context("s1")
        assert again == first
        assert weaver.get_stats()["context_cache"]["hits"] == 1

        await weaver.add("s1", "user", "second note")
        refreshed = await weaver.get_context("s1")
        assert [m.content for m in refreshed.messages] == ["first note", "second note"]

    @pytest.mark.asyncio
    async def test_cache_is_per_session(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "first note")
        await weaver.add("s2", "user", "other note")
        await weaver.get_context("s1")
        await weaver.get_context("s2")
        await weaver.add("s2", "user", "more")
        await weaver.get_context("s1")
        assert weaver.get_stats()["context_cache"]["hits"] == 1

    @pytest.mark.asyncio
    async def test_read_racing_a_write_is_not_cached(self) -> None:
        storage = _GatedStorage()
        weaver = _weaver(storage=storage)
        await weaver.add("s1", "user", "first note")

        gate = asyncio.Event()
        storage.gate = gate
        reader = asyncio.create_task(weaver.get_context("s1"))
        await storage.parked.wait()
        await weaver.add("s1", "user", "second note")
        gate.set()

        stale = await reader
        assert [m.content for m in stale.messages] == ["first note"]
        fresh = await weaver.get_context("s1")
        assert [m.content for m in fresh.messages] == ["first note", "second note"]

    @pytest.mark.asyncio
    async def test_semantic_boost_lifts_relevant_message_over_threshold(self) -> None:
        history = [
            _stored("paris hotel booking", 0.2, 1),
            _stored("weather looks nice", 0.2, 2),
        ]
        weaver = _weaver(enable_auto_importance=False)
        await weaver.import_session("s1", history)
        result = await weaver.get_context("s1", current_query="paris hotel")
        assert [m.content for m in result.messages] == ["paris hotel booking"]

        unboosted = _weaver(enable_auto_importance=False, semantic_boost=0.0)
        await unboosted.import_session("s1", history)
        result = await unboosted.get_context("s1", current_query="paris hotel")
        assert result.messages == []

    @pytest.mark.asyncio
    async def test_near_tie_prefers_newer_message(self) -> None:
        weaver = _weaver(enable_auto_importance=False)
        await weaver.import_session(
            "s1", [_stored("older note", 0.85, 1), _stored("newer note", 0.8, 2)]
        )
        result = await weaver.get_context("s1", max_tokens=PER_MESSAGE)
        assert [m.content for m in result.messages] == ["newer note"]

    @pytest.mark.asyncio
    async def test_clear_score_gap_beats_recency(self) -> None:
        weaver = _weaver(enable_auto_importance=False)
        await weaver.import_session(
            "s1", [_stored("older note", 0.95, 1), _stored("newer note", 0.8, 2)]
        )
        result = await weaver.get_context("s1", max_tokens=PER_MESSAGE)
        assert [m.content for m in result.messages] == ["older note"]

    @pytest.mark.asyncio
    async def test_packing_stops_at_overflow_after_ten_messages(self) -> None:
        def counter(text: str) -> int:
            return 100 if text.startswith("big") else 10

        def history(recent: int) -> list[Message]:
            notes = [_stored(f"note {i}", 0.9, 100 + i) for i in range(recent)]
            return [*notes, _stored("big report", 0.5, 50), _stored("late note", 0.4, 10)]

        budget = 11 * PER_MESSAGE

        weaver = SmartContextWeaver(token_counter=counter, enable_auto_importance=False)
        await weaver.import_session("s1", history(10))
        result = await weaver.get_context("s1", max_tokens=budget)
        assert result.message_count == 10
        assert "late note" not in [m.content for m in result.messages]

        weaver = SmartContextWeaver(token_counter=counter, enable_auto_importance=False)
        await weaver.import_session("s1", history(9))
        result = await weaver.get_context("s1", max_tokens=budget)
        assert result.message_count == 10
        assert result.messages[0].content == "late note"


# ---------------------------------------------------------------------------
# Summarization
# ---------------------------------------------------------------------------


class TestSummarization:
    @pytest.mark.asyncio
    async def test_auto_summarize_with_external_summarizer(self) -> None:
        summarizer = AsyncMock(return_value="SUMMARY")
        weaver = _weaver(
            summarizer=summarizer,
            token_limit=20,
            recent_keep=2,
            min_batch_to_summarize=1,
        )
        for i in range(3):
            await weaver.add("s1", "user", f"plain note {i}")
        summarizer.assert_not_awaited()

        await weaver.add("s1", "user", "plain note 3")
        summarizer.assert_awaited_once()
        (batch,) = summarizer.await_args.args
        assert [m.content for m in batch] == ["plain note 0", "plain note 1"]
        assert [m.content for m in await weaver.get_messages("s1")] == [
            "plain note 2",
            "plain note 3",
        ]
        assert await weaver.get_summary("s1") == "SUMMARY"
        hits = weaver.search("plain note", session_id="s1")
        assert sorted(h.message.content for h in hits) == ["plain note 2", "plain note 3"]

    @pytest.mark.asyncio
    async def test_summaries_accumulate(self) -> None:
        summarizer = AsyncMock(side_effect=["one", "two"])
        weaver = _weaver(
            summarizer=summarizer, token_limit=20, recent_keep=2, min_batch_to_summarize=1
        )
        for i in range(6):
            await weaver.add("s1", "user", f"plain note {i}")
        assert await weaver.get_summary("s1") == "one two"

    @pytest.mark.asyncio
    async def test_pinned_messages_are_never_summarized(self) -> None:
        weaver = _weaver(token_limit=20, recent_keep=1, min_batch_to_summarize=0)
        pinned_id = await weaver.add("s1", "user", "keep me", pinned=True)
        for i in range(4):
            await weaver.add("s1", "user", f"plain note {i}")
        remaining = [m.id for m in await weaver.get_messages("s1")]
        assert pinned_id in remaining

    @pytest.mark.asyncio
    async def test_local_summary_used_by_default(self) -> None:
        weaver = _weaver(token_limit=20, recent_keep=2, min_batch_to_summarize=1)
        for i in range(4):
            await weaver.add("s1", "user", f"plain note {i}")
        assert await weaver.get_summary("s1") == "Previous conversation context."

    @pytest.mark.asyncio
    async def test_summarizer_failure(self) -> None:
        summarizer = AsyncMock(side_effect=RuntimeError("model offline"))
        weaver = _weaver(
            summarizer=summarizer, token_limit=20, recent_keep=2, min_batch_to_summarize=1
        )
        for i in range(3):
            await weaver.add("s1", "user", f"plain note {i}")
        with pytest.raises(SummarizationError) as exc_info:
            await weaver.add("s1", "user", "plain note 3")
        assert isinstance(exc_info.value.original, RuntimeError)

    @pytest.mark.asyncio
    async def test_manual_summarize(self) -> None:
        weaver = _weaver(recent_keep=1)
        for i in range(3):
            await weaver.add("s1", "user", f"I prefer quiet hotels near station {i}.")
        summary = await weaver.summarize("s1")
        assert summary is not None and summary.startswith("User mentioned: ")
        assert len(await weaver.get_messages("s1")) == 1

    @pytest.mark.asyncio
    async def test_summarize_without_any_summarizer(self) -> None:
        weaver = _weaver(enable_local_summary=False, recent_keep=0)
        await weaver.add("s1", "user", "plain")
        assert await weaver.summarize("s1") is None
        assert len(await weaver.get_messages("s1")) == 1

    @pytest.mark.asyncio
    async def test_summarize_with_nothing_to_do(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "plain")
        assert await weaver.summarize("s1") is None


# ---------------------------------------------------------------------------
# Storage interaction
# ---------------------------------------------------------------------------


class TestStorage:
    @pytest.mark.asyncio
    async def test_storage_failures_are_wrapped(self) -> None:
        weaver = _weaver(storage=_FailingStorage())
        with pytest.raises(StorageError) as exc_info:
            await weaver.add("s1", "user", "hi")
        assert exc_info.value.operation == "get_messages"
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_library_errors_from_storage_pass_through(self) -> None:
        weaver = _weaver(storage=_RejectingStorage())
        with pytest.raises(ValidationError, match="bad session id"):
            await weaver.add("s1", "user", "hi")

    @pytest.mark.asyncio
    async def test_session_locks_are_released(self) -> None:
        weaver = _weaver()
        for i in range(20):
            await weaver.add(f"s{i}", "user", "hello")
        await weaver.clear("s0")
        gc.collect()
        assert len(weaver._locks) == 0

    @pytest.mark.asyncio
    async def test_import_session(self) -> None:
        weaver = _weaver()
        messages = [Message(role="user", content="hello"), Message(role="assistant", content="hi")]
        assert await weaver.import_session("s1", messages) == 2
        with pytest.raises(ValidationError):
            await weaver.import_session("s1", messages)

        assert await weaver.import_session("s1", messages[:1], overwrite=True) == 1
        assert [m.content for m in await weaver.get_messages("s1")] == ["hello"]

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "paris museums")
        await weaver.clear("s1")
        assert await weaver.get_messages("s1") == []
        assert weaver.search("paris") == []

    @pytest.mark.asyncio
    async def test_search_by_session(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "paris hotel options")
        await weaver.add("s2", "user", "paris museum tickets")
        assert len(weaver.search("paris")) == 2
        hits = weaver.search("paris", session_id="s2")
        assert [h.message.content for h in hits] == ["paris museum tickets"]

    @pytest.mark.asyncio
    async def test_session_stats(self) -> None:
        weaver = _weaver()
        await weaver.add("s1", "user", "plain", pinned=True)
        await weaver.add("s1", "assistant", "reply")
        stats = await weaver.get_session_stats("s1")
        assert stats.total_messages == 2
        assert stats.pinned_messages == 1
        assert stats.estimated_tokens == 2 * PER_MESSAGE
        assert stats.has_summary is False
        assert stats.oldest_message <= stats.newest_message

    def test_get_stats_shape(self) -> None:
        stats = _weaver().get_stats()
        assert set(stats) == {"token_cache", "context_cache", "semantic_index", "sessions"}


class TestSessionHandle:
    @pytest.mark.asyncio
    async def test_handle_delegates(self) -> None:
        weaver = _weaver()
        handle = weaver.session("s1")
        assert isinstance(handle, SessionHandle)
        assert repr(handle) == "SessionHandle(session_id='s1')"

        message_id = await handle.add("user", "plain note")
        assert await handle.pin(message_id) is True
        result = await handle.get_context(max_tokens=PER_MESSAGE)
        assert result.pinned_count == 1
        assert (await handle.stats()).total_messages == 1
        assert await handle.unpin(message_id) is True
        await handle.clear()
        assert await handle.messages() == []
