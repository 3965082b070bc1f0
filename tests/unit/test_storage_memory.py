"""Tests for InMemoryStorage.

Coverage:
- Append/read in insertion order, copies on the way in and out
- update_message / delete_message return values and field validation
- Summaries, clear_session, has_session, list_sessions
- Concurrent appends
"""
from __future__ import annotations

import asyncio

import pytest

from context_weaver.context.summarizer import LocalSummarizer
from context_weaver.session.state import Message, MessageRole
from context_weaver.storage.memory import InMemoryStorage


def _msg(message_id: str, content: str = "hello") -> Message:
    return Message(id=message_id, role="user", content=content, timestamp=1)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_messages_kept_in_insertion_order() -> None:
    storage = InMemoryStorage()
    for message_id in ("b", "a", "c"):
        await storage.add_message("s1", _msg(message_id))
    assert [m.id for m in await storage.get_messages("s1")] == ["b", "a", "c"]


@pytest.mark.asyncio
async def test_unknown_session_reads_empty() -> None:
    storage = InMemoryStorage()
    assert await storage.get_messages("ghost") == []
    assert await storage.get_summary("ghost") is None
    assert await storage.has_session("ghost") is False


@pytest.mark.asyncio
async def test_returned_messages_are_copies() -> None:
    storage = InMemoryStorage()
    original = _msg("m1")
    await storage.add_message("s1", original)
    original.content = "mutated after add"
    (stored,) = await storage.get_messages("s1")
    stored.content = "mutated after read"
    assert (await storage.get_messages("s1"))[0].content == "hello"


@pytest.mark.asyncio
async def test_update_message() -> None:
    storage = InMemoryStorage()
    await storage.add_message("s1", _msg("m1"))
    assert await storage.update_message("s1", "m1", {"pinned": True, "importance": 1.0}) is True
    (stored,) = await storage.get_messages("s1")
    assert stored.pinned is True
    assert stored.importance == 1.0


@pytest.mark.asyncio
async def test_update_missing_message_returns_false() -> None:
    storage = InMemoryStorage()
    assert await storage.update_message("s1", "ghost", {"pinned": True}) is False


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields() -> None:
    storage = InMemoryStorage()
    await storage.add_message("s1", _msg("m1"))
    with pytest.raises(ValueError, match="id"):
        await storage.update_message("s1", "m1", {"id": "other"})


@pytest.mark.asyncio
async def test_update_coerces_role_to_enum() -> None:
    storage = InMemoryStorage()
    await storage.add_message("s1", _msg("m1", "The hotel has a pool. It opens at nine."))
    assert await storage.update_message("s1", "m1", {"role": "assistant"}) is True
    (stored,) = await storage.get_messages("s1")
    assert stored.role is MessageRole.ASSISTANT
    assert LocalSummarizer().summarize([stored])


@pytest.mark.asyncio
async def test_update_rejects_out_of_range_importance() -> None:
    storage = InMemoryStorage()
    await storage.add_message("s1", _msg("m1"))
    with pytest.raises(ValueError, match="importance"):
        await storage.update_message("s1", "m1", {"importance": 7.5, "role": "assistant"})
    (stored,) = await storage.get_messages("s1")
    assert stored.importance is None
    assert stored.role is MessageRole.USER


@pytest.mark.asyncio
async def test_delete_message() -> None:
    storage = InMemoryStorage()
    await storage.add_message("s1", _msg("m1"))
    await storage.add_message("s1", _msg("m2"))
    assert await storage.delete_message("s1", "m1") is True
    assert await storage.delete_message("s1", "m1") is False
    assert [m.id for m in await storage.get_messages("s1")] == ["m2"]


# ---------------------------------------------------------------------------
# Sessions and summaries
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_summary_round_trip() -> None:
    storage = InMemoryStorage()
    await storage.set_summary("s1", "earlier talk")
    assert await storage.get_summary("s1") == "earlier talk"
    assert await storage.has_session("s1") is True


@pytest.mark.asyncio
async def test_clear_session_removes_everything() -> None:
    storage = InMemoryStorage()
    await storage.add_message("s1", _msg("m1"))
    await storage.set_summary("s1", "summary")
    await storage.clear_session("s1")
    assert await storage.get_messages("s1") == []
    assert await storage.get_summary("s1") is None
    assert await storage.has_session("s1") is False


@pytest.mark.asyncio
async def test_list_sessions_and_clear_all() -> None:
    storage = InMemoryStorage()
    await storage.add_message("s1", _msg("m1"))
    await storage.set_summary("s2", "summary only")
    assert await storage.list_sessions() == ["s1", "s2"]
    assert len(storage) == 2
    await storage.clear_all()
    assert await storage.list_sessions() == []
    assert repr(storage) == "InMemoryStorage(sessions=0)"


@pytest.mark.asyncio
async def test_concurrent_appends_are_all_kept() -> None:
    storage = InMemoryStorage()
    await asyncio.gather(*(storage.add_message("s1", _msg(f"m{i}")) for i in range(50)))
    assert len(await storage.get_messages("s1")) == 50
