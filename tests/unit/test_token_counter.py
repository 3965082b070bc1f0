"""Tests for approximate token counting."""
from __future__ import annotations

import sys
from unittest.mock import MagicMock, patch

import pytest

from context_weaver.session.state import Message
from context_weaver.token_counter import (
    CONVERSATION_OVERHEAD,
    MESSAGE_OVERHEAD,
    count_message_tokens,
    count_messages_tokens,
    create_tiktoken_counter,
    default_token_counter,
    tiktoken_counter,
)


class TestDefaultTokenCounter:
    def test_empty_text_is_zero(self) -> None:
        assert default_token_counter("") == 0

    def test_four_characters_per_token(self) -> None:
        assert default_token_counter("abcd") == 1
        assert default_token_counter("abcdefgh") == 2

    def test_whitespace_and_punctuation_surcharge(self) -> None:
        # ceil(11 / 4) = 3, one whitespace run adds 0.1
        assert default_token_counter("hello world") == 4
        # ceil(3 / 4) = 1, one punctuation mark adds 0.2
        assert default_token_counter("Hi!") == 2

    def test_never_negative(self) -> None:
        assert default_token_counter("   ") >= 0


class TestMessageCounting:
    def test_message_overhead(self) -> None:
        message = Message(role="user", content="abcd")
        assert count_message_tokens(message) == 1 + MESSAGE_OVERHEAD

    def test_accepts_mappings(self) -> None:
        assert count_message_tokens({"content": "abcd"}) == 1 + MESSAGE_OVERHEAD

    def test_conversation_overhead(self) -> None:
        messages = [{"content": "abcd"}, {"content": "abcd"}]
        assert count_messages_tokens(messages) == 2 * (1 + MESSAGE_OVERHEAD) + CONVERSATION_OVERHEAD

    def test_custom_counter(self) -> None:
        assert count_message_tokens({"content": "a b c"}, lambda text: 100) == 104


class TestTiktokenAdapters:
    def test_create_tiktoken_counter_uses_encoder(self) -> None:
        encoder = MagicMock()
        encoder.encode.return_value = [1, 2, 3]
        counter = create_tiktoken_counter(encoder)
        assert counter("anything") == 3
        assert counter("") == 0

    def test_tiktoken_counter_missing_package(self) -> None:
        with patch.dict(sys.modules, {"tiktoken": None}):  # type: ignore[dict-item]
            with pytest.raises(ImportError, match="pip install tiktoken"):
                tiktoken_counter()

    def test_tiktoken_counter_uses_named_encoding(self) -> None:
        fake = MagicMock()
        fake.get_encoding.return_value.encode.return_value = [7, 8]
        with patch.dict(sys.modules, {"tiktoken": fake}):
            counter = tiktoken_counter("cl100k_base")
        fake.get_encoding.assert_called_once_with("cl100k_base")
        assert counter("hi there") == 2
