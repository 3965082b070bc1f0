"""Extractive local summarization of conversation batches.

Compresses a list of messages into a short digest without calling a model.
Sentences are scored on length, domain keywords, digits, capitalised
(proper-noun-like) words, and centrality, i.e. mean Jaccard similarity to
the other sentences in the batch, used as a cheap stand-in for TextRank.
The top sentences are re-ordered by their original position so the summary
reads naturally.  Pattern-extracted entities (names, amounts, emails, dates)
are prepended when present.

Classes
-------
- LocalSummarizer  — extractive summarizer with entity preservation
"""
from __future__ import annotations

import re
from typing import Iterable

from context_weaver.entity.extractor import EntityExtractor
from context_weaver.errors import ConfigurationError
from context_weaver.session.state import Message, MessageRole


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_IMPORTANT_KEYWORDS: tuple[str, ...] = (
    "budget", "cost", "price", "name", "email", "phone",
    "prefer", "want", "need", "important", "must", "always",
    "date", "time", "deadline", "goal", "objective",
)

_SENTENCE_BOUNDARY_RE = re.compile(r"[.!?]+|\n")
_PROPER_NOUN_RE = re.compile(r"\b[A-Z][a-z]+\b")
_DIGIT_RE = re.compile(r"\d+")

_PREFERENCE_HINT_RE = re.compile(r"i (?:like|prefer|want|need|love)")
_PREFERENCE_RE = re.compile(
    r"i (?:like|prefer|want|need|love)\s+(.{10,50}?)(?:\.|,|$)", re.IGNORECASE
)
_CONSTRAINT_HINT_RE = re.compile(r"budget|max|limit|under|less than")
_CONSTRAINT_RE = re.compile(r"(?:budget|max|limit)[^.]{0,30}?\$?[\d,]*\d", re.IGNORECASE)
_GOAL_HINT_RE = re.compile(r"trying to|want to|looking for|need to")
_GOAL_RE = re.compile(
    r"(?:trying to|want to|looking for|need to)\s+(.{10,40}?)(?:\.|,|$)", re.IGNORECASE
)

_SUGGESTION_RE = re.compile(r"suggest|recommend|here are|option|choice")
_INFORMATION_RE = re.compile(r"here's|here is|the .* is|found|result")


def _words(sentence: str) -> set[str]:
    return {w for w in sentence.lower().split() if len(w) > 2}


def _jaccard(first: set[str], second: set[str]) -> float:
    union = first | second
    return len(first & second) / len(union) if union else 0.0


# ---------------------------------------------------------------------------
# Public class
# ---------------------------------------------------------------------------


class LocalSummarizer:
    """Summarize conversation messages without any API calls.

    Parameters
    ----------
    max_sentences:
        Number of sentences kept by ``summarize``.  Default: 3.
    min_sentence_length:
        Sentences shorter than this many characters are ignored.
        Default: 20.
    extractor:
        Entity extractor used for the "Key info" prefix.
    """

    def __init__(
        self,
        max_sentences: int = 3,
        min_sentence_length: int = 20,
        extractor: EntityExtractor | None = None,
    ) -> None:
        if max_sentences < 1:
            raise ConfigurationError(f"max_sentences must be >= 1, got {max_sentences!r}.")
        if min_sentence_length < 0:
            raise ConfigurationError(
                f"min_sentence_length must be >= 0, got {min_sentence_length!r}."
            )
        self.max_sentences = max_sentences
        self.min_sentence_length = min_sentence_length
        self._extractor = extractor or EntityExtractor()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def summarize(self, messages: Iterable[Message]) -> str:
        """Return an extractive digest of ``messages``.

        Format: ``"Key info: <entities>. <top sentences>"``.  Either part
        is omitted when empty; with nothing to report a fixed placeholder
        is returned.
        """
        full_text = "\n".join(f"{m.role.value}: {m.content}" for m in messages)

        parts: list[str] = []
        entities = self._extractor.key_entities(full_text)
        if entities:
            parts.append(f"Key info: {', '.join(entities)}")
        top_sentences = self.extract_top_sentences(full_text)
        if top_sentences:
            parts.append(" ".join(top_sentences))

        return ". ".join(parts) or "No significant content to summarize."

    def summarize_for_context(self, messages: Iterable[Message]) -> str:
        """Summarize as ``"User mentioned: ... Assistant provided: ..."``.

        Focuses on actionable information: user preferences, constraints
        and goals, and the kinds of help the assistant gave.
        """
        batch = list(messages)
        user_points = self.extract_key_points(m for m in batch if m.role == MessageRole.USER)
        assistant_actions = self.extract_key_actions(
            m for m in batch if m.role == MessageRole.ASSISTANT
        )

        parts: list[str] = []
        if user_points:
            parts.append(f"User mentioned: {user_points}.")
        if assistant_actions:
            parts.append(f"Assistant provided: {assistant_actions}.")
        return " ".join(parts) or "Previous conversation context."

    def extract_top_sentences(self, text: str) -> list[str]:
        """Return the best ``max_sentences`` sentences in original order."""
        sentences = self.split_sentences(text)
        if len(sentences) <= self.max_sentences:
            return sentences

        word_sets = [_words(sentence) for sentence in sentences]
        scored = [
            (self._score_sentence(index, sentence, word_sets), index)
            for index, sentence in enumerate(sentences)
        ]
        scored.sort(key=lambda item: item[0], reverse=True)
        keep = sorted(index for _, index in scored[: self.max_sentences])
        return [sentences[index] for index in keep]

    def extract_key_points(self, messages: Iterable[Message]) -> str:
        """Collect up to three preference/constraint/goal phrases."""
        points: list[str] = []
        for message in messages:
            lowered = message.content.lower()
            if _PREFERENCE_HINT_RE.search(lowered):
                match = _PREFERENCE_RE.search(message.content)
                if match:
                    points.append(match.group(1).strip())
            if _CONSTRAINT_HINT_RE.search(lowered):
                match = _CONSTRAINT_RE.search(message.content)
                if match:
                    points.append(match.group(0).strip())
            if _GOAL_HINT_RE.search(lowered):
                match = _GOAL_RE.search(message.content)
                if match:
                    points.append(match.group(1).strip())
        return "; ".join(points[:3])

    def extract_key_actions(self, messages: Iterable[Message]) -> str:
        """Name the kinds of help given: suggestions, questions, information."""
        actions: list[str] = []
        for message in messages:
            lowered = message.content.lower()
            if _SUGGESTION_RE.search(lowered):
                actions.append("suggestions")
            if "?" in message.content:
                actions.append("questions")
            if _INFORMATION_RE.search(lowered):
                actions.append("information")
        return ", ".join(dict.fromkeys(actions))

    def split_sentences(self, text: str) -> list[str]:
        """Split on sentence punctuation and newlines; drop short fragments."""
        fragments = (s.strip() for s in _SENTENCE_BOUNDARY_RE.split(text))
        return [s for s in fragments if s and len(s) >= self.min_sentence_length]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _score_sentence(self, index: int, sentence: str, word_sets: list[set[str]]) -> float:
        score = min(len(sentence) / 200, 1.0) * 0.3

        lowered = sentence.lower()
        keyword_hits = sum(1 for keyword in _IMPORTANT_KEYWORDS if keyword in lowered)
        score += min(keyword_hits * 0.1, 0.4)

        if _DIGIT_RE.search(sentence):
            score += 0.15

        proper_nouns = _PROPER_NOUN_RE.findall(sentence)
        if proper_nouns:
            score += min(len(proper_nouns) * 0.05, 0.15)

        others = len(word_sets) - 1
        if others > 0:
            similarity = sum(
                _jaccard(word_sets[index], other)
                for position, other in enumerate(word_sets)
                if position != index
            )
            score += (similarity / others) * 0.2

        return score


def quick_summarize(messages: Iterable[Message]) -> str:
    """One-shot ``summarize_for_context`` with default settings."""
    return LocalSummarizer().summarize_for_context(messages)


__all__ = ["LocalSummarizer", "quick_summarize"]
