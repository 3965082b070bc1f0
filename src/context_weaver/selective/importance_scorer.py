"""Automatic importance detection for conversation messages.

Each message is scored on a scale of 0.0 to 1.0.  Messages start from a
baseline of 0.40 and are raised by the highest-weighted rule they match:

    system_message     : 1.00  (role is system)
    personal_info      : 0.90  ("my name is", "I live", ...)
    contact_info       : 0.90  (email address or long phone number)
    budget             : 0.85  (budget, price, $500, 20 euros)
    preferences        : 0.80  ("I prefer", allergic, vegan, ...)
    instructions       : 0.80  (always, never, remember, make sure)
    first_message      : 0.80  (first user message of the sequence)
    goals              : 0.75  ("trying to", "looking for", "help me")
    dates              : 0.70  (month names, 12/05, next week)
    detailed_message   : 0.70  (longer than 500 characters)
    context_reference  : 0.60  ("as I said", "earlier", "did I mention")
    short_response     : 0.30  (short agreement such as "yes" or "agreed")

Rules combine by ``max``, never by sum, so extra matching signals can
neither push a score past 1.0 nor lower it.  A message that already has an
importance, or is pinned, keeps that judgement.

Custom rules and regex patterns can be registered at runtime; they are
consulted after the built-in table.  A rule whose predicate raises is
skipped.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Pattern

from context_weaver.entity.extractor import EntityExtractor, KeyEntities
from context_weaver.session.state import Message, MessageRole

logger = logging.getLogger(__name__)

BASE_IMPORTANCE: float = 0.40
CUSTOM_PATTERN_WEIGHT: float = 0.80


# ---------------------------------------------------------------------------
# Built-in patterns
# ---------------------------------------------------------------------------

PERSONAL_RE = re.compile(
    r"\b(?:my name is|i am|i'm|call me|i live|my email|my phone|my address)\b",
    re.IGNORECASE,
)
PREFERENCES_RE = re.compile(
    r"\b(?:i (?:like|prefer|want|need|love|hate)|favorite|don't like|allergic|vegetarian|vegan)\b",
    re.IGNORECASE,
)
BUDGET_RE = re.compile(
    r"\b(?:budget|cost|price|afford)\b|[$£€]\d+|\b\d+ (?:dollars|euros)\b",
    re.IGNORECASE,
)
DATES_RE = re.compile(
    r"\b(?:january|february|march|april|may|june|july|august|september|october|"
    r"november|december|\d{1,2}/\d{1,2}|\d{4}|next week|tomorrow|yesterday)\b",
    re.IGNORECASE,
)
INSTRUCTIONS_RE = re.compile(
    r"\b(?:always|never|must|important|remember|don't forget|make sure|please note)\b",
    re.IGNORECASE,
)
QUESTIONS_RE = re.compile(
    r"\b(?:what did i|did i (?:say|mention|tell)|as i (?:said|mentioned)|earlier|before)\b",
    re.IGNORECASE,
)
AGREEMENT_RE = re.compile(
    r"\b(?:yes|no|correct|exactly|that's right|confirmed|agreed)\b", re.IGNORECASE
)
CONTACT_RE = re.compile(
    r"\b[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}\b|\+?\b\d{10,}\b"
)
GOALS_RE = re.compile(
    r"\b(?:goal|objective|trying to|want to|need to|help me|looking for)\b",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportanceRule:
    """A named predicate and the score granted when it matches.

    Attributes
    ----------
    name:
        Identifier used in logs.
    weight:
        Score in [0.0, 1.0] granted when ``match`` returns True.
    match:
        Predicate receiving the message and its index in the sequence.
    """

    name: str
    weight: float
    match: Callable[[Message, int], bool]


def _content_rule(name: str, weight: float, pattern: Pattern[str]) -> ImportanceRule:
    return ImportanceRule(name, weight, lambda m, _i: bool(pattern.search(m.content)))


DEFAULT_RULES: tuple[ImportanceRule, ...] = (
    ImportanceRule("system_message", 1.0, lambda m, _i: m.role == MessageRole.SYSTEM),
    _content_rule("personal_info", 0.9, PERSONAL_RE),
    _content_rule("contact_info", 0.9, CONTACT_RE),
    _content_rule("budget", 0.85, BUDGET_RE),
    _content_rule("preferences", 0.8, PREFERENCES_RE),
    _content_rule("instructions", 0.8, INSTRUCTIONS_RE),
    ImportanceRule(
        "first_message", 0.8, lambda m, i: i == 0 and m.role == MessageRole.USER
    ),
    _content_rule("goals", 0.75, GOALS_RE),
    _content_rule("dates", 0.7, DATES_RE),
    ImportanceRule("detailed_message", 0.7, lambda m, _i: len(m.content) > 500),
    _content_rule("context_reference", 0.6, QUESTIONS_RE),
    ImportanceRule(
        "short_response",
        0.3,
        lambda m, _i: len(m.content) < 20 and bool(AGREEMENT_RE.search(m.content)),
    ),
)


# ---------------------------------------------------------------------------
# AutoImportance
# ---------------------------------------------------------------------------


class AutoImportance:
    """Rule-based importance scorer for messages.

    Parameters
    ----------
    rules:
        Ordered rule table.  Defaults to ``DEFAULT_RULES``.
    extractor:
        Entity extractor used by ``extract_entities``.

    Example
    -------
    >>> from context_weaver.session.state import Message
    >>> scorer = AutoImportance()
    >>> scorer.score(Message(role="assistant", content="My budget is $500"), 3)
    0.85
    """

    def __init__(
        self,
        rules: Iterable[ImportanceRule] = DEFAULT_RULES,
        extractor: EntityExtractor | None = None,
    ) -> None:
        self._rules: list[ImportanceRule] = list(rules)
        self._patterns: dict[str, Pattern[str]] = {}
        self._extractor = extractor or EntityExtractor()

    @property
    def rules(self) -> list[ImportanceRule]:
        return list(self._rules)

    def score(self, message: Message, index: int = 0) -> float:
        """Return the importance of ``message`` at position ``index``.

        An explicit ``importance`` is returned unchanged; a pinned message
        without one scores 1.0.
        """
        if message.importance is not None:
            return message.importance
        if message.pinned:
            return 1.0

        best = BASE_IMPORTANCE
        for rule in self._rules:
            try:
                matched = rule.match(message, index)
            except Exception:  # noqa: BLE001
                logger.debug("AutoImportance: rule %r raised; skipped", rule.name, exc_info=True)
                continue
            if matched:
                best = max(best, rule.weight)

        for pattern in self._patterns.values():
            if pattern.search(message.content):
                best = max(best, CUSTOM_PATTERN_WEIGHT)

        return min(1.0, best)

    def score_messages(self, messages: Iterable[Message]) -> list[tuple[Message, float]]:
        """Score a chronological message list; index 0 is the oldest."""
        return [(message, self.score(message, index)) for index, message in enumerate(messages)]

    def get_important_messages(
        self, messages: Iterable[Message], threshold: float = 0.7
    ) -> list[Message]:
        """Return messages scoring at or above ``threshold``, in input order."""
        return [m for m, s in self.score_messages(messages) if s >= threshold]

    def add_rule(self, rule: ImportanceRule) -> None:
        """Append a custom rule; it is evaluated after the existing ones."""
        self._rules.append(rule)

    def add_pattern(self, name: str, pattern: str | Pattern[str]) -> None:
        """Register a regex that grants 0.8 when found in message content.

        Plain strings are compiled case-insensitively.  Re-using a name
        replaces the earlier pattern.
        """
        compiled = re.compile(pattern, re.IGNORECASE) if isinstance(pattern, str) else pattern
        self._patterns[name] = compiled

    def remove_pattern(self, name: str) -> bool:
        return self._patterns.pop(name, None) is not None

    def extract_entities(self, content: str) -> KeyEntities:
        """Extract names, numbers, emails, and dates from ``content``."""
        return self._extractor.extract_grouped(content)


def quick_importance_check(content: str) -> float:
    """Score raw text without a ``Message`` or rule table.

    Short texts (under 20 characters) are capped at 0.5.
    """
    score = BASE_IMPORTANCE
    if PERSONAL_RE.search(content):
        score = max(score, 0.9)
    if BUDGET_RE.search(content):
        score = max(score, 0.85)
    if PREFERENCES_RE.search(content):
        score = max(score, 0.8)
    if INSTRUCTIONS_RE.search(content):
        score = max(score, 0.8)
    if CONTACT_RE.search(content):
        score = max(score, 0.9)
    if len(content) < 20:
        score = min(score, 0.5)
    if len(content) > 500:
        score = max(score, 0.7)
    return score


__all__ = [
    "AutoImportance",
    "BASE_IMPORTANCE",
    "DEFAULT_RULES",
    "ImportanceRule",
    "quick_importance_check",
]
