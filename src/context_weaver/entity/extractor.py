"""Regex-based extraction of the facts worth keeping from a conversation.

Extracts the small set of entity types that matter when compressing chat
history: self-introduced names, money amounts, email addresses, and dates.
No external NLP libraries are required.

Supported entity types
----------------------
- NAME   — a capitalised word following "my name is", "I'm", "I am", "call me"
- MONEY  — currency-prefixed amounts ($500, £20) or "<n> dollars/euros/pounds"
- NUMBER — bare integers and two-decimal amounts
- EMAIL  — local@domain.tld
- DATE   — "<month> <day>[, <year>]" or "d/m[/yy]"

Classes
-------
- Entity          — a single extracted entity with its span
- KeyEntities     — grouped entity surface forms
- EntityExtractor — extract entities from text
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Domain model
# ---------------------------------------------------------------------------


@dataclass
class Entity:
    """A single entity extracted from text.

    Parameters
    ----------
    text:
        The matched surface form (for NAME, only the name itself).
    entity_type:
        One of NAME, MONEY, NUMBER, EMAIL, DATE.
    start:
        Character offset of the first character in the source text.
    end:
        Character offset one past the last character (exclusive).
    """

    text: str
    entity_type: str
    start: int
    end: int

    def __repr__(self) -> str:
        return (
            f"Entity(text={self.text!r}, type={self.entity_type!r}, "
            f"span=({self.start}, {self.end}))"
        )


@dataclass
class KeyEntities:
    """Surface forms grouped by category, in order of appearance."""

    names: list[str] = field(default_factory=list)
    numbers: list[str] = field(default_factory=list)
    emails: list[str] = field(default_factory=list)
    dates: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.names or self.numbers or self.emails or self.dates)

    def to_dict(self) -> dict[str, list[str]]:
        """Serialise to a plain dict."""
        return {
            "names": list(self.names),
            "numbers": list(self.numbers),
            "emails": list(self.emails),
            "dates": list(self.dates),
        }


# ---------------------------------------------------------------------------
# Compiled patterns
# ---------------------------------------------------------------------------

_MONTHS = (
    "january|february|march|april|may|june|july|august|"
    "september|october|november|december"
)

# The introduction phrase is case-insensitive; the name must be capitalised.
_NAME_RE = re.compile(r"\b(?i:my name is|i'm|i am|call me)\s+([A-Z][a-z]+)")

_MONEY_RE = re.compile(
    r"[$£€][\d,]*\d(?:\.\d{2})?|\b\d+\s*(?:dollars|euros|pounds)\b",
    re.IGNORECASE,
)

_NUMBER_RE = re.compile(
    r"\$[\d,]+|\b\d+(?:\.\d{2})?(?:\s*(?:dollars|euros|pounds))?",
    re.IGNORECASE,
)

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")

_MONTH_DAY_RE = re.compile(
    rf"\b(?:{_MONTHS})\s+\d{{1,2}}(?:,?\s+\d{{4}})?\b", re.IGNORECASE
)

_DATE_RE = re.compile(
    rf"\b(?:{_MONTHS})\s+\d{{1,2}}(?:,?\s+\d{{4}})?\b|\b\d{{1,2}}/\d{{1,2}}(?:/\d{{2,4}})?\b",
    re.IGNORECASE,
)


def _dedupe(items: list[str]) -> list[str]:
    """Remove duplicates while preserving first-seen order."""
    return list(dict.fromkeys(items))


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


class EntityExtractor:
    """Extract names, amounts, emails, and dates from free text.

    Example
    -------
    >>> extractor = EntityExtractor()
    >>> extractor.key_entities("My name is Alice and my budget is $500")
    ['Alice', '$500']
    """

    def extract(self, text: str) -> list[Entity]:
        """Return all entities found in ``text`` ordered by position."""
        found: list[Entity] = []
        for match in _NAME_RE.finditer(text):
            found.append(Entity(match.group(1), "NAME", match.start(1), match.end(1)))
        for match in _MONEY_RE.finditer(text):
            found.append(Entity(match.group(0), "MONEY", match.start(), match.end()))
        for match in _EMAIL_RE.finditer(text):
            found.append(Entity(match.group(0), "EMAIL", match.start(), match.end()))
        for match in _DATE_RE.finditer(text):
            found.append(Entity(match.group(0), "DATE", match.start(), match.end()))
        found.sort(key=lambda entity: (entity.start, entity.end))
        return found

    def extract_grouped(self, text: str) -> KeyEntities:
        """Return every match grouped by category (duplicates kept)."""
        return KeyEntities(
            names=[m.group(1) for m in _NAME_RE.finditer(text)],
            numbers=[m.group(0) for m in _NUMBER_RE.finditer(text)],
            emails=_EMAIL_RE.findall(text),
            dates=[m.group(0) for m in _DATE_RE.finditer(text)],
        )

    def key_entities(self, text: str, max_amounts: int = 2) -> list[str]:
        """Return the deduplicated facts worth prepending to a summary.

        All introduced names, the first ``max_amounts`` money amounts, the
        first email address and the first month-day date.
        """
        entities: list[str] = [m.group(1) for m in _NAME_RE.finditer(text)]
        entities.extend(m.group(0) for m in list(_MONEY_RE.finditer(text))[:max_amounts])
        email = _EMAIL_RE.search(text)
        if email:
            entities.append(email.group(0))
        date = _MONTH_DAY_RE.search(text)
        if date:
            entities.append(date.group(0))
        return _dedupe(entities)


__all__ = ["Entity", "EntityExtractor", "KeyEntities"]
