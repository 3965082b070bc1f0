"""Question/answer pairing for conversation-aware pruning.

A user message and the assistant reply that follows it form one
``ConversationPair``; retention decisions drop whole pairs, never half of
one, so the model never sees an answer without its question.

Pairs are rebuilt from the message list on every request.  While building,
each user message is checked for back-references ("step 2", "that
approach", "you mentioned"); a referencing pair looks back at most ten
pairs for the nearest one whose reply contains a list or steps and boosts
its importance.

Classes
-------
- ConversationPair          — one user/assistant exchange
- ReferenceType             — kind and value of a numbered/ordinal reference
- ConversationPairManager   — build, resolve, select, and flatten pairs
- ConversationPairStrategy  — message-in, message-out wrapper
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

from context_weaver.session.state import Message, MessageRole

logger = logging.getLogger(__name__)

# How far back a referencing pair searches for the pair it refers to.
REFERENCE_LOOKBACK: int = 10


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_NUMBER_WORDS = "one|two|three|four|five|six|seven|eight|nine|ten|first|second|third|fourth|fifth"

REFERENCE_PATTERNS: dict[str, re.Pattern[str]] = {
    "numbered": re.compile(
        rf"\b(step|option|point|item|number|#)\s*(\d+|{_NUMBER_WORDS})\b", re.IGNORECASE
    ),
    "ordinal": re.compile(
        r"\b(the\s+)?(first|second|third|fourth|fifth|last|previous|next)\s+"
        r"(one|option|step|item|thing|point)?\b",
        re.IGNORECASE,
    ),
    "demonstrative": re.compile(
        r"\b(that|this|these|those)\s+"
        r"(one|thing|option|idea|suggestion|approach|method|way)\b",
        re.IGNORECASE,
    ),
    "back_reference": re.compile(
        r"\b(you (said|mentioned|suggested|recommended|showed|told)|earlier|before|"
        r"above|previously|as you said|what you|the one you)\b",
        re.IGNORECASE,
    ),
    "continuation": re.compile(
        r"\b(more about|tell me more|explain|elaborate|details|expand on|go on|"
        r"continue|what about)\b",
        re.IGNORECASE,
    ),
    "comparison": re.compile(
        r"\b(the other|another|different|alternative|instead|rather than|compare|"
        r"versus|vs)\b",
        re.IGNORECASE,
    ),
}

_TOPIC_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?:what|how|why|when|where|who|which|can you|could you|would you|help me|"
        r"tell me about|explain)\s+(.{5,50}?)(?:\?|$)",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:i want|i need|looking for|searching for|find me|show me|get me)\s+"
        r"(.{5,50}?)(?:\.|,|$)",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:about|regarding|concerning|related to)\s+(.{5,50}?)(?:\.|,|$)",
        re.IGNORECASE,
    ),
)

_NUMBERED_LIST_RE = re.compile(r"^\s*\d+[.)]\s", re.MULTILINE)
_BULLET_LIST_RE = re.compile(r"^\s*[-•*]\s", re.MULTILINE)
_STEP_MENTION_RE = re.compile(r"\b(?:step|option|choice)\s+\d", re.IGNORECASE)
_LETTERED_OPTION_RE = re.compile(r"\b[A-D][.)]\s")


def _default_counter(text: str) -> int:
    return math.ceil(len(text) / 4)


def contains_list_or_steps(content: str) -> bool:
    """Return True if ``content`` holds a numbered/bulleted list or step markers."""
    return bool(
        _NUMBERED_LIST_RE.search(content)
        or _BULLET_LIST_RE.search(content)
        or _STEP_MENTION_RE.search(content)
        or _LETTERED_OPTION_RE.search(content)
    )


# ---------------------------------------------------------------------------
# Domain model
# ---------------------------------------------------------------------------


@dataclass
class ConversationPair:
    """A user message and its reply, retained or dropped as a unit.

    Attributes
    ----------
    id:
        ``pair-<n>`` or ``pair-sys-<message id>`` for system messages.
    user_message:
        The opening message.  Holds the system or standalone assistant
        message for singleton pairs.
    assistant_message:
        The reply, or None when unanswered.
    topic:
        Short phrase extracted from the user message, if any.
    importance:
        Retention priority in [0.0, 1.0].
    has_reference:
        True when the user message refers back to earlier content.
    referenced_pair_ids:
        Ids of earlier pairs this pair was resolved to reference.
    timestamp:
        Timestamp of ``user_message``.
    """

    id: str
    user_message: Message
    assistant_message: Message | None = None
    topic: str | None = None
    importance: float = 0.5
    has_reference: bool = False
    referenced_pair_ids: list[str] = field(default_factory=list)
    timestamp: int = 0

    @property
    def is_system(self) -> bool:
        return self.user_message.role == MessageRole.SYSTEM

    def messages(self) -> list[Message]:
        if self.assistant_message is None:
            return [self.user_message]
        return [self.user_message, self.assistant_message]


@dataclass(frozen=True)
class ReferenceType:
    """Kind (``numbered`` or ``ordinal``) and value of a reference."""

    type: str
    value: str


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class ConversationPairManager:
    """Build conversation pairs and select them under a token budget.

    The manager keeps lookup tables for the most recent ``build_pairs``
    call (pair by id, pair by message id, pairs by topic); they are
    replaced on every build.
    """

    def __init__(self) -> None:
        self._pairs: dict[str, ConversationPair] = {}
        self._message_to_pair: dict[str, str] = {}
        self._topic_index: dict[str, set[str]] = {}

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def build_pairs(self, messages: Iterable[Message]) -> list[ConversationPair]:
        """Pair messages in one forward scan and resolve back-references.

        Function and tool messages are not paired.
        """
        self._pairs.clear()
        self._message_to_pair.clear()
        self._topic_index.clear()

        result: list[ConversationPair] = []
        pending: Message | None = None
        pair_index = 0

        def close_pending() -> None:
            nonlocal pending, pair_index
            if pending is not None:
                self._register(result, self._create_pair(pending, None, pair_index))
                pair_index += 1
                pending = None

        for message in messages:
            if message.role == MessageRole.SYSTEM:
                close_pending()
                self._register(
                    result,
                    ConversationPair(
                        id=f"pair-sys-{message.id}",
                        user_message=message,
                        importance=1.0,
                        timestamp=message.timestamp,
                    ),
                )
            elif message.role == MessageRole.USER:
                close_pending()
                pending = message
            elif message.role == MessageRole.ASSISTANT:
                if pending is not None:
                    self._register(result, self._create_pair(pending, message, pair_index))
                    pair_index += 1
                    pending = None
                else:
                    self._register(
                        result,
                        ConversationPair(
                            id=f"pair-{pair_index}",
                            user_message=message,
                            importance=0.5,
                            timestamp=message.timestamp,
                        ),
                    )
                    pair_index += 1

        close_pending()
        self._resolve_references(result)
        return result

    def detect_reference(self, content: str) -> bool:
        """Return True if ``content`` refers back to earlier content."""
        return any(pattern.search(content) for pattern in REFERENCE_PATTERNS.values())

    def extract_reference_type(self, content: str) -> ReferenceType | None:
        """Return the numbered or ordinal reference in ``content``, if any."""
        numbered = REFERENCE_PATTERNS["numbered"].search(content)
        if numbered and numbered.group(2):
            return ReferenceType("numbered", numbered.group(2))
        ordinal = REFERENCE_PATTERNS["ordinal"].search(content)
        if ordinal and ordinal.group(2):
            return ReferenceType("ordinal", ordinal.group(2))
        return None

    def pair_for_message(self, message_id: str) -> ConversationPair | None:
        """Return the pair containing ``message_id`` from the last build."""
        pair_id = self._message_to_pair.get(message_id)
        return self._pairs.get(pair_id) if pair_id else None

    def pairs_for_topic(self, topic: str) -> list[ConversationPair]:
        """Return pairs from the last build whose topic equals ``topic``."""
        ids = self._topic_index.get(topic.lower(), set())
        return [pair for pair in self._pairs.values() if pair.id in ids]

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_pairs(
        self,
        pairs: list[ConversationPair],
        *,
        max_pairs: int = 20,
        max_tokens: int = 4000,
        current_query: str | None = None,
        token_counter: Callable[[str], int] | None = None,
        min_recent_pairs: int = 3,
    ) -> list[ConversationPair]:
        """Choose the pairs to keep, returned in chronological order.

        Priority: system pairs (always kept), the ``min_recent_pairs`` most
        recent pairs (newest first, bounded only by ``max_tokens``), pairs
        referenced by ``current_query``, then older pairs by importance
        filling at most 60% of the budget that is still free.  No more
        than ``max_pairs`` pairs are chosen beyond the system pairs.
        """
        if not pairs:
            return []
        counter = token_counter or _default_counter
        position = {pair.id: index for index, pair in enumerate(pairs)}

        system_pairs = [p for p in pairs if p.is_system]
        conversational = [p for p in pairs if not p.is_system]
        split = max(len(conversational) - max(min_recent_pairs, 0), 0)
        older, recent = conversational[:split], conversational[split:]

        referenced: list[ConversationPair] = []
        if current_query and self.detect_reference(current_query):
            referenced = [
                p
                for p in older
                if p.assistant_message is not None
                and contains_list_or_steps(p.assistant_message.content)
            ]
        referenced_ids = {p.id for p in referenced}
        ranked_older = sorted(
            (p for p in older if p.id not in referenced_ids),
            key=lambda p: p.importance,
            reverse=True,
        )

        selected = list(system_pairs)
        used = self.count_pair_tokens(selected, counter)
        chosen = 0

        for pair in [*reversed(recent), *referenced]:
            cost = self.count_pair_tokens([pair], counter)
            if used + cost <= max_tokens and chosen < max_pairs:
                selected.append(pair)
                used += cost
                chosen += 1

        older_budget = max(max_tokens - used, 0) * 0.6
        older_used = 0
        for pair in ranked_older:
            if chosen >= max_pairs:
                break
            cost = self.count_pair_tokens([pair], counter)
            if older_used + cost <= older_budget:
                selected.append(pair)
                used += cost
                older_used += cost
                chosen += 1

        selected.sort(key=lambda p: position[p.id])
        logger.debug(
            "ConversationPairManager: selected %d of %d pairs (%d tokens)",
            len(selected),
            len(pairs),
            used,
        )
        return selected

    @staticmethod
    def count_pair_tokens(
        pairs: Iterable[ConversationPair], token_counter: Callable[[str], int] | None = None
    ) -> int:
        counter = token_counter or _default_counter
        return sum(counter(m.content) for pair in pairs for m in pair.messages())

    @staticmethod
    def pairs_to_messages(pairs: Iterable[ConversationPair]) -> list[Message]:
        """Flatten pairs back into an ordered message list."""
        return [message for pair in pairs for message in pair.messages()]

    def stats(self, pairs: list[ConversationPair]) -> dict[str, float]:
        """Summarise a pair list: counts, average importance, topics."""
        total = len(pairs)
        return {
            "total_pairs": total,
            "pairs_with_references": sum(1 for p in pairs if p.has_reference),
            "pairs_with_steps": sum(
                1
                for p in pairs
                if p.assistant_message is not None
                and contains_list_or_steps(p.assistant_message.content)
            ),
            "avg_importance": sum(p.importance for p in pairs) / total if total else 0.0,
            "topics_covered": len({p.topic for p in pairs if p.topic}),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _register(self, result: list[ConversationPair], pair: ConversationPair) -> None:
        self._pairs[pair.id] = pair
        for message in pair.messages():
            self._message_to_pair[message.id] = pair.id
        if pair.topic:
            self._topic_index.setdefault(pair.topic.lower(), set()).add(pair.id)
        result.append(pair)

    def _create_pair(
        self, user_message: Message, assistant_message: Message | None, index: int
    ) -> ConversationPair:
        has_reference = self.detect_reference(user_message.content)
        importance = user_message.importance if user_message.importance is not None else 0.5

        if has_reference:
            importance = max(importance, 0.7)
        if assistant_message is not None:
            if len(assistant_message.content) > 200:
                importance = min(importance + 0.1, 1.0)
            if contains_list_or_steps(assistant_message.content):
                importance = min(importance + 0.15, 1.0)

        return ConversationPair(
            id=f"pair-{index}",
            user_message=user_message,
            assistant_message=assistant_message,
            topic=self._extract_topic(user_message.content),
            importance=importance,
            has_reference=has_reference,
            timestamp=user_message.timestamp,
        )

    @staticmethod
    def _extract_topic(content: str) -> str | None:
        for pattern in _TOPIC_PATTERNS:
            match = pattern.search(content)
            if match and match.group(1):
                return match.group(1).strip()
        return None

    @staticmethod
    def _resolve_references(pairs: list[ConversationPair]) -> None:
        for i, pair in enumerate(pairs):
            if not pair.has_reference:
                continue
            for j in range(i - 1, max(i - REFERENCE_LOOKBACK, 0) - 1, -1):
                previous = pairs[j]
                if previous.assistant_message is not None and contains_list_or_steps(
                    previous.assistant_message.content
                ):
                    pair.referenced_pair_ids.append(previous.id)
                    previous.importance = min(previous.importance + 0.2, 1.0)
                    break
                if (
                    pair.topic
                    and previous.topic
                    and previous.topic.lower() in pair.topic.lower()
                ):
                    pair.referenced_pair_ids.append(previous.id)


def has_conversation_reference(text: str) -> bool:
    """Return True if ``text`` refers back to earlier conversation content."""
    return ConversationPairManager().detect_reference(text)


class ConversationPairStrategy:
    """Apply pair-based selection to a flat message list.

    Parameters
    ----------
    min_recent_pairs:
        Most recent pairs always considered for inclusion.  Default: 3.
    """

    def __init__(self, min_recent_pairs: int = 3) -> None:
        self._manager = ConversationPairManager()
        self.min_recent_pairs = min_recent_pairs

    def apply(
        self,
        messages: Iterable[Message],
        *,
        max_tokens: int,
        current_query: str | None = None,
        token_counter: Callable[[str], int] | None = None,
    ) -> list[Message]:
        """Return the retained messages in chronological order."""
        pairs = self._manager.build_pairs(messages)
        selected = self._manager.select_pairs(
            pairs,
            max_tokens=max_tokens,
            current_query=current_query,
            token_counter=token_counter,
            min_recent_pairs=self.min_recent_pairs,
        )
        return self._manager.pairs_to_messages(selected)

    def analyze(self, messages: Iterable[Message]) -> dict[str, float]:
        """Return pair statistics for ``messages``."""
        return self._manager.stats(self._manager.build_pairs(messages))


__all__ = [
    "REFERENCE_LOOKBACK",
    "REFERENCE_PATTERNS",
    "ConversationPair",
    "ConversationPairManager",
    "ConversationPairStrategy",
    "ReferenceType",
    "contains_list_or_steps",
    "has_conversation_reference",
]
