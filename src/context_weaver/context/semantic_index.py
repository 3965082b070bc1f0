"""Incremental TF-IDF index for lightweight semantic search.

No embeddings and no external ML dependencies: documents are bags of
terms weighted by TF-IDF and ranked by cosine similarity to the query.

Document frequency is maintained incrementally by ``add`` and ``remove``.
Because every mutation changes the IDF of terms across the whole corpus,
stored vectors are only marked dirty; the next ``search`` recomputes all
weights and magnitudes before scoring, so results always reflect the corpus
as it is at the time of the call.

Classes
-------
- DocumentVector  — per-document term weights and magnitude
- SearchResult    — a message paired with its similarity score
- SemanticIndex   — the index itself
"""
from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from context_weaver.session.state import Message


# ---------------------------------------------------------------------------
# Text helpers (module-private)
# ---------------------------------------------------------------------------

_STOP_WORDS: frozenset[str] = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
        "be", "have", "has", "had", "do", "does", "did", "will", "would",
        "could", "should", "may", "might", "must", "shall", "can", "need",
        "it", "its", "this", "that", "these", "those", "i", "you", "he",
        "she", "we", "they", "what", "which", "who", "when", "where", "why",
        "how", "all", "each", "every", "both", "few", "more", "most", "other",
        "some", "such", "no", "not", "only", "own", "same", "so", "than",
        "too", "very", "just", "also", "now", "here", "there", "then",
    }
)

_NON_WORD_RE = re.compile(r"[^\w\s]")


def _tokenize(text: str) -> list[str]:
    """Lowercase, strip punctuation, drop stop words and tokens of length <= 2."""
    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) > 2 and t not in _STOP_WORDS]


def _term_frequency(tokens: list[str]) -> dict[str, float]:
    """Return TF normalised by the most frequent term in the document."""
    if not tokens:
        return {}
    counts = Counter(tokens)
    max_count = max(counts.values())
    return {term: count / max_count for term, count in counts.items()}


def _magnitude(vector: dict[str, float]) -> float:
    return math.sqrt(sum(value * value for value in vector.values()))


# ---------------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------------


@dataclass
class DocumentVector:
    """Sparse TF-IDF representation of one indexed message.

    ``weights`` and ``magnitude`` are only valid while the owning index is
    not dirty.
    """

    id: str
    tf: dict[str, float]
    weights: dict[str, float] = field(default_factory=dict)
    magnitude: float = 0.0


@dataclass(frozen=True)
class SearchResult:
    """A search hit: the indexed message and its cosine similarity."""

    message: Message
    score: float


class SemanticIndex:
    """TF-IDF document index over message content.

    Example
    -------
    >>> from context_weaver.session.state import Message
    >>> index = SemanticIndex()
    >>> index.add(Message(id="m1", role="user", content="Book a hotel in Paris"))
    >>> index.add(Message(id="m2", role="user", content="My cat likes tuna"))
    >>> [hit.message.id for hit in index.search("paris hotel")]
    ['m1']
    """

    def __init__(self) -> None:
        self._documents: dict[str, tuple[Message, DocumentVector]] = {}
        self._document_frequency: Counter[str] = Counter()
        self._dirty = False

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add(self, message: Message) -> None:
        """Index ``message``.  Re-adding an existing id replaces it."""
        if message.id in self._documents:
            self.remove(message.id)
        tf = _term_frequency(_tokenize(message.content))
        self._document_frequency.update(tf.keys())
        self._documents[message.id] = (message, DocumentVector(id=message.id, tf=tf))
        self._dirty = True

    def remove(self, message_id: str) -> bool:
        """Remove a message by id.  Returns False if it was not indexed."""
        entry = self._documents.pop(message_id, None)
        if entry is None:
            return False
        _, vector = entry
        for term in vector.tf:
            count = self._document_frequency[term]
            if count <= 1:
                del self._document_frequency[term]
            else:
                self._document_frequency[term] = count - 1
        self._dirty = True
        return True

    def clear(self) -> None:
        """Drop every indexed document."""
        self._documents.clear()
        self._document_frequency.clear()
        self._dirty = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def search(
        self, query: str, top_k: int = 5, min_score: float = 0.1
    ) -> list[SearchResult]:
        """Return up to ``top_k`` messages most similar to ``query``.

        Results are ordered by cosine similarity descending; equal scores
        keep insertion order.  A query with no usable terms, or an empty
        index, yields an empty list.
        """
        if not self._documents or top_k <= 0:
            return []
        if self._dirty:
            self._recalculate()

        query_vector = self._weigh(_term_frequency(_tokenize(query)))
        query_magnitude = _magnitude(query_vector)
        if query_magnitude == 0:
            return []

        results: list[SearchResult] = []
        for message, vector in self._documents.values():
            score = self._cosine(query_vector, query_magnitude, vector)
            if score >= min_score:
                results.append(SearchResult(message=message, score=score))

        results.sort(key=lambda hit: hit.score, reverse=True)
        return results[:top_k]

    def find_relevant(
        self, current_query: str, messages: Iterable[Message], top_k: int = 10
    ) -> list[Message]:
        """Rank exactly ``messages`` against ``current_query``.

        A disposable index is built for the call; this index is not read
        or modified, so unrelated sessions cannot influence the ranking.
        """
        scratch = SemanticIndex()
        for message in messages:
            scratch.add(message)
        return [hit.message for hit in scratch.search(current_query, top_k, 0.05)]

    def document_frequency(self, term: str) -> int:
        """Return how many indexed documents contain ``term``."""
        return self._document_frequency.get(term, 0)

    def stats(self) -> dict[str, int]:
        return {
            "documents": len(self._documents),
            "unique_terms": len(self._document_frequency),
        }

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._documents

    def __repr__(self) -> str:
        return (
            f"SemanticIndex(documents={len(self._documents)}, "
            f"terms={len(self._document_frequency)})"
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _idf(self, term: str) -> float:
        df = self._document_frequency.get(term, 0)
        return math.log(len(self._documents) / (df + 1)) + 1

    def _weigh(self, tf: dict[str, float]) -> dict[str, float]:
        return {term: score * self._idf(term) for term, score in tf.items()}

    def _recalculate(self) -> None:
        for _, vector in self._documents.values():
            vector.weights = self._weigh(vector.tf)
            vector.magnitude = _magnitude(vector.weights)
        self._dirty = False

    @staticmethod
    def _cosine(
        query_vector: dict[str, float], query_magnitude: float, vector: DocumentVector
    ) -> float:
        if vector.magnitude == 0:
            return 0.0
        dot = sum(
            weight * vector.weights[term]
            for term, weight in query_vector.items()
            if term in vector.weights
        )
        return dot / (query_magnitude * vector.magnitude)


def quick_relevance_score(query: str, content: str) -> float:
    """Jaccard overlap of the words longer than two characters.

    A cheap relevance estimate that needs no index.
    """
    def words(text: str) -> set[str]:
        cleaned = re.sub(r"[^\w\s]", "", text.lower())
        return {w for w in cleaned.split() if len(w) > 2}

    query_words = words(query)
    content_words = words(content)
    union = query_words | content_words
    if not union:
        return 0.0
    return len(query_words & content_words) / len(union)


__all__ = [
    "DocumentVector",
    "SearchResult",
    "SemanticIndex",
    "quick_relevance_score",
]
