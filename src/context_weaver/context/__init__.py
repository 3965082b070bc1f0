"""Context processing subpackage.

Provides the building blocks that decide which history survives: TF-IDF
search, extractive summarization, and question/answer pairing.

Public surface
--------------
- SemanticIndex            — incremental TF-IDF index with cosine search
- LocalSummarizer          — extractive summarizer with entity preservation
- ConversationPairManager  — build and select user/assistant pairs
- ConversationPairStrategy — pair-based pruning of a message list
"""
from __future__ import annotations

from context_weaver.context.pairs import (
    ConversationPair,
    ConversationPairManager,
    ConversationPairStrategy,
    ReferenceType,
    has_conversation_reference,
)
from context_weaver.context.semantic_index import (
    DocumentVector,
    SearchResult,
    SemanticIndex,
    quick_relevance_score,
)
from context_weaver.context.summarizer import LocalSummarizer, quick_summarize

__all__ = [
    "ConversationPair",
    "ConversationPairManager",
    "ConversationPairStrategy",
    "DocumentVector",
    "LocalSummarizer",
    "ReferenceType",
    "SearchResult",
    "SemanticIndex",
    "has_conversation_reference",
    "quick_relevance_score",
    "quick_summarize",
]
