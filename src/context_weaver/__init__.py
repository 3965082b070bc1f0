"""context-weaver — Token-budgeted context selection for LLM conversations.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import context_weaver
>>> context_weaver.__version__
'0.1.0'
"""
from __future__ import annotations

# Errors
from context_weaver.errors import (
    ConfigurationError,
    ContextWeaverError,
    MessageNotFoundError,
    SessionNotFoundError,
    StorageError,
    SummarizationError,
    TokenLimitExceededError,
    ValidationError,
    is_context_weaver_error,
    wrap_error,
)

# Session core
from context_weaver.session.state import (
    ContextResult,
    LLMMessage,
    Message,
    MessageRole,
    SessionStats,
)
from context_weaver.session.weaver import SessionHandle, SmartContextConfig, SmartContextWeaver
from context_weaver.session.serializer import (
    SchemaVersionError,
    SessionExport,
    SessionSerializer,
    export_all,
    export_session,
    import_session,
    import_sessions,
)

# Storage collaborators
from context_weaver.storage.base import AsyncStorageAdapter
from context_weaver.storage.memory import InMemoryStorage
from context_weaver.storage.redis import RedisStorage
from context_weaver.storage.sqlite import SQLiteStorage

# Caching
from context_weaver.cache.bloom import BloomFilter, CountingBloomFilter
from context_weaver.cache.lru import LRUCache, TokenCache

# Context processing
from context_weaver.context.pairs import (
    ConversationPair,
    ConversationPairManager,
    ConversationPairStrategy,
    has_conversation_reference,
)
from context_weaver.context.semantic_index import SearchResult, SemanticIndex, quick_relevance_score
from context_weaver.context.summarizer import LocalSummarizer, quick_summarize

# Entities and importance
from context_weaver.entity.extractor import Entity, EntityExtractor, KeyEntities
from context_weaver.selective.importance_scorer import (
    AutoImportance,
    ImportanceRule,
    quick_importance_check,
)

# Token counting
from context_weaver.token_counter import (
    count_message_tokens,
    count_messages_tokens,
    create_tiktoken_counter,
    default_token_counter,
    tiktoken_counter,
)

__version__: str = "0.1.0"

__all__ = [
    "__version__",
    # Errors
    "ConfigurationError",
    "ContextWeaverError",
    "MessageNotFoundError",
    "SessionNotFoundError",
    "StorageError",
    "SummarizationError",
    "TokenLimitExceededError",
    "ValidationError",
    "is_context_weaver_error",
    "wrap_error",
    # Session core
    "ContextResult",
    "LLMMessage",
    "Message",
    "MessageRole",
    "SchemaVersionError",
    "SessionExport",
    "SessionHandle",
    "SessionSerializer",
    "SessionStats",
    "SmartContextConfig",
    "SmartContextWeaver",
    "export_all",
    "export_session",
    "import_session",
    "import_sessions",
    # Storage
    "AsyncStorageAdapter",
    "InMemoryStorage",
    "RedisStorage",
    "SQLiteStorage",
    # Caching
    "BloomFilter",
    "CountingBloomFilter",
    "LRUCache",
    "TokenCache",
    # Context
    "ConversationPair",
    "ConversationPairManager",
    "ConversationPairStrategy",
    "LocalSummarizer",
    "SearchResult",
    "SemanticIndex",
    "has_conversation_reference",
    "quick_relevance_score",
    "quick_summarize",
    # Entities and importance
    "AutoImportance",
    "Entity",
    "EntityExtractor",
    "ImportanceRule",
    "KeyEntities",
    "quick_importance_check",
    # Token counting
    "count_message_tokens",
    "count_messages_tokens",
    "create_tiktoken_counter",
    "default_token_counter",
    "tiktoken_counter",
]
