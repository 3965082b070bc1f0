"""Session subpackage.

Conversation domain models, the smart context orchestrator, and session
export/import.

Public surface
--------------
- Message, MessageRole, LLMMessage  — conversation records
- ContextResult, SessionStats       — selection output and session counters
- SmartContextWeaver                — the orchestrator
- SmartContextConfig                — validated orchestrator settings
- SessionHandle                     — orchestrator bound to one session
- SessionSerializer, SessionExport  — portable session snapshots
"""
from __future__ import annotations

from context_weaver.session.serializer import (
    SchemaVersionError,
    SessionExport,
    SessionSerializer,
    export_all,
    export_session,
    import_session,
    import_sessions,
)
from context_weaver.session.state import (
    ContextResult,
    LLMMessage,
    Message,
    MessageRole,
    SessionStats,
)
from context_weaver.session.weaver import SessionHandle, SmartContextConfig, SmartContextWeaver

__all__ = [
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
]
