"""Shared bootstrap for context-weaver benchmarks."""
from __future__ import annotations

import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).parent.parent
_SRC = _REPO_ROOT / "src"
_BENCHMARKS = _REPO_ROOT / "benchmarks"

for _path in [str(_SRC), str(_BENCHMARKS)]:
    if _path not in sys.path:
        sys.path.insert(0, _path)

from context_weaver.context.semantic_index import SemanticIndex
from context_weaver.session.state import Message
from context_weaver.session.weaver import SmartContextWeaver
from context_weaver.storage.memory import InMemoryStorage

__all__ = ["InMemoryStorage", "Message", "SemanticIndex", "SmartContextWeaver"]
