"""Importance scoring package.

Classes
-------
AutoImportance   — rule-based message importance in [0.0, 1.0]
ImportanceRule   — a named predicate and the weight it grants
"""
from __future__ import annotations

from context_weaver.selective.importance_scorer import (
    BASE_IMPORTANCE,
    DEFAULT_RULES,
    AutoImportance,
    ImportanceRule,
    quick_importance_check,
)

__all__ = [
    "AutoImportance",
    "BASE_IMPORTANCE",
    "DEFAULT_RULES",
    "ImportanceRule",
    "quick_importance_check",
]
