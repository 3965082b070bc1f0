"""Entity extraction subpackage.

Public surface
--------------
- Entity          — a single extracted entity with its span
- KeyEntities     — entity surface forms grouped by category
- EntityExtractor — regex extraction of names, amounts, emails, dates
"""
from __future__ import annotations

from context_weaver.entity.extractor import Entity, EntityExtractor, KeyEntities

__all__ = ["Entity", "EntityExtractor", "KeyEntities"]
