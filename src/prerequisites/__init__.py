"""Prerequisite graph module.

Provides:
- Course and lesson prerequisite edges with per-edge enforcement
- Cycle and self-reference rejection
- Direct and transitive prerequisite queries
"""

from .graph import PrerequisiteGraph
from .models import PREREQUISITE_TABLES_CQL, PrerequisiteEdge, Scope


__all__ = [
    "PREREQUISITE_TABLES_CQL",
    "PrerequisiteEdge",
    "PrerequisiteGraph",
    "Scope",
]
