"""Database models for prerequisite edges.

Edges are stored flat, keyed by scope and dependent item, so reachability is
computed on demand instead of holding a graph object in memory.

Table layout:
- prerequisite_edges: partition (scope, dependent_id), clustering prerequisite_id
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class Scope(str, Enum):
    """Prerequisite graph scope. Scopes never share edges."""

    COURSE = "course"
    LESSON = "lesson"


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Direct prerequisites of an item: one partition per (scope, dependent)
PREREQUISITE_EDGES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.prerequisite_edges (
    scope TEXT,
    dependent_id UUID,
    prerequisite_id UUID,
    enforce BOOLEAN,
    created_at TIMESTAMP,
    PRIMARY KEY ((scope, dependent_id), prerequisite_id)
) WITH CLUSTERING ORDER BY (prerequisite_id ASC)
"""

PREREQUISITE_TABLES_CQL = [
    PREREQUISITE_EDGES_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class PrerequisiteEdge:
    """Directed edge: ``dependent_id`` requires ``prerequisite_id``.

    ``enforce=False`` marks an advisory prerequisite: surfaced as a warning,
    never blocking access.
    """

    dependent_id: UUID
    prerequisite_id: UUID
    scope: Scope
    enforce: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> tuple[Scope, UUID, UUID]:
        return (self.scope, self.dependent_id, self.prerequisite_id)

    @classmethod
    def from_row(cls, row: Any) -> "PrerequisiteEdge":
        """Create from Cassandra row."""
        return cls(
            dependent_id=row.dependent_id,
            prerequisite_id=row.prerequisite_id,
            scope=Scope(row.scope),
            enforce=True if row.enforce is None else row.enforce,
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dependent_id": self.dependent_id,
            "prerequisite_id": self.prerequisite_id,
            "scope": self.scope.value,
            "enforce": self.enforce,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        flag = "enforced" if self.enforce else "advisory"
        return (
            f"<PrerequisiteEdge {self.scope.value} {self.dependent_id} "
            f"requires {self.prerequisite_id} ({flag})>"
        )
