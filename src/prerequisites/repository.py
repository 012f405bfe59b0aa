"""Prerequisite edge persistence.

Provides:
- EdgeRepository: storage contract used by PrerequisiteGraph
- InMemoryEdgeRepository: dict-backed store (tests, single process)
- CassandraEdgeRepository: prerequisite_edges table with LWT inserts
"""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from src.core.errors import AlreadyExistsError

from .models import PrerequisiteEdge, Scope


if TYPE_CHECKING:
    from cassandra.cluster import Session


class EdgeRepository(Protocol):
    """Contract for prerequisite edge persistence."""

    async def insert(self, edge: PrerequisiteEdge) -> None:
        """Insert-if-absent. Raises AlreadyExistsError on duplicates."""
        ...

    async def get(
        self, scope: Scope, dependent_id: UUID, prerequisite_id: UUID
    ) -> PrerequisiteEdge | None: ...

    async def set_enforce(
        self, scope: Scope, dependent_id: UUID, prerequisite_id: UUID, enforce: bool
    ) -> None: ...

    async def delete(
        self, scope: Scope, dependent_id: UUID, prerequisite_id: UUID
    ) -> bool:
        """Delete an edge. Returns False if it did not exist."""
        ...

    async def list_prerequisites(
        self, scope: Scope, dependent_id: UUID
    ) -> list[PrerequisiteEdge]: ...


class InMemoryEdgeRepository:
    """Edge store held in process memory."""

    def __init__(self) -> None:
        self._edges: dict[tuple[Scope, UUID], dict[UUID, PrerequisiteEdge]] = {}

    async def insert(self, edge: PrerequisiteEdge) -> None:
        bucket = self._edges.setdefault((edge.scope, edge.dependent_id), {})
        if edge.prerequisite_id in bucket:
            raise AlreadyExistsError("prerequisite_edge", edge.key)
        bucket[edge.prerequisite_id] = edge

    async def get(
        self, scope: Scope, dependent_id: UUID, prerequisite_id: UUID
    ) -> PrerequisiteEdge | None:
        return self._edges.get((scope, dependent_id), {}).get(prerequisite_id)

    async def set_enforce(
        self, scope: Scope, dependent_id: UUID, prerequisite_id: UUID, enforce: bool
    ) -> None:
        edge = await self.get(scope, dependent_id, prerequisite_id)
        if edge is not None:
            edge.enforce = enforce

    async def delete(
        self, scope: Scope, dependent_id: UUID, prerequisite_id: UUID
    ) -> bool:
        bucket = self._edges.get((scope, dependent_id))
        if not bucket or prerequisite_id not in bucket:
            return False
        del bucket[prerequisite_id]
        return True

    async def list_prerequisites(
        self, scope: Scope, dependent_id: UUID
    ) -> list[PrerequisiteEdge]:
        bucket = self._edges.get((scope, dependent_id), {})
        return sorted(bucket.values(), key=lambda e: str(e.prerequisite_id))


class CassandraEdgeRepository:
    """Edge store on the prerequisite_edges table."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert_edge = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.prerequisite_edges
            (scope, dependent_id, prerequisite_id, enforce, created_at)
            VALUES (?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._get_edge = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.prerequisite_edges
            WHERE scope = ? AND dependent_id = ? AND prerequisite_id = ?
        """)

        self._update_enforce = self.session.prepare(f"""
            UPDATE {self.keyspace}.prerequisite_edges
            SET enforce = ?
            WHERE scope = ? AND dependent_id = ? AND prerequisite_id = ?
            IF EXISTS
        """)

        self._delete_edge = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.prerequisite_edges
            WHERE scope = ? AND dependent_id = ? AND prerequisite_id = ?
            IF EXISTS
        """)

        self._list_edges = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.prerequisite_edges
            WHERE scope = ? AND dependent_id = ?
        """)

    async def insert(self, edge: PrerequisiteEdge) -> None:
        result = await self.session.aexecute(
            self._insert_edge,
            [
                edge.scope.value,
                edge.dependent_id,
                edge.prerequisite_id,
                edge.enforce,
                edge.created_at,
            ],
        )
        if not result.was_applied:
            raise AlreadyExistsError("prerequisite_edge", edge.key)

    async def get(
        self, scope: Scope, dependent_id: UUID, prerequisite_id: UUID
    ) -> PrerequisiteEdge | None:
        result = await self.session.aexecute(
            self._get_edge, [scope.value, dependent_id, prerequisite_id]
        )
        row = result.one()
        return PrerequisiteEdge.from_row(row) if row else None

    async def set_enforce(
        self, scope: Scope, dependent_id: UUID, prerequisite_id: UUID, enforce: bool
    ) -> None:
        await self.session.aexecute(
            self._update_enforce,
            [enforce, scope.value, dependent_id, prerequisite_id],
        )

    async def delete(
        self, scope: Scope, dependent_id: UUID, prerequisite_id: UUID
    ) -> bool:
        result = await self.session.aexecute(
            self._delete_edge, [scope.value, dependent_id, prerequisite_id]
        )
        return bool(result.was_applied)

    async def list_prerequisites(
        self, scope: Scope, dependent_id: UUID
    ) -> list[PrerequisiteEdge]:
        rows = await self.session.aexecute(
            self._list_edges, [scope.value, dependent_id]
        )
        return [PrerequisiteEdge.from_row(row) for row in rows]
