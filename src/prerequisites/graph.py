"""Prerequisite graph over flat, scope-keyed edge storage.

Invariants:
- No item is its own prerequisite (SelfReferenceError)
- Each scope stays acyclic: an edge is rejected when the dependent is already
  reachable from the new prerequisite (CycleError)
- Duplicate adds are no-ops; remove is idempotent

Mutations in one scope run under that scope's GraphLocks entry, which spans
workers when the locks live in Redis.

Reachability is computed on demand with an iterative DFS over the edge store,
O(V+E) in the size of the scope's reachable subgraph.
"""

from uuid import UUID

import structlog

from src.core.errors import AlreadyExistsError, CycleError, SelfReferenceError
from src.core.locks import GraphLocks, InProcessGraphLocks

from .models import PrerequisiteEdge, Scope
from .repository import EdgeRepository


logger = structlog.get_logger(__name__)


class PrerequisiteGraph:
    """Directed prerequisite graph for courses and lessons."""

    def __init__(self, repository: EdgeRepository, locks: GraphLocks | None = None):
        """Initialize over an edge store.

        Args:
            repository: Edge storage
            locks: Per-scope mutation locks; must be shared by every worker
                writing to the same storage (defaults to in-process locks)
        """
        self.repository = repository
        self.locks = locks or InProcessGraphLocks()

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def add_edge(
        self,
        dependent_id: UUID,
        prerequisite_id: UUID,
        scope: Scope,
        enforce: bool = True,
    ) -> PrerequisiteEdge:
        """Declare that ``dependent_id`` requires ``prerequisite_id``.

        Returns:
            The stored edge (the existing one for duplicate adds)

        Raises:
            SelfReferenceError: dependent and prerequisite are the same item
            CycleError: the edge would close a cycle in ``scope``
            LockTimeoutError: the scope's mutation lock was not acquired in time
        """
        if dependent_id == prerequisite_id:
            raise SelfReferenceError(dependent_id)

        async with self.locks.hold(scope.value):
            path = await self._find_path(prerequisite_id, dependent_id, scope)
            if path is not None:
                logger.info(
                    "prerequisite_cycle_rejected",
                    scope=scope.value,
                    dependent_id=dependent_id,
                    prerequisite_id=prerequisite_id,
                    path=path,
                )
                raise CycleError(dependent_id, prerequisite_id, path)

            edge = PrerequisiteEdge(
                dependent_id=dependent_id,
                prerequisite_id=prerequisite_id,
                scope=scope,
                enforce=enforce,
            )
            try:
                await self.repository.insert(edge)
            except AlreadyExistsError:
                return await self._reconcile_duplicate(edge)

        logger.info(
            "prerequisite_added",
            scope=scope.value,
            dependent_id=dependent_id,
            prerequisite_id=prerequisite_id,
            enforce=enforce,
        )
        return edge

    async def _reconcile_duplicate(self, edge: PrerequisiteEdge) -> PrerequisiteEdge:
        existing = await self.repository.get(
            edge.scope, edge.dependent_id, edge.prerequisite_id
        )
        if existing is None:
            # Removed concurrently by another worker
            return edge

        if existing.enforce != edge.enforce:
            await self.repository.set_enforce(
                edge.scope, edge.dependent_id, edge.prerequisite_id, edge.enforce
            )
            existing.enforce = edge.enforce
            logger.info(
                "prerequisite_enforce_updated",
                scope=edge.scope.value,
                dependent_id=edge.dependent_id,
                prerequisite_id=edge.prerequisite_id,
                enforce=edge.enforce,
            )
        else:
            logger.debug(
                "prerequisite_already_exists",
                scope=edge.scope.value,
                dependent_id=edge.dependent_id,
                prerequisite_id=edge.prerequisite_id,
            )
        return existing

    async def remove_edge(
        self, dependent_id: UUID, prerequisite_id: UUID, scope: Scope
    ) -> bool:
        """Remove an edge. Absent edges are a no-op.

        Returns:
            True if an edge was deleted
        """
        async with self.locks.hold(scope.value):
            removed = await self.repository.delete(scope, dependent_id, prerequisite_id)

        if removed:
            logger.info(
                "prerequisite_removed",
                scope=scope.value,
                dependent_id=dependent_id,
                prerequisite_id=prerequisite_id,
            )
        return removed

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def direct_edges(self, item_id: UUID, scope: Scope) -> list[PrerequisiteEdge]:
        """Edges from ``item_id`` to its direct prerequisites."""
        return await self.repository.list_prerequisites(scope, item_id)

    async def direct_prerequisites(self, item_id: UUID, scope: Scope) -> set[UUID]:
        edges = await self.direct_edges(item_id, scope)
        return {edge.prerequisite_id for edge in edges}

    async def transitive_closure(
        self, item_id: UUID, scope: Scope, include_self: bool = False
    ) -> set[UUID]:
        """All ancestors of ``item_id`` reachable through prerequisite edges.

        With ``include_self`` the zero-edge path is counted, so the item itself
        is part of the result.
        """
        seen: set[UUID] = set()
        stack = [item_id]
        while stack:
            node = stack.pop()
            for prerequisite_id in await self.direct_prerequisites(node, scope):
                if prerequisite_id not in seen:
                    seen.add(prerequisite_id)
                    stack.append(prerequisite_id)

        if include_self:
            seen.add(item_id)
        return seen

    async def _find_path(
        self, start: UUID, target: UUID, scope: Scope
    ) -> list[UUID] | None:
        """Return a prerequisite chain start -> ... -> target, or None."""
        parents: dict[UUID, UUID | None] = {start: None}
        stack = [start]
        while stack:
            node = stack.pop()
            if node == target:
                path = [node]
                while (parent := parents[path[-1]]) is not None:
                    path.append(parent)
                path.reverse()
                return path
            for prerequisite_id in await self.direct_prerequisites(node, scope):
                if prerequisite_id not in parents:
                    parents[prerequisite_id] = node
                    stack.append(prerequisite_id)
        return None
