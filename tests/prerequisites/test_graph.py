"""Tests for the prerequisite graph.

Covers:
- self-reference and cycle rejection
- duplicate adds and idempotent removes
- direct and transitive queries
- scope isolation
- mutations from several workers over one edge store
"""

import asyncio
import random
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest

from src.core.errors import CycleError, SelfReferenceError
from src.core.locks import InProcessGraphLocks, RedisGraphLocks
from src.prerequisites import PrerequisiteGraph, Scope
from src.prerequisites.repository import InMemoryEdgeRepository


@pytest.fixture
def graph() -> PrerequisiteGraph:
    """Graph over an empty in-memory edge store."""
    return PrerequisiteGraph(InMemoryEdgeRepository())


def ids(count: int) -> list[UUID]:
    return [uuid4() for _ in range(count)]


class TestAddEdge:
    """Tests for add_edge."""

    @pytest.mark.asyncio
    async def test_add_edge_stores_direct_prerequisite(self, graph: PrerequisiteGraph):
        """Should record the prerequisite as direct."""
        a, b = ids(2)

        edge = await graph.add_edge(a, b, Scope.LESSON)

        assert edge.dependent_id == a
        assert edge.prerequisite_id == b
        assert edge.enforce is True
        assert await graph.direct_prerequisites(a, Scope.LESSON) == {b}

    @pytest.mark.asyncio
    async def test_self_reference_is_rejected(self, graph: PrerequisiteGraph):
        """Should refuse an item as its own prerequisite."""
        a = uuid4()

        with pytest.raises(SelfReferenceError) as exc_info:
            await graph.add_edge(a, a, Scope.COURSE)

        assert exc_info.value.code == "self_reference"
        assert await graph.direct_prerequisites(a, Scope.COURSE) == set()

    @pytest.mark.asyncio
    async def test_two_node_cycle_is_rejected(self, graph: PrerequisiteGraph):
        """Should reject Y->X once X->Y exists, leaving the graph unchanged."""
        x, y = ids(2)
        await graph.add_edge(x, y, Scope.COURSE)

        with pytest.raises(CycleError) as exc_info:
            await graph.add_edge(y, x, Scope.COURSE)

        assert exc_info.value.code == "cycle"
        assert exc_info.value.path == [x, y]
        assert await graph.direct_prerequisites(y, Scope.COURSE) == set()
        assert await graph.direct_prerequisites(x, Scope.COURSE) == {y}

    @pytest.mark.asyncio
    async def test_long_cycle_is_rejected_with_path(self, graph: PrerequisiteGraph):
        """Should report the existing chain that the new edge would close."""
        a, b, c, d = ids(4)
        await graph.add_edge(a, b, Scope.LESSON)
        await graph.add_edge(b, c, Scope.LESSON)
        await graph.add_edge(c, d, Scope.LESSON)

        with pytest.raises(CycleError) as exc_info:
            await graph.add_edge(d, a, Scope.LESSON)

        assert exc_info.value.path == [a, b, c, d]

    @pytest.mark.asyncio
    async def test_diamond_is_allowed(self, graph: PrerequisiteGraph):
        """Should accept shared ancestors (not a cycle)."""
        top, left, right, bottom = ids(4)
        await graph.add_edge(bottom, left, Scope.COURSE)
        await graph.add_edge(bottom, right, Scope.COURSE)
        await graph.add_edge(left, top, Scope.COURSE)
        await graph.add_edge(right, top, Scope.COURSE)

        assert await graph.transitive_closure(bottom, Scope.COURSE) == {
            left,
            right,
            top,
        }

    @pytest.mark.asyncio
    async def test_duplicate_add_is_noop(self, graph: PrerequisiteGraph):
        """Should keep a single edge and return the original."""
        a, b = ids(2)
        first = await graph.add_edge(a, b, Scope.LESSON)

        second = await graph.add_edge(a, b, Scope.LESSON)

        assert second.created_at == first.created_at
        assert len(await graph.direct_edges(a, Scope.LESSON)) == 1

    @pytest.mark.asyncio
    async def test_duplicate_add_updates_enforce_flag(self, graph: PrerequisiteGraph):
        """Should switch an enforced edge to advisory on re-add."""
        a, b = ids(2)
        await graph.add_edge(a, b, Scope.LESSON)

        edge = await graph.add_edge(a, b, Scope.LESSON, enforce=False)

        assert edge.enforce is False
        [stored] = await graph.direct_edges(a, Scope.LESSON)
        assert stored.enforce is False

    @pytest.mark.asyncio
    async def test_scopes_are_isolated(self, graph: PrerequisiteGraph):
        """Should not detect cycles across scopes."""
        a, b = ids(2)
        await graph.add_edge(a, b, Scope.COURSE)

        await graph.add_edge(b, a, Scope.LESSON)

        assert await graph.direct_prerequisites(b, Scope.COURSE) == set()
        assert await graph.direct_prerequisites(b, Scope.LESSON) == {a}


class TestRemoveEdge:
    """Tests for remove_edge."""

    @pytest.mark.asyncio
    async def test_remove_existing_edge(self, graph: PrerequisiteGraph):
        """Should delete the edge and report it."""
        a, b = ids(2)
        await graph.add_edge(a, b, Scope.COURSE)

        assert await graph.remove_edge(a, b, Scope.COURSE) is True
        assert await graph.direct_prerequisites(a, Scope.COURSE) == set()

    @pytest.mark.asyncio
    async def test_remove_absent_edge_is_noop(self, graph: PrerequisiteGraph):
        """Should succeed without deleting anything."""
        a, b = ids(2)

        assert await graph.remove_edge(a, b, Scope.COURSE) is False

    @pytest.mark.asyncio
    async def test_removed_edge_allows_reverse_edge(self, graph: PrerequisiteGraph):
        """Should accept the reverse edge once the cycle is broken."""
        a, b = ids(2)
        await graph.add_edge(a, b, Scope.COURSE)
        await graph.remove_edge(a, b, Scope.COURSE)

        await graph.add_edge(b, a, Scope.COURSE)

        assert await graph.direct_prerequisites(b, Scope.COURSE) == {a}


class TestTransitiveClosure:
    """Tests for transitive_closure."""

    @pytest.mark.asyncio
    async def test_chain_closure(self, graph: PrerequisiteGraph):
        """Should return every ancestor but not the item itself."""
        a, b, c = ids(3)
        await graph.add_edge(c, b, Scope.LESSON)
        await graph.add_edge(b, a, Scope.LESSON)

        assert await graph.transitive_closure(c, Scope.LESSON) == {a, b}
        assert await graph.transitive_closure(a, Scope.LESSON) == set()

    @pytest.mark.asyncio
    async def test_include_self(self, graph: PrerequisiteGraph):
        """Should add the item itself when asked."""
        a, b = ids(2)
        await graph.add_edge(b, a, Scope.LESSON)

        assert await graph.transitive_closure(b, Scope.LESSON, include_self=True) == {
            a,
            b,
        }


class TestAcyclicity:
    """Random edge sequences never produce a cycle."""

    @staticmethod
    def _has_cycle(edges: dict[UUID, set[UUID]]) -> bool:
        visiting: set[UUID] = set()
        done: set[UUID] = set()

        def visit(node: UUID) -> bool:
            if node in done:
                return False
            if node in visiting:
                return True
            visiting.add(node)
            if any(visit(nxt) for nxt in edges.get(node, ())):
                return True
            visiting.discard(node)
            done.add(node)
            return False

        return any(visit(node) for node in list(edges))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 7, 42])
    async def test_random_inserts_stay_acyclic(self, graph: PrerequisiteGraph, seed: int):
        """Should accept or reject each random edge so that no cycle ever exists."""
        rng = random.Random(seed)
        nodes = ids(8)
        accepted: dict[UUID, set[UUID]] = {}

        for _ in range(60):
            dependent, prerequisite = rng.choice(nodes), rng.choice(nodes)
            try:
                await graph.add_edge(dependent, prerequisite, Scope.LESSON)
            except (CycleError, SelfReferenceError):
                continue
            accepted.setdefault(dependent, set()).add(prerequisite)

        stored = {
            node: await graph.direct_prerequisites(node, Scope.LESSON) for node in nodes
        }
        assert stored == {node: accepted.get(node, set()) for node in nodes}
        assert not self._has_cycle(stored)


class TestSharedStorage:
    """Graphs in separate workers writing one edge store."""

    @pytest.mark.asyncio
    async def test_opposite_edges_from_two_workers(self):
        """Should let only one of two opposing concurrent edges through."""
        repository = InMemoryEdgeRepository()
        locks = InProcessGraphLocks()
        worker_a = PrerequisiteGraph(repository, locks=locks)
        worker_b = PrerequisiteGraph(repository, locks=locks)
        x, y = ids(2)

        results = await asyncio.gather(
            worker_a.add_edge(x, y, Scope.COURSE),
            worker_b.add_edge(y, x, Scope.COURSE),
            return_exceptions=True,
        )

        assert sum(isinstance(r, CycleError) for r in results) == 1
        stored = await repository.list_prerequisites(Scope.COURSE, x)
        stored += await repository.list_prerequisites(Scope.COURSE, y)
        assert len(stored) == 1

    @pytest.mark.asyncio
    async def test_mutations_lock_their_scope_in_redis(self):
        lock = Mock()
        lock.acquire = AsyncMock(return_value=True)
        lock.release = AsyncMock()
        redis_client = Mock()
        redis_client.lock = Mock(return_value=lock)
        graph = PrerequisiteGraph(
            InMemoryEdgeRepository(), locks=RedisGraphLocks(redis_client)
        )
        a, b = ids(2)

        await graph.add_edge(a, b, Scope.COURSE)
        await graph.remove_edge(a, b, Scope.LESSON)

        keys = [call.args[0] for call in redis_client.lock.call_args_list]
        assert keys == ["locks:prerequisites:course", "locks:prerequisites:lesson"]
        assert lock.release.await_count == 2
