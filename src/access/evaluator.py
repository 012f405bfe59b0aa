"""Access decisions for courses and lessons.

Only direct prerequisites are checked. Completing an item already required
passing its own check, so a complete direct prerequisite implies its whole
ancestry was satisfied when it was completed.
"""

from dataclasses import dataclass, field
from uuid import UUID

import structlog

from src.auth.directory import UserDirectory
from src.core.errors import NotFoundError
from src.courses.structure import CourseStructureProvider
from src.prerequisites import PrerequisiteGraph, Scope
from src.progress.completion import CompletionStore


logger = structlog.get_logger(__name__)


@dataclass
class AccessDecision:
    """Outcome of an access check.

    Attributes:
        item_id: Course or lesson checked
        scope: course or lesson
        allowed: True when every enforced prerequisite is complete
        missing_prerequisites: Incomplete enforced prerequisites, sorted
        advisory_prerequisites: Incomplete non-enforced prerequisites, sorted
    """

    item_id: UUID
    scope: Scope
    allowed: bool
    missing_prerequisites: list[UUID] = field(default_factory=list)
    advisory_prerequisites: list[UUID] = field(default_factory=list)


class AccessEvaluator:
    """Evaluates prerequisite gates against a user's completions."""

    def __init__(
        self,
        graph: PrerequisiteGraph,
        completions: CompletionStore,
        structure: CourseStructureProvider,
        users: UserDirectory,
    ):
        self.graph = graph
        self.completions = completions
        self.structure = structure
        self.users = users

    async def check_access(
        self, user_id: UUID, item_id: UUID, scope: Scope
    ) -> AccessDecision:
        """Decide whether ``user_id`` may access ``item_id``.

        Raises:
            NotFoundError: Unknown user or item
        """
        await self._ensure_exists(user_id, item_id, scope)

        edges = await self.graph.direct_edges(item_id, scope)
        if not edges:
            return AccessDecision(item_id=item_id, scope=scope, allowed=True)

        completed = await self.completions.list_completed(user_id, scope)
        missing = sorted(
            (
                e.prerequisite_id
                for e in edges
                if e.enforce and e.prerequisite_id not in completed
            ),
            key=str,
        )
        advisory = sorted(
            (
                e.prerequisite_id
                for e in edges
                if not e.enforce and e.prerequisite_id not in completed
            ),
            key=str,
        )

        decision = AccessDecision(
            item_id=item_id,
            scope=scope,
            allowed=not missing,
            missing_prerequisites=missing,
            advisory_prerequisites=advisory,
        )
        if missing:
            logger.debug(
                "access_denied",
                user_id=user_id,
                item_id=item_id,
                scope=scope.value,
                missing=missing,
            )
        return decision

    async def check_course_access(self, user_id: UUID, course_id: UUID) -> AccessDecision:
        return await self.check_access(user_id, course_id, Scope.COURSE)

    async def check_lesson_access(self, user_id: UUID, lesson_id: UUID) -> AccessDecision:
        return await self.check_access(user_id, lesson_id, Scope.LESSON)

    async def _ensure_exists(self, user_id: UUID, item_id: UUID, scope: Scope) -> None:
        if not await self.users.user_exists(user_id):
            raise NotFoundError("user", user_id)

        if scope == Scope.COURSE:
            exists = await self.structure.course_exists(item_id)
        else:
            exists = await self.structure.lesson_exists(item_id)
        if not exists:
            raise NotFoundError(scope.value, item_id)
