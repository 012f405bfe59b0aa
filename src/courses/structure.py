"""Course structure lookups.

CourseStructureProvider answers the two questions the gating engine asks of
the catalog: the ordered lessons of a course, and the courses a lesson belongs
to. Lessons are flattened across modules in module order, then lesson order;
a lesson reused in two modules of the same course is counted once.
"""

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import CourseModule, ModuleLesson


if TYPE_CHECKING:
    from cassandra.cluster import Session


class CourseStructureProvider(Protocol):
    """Read-only view of the course catalog."""

    async def get_course_lessons(self, course_id: UUID) -> list[UUID] | None:
        """Ordered, de-duplicated lesson ids, or None for an unknown course."""
        ...

    async def get_lesson_courses(self, lesson_id: UUID) -> list[UUID]: ...

    async def course_exists(self, course_id: UUID) -> bool: ...

    async def lesson_exists(self, lesson_id: UUID) -> bool: ...


def _dedupe(lesson_ids: Iterable[UUID]) -> list[UUID]:
    seen: set[UUID] = set()
    ordered = []
    for lesson_id in lesson_ids:
        if lesson_id not in seen:
            seen.add(lesson_id)
            ordered.append(lesson_id)
    return ordered


class InMemoryCourseStructure:
    """Course structure held in process memory.

    Example:
        structure = InMemoryCourseStructure()
        structure.add_course(course_id, [[l1, l2], [l3]])
    """

    def __init__(self) -> None:
        self._courses: dict[UUID, list[list[UUID]]] = {}
        self._lessons: set[UUID] = set()

    def add_course(
        self, course_id: UUID, modules: Sequence[Sequence[UUID]] = ()
    ) -> None:
        """Register a course with its modules, each an ordered list of lessons."""
        self._courses[course_id] = [list(lessons) for lessons in modules]
        for lessons in modules:
            self._lessons.update(lessons)

    def add_lesson(self, lesson_id: UUID) -> None:
        """Register a lesson that is not (yet) part of any course."""
        self._lessons.add(lesson_id)

    async def get_course_lessons(self, course_id: UUID) -> list[UUID] | None:
        modules = self._courses.get(course_id)
        if modules is None:
            return None
        return _dedupe(lesson_id for lessons in modules for lesson_id in lessons)

    async def get_lesson_courses(self, lesson_id: UUID) -> list[UUID]:
        return [
            course_id
            for course_id, modules in self._courses.items()
            if any(lesson_id in lessons for lessons in modules)
        ]

    async def course_exists(self, course_id: UUID) -> bool:
        return course_id in self._courses

    async def lesson_exists(self, lesson_id: UUID) -> bool:
        return lesson_id in self._lessons


class CassandraCourseStructure:
    """Course structure read from the catalog's junction tables."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_course = self.session.prepare(
            f"SELECT id FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._get_lesson = self.session.prepare(
            f"SELECT id FROM {self.keyspace}.lessons WHERE id = ?"
        )
        self._get_course_modules = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.course_modules WHERE course_id = ?"
        )
        self._get_module_lessons = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.module_lessons WHERE module_id = ?"
        )
        self._get_modules_by_lesson = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.modules_by_lesson WHERE lesson_id = ?"
        )
        self._get_courses_by_module = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses_by_module WHERE module_id = ?"
        )

    async def get_course_lessons(self, course_id: UUID) -> list[UUID] | None:
        if not await self.course_exists(course_id):
            return None

        rows = await self.session.aexecute(self._get_course_modules, [course_id])
        modules = sorted(
            (CourseModule.from_row(row) for row in rows), key=lambda m: m.position
        )

        lesson_ids: list[UUID] = []
        for module in modules:
            rows = await self.session.aexecute(
                self._get_module_lessons, [module.module_id]
            )
            links = sorted(
                (ModuleLesson.from_row(row) for row in rows),
                key=lambda link: link.position,
            )
            lesson_ids.extend(link.lesson_id for link in links)

        return _dedupe(lesson_ids)

    async def get_lesson_courses(self, lesson_id: UUID) -> list[UUID]:
        course_ids: list[UUID] = []
        module_rows = await self.session.aexecute(
            self._get_modules_by_lesson, [lesson_id]
        )
        for module_row in module_rows:
            course_rows = await self.session.aexecute(
                self._get_courses_by_module, [module_row.module_id]
            )
            course_ids.extend(row.course_id for row in course_rows)
        return _dedupe(course_ids)

    async def course_exists(self, course_id: UUID) -> bool:
        result = await self.session.aexecute(self._get_course, [course_id])
        return result.one() is not None

    async def lesson_exists(self, lesson_id: UUID) -> bool:
        result = await self.session.aexecute(self._get_lesson, [lesson_id])
        return result.one() is not None
