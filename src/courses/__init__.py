"""Read-only access to course structure (courses, modules, lessons)."""

from .models import COURSE_STRUCTURE_TABLES_CQL
from .structure import (
    CassandraCourseStructure,
    CourseStructureProvider,
    InMemoryCourseStructure,
)


__all__ = [
    "COURSE_STRUCTURE_TABLES_CQL",
    "CassandraCourseStructure",
    "CourseStructureProvider",
    "InMemoryCourseStructure",
]
