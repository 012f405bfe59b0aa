"""Course structure tables read by the gating engine.

The course catalog owns these tables; only the columns needed to resolve
"which lessons make up this course" are declared here so a fresh keyspace can
be bootstrapped. Modules and lessons are reusable, so the junction tables are
many-to-many:

    courses --< course_modules >-- modules --< module_lessons >-- lessons
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    status TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    title TEXT,
    status TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Junction tables, clustered by position for ordered reads
COURSE_MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_modules (
    course_id UUID,
    module_id UUID,
    position INT,
    PRIMARY KEY (course_id, position, module_id)
) WITH CLUSTERING ORDER BY (position ASC, module_id ASC)
"""

MODULE_LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_lessons (
    module_id UUID,
    lesson_id UUID,
    position INT,
    PRIMARY KEY (module_id, position, lesson_id)
) WITH CLUSTERING ORDER BY (position ASC, lesson_id ASC)
"""

# Reverse lookups
COURSES_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_module (
    module_id UUID,
    course_id UUID,
    PRIMARY KEY (module_id, course_id)
)
"""

MODULES_BY_LESSON_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules_by_lesson (
    lesson_id UUID,
    module_id UUID,
    PRIMARY KEY (lesson_id, module_id)
)
"""

COURSE_STRUCTURE_TABLES_CQL = [
    COURSE_TABLE_CQL,
    LESSON_TABLE_CQL,
    COURSE_MODULES_TABLE_CQL,
    MODULE_LESSONS_TABLE_CQL,
    COURSES_BY_MODULE_TABLE_CQL,
    MODULES_BY_LESSON_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class ModuleLesson:
    """Link between a module and one of its lessons."""

    module_id: UUID
    lesson_id: UUID
    position: int

    @classmethod
    def from_row(cls, row: Any) -> "ModuleLesson":
        """Create from Cassandra row."""
        return cls(
            module_id=row.module_id,
            lesson_id=row.lesson_id,
            position=row.position or 0,
        )


@dataclass
class CourseModule:
    """Link between a course and one of its modules."""

    course_id: UUID
    module_id: UUID
    position: int

    @classmethod
    def from_row(cls, row: Any) -> "CourseModule":
        """Create from Cassandra row."""
        return cls(
            course_id=row.course_id,
            module_id=row.module_id,
            position=row.position or 0,
        )
