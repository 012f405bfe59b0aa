"""Database models for completion tracking and enrollment progress.

Cassandra table definitions for:
- Completion records: write-once per (user, scope, item)
- Enrollment state: one row per (user, course), mutated only by recompute
- Enrollments by user: lookup for "which courses is this user taking?"
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from src.prerequisites.models import Scope, ensure_utc_aware


class EnrollmentStatus(str, Enum):
    """Enrollment status. ``completed`` is terminal."""

    NOT_STARTED = "not_started"  # Enrolled, no lesson completed yet
    IN_PROGRESS = "in_progress"  # At least one lesson completed
    COMPLETED = "completed"  # Every lesson of every module completed


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Completed items per user and scope
# Partition key: (user_id, scope) so list_completed is a single-partition read
COMPLETION_RECORDS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.completion_records (
    user_id UUID,
    scope TEXT,
    item_id UUID,
    completed_at TIMESTAMP,
    PRIMARY KEY ((user_id, scope), item_id)
)
"""

ENROLLMENT_STATE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollment_state (
    user_id UUID,
    course_id UUID,
    status TEXT,
    progress_percent INT,
    lessons_completed INT,
    lessons_total INT,
    enrolled_at TIMESTAMP,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id))
)
"""

PROGRESS_TABLES_CQL = [
    COMPLETION_RECORDS_TABLE_CQL,
    ENROLLMENT_STATE_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class CompletionRecord:
    """A user's completion of one lesson or course. Never reverts."""

    user_id: UUID
    item_id: UUID
    scope: Scope
    completed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: Any) -> "CompletionRecord":
        """Create from Cassandra row."""
        return cls(
            user_id=row.user_id,
            item_id=row.item_id,
            scope=Scope(row.scope),
            completed_at=ensure_utc_aware(row.completed_at) or datetime.now(UTC),
        )


class EnrollmentState:
    """Course enrollment progress for one user.

    Attributes:
        user_id: User UUID
        course_id: Course UUID
        status: not_started, in_progress or completed
        progress_percent: Whole-number course progress (0-100, 100 only when completed)
        lessons_completed: Completed lessons counted at last recompute
        lessons_total: Lessons in the course at last recompute
        enrolled_at: Enrollment timestamp
        started_at: When the first lesson was completed
        completed_at: When the course was completed
        updated_at: Last recompute timestamp
    """

    def __init__(
        self,
        user_id: UUID,
        course_id: UUID,
        status: str = EnrollmentStatus.NOT_STARTED.value,
        progress_percent: int = 0,
        lessons_completed: int = 0,
        lessons_total: int = 0,
        enrolled_at: datetime | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.status = status
        self.progress_percent = progress_percent
        self.lessons_completed = lessons_completed
        self.lessons_total = lessons_total
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.updated_at = ensure_utc_aware(updated_at) or self.enrolled_at

    @property
    def is_completed(self) -> bool:
        """Check if the course is completed."""
        return self.status == EnrollmentStatus.COMPLETED.value

    def progress_key(self) -> tuple[str, int, int, int]:
        """Fields a recompute derives; equal keys mean nothing changed."""
        return (
            self.status,
            self.progress_percent,
            self.lessons_completed,
            self.lessons_total,
        )

    @classmethod
    def from_row(cls, row: Any) -> "EnrollmentState":
        """Create EnrollmentState instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            status=row.status or EnrollmentStatus.NOT_STARTED.value,
            progress_percent=row.progress_percent or 0,
            lessons_completed=row.lessons_completed or 0,
            lessons_total=row.lessons_total or 0,
            enrolled_at=row.enrolled_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
            updated_at=row.updated_at,
        )

    def copy(self) -> "EnrollmentState":
        return EnrollmentState(**self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "status": self.status,
            "progress_percent": self.progress_percent,
            "lessons_completed": self.lessons_completed,
            "lessons_total": self.lessons_total,
            "enrolled_at": self.enrolled_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<EnrollmentState user={self.user_id} course={self.course_id} "
            f"{self.status} {self.progress_percent}%>"
        )
