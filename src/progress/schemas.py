"""Pydantic schemas for enrollment and progress.

Request and response models for:
- Course enrollment
- Lesson completion
- Progress queries
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.certificates.schemas import CertificateResponse

from .models import EnrollmentState, EnrollmentStatus


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollmentResponse(BaseModel):
    """Enrollment progress response."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    progress_percent: int = Field(ge=0, le=100, description="0-100, rounded half up")
    lessons_completed: int
    lessons_total: int
    enrolled_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: EnrollmentState) -> "EnrollmentResponse":
        """Create response from entity."""
        return cls(
            user_id=entity.user_id,
            course_id=entity.course_id,
            status=EnrollmentStatus(entity.status),
            progress_percent=entity.progress_percent,
            lessons_completed=entity.lessons_completed,
            lessons_total=entity.lessons_total,
            enrolled_at=entity.enrolled_at,
            started_at=entity.started_at,
            completed_at=entity.completed_at,
            updated_at=entity.updated_at,
        )


# ==============================================================================
# Lesson Completion Schemas
# ==============================================================================


class MarkLessonCompleteRequest(BaseModel):
    """Optional body for lesson completion."""

    course_id: UUID | None = Field(
        default=None,
        description="Course to recompute (default: every enrolled course containing the lesson)",
    )


class LessonCompletionResponse(BaseModel):
    """Lesson completion result with the resulting course progress."""

    lesson_id: UUID
    completed_at: datetime
    already_completed: bool
    progress: list[EnrollmentResponse]
    issued_certificates: list[CertificateResponse] = Field(default_factory=list)
