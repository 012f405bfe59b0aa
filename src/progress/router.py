"""Enrollment and progress API endpoints.

Provides routes for:
- Course enrollment (gated by course prerequisites)
- Lesson completion (gated by lesson prerequisites)
- Progress queries
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.certificates.schemas import CertificateResponse
from src.core.errors import GatingError
from src.gating.dependencies import GatingServiceDep, handle_gating_error

from .schemas import (
    EnrollmentResponse,
    LessonCompletionResponse,
    MarkLessonCompleteRequest,
)


router = APIRouter(prefix="/v1/users/{user_id}", tags=["progress"])


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@router.post(
    "/courses/{course_id}/enrollment",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Enroll in course",
)
async def enroll(
    user_id: UUID,
    course_id: UUID,
    gating_service: GatingServiceDep,
) -> EnrollmentResponse:
    """Enroll the user in a course.

    Idempotent: an existing enrollment is returned unchanged.
    Fails with 403 while enforced course prerequisites are incomplete.
    """
    try:
        state = await gating_service.enroll(user_id, course_id)
        return EnrollmentResponse.from_entity(state)
    except GatingError as e:
        raise handle_gating_error(e) from e


@router.get(
    "/courses/{course_id}/progress",
    response_model=EnrollmentResponse,
    summary="Get course progress",
)
async def get_course_progress(
    user_id: UUID,
    course_id: UUID,
    gating_service: GatingServiceDep,
) -> EnrollmentResponse:
    try:
        state = await gating_service.get_enrollment_progress(user_id, course_id)
        return EnrollmentResponse.from_entity(state)
    except GatingError as e:
        raise handle_gating_error(e) from e


# ==============================================================================
# Lesson Completion Endpoints
# ==============================================================================


@router.post(
    "/lessons/{lesson_id}/complete",
    response_model=LessonCompletionResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark lesson as complete",
)
async def mark_lesson_complete(
    user_id: UUID,
    lesson_id: UUID,
    gating_service: GatingServiceDep,
    data: MarkLessonCompleteRequest | None = None,
) -> LessonCompletionResponse:
    """Mark a lesson as complete and recompute course progress.

    Safe to retry. The response carries any certificate issued by this call.
    """
    course_id = data.course_id if data else None
    try:
        result = await gating_service.mark_lesson_complete(
            user_id, lesson_id, course_id=course_id
        )
    except GatingError as e:
        raise handle_gating_error(e) from e

    return LessonCompletionResponse(
        lesson_id=lesson_id,
        completed_at=result.record.completed_at,
        already_completed=not result.created,
        progress=[EnrollmentResponse.from_entity(p.state) for p in result.progress],
        issued_certificates=[
            CertificateResponse.from_entity(c) for c in result.issued_certificates
        ],
    )
