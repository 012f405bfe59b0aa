"""Access check API endpoints."""

from uuid import UUID

from fastapi import APIRouter

from src.core.errors import GatingError
from src.gating.dependencies import GatingServiceDep, handle_gating_error

from .schemas import AccessResponse


router = APIRouter(prefix="/v1/users/{user_id}", tags=["access"])


@router.get(
    "/courses/{course_id}/access",
    response_model=AccessResponse,
    summary="Check course access",
)
async def check_course_access(
    user_id: UUID,
    course_id: UUID,
    gating_service: GatingServiceDep,
) -> AccessResponse:
    """Check whether the user has completed every enforced course prerequisite."""
    try:
        decision = await gating_service.check_course_access(user_id, course_id)
        return AccessResponse.from_entity(decision)
    except GatingError as e:
        raise handle_gating_error(e) from e


@router.get(
    "/lessons/{lesson_id}/access",
    response_model=AccessResponse,
    summary="Check lesson access",
)
async def check_lesson_access(
    user_id: UUID,
    lesson_id: UUID,
    gating_service: GatingServiceDep,
) -> AccessResponse:
    """Check whether the user has completed every enforced lesson prerequisite."""
    try:
        decision = await gating_service.check_lesson_access(user_id, lesson_id)
        return AccessResponse.from_entity(decision)
    except GatingError as e:
        raise handle_gating_error(e) from e
