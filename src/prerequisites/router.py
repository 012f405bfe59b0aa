"""Prerequisite management API endpoints.

Provides routes for:
- Declaring and removing course prerequisites
- Declaring and removing lesson prerequisites
- Listing direct prerequisites
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.core.errors import GatingError
from src.gating.dependencies import GatingServiceDep, handle_gating_error

from .models import Scope
from .schemas import (
    AddPrerequisiteRequest,
    PrerequisiteListResponse,
    PrerequisiteResponse,
)


router = APIRouter(prefix="/v1", tags=["prerequisites"])


# ==============================================================================
# Course Prerequisites
# ==============================================================================


@router.post(
    "/courses/{course_id}/prerequisites",
    response_model=PrerequisiteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add course prerequisite",
)
async def add_course_prerequisite(
    course_id: UUID,
    data: AddPrerequisiteRequest,
    gating_service: GatingServiceDep,
) -> PrerequisiteResponse:
    """Require completing another course before this one.

    Re-adding an existing prerequisite is a no-op (the enforce flag is
    updated if it differs). Cycles and self-references are rejected.
    """
    try:
        edge = await gating_service.add_course_prerequisite(
            course_id, data.prerequisite_id, enforce=data.enforce
        )
        return PrerequisiteResponse.from_entity(edge)
    except GatingError as e:
        raise handle_gating_error(e) from e


@router.get(
    "/courses/{course_id}/prerequisites",
    response_model=PrerequisiteListResponse,
    summary="List course prerequisites",
)
async def get_course_prerequisites(
    course_id: UUID,
    gating_service: GatingServiceDep,
) -> PrerequisiteListResponse:
    try:
        edges = await gating_service.get_course_prerequisites(course_id)
        return PrerequisiteListResponse.from_edges(course_id, Scope.COURSE, edges)
    except GatingError as e:
        raise handle_gating_error(e) from e


@router.delete(
    "/courses/{course_id}/prerequisites/{prerequisite_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove course prerequisite",
)
async def remove_course_prerequisite(
    course_id: UUID,
    prerequisite_id: UUID,
    gating_service: GatingServiceDep,
) -> None:
    """Remove a course prerequisite. Removing an absent one succeeds."""
    await gating_service.remove_course_prerequisite(course_id, prerequisite_id)


# ==============================================================================
# Lesson Prerequisites
# ==============================================================================


@router.post(
    "/lessons/{lesson_id}/prerequisites",
    response_model=PrerequisiteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add lesson prerequisite",
)
async def add_lesson_prerequisite(
    lesson_id: UUID,
    data: AddPrerequisiteRequest,
    gating_service: GatingServiceDep,
) -> PrerequisiteResponse:
    try:
        edge = await gating_service.add_lesson_prerequisite(
            lesson_id, data.prerequisite_id, enforce=data.enforce
        )
        return PrerequisiteResponse.from_entity(edge)
    except GatingError as e:
        raise handle_gating_error(e) from e


@router.get(
    "/lessons/{lesson_id}/prerequisites",
    response_model=PrerequisiteListResponse,
    summary="List lesson prerequisites",
)
async def get_lesson_prerequisites(
    lesson_id: UUID,
    gating_service: GatingServiceDep,
) -> PrerequisiteListResponse:
    try:
        edges = await gating_service.get_lesson_prerequisites(lesson_id)
        return PrerequisiteListResponse.from_edges(lesson_id, Scope.LESSON, edges)
    except GatingError as e:
        raise handle_gating_error(e) from e


@router.delete(
    "/lessons/{lesson_id}/prerequisites/{prerequisite_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove lesson prerequisite",
)
async def remove_lesson_prerequisite(
    lesson_id: UUID,
    prerequisite_id: UUID,
    gating_service: GatingServiceDep,
) -> None:
    await gating_service.remove_lesson_prerequisite(lesson_id, prerequisite_id)
