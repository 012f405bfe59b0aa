"""Enrollment progress aggregation.

State machine per enrollment:

    not_started --(first lesson)--> in_progress --(all lessons)--> completed

``completed`` is terminal. Every recompute runs under the enrollment's lock so
the completion read and the state write form one unit.

On the transition to ``completed`` the course itself is recorded as complete
(course scope, which is what course prerequisites check) and the certificate
is issued. Both happen before the completed state is persisted, so a failure
leaves the enrollment non-terminal and the next recompute retries them; both
steps are idempotent.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

import structlog

from src.certificates import Certificate, CertificateIssuer
from src.core.errors import NotFoundError
from src.core.locks import EnrollmentLocks
from src.courses.structure import CourseStructureProvider
from src.prerequisites.models import Scope

from .completion import CompletionStore
from .models import EnrollmentState, EnrollmentStatus
from .repository import EnrollmentRepository


logger = structlog.get_logger(__name__)


@dataclass
class ProgressResult:
    """Enrollment state after a recompute.

    Attributes:
        state: Current enrollment state
        certificate: The course certificate once the enrollment is completed
        newly_completed: True only for the recompute that made it completed
    """

    state: EnrollmentState
    certificate: Certificate | None = None
    newly_completed: bool = False


def compute_progress(completed: int, total: int) -> tuple[str, int]:
    """Derive (status, percent) from lesson counts.

    Percent is rounded half up (2 of 3 lessons is 67%) and only reaches 100
    when every lesson is complete.
    """
    if total <= 0 or completed <= 0:
        return EnrollmentStatus.NOT_STARTED.value, 0

    completed = min(completed, total)
    if completed == total:
        return EnrollmentStatus.COMPLETED.value, 100

    percent = (200 * completed + total) // (2 * total)
    return EnrollmentStatus.IN_PROGRESS.value, max(0, min(99, percent))


class ProgressAggregator:
    """Keeps EnrollmentState in line with the user's lesson completions."""

    def __init__(
        self,
        completions: CompletionStore,
        enrollments: EnrollmentRepository,
        structure: CourseStructureProvider,
        issuer: CertificateIssuer,
        locks: EnrollmentLocks,
    ):
        self.completions = completions
        self.enrollments = enrollments
        self.structure = structure
        self.issuer = issuer
        self.locks = locks

    async def enroll(self, user_id: UUID, course_id: UUID) -> tuple[EnrollmentState, bool]:
        """Create the not_started enrollment if absent.

        Returns:
            (state, created)
        """
        state, created = await self.enrollments.create_if_absent(
            EnrollmentState(user_id=user_id, course_id=course_id)
        )
        if created:
            logger.info("enrollment_created", user_id=user_id, course_id=course_id)
        return state, created

    async def get_state(self, user_id: UUID, course_id: UUID) -> EnrollmentState | None:
        return await self.enrollments.get(user_id, course_id)

    async def recompute_progress(self, user_id: UUID, course_id: UUID) -> ProgressResult:
        """Recount completed lessons and advance the enrollment state.

        Raises:
            NotFoundError: No enrollment, or the course is unknown
            LockTimeoutError: Enrollment lock not acquired in time
            IssuanceError: Certificate could not be issued (state stays retryable)
        """
        async with self.locks.hold(user_id, course_id):
            state = await self.enrollments.get(user_id, course_id)
            if state is None:
                raise NotFoundError("enrollment", f"{user_id}/{course_id}")

            if state.is_completed:
                certificate = await self.issuer.get_for_course(user_id, course_id)
                return ProgressResult(state=state, certificate=certificate)

            lesson_ids = await self.structure.get_course_lessons(course_id)
            if lesson_ids is None:
                raise NotFoundError("course", course_id)

            completed_ids = await self.completions.list_completed(user_id, Scope.LESSON)
            completed = sum(1 for lesson_id in lesson_ids if lesson_id in completed_ids)
            status, percent = compute_progress(completed, len(lesson_ids))

            previous_key = state.progress_key()
            now = datetime.now(UTC)
            state.status = status
            state.progress_percent = percent
            state.lessons_completed = completed
            state.lessons_total = len(lesson_ids)
            if status != EnrollmentStatus.NOT_STARTED.value and state.started_at is None:
                state.started_at = now

            certificate = None
            newly_completed = state.is_completed
            if newly_completed:
                await self.completions.mark_complete(user_id, course_id, Scope.COURSE)
                issuance = await self.issuer.issue(user_id, course_id)
                certificate = issuance.certificate
                state.completed_at = now

            if state.progress_key() == previous_key:
                return ProgressResult(state=state)

            state.updated_at = now
            if not await self.enrollments.save(state):
                # Completed by a holder whose lock had expired
                stored = await self.enrollments.get(user_id, course_id)
                logger.warning(
                    "enrollment_save_rejected",
                    user_id=user_id,
                    course_id=course_id,
                    status=stored.status if stored else None,
                )
                if stored is None:
                    raise NotFoundError("enrollment", f"{user_id}/{course_id}")
                certificate = await self.issuer.get_for_course(user_id, course_id)
                return ProgressResult(state=stored, certificate=certificate)

        if newly_completed:
            logger.info(
                "enrollment_completed",
                user_id=user_id,
                course_id=course_id,
                lessons_total=state.lessons_total,
                certificate_number=certificate.certificate_number if certificate else None,
            )
        else:
            logger.info(
                "enrollment_progress_updated",
                user_id=user_id,
                course_id=course_id,
                status=state.status,
                progress_percent=state.progress_percent,
            )
        return ProgressResult(
            state=state, certificate=certificate, newly_completed=newly_completed
        )
