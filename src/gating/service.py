"""Gating service: the operations exposed to the rest of the platform.

Wires the prerequisite graph, completion store, access evaluator, progress
aggregator and certificate issuer behind one facade. Every operation takes an
explicit user id; nothing is read from an ambient session.
"""

from dataclasses import dataclass, field
from uuid import UUID

import structlog

from src.access import AccessDecision, AccessEvaluator
from src.certificates import Certificate, CertificateIssuer
from src.core.errors import AccessDeniedError, NotFoundError
from src.courses.structure import CourseStructureProvider
from src.prerequisites import PrerequisiteEdge, PrerequisiteGraph, Scope
from src.progress import (
    CompletionRecord,
    CompletionStore,
    EnrollmentState,
    ProgressAggregator,
    ProgressResult,
)


logger = structlog.get_logger(__name__)


@dataclass
class LessonCompletionResult:
    """Outcome of marking a lesson complete.

    Attributes:
        record: The stored completion (original timestamp on repeats)
        created: False when the lesson was already complete
        progress: One recompute result per enrolled course containing the lesson
    """

    record: CompletionRecord
    created: bool
    progress: list[ProgressResult] = field(default_factory=list)

    @property
    def issued_certificates(self) -> list[Certificate]:
        """Certificates issued by this call."""
        return [
            result.certificate
            for result in self.progress
            if result.newly_completed and result.certificate is not None
        ]


class GatingService:
    """Prerequisite gating, progress and certificates for courses and lessons."""

    def __init__(
        self,
        graph: PrerequisiteGraph,
        completions: CompletionStore,
        evaluator: AccessEvaluator,
        aggregator: ProgressAggregator,
        issuer: CertificateIssuer,
        structure: CourseStructureProvider,
    ):
        self.graph = graph
        self.completions = completions
        self.evaluator = evaluator
        self.aggregator = aggregator
        self.issuer = issuer
        self.structure = structure

    # ==========================================================================
    # Course prerequisites
    # ==========================================================================

    async def add_course_prerequisite(
        self, course_id: UUID, prerequisite_id: UUID, enforce: bool = True
    ) -> PrerequisiteEdge:
        await self._require_course(course_id)
        await self._require_course(prerequisite_id)
        return await self.graph.add_edge(course_id, prerequisite_id, Scope.COURSE, enforce)

    async def remove_course_prerequisite(
        self, course_id: UUID, prerequisite_id: UUID
    ) -> bool:
        return await self.graph.remove_edge(course_id, prerequisite_id, Scope.COURSE)

    async def get_course_prerequisites(self, course_id: UUID) -> list[PrerequisiteEdge]:
        await self._require_course(course_id)
        return await self.graph.direct_edges(course_id, Scope.COURSE)

    # ==========================================================================
    # Lesson prerequisites
    # ==========================================================================

    async def add_lesson_prerequisite(
        self, lesson_id: UUID, prerequisite_id: UUID, enforce: bool = True
    ) -> PrerequisiteEdge:
        await self._require_lesson(lesson_id)
        await self._require_lesson(prerequisite_id)
        return await self.graph.add_edge(lesson_id, prerequisite_id, Scope.LESSON, enforce)

    async def remove_lesson_prerequisite(
        self, lesson_id: UUID, prerequisite_id: UUID
    ) -> bool:
        return await self.graph.remove_edge(lesson_id, prerequisite_id, Scope.LESSON)

    async def get_lesson_prerequisites(self, lesson_id: UUID) -> list[PrerequisiteEdge]:
        await self._require_lesson(lesson_id)
        return await self.graph.direct_edges(lesson_id, Scope.LESSON)

    # ==========================================================================
    # Access
    # ==========================================================================

    async def check_course_access(self, user_id: UUID, course_id: UUID) -> AccessDecision:
        return await self.evaluator.check_course_access(user_id, course_id)

    async def check_lesson_access(self, user_id: UUID, lesson_id: UUID) -> AccessDecision:
        return await self.evaluator.check_lesson_access(user_id, lesson_id)

    # ==========================================================================
    # Enrollment and completion
    # ==========================================================================

    async def enroll(self, user_id: UUID, course_id: UUID) -> EnrollmentState:
        """Enroll a user in a course. Idempotent.

        Raises:
            NotFoundError: Unknown user or course
            AccessDeniedError: Enforced course prerequisites not complete
        """
        decision = await self.evaluator.check_course_access(user_id, course_id)
        if not decision.allowed:
            logger.info(
                "enrollment_denied",
                user_id=user_id,
                course_id=course_id,
                missing=decision.missing_prerequisites,
            )
            raise AccessDeniedError(course_id, decision.missing_prerequisites)

        state, _ = await self.aggregator.enroll(user_id, course_id)
        return state

    async def mark_lesson_complete(
        self, user_id: UUID, lesson_id: UUID, course_id: UUID | None = None
    ) -> LessonCompletionResult:
        """Record a lesson completion and recompute course progress.

        Progress is recomputed for ``course_id`` when given, otherwise for each
        course containing the lesson that the user is enrolled in. A user with
        no such enrollment is enrolled (subject to course prerequisites) in
        every containing course they may access.

        Raises:
            NotFoundError: Unknown user or lesson, or lesson not in course_id
            AccessDeniedError: Lesson or course prerequisites not complete
        """
        decision = await self.evaluator.check_lesson_access(user_id, lesson_id)
        if not decision.allowed:
            logger.info(
                "lesson_completion_denied",
                user_id=user_id,
                lesson_id=lesson_id,
                missing=decision.missing_prerequisites,
            )
            raise AccessDeniedError(lesson_id, decision.missing_prerequisites)

        course_ids = await self.structure.get_lesson_courses(lesson_id)
        if course_id is not None:
            if course_id not in course_ids:
                raise NotFoundError("lesson", f"{lesson_id} in course {course_id}")
            course_ids = [course_id]

        enrolled = await self._resolve_enrollments(user_id, course_ids)

        record, created = await self.completions.mark_complete(
            user_id, lesson_id, Scope.LESSON
        )

        # Recompute even on repeats so a retry heals an interrupted recompute
        progress = [
            await self.aggregator.recompute_progress(user_id, enrolled_course_id)
            for enrolled_course_id in enrolled
        ]
        return LessonCompletionResult(record=record, created=created, progress=progress)

    async def _resolve_enrollments(
        self, user_id: UUID, course_ids: list[UUID]
    ) -> list[UUID]:
        enrolled = []
        for course_id in course_ids:
            if await self.aggregator.get_state(user_id, course_id) is not None:
                enrolled.append(course_id)
        if enrolled or not course_ids:
            return enrolled

        denied: list[AccessDecision] = []
        for course_id in course_ids:
            decision = await self.evaluator.check_course_access(user_id, course_id)
            if decision.allowed:
                await self.aggregator.enroll(user_id, course_id)
                enrolled.append(course_id)
            else:
                denied.append(decision)

        if not enrolled:
            first = denied[0]
            raise AccessDeniedError(first.item_id, first.missing_prerequisites)
        return enrolled

    async def get_enrollment_progress(
        self, user_id: UUID, course_id: UUID
    ) -> EnrollmentState:
        state = await self.aggregator.get_state(user_id, course_id)
        if state is None:
            raise NotFoundError("enrollment", f"{user_id}/{course_id}")
        return state

    # ==========================================================================
    # Certificates
    # ==========================================================================

    async def get_certificate(self, user_id: UUID, course_id: UUID) -> Certificate:
        certificate = await self.issuer.get_for_course(user_id, course_id)
        if certificate is None:
            raise NotFoundError("certificate", f"{user_id}/{course_id}")
        return certificate

    async def list_certificates(self, user_id: UUID) -> list[Certificate]:
        return await self.issuer.list_for_user(user_id)

    async def verify_certificate(self, verification_code: str) -> Certificate:
        certificate = await self.issuer.verify(verification_code)
        if certificate is None:
            raise NotFoundError("certificate", verification_code)
        return certificate

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _require_course(self, course_id: UUID) -> None:
        if not await self.structure.course_exists(course_id):
            raise NotFoundError("course", course_id)

    async def _require_lesson(self, lesson_id: UUID) -> None:
        if not await self.structure.lesson_exists(lesson_id):
            raise NotFoundError("lesson", lesson_id)
