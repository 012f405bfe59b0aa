"""Tests for ProgressAggregator.

Covers:
- percent/status derivation
- enrollment state transitions and terminal completion
- course completion record and certificate issuance on the transition
- idempotent recompute
"""

import asyncio
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from src.certificates import CertificateIssuer
from src.certificates.repository import InMemoryCertificateRepository
from src.core.errors import IssuanceError, NotFoundError
from src.core.locks import InProcessEnrollmentLocks
from src.courses.structure import InMemoryCourseStructure
from src.prerequisites import Scope
from src.progress import CompletionStore, EnrollmentStatus, ProgressAggregator
from src.progress.aggregator import compute_progress
from src.progress.repository import (
    InMemoryCompletionRepository,
    InMemoryEnrollmentRepository,
)


@pytest.fixture
def lessons() -> list[UUID]:
    return [uuid4() for _ in range(3)]


@pytest.fixture
def course_id(structure: InMemoryCourseStructure, lessons: list[UUID]) -> UUID:
    """Course with two modules: [L1, L2] and [L3]."""
    course_id = uuid4()
    structure.add_course(course_id, [lessons[:2], lessons[2:]])
    return course_id


@pytest.fixture
def completions() -> CompletionStore:
    return CompletionStore(InMemoryCompletionRepository())


@pytest.fixture
def certificates() -> InMemoryCertificateRepository:
    return InMemoryCertificateRepository()


@pytest.fixture
def issuer(certificates: InMemoryCertificateRepository) -> CertificateIssuer:
    return CertificateIssuer(certificates)


@pytest.fixture
def aggregator(
    completions: CompletionStore,
    structure: InMemoryCourseStructure,
    issuer: CertificateIssuer,
) -> ProgressAggregator:
    return ProgressAggregator(
        completions=completions,
        enrollments=InMemoryEnrollmentRepository(),
        structure=structure,
        issuer=issuer,
        locks=InProcessEnrollmentLocks(blocking_timeout=1.0),
    )


class TestComputeProgress:
    """Tests for compute_progress."""

    @pytest.mark.parametrize(
        ("completed", "total", "expected"),
        [
            (0, 3, ("not_started", 0)),
            (1, 3, ("in_progress", 33)),
            (2, 3, ("in_progress", 67)),
            (3, 3, ("completed", 100)),
            (0, 0, ("not_started", 0)),
            (1, 8, ("in_progress", 13)),
            (199, 200, ("in_progress", 99)),
            (5, 3, ("completed", 100)),
        ],
    )
    def test_status_and_percent(self, completed, total, expected):
        assert compute_progress(completed, total) == expected


class TestEnroll:
    """Tests for enroll."""

    @pytest.mark.asyncio
    async def test_enroll_creates_not_started_state(
        self, aggregator: ProgressAggregator, user_id: UUID, course_id: UUID
    ):
        """Should create the enrollment at 0%."""
        state, created = await aggregator.enroll(user_id, course_id)

        assert created is True
        assert state.status == EnrollmentStatus.NOT_STARTED.value
        assert state.progress_percent == 0

    @pytest.mark.asyncio
    async def test_enroll_is_idempotent(
        self, aggregator: ProgressAggregator, user_id: UUID, course_id: UUID
    ):
        """Should return the existing enrollment on repeat."""
        first, _ = await aggregator.enroll(user_id, course_id)

        second, created = await aggregator.enroll(user_id, course_id)

        assert created is False
        assert second.enrolled_at == first.enrolled_at


class TestRecomputeProgress:
    """Tests for recompute_progress."""

    @pytest.mark.asyncio
    async def test_requires_enrollment(
        self, aggregator: ProgressAggregator, user_id: UUID, course_id: UUID
    ):
        with pytest.raises(NotFoundError):
            await aggregator.recompute_progress(user_id, course_id)

    @pytest.mark.asyncio
    async def test_progress_advances_through_states(
        self,
        aggregator: ProgressAggregator,
        completions: CompletionStore,
        user_id: UUID,
        course_id: UUID,
        lessons: list[UUID],
    ):
        """Should go 33% -> 67% -> 100% and complete exactly on the last lesson."""
        await aggregator.enroll(user_id, course_id)
        seen = []

        for lesson_id in lessons:
            await completions.mark_complete(user_id, lesson_id, Scope.LESSON)
            result = await aggregator.recompute_progress(user_id, course_id)
            seen.append(
                (result.state.status, result.state.progress_percent, result.newly_completed)
            )

        assert seen == [
            ("in_progress", 33, False),
            ("in_progress", 67, False),
            ("completed", 100, True),
        ]
        state = await aggregator.get_state(user_id, course_id)
        assert state.started_at is not None
        assert state.completed_at is not None
        assert state.lessons_completed == 3
        assert state.lessons_total == 3

    @pytest.mark.asyncio
    async def test_completion_records_course_and_issues_certificate(
        self,
        aggregator: ProgressAggregator,
        completions: CompletionStore,
        user_id: UUID,
        course_id: UUID,
        lessons: list[UUID],
    ):
        """Should mark the course complete (course scope) and issue one certificate."""
        await aggregator.enroll(user_id, course_id)
        for lesson_id in lessons:
            await completions.mark_complete(user_id, lesson_id, Scope.LESSON)

        result = await aggregator.recompute_progress(user_id, course_id)

        assert result.certificate is not None
        assert result.certificate.certificate_number
        assert result.certificate.verification_code
        assert await completions.is_complete(user_id, course_id, Scope.COURSE)

    @pytest.mark.asyncio
    async def test_recompute_is_idempotent(
        self,
        aggregator: ProgressAggregator,
        completions: CompletionStore,
        certificates: InMemoryCertificateRepository,
        user_id: UUID,
        course_id: UUID,
        lessons: list[UUID],
    ):
        """Should leave a completed state unchanged and never issue twice."""
        await aggregator.enroll(user_id, course_id)
        for lesson_id in lessons:
            await completions.mark_complete(user_id, lesson_id, Scope.LESSON)
        first = await aggregator.recompute_progress(user_id, course_id)

        second = await aggregator.recompute_progress(user_id, course_id)

        assert second.newly_completed is False
        assert second.state.to_dict() == first.state.to_dict()
        assert second.certificate == first.certificate
        assert len(certificates.certificates) == 1

    @pytest.mark.asyncio
    async def test_empty_course_stays_not_started(
        self,
        aggregator: ProgressAggregator,
        structure: InMemoryCourseStructure,
        user_id: UUID,
    ):
        """Should never complete a course without lessons."""
        empty_course = uuid4()
        structure.add_course(empty_course, [])
        await aggregator.enroll(user_id, empty_course)

        result = await aggregator.recompute_progress(user_id, empty_course)

        assert result.state.status == EnrollmentStatus.NOT_STARTED.value
        assert result.state.progress_percent == 0
        assert result.certificate is None

    @pytest.mark.asyncio
    async def test_lessons_outside_course_are_ignored(
        self,
        aggregator: ProgressAggregator,
        completions: CompletionStore,
        user_id: UUID,
        course_id: UUID,
    ):
        await aggregator.enroll(user_id, course_id)
        await completions.mark_complete(user_id, uuid4(), Scope.LESSON)

        result = await aggregator.recompute_progress(user_id, course_id)

        assert result.state.status == EnrollmentStatus.NOT_STARTED.value

    @pytest.mark.asyncio
    async def test_failed_issuance_keeps_enrollment_retryable(
        self,
        aggregator: ProgressAggregator,
        issuer: CertificateIssuer,
        completions: CompletionStore,
        user_id: UUID,
        course_id: UUID,
        lessons: list[UUID],
    ):
        """Should not persist completed when the certificate could not be issued."""
        await aggregator.enroll(user_id, course_id)
        for lesson_id in lessons:
            await completions.mark_complete(user_id, lesson_id, Scope.LESSON)
        real_issue = issuer.issue
        issuer.issue = AsyncMock(side_effect=IssuanceError(user_id, course_id, 5))

        with pytest.raises(IssuanceError):
            await aggregator.recompute_progress(user_id, course_id)

        state = await aggregator.get_state(user_id, course_id)
        assert state.status == EnrollmentStatus.NOT_STARTED.value

        issuer.issue = real_issue
        result = await aggregator.recompute_progress(user_id, course_id)
        assert result.newly_completed is True
        assert result.certificate is not None

    @pytest.mark.asyncio
    async def test_rejected_save_returns_stored_completion(
        self,
        aggregator: ProgressAggregator,
        completions: CompletionStore,
        user_id: UUID,
        course_id: UUID,
        lessons: list[UUID],
    ):
        """Should keep a completed enrollment written by another holder."""
        await aggregator.enroll(user_id, course_id)
        await completions.mark_complete(user_id, lessons[0], Scope.LESSON)
        enrollments = aggregator.enrollments
        real_save = enrollments.save

        async def completed_meanwhile(state):
            other = state.copy()
            other.status = EnrollmentStatus.COMPLETED.value
            other.progress_percent = 100
            assert await real_save(other) is True
            return await real_save(state)

        enrollments.save = completed_meanwhile

        result = await aggregator.recompute_progress(user_id, course_id)

        assert result.newly_completed is False
        assert result.state.status == EnrollmentStatus.COMPLETED.value
        assert result.state.progress_percent == 100

    @pytest.mark.asyncio
    async def test_concurrent_recomputes_complete_once(
        self,
        aggregator: ProgressAggregator,
        completions: CompletionStore,
        certificates: InMemoryCertificateRepository,
        user_id: UUID,
        course_id: UUID,
        lessons: list[UUID],
    ):
        """Should report the completion transition to exactly one caller."""
        await aggregator.enroll(user_id, course_id)
        for lesson_id in lessons:
            await completions.mark_complete(user_id, lesson_id, Scope.LESSON)

        results = await asyncio.gather(
            *(aggregator.recompute_progress(user_id, course_id) for _ in range(10))
        )

        assert sum(r.newly_completed for r in results) == 1
        assert all(r.state.is_completed for r in results)
        assert len(certificates.certificates) == 1
