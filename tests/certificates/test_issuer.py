"""Tests for CertificateIssuer.

Covers:
- idempotent issuance and single notification
- collision retries and exhaustion without partial state
- concurrent issuance for the same (user, course)
- lookups by course, user and verification code
"""

import asyncio
from collections.abc import Iterator
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from src.certificates import CertificateIssuer
from src.certificates.repository import InMemoryCertificateRepository
from src.core.errors import IssuanceError


def sequence(*values: str):
    """Factory returning the given values in order, then repeating the last."""
    items: Iterator[str] = iter(values)
    last = values[-1]

    def factory() -> str:
        return next(items, last)

    return factory


@pytest.fixture
def repository() -> InMemoryCertificateRepository:
    return InMemoryCertificateRepository()


@pytest.fixture
def issuer(repository: InMemoryCertificateRepository) -> CertificateIssuer:
    return CertificateIssuer(repository, number_prefix="TEST-CERT")


@pytest.fixture
def course_id() -> UUID:
    return uuid4()


class TestIssue:
    """Tests for issue."""

    @pytest.mark.asyncio
    async def test_issue_creates_certificate(
        self, issuer: CertificateIssuer, user_id: UUID, course_id: UUID
    ):
        result = await issuer.issue(user_id, course_id)

        assert result.created is True
        assert result.certificate.user_id == user_id
        assert result.certificate.course_id == course_id
        assert result.certificate.certificate_number.startswith("TEST-CERT-")
        assert len(result.certificate.verification_code) == 12

    @pytest.mark.asyncio
    async def test_issue_is_idempotent(
        self,
        issuer: CertificateIssuer,
        repository: InMemoryCertificateRepository,
        user_id: UUID,
        course_id: UUID,
    ):
        """Should return the existing certificate unchanged and notify once."""
        listener = AsyncMock()
        issuer.add_listener(listener)

        first = await issuer.issue(user_id, course_id)
        second = await issuer.issue(user_id, course_id)

        assert second.created is False
        assert second.certificate == first.certificate
        assert len(repository.certificates) == 1
        listener.assert_awaited_once_with(first.certificate)

    @pytest.mark.asyncio
    async def test_number_collision_is_retried(
        self, repository: InMemoryCertificateRepository, user_id: UUID
    ):
        """Should regenerate when the number is already taken."""
        issuer = CertificateIssuer(
            repository,
            number_factory=sequence("N-1", "N-1", "N-2"),
            code_factory=sequence("C-1", "C-2", "C-3"),
        )
        await issuer.issue(uuid4(), uuid4())

        result = await issuer.issue(user_id, uuid4())

        assert result.certificate.certificate_number == "N-2"
        # The code reserved alongside the losing number was never taken
        assert result.certificate.verification_code == "C-2"
        assert set(repository.numbers) == {"N-1", "N-2"}

    @pytest.mark.asyncio
    async def test_code_collision_releases_number(
        self, repository: InMemoryCertificateRepository, user_id: UUID
    ):
        """Should give back the reserved number when the code collides."""
        issuer = CertificateIssuer(
            repository,
            number_factory=sequence("N-1", "N-2", "N-3"),
            code_factory=sequence("C-1", "C-1", "C-2"),
        )
        await issuer.issue(uuid4(), uuid4())

        result = await issuer.issue(user_id, uuid4())

        assert result.certificate.certificate_number == "N-3"
        assert result.certificate.verification_code == "C-2"
        assert "N-2" not in repository.numbers

    @pytest.mark.asyncio
    async def test_exhausted_retries_leave_no_partial_state(
        self, repository: InMemoryCertificateRepository, user_id: UUID, course_id: UUID
    ):
        """Should raise IssuanceError with no certificate or dangling reservation."""
        issuer = CertificateIssuer(
            repository,
            max_attempts=3,
            number_factory=sequence("TAKEN"),
            code_factory=sequence("C-1", "C-2", "C-3", "C-4"),
        )
        await repository.reserve_number("TAKEN", uuid4(), uuid4())

        with pytest.raises(IssuanceError) as exc_info:
            await issuer.issue(user_id, course_id)

        assert exc_info.value.attempts == 3
        assert exc_info.value.code == "issuance_failed"
        assert await repository.get(user_id, course_id) is None
        assert set(repository.numbers) == {"TAKEN"}
        assert repository.verification_codes == {}

    @pytest.mark.asyncio
    async def test_storage_failure_releases_reservations(
        self, repository: InMemoryCertificateRepository, user_id: UUID, course_id: UUID
    ):
        repository.insert_if_absent = AsyncMock(side_effect=ConnectionError("down"))
        issuer = CertificateIssuer(repository)

        with pytest.raises(ConnectionError):
            await issuer.issue(user_id, course_id)

        assert repository.numbers == {}
        assert repository.verification_codes == {}

    @pytest.mark.asyncio
    async def test_insert_error_after_write_keeps_reservations(
        self, repository: InMemoryCertificateRepository, user_id: UUID, course_id: UUID
    ):
        """Should keep the number and code when the failed insert was in fact stored."""
        real_insert = repository.insert_if_absent

        async def stored_then_timed_out(certificate):
            await real_insert(certificate)
            raise TimeoutError("write timeout")

        repository.insert_if_absent = stored_then_timed_out
        issuer = CertificateIssuer(repository)

        with pytest.raises(TimeoutError):
            await issuer.issue(user_id, course_id)

        stored = await repository.get(user_id, course_id)
        assert set(repository.numbers) == {stored.certificate_number}
        assert await issuer.verify(stored.verification_code) == stored

        again = await issuer.issue(user_id, course_id)
        assert again.certificate == stored

    @pytest.mark.asyncio
    async def test_listing_failure_does_not_undo_issuance(
        self, repository: InMemoryCertificateRepository, user_id: UUID, course_id: UUID
    ):
        """Should keep the stored certificate verifiable and retry the listing."""
        repository.index_for_user = AsyncMock(side_effect=ConnectionError("down"))
        issuer = CertificateIssuer(repository, index_attempts=2)
        listener = AsyncMock()
        issuer.add_listener(listener)

        result = await issuer.issue(user_id, course_id)

        assert result.created is True
        assert repository.index_for_user.await_count == 2
        assert set(repository.numbers) == {result.certificate.certificate_number}
        assert await issuer.verify(result.certificate.verification_code) == result.certificate
        listener.assert_awaited_once_with(result.certificate)

        repository.index_for_user = AsyncMock()
        await issuer.issue(user_id, course_id)
        repository.index_for_user.assert_awaited_once_with(result.certificate)

    @pytest.mark.asyncio
    async def test_concurrent_issue_creates_one_certificate(
        self,
        issuer: CertificateIssuer,
        repository: InMemoryCertificateRepository,
        user_id: UUID,
        course_id: UUID,
    ):
        """Should let exactly one caller create and notify; losers get the winner's row."""
        listener = AsyncMock()
        issuer.add_listener(listener)

        results = await asyncio.gather(
            *(issuer.issue(user_id, course_id) for _ in range(8))
        )

        assert sum(r.created for r in results) == 1
        assert len({r.certificate.certificate_id for r in results}) == 1
        assert len(repository.certificates) == 1
        # Losing callers released their reservations
        assert len(repository.numbers) == 1
        assert len(repository.verification_codes) == 1
        listener.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_fail_issuance(
        self, issuer: CertificateIssuer, user_id: UUID, course_id: UUID
    ):
        issuer.add_listener(AsyncMock(side_effect=RuntimeError("redis down")))

        result = await issuer.issue(user_id, course_id)

        assert result.created is True

    def test_max_attempts_must_be_positive(self, repository):
        with pytest.raises(ValueError):
            CertificateIssuer(repository, max_attempts=0)


class TestLookups:
    """Tests for certificate lookups."""

    @pytest.mark.asyncio
    async def test_verify_resolves_code(
        self, issuer: CertificateIssuer, user_id: UUID, course_id: UUID
    ):
        """Should find the certificate regardless of case and surrounding spaces."""
        issued = (await issuer.issue(user_id, course_id)).certificate

        found = await issuer.verify(f"  {issued.verification_code.lower()} ")

        assert found == issued

    @pytest.mark.asyncio
    async def test_verify_unknown_code(self, issuer: CertificateIssuer):
        assert await issuer.verify("FFFFFFFFFFFF") is None

    @pytest.mark.asyncio
    async def test_list_for_user(self, issuer: CertificateIssuer, user_id: UUID):
        await issuer.issue(user_id, uuid4())
        await issuer.issue(user_id, uuid4())
        await issuer.issue(uuid4(), uuid4())

        certificates = await issuer.list_for_user(user_id)

        assert len(certificates) == 2
        assert all(c.user_id == user_id for c in certificates)

    @pytest.mark.asyncio
    async def test_get_for_course(
        self, issuer: CertificateIssuer, user_id: UUID, course_id: UUID
    ):
        assert await issuer.get_for_course(user_id, course_id) is None

        issued = (await issuer.issue(user_id, course_id)).certificate

        assert await issuer.get_for_course(user_id, course_id) == issued
