"""Exactly-once certificate issuance.

``issue`` is safe to call any number of times, concurrently, for the same
(user, course): the certificate row is inserted with insert-if-absent on that
key, so one caller creates it and every other caller gets the same row back.
Listeners run only for the caller that created it.

Once the certificate row is stored its number and verification code stay
reserved. The per-user listing is written afterwards and retried on failure;
it never undoes the issuance.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from uuid import UUID

import structlog

from src.core.errors import IssuanceError

from .models import Certificate
from .repository import CertificateRepository
from .tokens import (
    generate_certificate_number,
    generate_verification_code,
    normalize_verification_code,
)


logger = structlog.get_logger(__name__)

CertificateListener = Callable[[Certificate], Awaitable[None]]

DEFAULT_NUMBER_PREFIX = "CG-CERT"
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INDEX_ATTEMPTS = 3


@dataclass
class IssuanceResult:
    """Certificate for a (user, course) and whether this call created it."""

    certificate: Certificate
    created: bool


class CertificateIssuer:
    """Issues course completion certificates with unique identifiers.

    Example:
        issuer = CertificateIssuer(repository, number_prefix="CG-CERT")
        issuer.add_listener(publisher)
        result = await issuer.issue(user_id, course_id)
    """

    def __init__(
        self,
        repository: CertificateRepository,
        number_prefix: str = DEFAULT_NUMBER_PREFIX,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        number_factory: Callable[[], str] | None = None,
        code_factory: Callable[[], str] | None = None,
        index_attempts: int = DEFAULT_INDEX_ATTEMPTS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.repository = repository
        self.max_attempts = max_attempts
        self.index_attempts = max(1, index_attempts)
        self._number_factory = number_factory or partial(
            generate_certificate_number, number_prefix
        )
        self._code_factory = code_factory or generate_verification_code
        self._listeners: list[CertificateListener] = []

    def add_listener(self, listener: CertificateListener) -> None:
        """Register a coroutine called once per newly issued certificate."""
        self._listeners.append(listener)

    @property
    def listeners(self) -> list[CertificateListener]:
        return list(self._listeners)

    # ==========================================================================
    # Issuance
    # ==========================================================================

    async def issue(self, user_id: UUID, course_id: UUID) -> IssuanceResult:
        """Issue the certificate for (user, course), or return the existing one.

        Raises:
            IssuanceError: No unique number/code pair after max_attempts
        """
        existing = await self.repository.get(user_id, course_id)
        if existing is not None:
            logger.debug(
                "certificate_already_issued",
                user_id=user_id,
                course_id=course_id,
                certificate_number=existing.certificate_number,
            )
            # Repairs a per-user listing write that was abandoned
            await self._index(existing)
            return IssuanceResult(certificate=existing, created=False)

        for attempt in range(1, self.max_attempts + 1):
            result = await self._try_issue(user_id, course_id, attempt)
            if result is not None:
                return result

        logger.error(
            "certificate_issue_exhausted",
            user_id=user_id,
            course_id=course_id,
            attempts=self.max_attempts,
        )
        raise IssuanceError(user_id, course_id, self.max_attempts)

    async def _try_issue(
        self, user_id: UUID, course_id: UUID, attempt: int
    ) -> IssuanceResult | None:
        """One reservation round. None means a collision, try again."""
        number = self._number_factory()
        code = self._code_factory()
        reserved_number = False
        reserved_code = False

        try:
            reserved_number = await self.repository.reserve_number(
                number, user_id, course_id
            )
            if not reserved_number:
                logger.warning(
                    "certificate_number_collision",
                    certificate_number=number,
                    attempt=attempt,
                )
                return None

            reserved_code = await self.repository.reserve_verification_code(
                code, user_id, course_id
            )
            if not reserved_code:
                logger.warning("verification_code_collision", attempt=attempt)
                await self._release(number, None)
                return None
        except Exception:
            await self._release(
                number if reserved_number else None,
                code if reserved_code else None,
            )
            raise

        candidate = Certificate(
            user_id=user_id,
            course_id=course_id,
            certificate_number=number,
            verification_code=code,
        )
        try:
            certificate, created = await self.repository.insert_if_absent(candidate)
        except Exception:
            # A failed conditional write may still have been applied
            if not await self._may_be_stored(candidate):
                await self._release(number, code)
            raise

        if not created:
            # Another caller stored the certificate between our read and insert
            await self._release(number, code)
            logger.info(
                "certificate_issue_race_lost",
                user_id=user_id,
                course_id=course_id,
                certificate_number=certificate.certificate_number,
            )
            return IssuanceResult(certificate=certificate, created=False)

        logger.info(
            "certificate_issued",
            user_id=user_id,
            course_id=course_id,
            certificate_id=certificate.certificate_id,
            certificate_number=certificate.certificate_number,
            attempt=attempt,
        )
        await self._index(certificate)
        await self._notify(certificate)
        return IssuanceResult(certificate=certificate, created=True)

    async def _may_be_stored(self, candidate: Certificate) -> bool:
        """Whether ``candidate`` could be the stored certificate after a failed insert."""
        try:
            stored = await self.repository.get(candidate.user_id, candidate.course_id)
        except Exception as e:
            logger.warning(
                "certificate_insert_outcome_unknown",
                user_id=candidate.user_id,
                course_id=candidate.course_id,
                error=str(e),
            )
            return True
        return (
            stored is not None
            and stored.certificate_number == candidate.certificate_number
        )

    async def _index(self, certificate: Certificate) -> None:
        """Write the per-user listing entry. The certificate itself is already stored."""
        for attempt in range(1, self.index_attempts + 1):
            try:
                await self.repository.index_for_user(certificate)
                return
            except Exception as e:
                logger.warning(
                    "certificate_index_failed",
                    certificate_id=certificate.certificate_id,
                    attempt=attempt,
                    error=str(e),
                )
        logger.error(
            "certificate_index_abandoned",
            user_id=certificate.user_id,
            course_id=certificate.course_id,
            certificate_id=certificate.certificate_id,
        )

    async def _release(self, number: str | None, code: str | None) -> None:
        if number is not None:
            await self.repository.release_number(number)
        if code is not None:
            await self.repository.release_verification_code(code)

    async def _notify(self, certificate: Certificate) -> None:
        for listener in self._listeners:
            try:
                await listener(certificate)
            except Exception as e:
                # Issuance is already committed
                logger.warning(
                    "certificate_listener_failed",
                    certificate_id=certificate.certificate_id,
                    error=str(e),
                )

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def get_for_course(self, user_id: UUID, course_id: UUID) -> Certificate | None:
        return await self.repository.get(user_id, course_id)

    async def list_for_user(self, user_id: UUID) -> list[Certificate]:
        return await self.repository.list_for_user(user_id)

    async def verify(self, verification_code: str) -> Certificate | None:
        """Resolve a verification code to its certificate, if any."""
        return await self.repository.find_by_verification_code(
            normalize_verification_code(verification_code)
        )
