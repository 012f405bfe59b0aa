"""Certificate persistence.

Issuance is a sequence of insert-if-absent writes:
1. reserve the certificate number (unique)
2. reserve the verification code (unique)
3. insert the certificate on its (user_id, course_id) key
4. list it under the user (idempotent upsert, safe to repeat)

Reservations that do not end up on a stored certificate are released.
"""

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import Certificate


if TYPE_CHECKING:
    from cassandra.cluster import Session


class CertificateRepository(Protocol):
    """Contract for certificate persistence."""

    async def reserve_number(
        self, certificate_number: str, user_id: UUID, course_id: UUID
    ) -> bool:
        """Claim a certificate number. False if it is already taken."""
        ...

    async def reserve_verification_code(
        self, verification_code: str, user_id: UUID, course_id: UUID
    ) -> bool: ...

    async def release_number(self, certificate_number: str) -> None: ...

    async def release_verification_code(self, verification_code: str) -> None: ...

    async def insert_if_absent(
        self, certificate: Certificate
    ) -> tuple[Certificate, bool]:
        """Store unless (user_id, course_id) has one. Returns (stored, created)."""
        ...

    async def index_for_user(self, certificate: Certificate) -> None:
        """List a stored certificate under its user. Idempotent."""
        ...

    async def get(self, user_id: UUID, course_id: UUID) -> Certificate | None: ...

    async def list_for_user(self, user_id: UUID) -> list[Certificate]: ...

    async def find_by_verification_code(
        self, verification_code: str
    ) -> Certificate | None: ...


# ==============================================================================
# In-memory
# ==============================================================================


class InMemoryCertificateRepository:
    """Certificates held in process memory.

    Yields to the event loop on every call so concurrent issuers interleave.
    """

    def __init__(self) -> None:
        self.certificates: dict[tuple[UUID, UUID], Certificate] = {}
        self.numbers: dict[str, tuple[UUID, UUID]] = {}
        self.verification_codes: dict[str, tuple[UUID, UUID]] = {}

    async def reserve_number(
        self, certificate_number: str, user_id: UUID, course_id: UUID
    ) -> bool:
        await asyncio.sleep(0)
        if certificate_number in self.numbers:
            return False
        self.numbers[certificate_number] = (user_id, course_id)
        return True

    async def reserve_verification_code(
        self, verification_code: str, user_id: UUID, course_id: UUID
    ) -> bool:
        await asyncio.sleep(0)
        if verification_code in self.verification_codes:
            return False
        self.verification_codes[verification_code] = (user_id, course_id)
        return True

    async def release_number(self, certificate_number: str) -> None:
        await asyncio.sleep(0)
        self.numbers.pop(certificate_number, None)

    async def release_verification_code(self, verification_code: str) -> None:
        await asyncio.sleep(0)
        self.verification_codes.pop(verification_code, None)

    async def insert_if_absent(
        self, certificate: Certificate
    ) -> tuple[Certificate, bool]:
        await asyncio.sleep(0)
        key = (certificate.user_id, certificate.course_id)
        existing = self.certificates.get(key)
        if existing is not None:
            return existing, False
        self.certificates[key] = certificate
        return certificate, True

    async def index_for_user(self, certificate: Certificate) -> None:
        # Listing reads the certificates map directly
        await asyncio.sleep(0)

    async def get(self, user_id: UUID, course_id: UUID) -> Certificate | None:
        await asyncio.sleep(0)
        return self.certificates.get((user_id, course_id))

    async def list_for_user(self, user_id: UUID) -> list[Certificate]:
        await asyncio.sleep(0)
        return sorted(
            (c for (uid, _), c in self.certificates.items() if uid == user_id),
            key=lambda c: c.issued_at,
        )

    async def find_by_verification_code(
        self, verification_code: str
    ) -> Certificate | None:
        owner = self.verification_codes.get(verification_code)
        if owner is None:
            return None
        certificate = await self.get(*owner)
        if certificate is None or certificate.verification_code != verification_code:
            return None
        return certificate


# ==============================================================================
# Cassandra
# ==============================================================================


class CassandraCertificateRepository:
    """Certificates on Cassandra, uniqueness via lightweight transactions."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Reservations
        self._reserve_number = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificate_numbers
            (certificate_number, user_id, course_id, reserved_at)
            VALUES (?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._reserve_code = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificate_verification_codes
            (verification_code, user_id, course_id, reserved_at)
            VALUES (?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._release_number = self.session.prepare(
            f"DELETE FROM {self.keyspace}.certificate_numbers WHERE certificate_number = ?"
        )
        self._release_code = self.session.prepare(
            f"DELETE FROM {self.keyspace}.certificate_verification_codes "
            "WHERE verification_code = ?"
        )
        self._get_code = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.certificate_verification_codes "
            "WHERE verification_code = ?"
        )

        # Certificates
        columns = (
            "user_id, course_id, certificate_id, certificate_number, "
            "verification_code, issued_at"
        )
        self._insert_certificate = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates ({columns})
            VALUES (?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._insert_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_user ({columns})
            VALUES (?, ?, ?, ?, ?, ?)
        """)
        self._get_certificate = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.certificates WHERE user_id = ? AND course_id = ?"
        )
        self._list_by_user = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.certificates_by_user WHERE user_id = ?"
        )

    async def reserve_number(
        self, certificate_number: str, user_id: UUID, course_id: UUID
    ) -> bool:
        result = await self.session.aexecute(
            self._reserve_number,
            [certificate_number, user_id, course_id, datetime.now(UTC)],
        )
        return bool(result.was_applied)

    async def reserve_verification_code(
        self, verification_code: str, user_id: UUID, course_id: UUID
    ) -> bool:
        result = await self.session.aexecute(
            self._reserve_code,
            [verification_code, user_id, course_id, datetime.now(UTC)],
        )
        return bool(result.was_applied)

    async def release_number(self, certificate_number: str) -> None:
        await self.session.aexecute(self._release_number, [certificate_number])

    async def release_verification_code(self, verification_code: str) -> None:
        await self.session.aexecute(self._release_code, [verification_code])

    @staticmethod
    def _values(certificate: Certificate) -> list:
        return [
            certificate.user_id,
            certificate.course_id,
            certificate.certificate_id,
            certificate.certificate_number,
            certificate.verification_code,
            certificate.issued_at,
        ]

    async def insert_if_absent(
        self, certificate: Certificate
    ) -> tuple[Certificate, bool]:
        result = await self.session.aexecute(
            self._insert_certificate, self._values(certificate)
        )
        if not result.was_applied:
            # An unapplied LWT answers with the row it lost to
            return Certificate.from_row(result.one()), False
        return certificate, True

    async def index_for_user(self, certificate: Certificate) -> None:
        await self.session.aexecute(self._insert_by_user, self._values(certificate))

    async def get(self, user_id: UUID, course_id: UUID) -> Certificate | None:
        result = await self.session.aexecute(self._get_certificate, [user_id, course_id])
        row = result.one()
        return Certificate.from_row(row) if row else None

    async def list_for_user(self, user_id: UUID) -> list[Certificate]:
        rows = await self.session.aexecute(self._list_by_user, [user_id])
        certificates = [Certificate.from_row(row) for row in rows]
        certificates.sort(key=lambda c: c.issued_at)
        return certificates

    async def find_by_verification_code(
        self, verification_code: str
    ) -> Certificate | None:
        result = await self.session.aexecute(self._get_code, [verification_code])
        row = result.one()
        if not row:
            return None

        certificate = await self.get(row.user_id, row.course_id)
        if certificate is None or certificate.verification_code != verification_code:
            return None
        return certificate
