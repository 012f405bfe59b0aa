"""Database models for course completion certificates.

Cassandra table definitions for:
- certificates: one row per (user, course), the uniqueness anchor for issuance
- certificates_by_user: listing a user's certificates
- certificate_numbers / certificate_verification_codes: global uniqueness
  reservations, also used to resolve a verification code to its certificate
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from src.prerequisites.models import ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

CERTIFICATES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates (
    user_id UUID,
    course_id UUID,
    certificate_id UUID,
    certificate_number TEXT,
    verification_code TEXT,
    issued_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id))
)
"""

CERTIFICATES_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_user (
    user_id UUID,
    course_id UUID,
    certificate_id UUID,
    certificate_number TEXT,
    verification_code TEXT,
    issued_at TIMESTAMP,
    PRIMARY KEY (user_id, course_id)
)
"""

CERTIFICATE_NUMBERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificate_numbers (
    certificate_number TEXT PRIMARY KEY,
    user_id UUID,
    course_id UUID,
    reserved_at TIMESTAMP
)
"""

CERTIFICATE_VERIFICATION_CODES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificate_verification_codes (
    verification_code TEXT PRIMARY KEY,
    user_id UUID,
    course_id UUID,
    reserved_at TIMESTAMP
)
"""

CERTIFICATES_TABLES_CQL = [
    CERTIFICATES_TABLE_CQL,
    CERTIFICATES_BY_USER_TABLE_CQL,
    CERTIFICATE_NUMBERS_TABLE_CQL,
    CERTIFICATE_VERIFICATION_CODES_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Certificate:
    """Course completion certificate. At most one per (user, course)."""

    user_id: UUID
    course_id: UUID
    certificate_number: str
    verification_code: str
    certificate_id: UUID = field(default_factory=uuid4)
    issued_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: Any) -> "Certificate":
        """Create from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            certificate_number=row.certificate_number,
            verification_code=row.verification_code,
            certificate_id=row.certificate_id,
            issued_at=ensure_utc_aware(row.issued_at) or datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "certificate_id": str(self.certificate_id),
            "user_id": str(self.user_id),
            "course_id": str(self.course_id),
            "certificate_number": self.certificate_number,
            "verification_code": self.verification_code,
            "issued_at": self.issued_at.isoformat(),
        }

    def __repr__(self) -> str:
        return (
            f"<Certificate {self.certificate_number} "
            f"user={self.user_id} course={self.course_id}>"
        )
