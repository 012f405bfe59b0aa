"""Pydantic schemas for certificates."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .models import Certificate


class CertificateResponse(BaseModel):
    """Certificate response."""

    model_config = ConfigDict(from_attributes=True)

    certificate_id: UUID
    user_id: UUID
    course_id: UUID
    certificate_number: str
    verification_code: str
    issued_at: datetime

    @classmethod
    def from_entity(cls, entity: Certificate) -> "CertificateResponse":
        """Create response from entity."""
        return cls(
            certificate_id=entity.certificate_id,
            user_id=entity.user_id,
            course_id=entity.course_id,
            certificate_number=entity.certificate_number,
            verification_code=entity.verification_code,
            issued_at=entity.issued_at,
        )


class CertificateListResponse(BaseModel):
    """A user's certificates, oldest first."""

    items: list[CertificateResponse]
    total: int


class CertificateVerificationResponse(BaseModel):
    """Public verification result. Omits the verification code itself."""

    valid: bool
    certificate_number: str
    user_id: UUID
    course_id: UUID
    issued_at: datetime

    @classmethod
    def from_entity(cls, entity: Certificate) -> "CertificateVerificationResponse":
        return cls(
            valid=True,
            certificate_number=entity.certificate_number,
            user_id=entity.user_id,
            course_id=entity.course_id,
            issued_at=entity.issued_at,
        )
