"""Certificate API endpoints."""

from uuid import UUID

from fastapi import APIRouter

from src.core.errors import GatingError
from src.gating.dependencies import GatingServiceDep, handle_gating_error

from .schemas import (
    CertificateListResponse,
    CertificateResponse,
    CertificateVerificationResponse,
)


router = APIRouter(prefix="/v1", tags=["certificates"])


@router.get(
    "/users/{user_id}/certificates",
    response_model=CertificateListResponse,
    summary="List user certificates",
)
async def list_certificates(
    user_id: UUID,
    gating_service: GatingServiceDep,
) -> CertificateListResponse:
    certificates = await gating_service.list_certificates(user_id)
    return CertificateListResponse(
        items=[CertificateResponse.from_entity(c) for c in certificates],
        total=len(certificates),
    )


@router.get(
    "/users/{user_id}/courses/{course_id}/certificate",
    response_model=CertificateResponse,
    summary="Get course certificate",
)
async def get_certificate(
    user_id: UUID,
    course_id: UUID,
    gating_service: GatingServiceDep,
) -> CertificateResponse:
    try:
        certificate = await gating_service.get_certificate(user_id, course_id)
        return CertificateResponse.from_entity(certificate)
    except GatingError as e:
        raise handle_gating_error(e) from e


@router.get(
    "/certificates/verify/{verification_code}",
    response_model=CertificateVerificationResponse,
    summary="Verify certificate",
)
async def verify_certificate(
    verification_code: str,
    gating_service: GatingServiceDep,
) -> CertificateVerificationResponse:
    """Public lookup of a certificate by its verification code."""
    try:
        certificate = await gating_service.verify_certificate(verification_code)
        return CertificateVerificationResponse.from_entity(certificate)
    except GatingError as e:
        raise handle_gating_error(e) from e
