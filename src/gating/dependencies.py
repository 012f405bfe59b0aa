"""FastAPI dependencies for the gating service.

Provides dependency injection for:
- Gating service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.core.errors import AccessDeniedError, CycleError, GatingError

from .service import GatingService


async def get_gating_service(request: Request) -> GatingService:
    """Get gating service from app state.

    Args:
        request: FastAPI request

    Returns:
        GatingService instance
    """
    app_state = request.app.state
    if not getattr(app_state, "gating_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gating service not available",
        )
    return app_state.gating_service


# Type alias for dependency injection
GatingServiceDep = Annotated[GatingService, Depends(get_gating_service)]


def handle_gating_error(error: GatingError) -> HTTPException:
    """Convert gating errors to HTTP exceptions.

    Args:
        error: Gating error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "not_found": status.HTTP_404_NOT_FOUND,
        "self_reference": status.HTTP_400_BAD_REQUEST,
        "cycle": status.HTTP_400_BAD_REQUEST,
        "already_exists": status.HTTP_409_CONFLICT,
        "prerequisites_not_met": status.HTTP_403_FORBIDDEN,
        "lock_timeout": status.HTTP_503_SERVICE_UNAVAILABLE,
        "issuance_failed": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    detail: str | dict = error.message
    if isinstance(error, AccessDeniedError):
        detail = {
            "code": error.code,
            "message": error.message,
            "missing_prerequisites": [str(item) for item in error.missing],
        }
    elif isinstance(error, CycleError):
        detail = {
            "code": error.code,
            "message": error.message,
            "path": [str(item) for item in error.path],
        }

    headers = {"Retry-After": "1"} if error.code == "lock_timeout" else None
    return HTTPException(status_code=status_code, detail=detail, headers=headers)
