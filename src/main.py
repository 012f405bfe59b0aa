"""CourseGate API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.access.router import router as access_router
from src.certificates.router import router as certificates_router
from src.config import get_settings
from src.core.context import get_request_id
from src.core.errors import GatingError
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.gating import (
    GatingService,
    build_cassandra_gating_service,
    build_memory_gating_service,
)
from src.gating.dependencies import handle_gating_error
from src.health.router import router as health_router
from src.prerequisites.router import router as prerequisites_router
from src.progress.router import router as progress_router


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(
    settings, log_dir=None if settings.is_testing else Path(settings.log_dir)
)

logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    gating_service: GatingService | None = None


app_state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        storage_backend=settings.storage_backend,
        lock_backend=settings.lock_backend,
    )

    # Initialize Redis (non-critical - app works without it)
    redis_client = None
    try:
        redis_client = await init_redis(settings)
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - distributed locks and notifications disabled",
        )

    if settings.uses_cassandra:
        try:
            # Imported here so the memory backend never loads the driver
            from src.core.database import init_async_cassandra

            app_state.cassandra_session = await init_async_cassandra(settings)

            app_state.gating_service = build_cassandra_gating_service(
                settings, app_state.cassandra_session, redis_client=redis_client
            )
        except Exception as e:
            logger.warning(
                "database_init_skipped",
                error=str(e),
                message="Running without database connection",
            )
    else:
        app_state.gating_service = build_memory_gating_service(
            settings, redis_client=redis_client
        )

    if app_state.gating_service is not None:
        app.state.gating_service = app_state.gating_service
        logger.info(
            "gating_service_initialized",
            storage_backend=settings.storage_backend,
            redis_enabled=redis_client is not None,
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    if app_state.cassandra_session is not None:
        from src.core.database import shutdown_async_cassandra

        await shutdown_async_cassandra()
        app_state.cassandra_session = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Stack traces are logged by the handlers below, never returned
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Prerequisite gating, progress and certificates - API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=tuple(settings.log_exclude_paths),
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    # Helper to get request_id from request state or context
    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    def _error_response(
        request: Request, status_code: int, detail: Any, headers: dict | None = None
    ) -> ORJSONResponse:
        content: dict[str, Any] = {
            "error": True,
            "message": "Internal server error",
            "status_code": status_code,
            "request_id": _get_request_id_safe(request),
        }
        if status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
            if isinstance(detail, dict):
                content.update(detail)
            else:
                content["message"] = str(detail)
        return ORJSONResponse(status_code=status_code, content=content, headers=headers)

    # Global exception handlers (security: never expose stack traces)
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request, exc.status_code, exc.detail, getattr(exc, "headers", None)
        )

    @app.exception_handler(GatingError)
    async def gating_exception_handler(
        request: Request, exc: GatingError
    ) -> ORJSONResponse:
        """Map gating errors raised outside a router's own handling."""
        http_exc = handle_gating_error(exc)
        log = logger.warning if exc.expected else logger.error
        log(
            "gating_error",
            code=exc.code,
            error_message=exc.message,
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request, http_exc.status_code, http_exc.detail, http_exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        # Return user-friendly validation errors (these are safe to expose)
        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        Details are logged internally; users get a generic message.
        """
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(prerequisites_router)
    app.include_router(access_router)
    app.include_router(progress_router)
    app.include_router(certificates_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "CourseGate API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn (``coursegate`` console script)."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_config=None,
    )
