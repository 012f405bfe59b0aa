"""Request middleware: log context and request timing.

Every request gets a request id (echoed in ``X-Request-ID``). The learner and
item ids found in the URL (``/users/{id}``, ``/courses/{id}``,
``/lessons/{id}``) are bound as ``user_id``/``course_id``/``lesson_id`` so that
every log line written while handling the request can be filtered by them.
"""

import re
import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.context import (
    bind_subject,
    clear_context,
    set_correlation_id,
    set_request_id,
    set_trace_id,
)


logger = structlog.get_logger(__name__)

_SUBJECT_SEGMENT = re.compile(
    r"/(users|courses|lessons)/([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-"
    r"[0-9a-fA-F]{4}-[0-9a-fA-F]{12})"
)
_SUBJECT_KEYS = {"users": "user_id", "courses": "course_id", "lessons": "lesson_id"}


def extract_subject(path: str) -> dict[str, str]:
    """Map the id segments of a gating URL to log keys.

    Example:
        "/v1/users/<u>/lessons/<l>/complete" -> {"user_id": u, "lesson_id": l}
    """
    return {
        _SUBJECT_KEYS[kind]: value.lower()
        for kind, value in _SUBJECT_SEGMENT.findall(path)
    }


def trace_id_from_traceparent(traceparent: str | None) -> str | None:
    """Trace id of a W3C ``traceparent`` header (version-trace-parent-flags)."""
    if not traceparent:
        return None
    parts = traceparent.split("-")
    return parts[1] if len(parts) == 4 else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request and subject ids for logging and logs each request."""

    REQUEST_ID_HEADER = "X-Request-ID"
    CORRELATION_ID_HEADER = "X-Correlation-ID"

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: tuple[str, ...] = ("/health",),
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = exclude_paths

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        path = request.url.path

        request_id = set_request_id(request.headers.get(self.REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_trace_id(trace_id_from_traceparent(request.headers.get("traceparent")))
        set_correlation_id(request.headers.get(self.CORRELATION_ID_HEADER))
        bind_subject(extract_subject(path))

        should_log = self.log_requests and not path.startswith(self.exclude_paths)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=_elapsed_ms(started),
            )
            raise
        else:
            if should_log:
                # Denied gates answer 4xx; only 5xx warns
                log = logger.warning if response.status_code >= 500 else logger.info
                log(
                    "request_completed",
                    method=request.method,
                    path=path,
                    status_code=response.status_code,
                    duration_ms=_elapsed_ms(started),
                )
            response.headers[self.REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_context()


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
