# Core infrastructure
from src.core.context import RequestContext, clear_context, get_context
from src.core.errors import GatingError
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware


__all__ = [
    "GatingError",
    "RequestContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
]
