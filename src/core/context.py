"""Log context carried in contextvars.

Two kinds of values:
- tracing ids (request_id, trace_id, correlation_id)
- the request's subject (user_id, course_id, lesson_id parsed from the URL)

Both are for log correlation only. Gating operations never read identity from
here; every operation takes the user id as an explicit argument.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
subject_var: ContextVar[dict[str, str] | None] = ContextVar("subject", default=None)


def set_request_id(request_id: str | None = None) -> str:
    """Set the request id, generating one when the client sent none."""
    rid = request_id or str(uuid4())
    request_id_var.set(rid)
    return rid


def get_request_id() -> str:
    return request_id_var.get()


def set_trace_id(trace_id: str | None) -> None:
    trace_id_var.set(trace_id)


def set_correlation_id(correlation_id: str | None) -> None:
    correlation_id_var.set(correlation_id)


def bind_subject(subject: dict[str, str]) -> None:
    """Bind user/course/lesson ids for the rest of the request."""
    subject_var.set(dict(subject) or None)


def get_context() -> dict[str, Any]:
    """Non-empty context values, as merged into every log event."""
    context: dict[str, Any] = dict(subject_var.get() or {})
    if request_id := request_id_var.get():
        context["request_id"] = request_id
    if trace_id := trace_id_var.get():
        context["trace_id"] = trace_id
    if correlation_id := correlation_id_var.get():
        context["correlation_id"] = correlation_id
    return context


def clear_context() -> None:
    """Reset every context variable at the end of a request."""
    request_id_var.set("")
    trace_id_var.set(None)
    correlation_id_var.set(None)
    subject_var.set(None)


class RequestContext:
    """Log context for work outside HTTP (backfills, consumers).

    Usage:
        with RequestContext(correlation_id="backfill-42", user_id=str(user_id)):
            await gating.mark_lesson_complete(user_id, lesson_id)
    """

    def __init__(self, correlation_id: str | None = None, **subject: str) -> None:
        self.correlation_id = correlation_id
        self.subject = subject
        self._tokens: list[tuple[ContextVar, Token]] = []

    def __enter__(self) -> "RequestContext":
        self._tokens = [
            (request_id_var, request_id_var.set(str(uuid4()))),
            (correlation_id_var, correlation_id_var.set(self.correlation_id)),
            (subject_var, subject_var.set(self.subject or None)),
        ]
        return self

    def __exit__(self, *_: object) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
