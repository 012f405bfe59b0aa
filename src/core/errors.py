"""Typed errors for the gating engine.

Every error carries a machine-readable ``code`` and an ``expected`` flag:
- expected=True: a normal denial or validation failure, safe to show to users
- expected=False: an internal failure that should be alerted on
"""

from collections.abc import Iterable
from uuid import UUID


class GatingError(Exception):
    """Base gating error."""

    expected: bool = True

    def __init__(self, message: str, code: str = "gating_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class SelfReferenceError(GatingError):
    """Item declared as its own prerequisite."""

    def __init__(self, item_id: UUID):
        self.item_id = item_id
        super().__init__(
            f"{item_id} cannot be a prerequisite of itself", "self_reference"
        )


class CycleError(GatingError):
    """Edge would close a cycle in the prerequisite graph.

    ``path`` is the existing chain from the new prerequisite back to the
    dependent, so the new edge would make it a loop.
    """

    def __init__(self, dependent_id: UUID, prerequisite_id: UUID, path: list[UUID]):
        self.dependent_id = dependent_id
        self.prerequisite_id = prerequisite_id
        self.path = path
        chain = " -> ".join(str(node) for node in path)
        super().__init__(
            f"Adding {prerequisite_id} as prerequisite of {dependent_id} "
            f"creates a cycle: {chain}",
            "cycle",
        )


class NotFoundError(GatingError):
    """Unknown user, course, lesson, enrollment or certificate."""

    def __init__(self, kind: str, item_id: UUID | str):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} {item_id} not found", "not_found")


class AlreadyExistsError(GatingError):
    """Insert-if-absent lost against an existing row."""

    def __init__(self, kind: str, key: object):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key} already exists", "already_exists")


class AccessDeniedError(GatingError):
    """Enforced prerequisites are not complete."""

    def __init__(self, item_id: UUID, missing: Iterable[UUID]):
        self.item_id = item_id
        self.missing = list(missing)
        missing_list = ", ".join(str(m) for m in self.missing)
        super().__init__(
            f"Access to {item_id} requires completing: {missing_list}",
            "prerequisites_not_met",
        )


class LockTimeoutError(GatingError):
    """Enrollment or prerequisite lock not acquired in time. Safe to retry."""

    expected = False

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(
            f"Timed out waiting for the lock on {resource}",
            "lock_timeout",
        )


class IssuanceError(GatingError):
    """Certificate could not be issued with unique identifiers."""

    expected = False

    def __init__(self, user_id: UUID, course_id: UUID, attempts: int):
        self.user_id = user_id
        self.course_id = course_id
        self.attempts = attempts
        super().__init__(
            f"Could not issue certificate for user {user_id} course {course_id} "
            f"after {attempts} attempts",
            "issuance_failed",
        )
