"""Mutual exclusion for read-modify-write sections.

Progress recompute reads the completion set and writes EnrollmentState; two
concurrent completions for the same (user, course) must not interleave there.
Prerequisite graph mutations check reachability and then write an edge; two
concurrent adds in one scope must not interleave either, or both may pass the
cycle check.

Backends:
- InProcess*Locks: asyncio.Lock registry (single worker)
- Redis*Locks: redis.asyncio Lock (multiple workers/hosts)
"""

import asyncio
import weakref
from collections.abc import AsyncIterator, Hashable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

import structlog
from redis.exceptions import LockNotOwnedError

from src.core.errors import LockTimeoutError
from src.core.redis import enrollment_lock_key, prerequisite_lock_key


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


class EnrollmentLocks(Protocol):
    """Contract for per-(user, course) exclusion."""

    def hold(
        self, user_id: UUID, course_id: UUID
    ) -> AbstractAsyncContextManager[None]: ...


class GraphLocks(Protocol):
    """Contract for per-scope prerequisite graph exclusion."""

    def hold(self, scope: str) -> AbstractAsyncContextManager[None]: ...


# ==============================================================================
# In-process
# ==============================================================================


class _LocalLockRegistry:
    """asyncio.Lock per key, held weakly so idle keys do not accumulate."""

    def __init__(self, blocking_timeout: float | None = None) -> None:
        self.blocking_timeout = blocking_timeout
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def _hold(
        self, key: Hashable, resource: str, event: str, **log: Any
    ) -> AsyncIterator[None]:
        lock = self._lock_for(key)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
        except TimeoutError as e:
            logger.warning(f"{event}_timeout", **log)
            raise LockTimeoutError(resource) from e
        try:
            yield
        finally:
            lock.release()


class InProcessEnrollmentLocks(_LocalLockRegistry):
    """asyncio.Lock registry keyed by (user_id, course_id)."""

    def hold(
        self, user_id: UUID, course_id: UUID
    ) -> AbstractAsyncContextManager[None]:
        return self._hold(
            (user_id, course_id),
            f"enrollment {user_id}/{course_id}",
            "enrollment_lock",
            user_id=user_id,
            course_id=course_id,
        )


class InProcessGraphLocks(_LocalLockRegistry):
    """asyncio.Lock registry keyed by prerequisite scope."""

    def hold(self, scope: str) -> AbstractAsyncContextManager[None]:
        return self._hold(
            scope, f"prerequisites {scope}", "prerequisite_lock", scope=scope
        )


# ==============================================================================
# Redis
# ==============================================================================


class _RedisLockFactory:
    """Distributed locks on top of redis.asyncio.lock.Lock."""

    def __init__(
        self,
        redis: "Redis",
        timeout: float = 10.0,
        blocking_timeout: float = 5.0,
    ) -> None:
        """Initialize with a Redis client.

        Args:
            redis: Async Redis client
            timeout: Seconds before a held lock auto-expires (crashed worker)
            blocking_timeout: Max seconds to wait for acquisition
        """
        self.redis = redis
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def _hold(
        self, key: str, resource: str, event: str, **log: Any
    ) -> AsyncIterator[None]:
        lock = self.redis.lock(
            key, timeout=self.timeout, blocking_timeout=self.blocking_timeout
        )
        acquired = await lock.acquire()
        if not acquired:
            logger.warning(f"{event}_timeout", backend="redis", **log)
            raise LockTimeoutError(resource)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockNotOwnedError:
                # Held past ``timeout``; the guarded work has already finished
                logger.warning(
                    f"{event}_expired", backend="redis", timeout=self.timeout, **log
                )


class RedisEnrollmentLocks(_RedisLockFactory):
    """Enrollment locks shared by every worker on one Redis."""

    def hold(
        self, user_id: UUID, course_id: UUID
    ) -> AbstractAsyncContextManager[None]:
        return self._hold(
            enrollment_lock_key(str(user_id), str(course_id)),
            f"enrollment {user_id}/{course_id}",
            "enrollment_lock",
            user_id=user_id,
            course_id=course_id,
        )


class RedisGraphLocks(_RedisLockFactory):
    """Prerequisite graph locks shared by every worker on one Redis."""

    def hold(self, scope: str) -> AbstractAsyncContextManager[None]:
        return self._hold(
            prerequisite_lock_key(scope),
            f"prerequisites {scope}",
            "prerequisite_lock",
            scope=scope,
        )
