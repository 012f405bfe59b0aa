"""Assembly of the gating service from settings.

Two storage backends:
- memory: every repository in process memory (tests, local runs)
- cassandra: repositories on a cassandra-asyncio session

Enrollment and prerequisite graph locks follow ``lock_backend``; the Redis
backend needs a live client and falls back to in-process locks without one.
"""

from typing import TYPE_CHECKING

import structlog

from src.access import AccessEvaluator
from src.auth.directory import (
    CassandraUserDirectory,
    InMemoryUserDirectory,
    UserDirectory,
)
from src.certificates import CertificateIssuer
from src.certificates.publisher import RedisCertificatePublisher
from src.certificates.repository import (
    CassandraCertificateRepository,
    CertificateRepository,
    InMemoryCertificateRepository,
)
from src.config import Settings
from src.core.locks import (
    EnrollmentLocks,
    GraphLocks,
    InProcessEnrollmentLocks,
    InProcessGraphLocks,
    RedisEnrollmentLocks,
    RedisGraphLocks,
)
from src.courses.structure import (
    CassandraCourseStructure,
    CourseStructureProvider,
    InMemoryCourseStructure,
)
from src.prerequisites import PrerequisiteGraph
from src.prerequisites.repository import (
    CassandraEdgeRepository,
    EdgeRepository,
    InMemoryEdgeRepository,
)
from src.progress import CompletionStore, ProgressAggregator
from src.progress.repository import (
    CassandraCompletionRepository,
    CassandraEnrollmentRepository,
    CompletionRepository,
    EnrollmentRepository,
    InMemoryCompletionRepository,
    InMemoryEnrollmentRepository,
)

from .service import GatingService


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


def _use_redis_locks(settings: Settings, redis_client: "Redis | None", kind: str) -> bool:
    if settings.lock_backend != "redis":
        return False
    if redis_client is None:
        logger.warning(
            "redis_locks_unavailable",
            message=f"Redis not connected - using in-process {kind} locks",
        )
        return False
    return True


def build_locks(settings: Settings, redis_client: "Redis | None" = None) -> EnrollmentLocks:
    """Create the enrollment lock backend selected by settings."""
    if _use_redis_locks(settings, redis_client, "enrollment"):
        return RedisEnrollmentLocks(
            redis_client,
            timeout=settings.lock_timeout_seconds,
            blocking_timeout=settings.lock_blocking_timeout_seconds,
        )
    return InProcessEnrollmentLocks(
        blocking_timeout=settings.lock_blocking_timeout_seconds
    )


def build_graph_locks(settings: Settings, redis_client: "Redis | None" = None) -> GraphLocks:
    """Create the prerequisite graph lock backend selected by settings."""
    if _use_redis_locks(settings, redis_client, "prerequisite"):
        return RedisGraphLocks(
            redis_client,
            timeout=settings.lock_timeout_seconds,
            blocking_timeout=settings.lock_blocking_timeout_seconds,
        )
    return InProcessGraphLocks(blocking_timeout=settings.lock_blocking_timeout_seconds)


def build_gating_service(
    settings: Settings,
    *,
    edges: EdgeRepository,
    completions: CompletionRepository,
    enrollments: EnrollmentRepository,
    certificates: CertificateRepository,
    structure: CourseStructureProvider,
    users: UserDirectory,
    redis_client: "Redis | None" = None,
    locks: EnrollmentLocks | None = None,
) -> GatingService:
    """Wire the gating components over the given storage."""
    graph = PrerequisiteGraph(edges, locks=build_graph_locks(settings, redis_client))
    completion_store = CompletionStore(completions)

    issuer = CertificateIssuer(
        certificates,
        number_prefix=settings.certificate_number_prefix,
        max_attempts=settings.certificate_issue_max_attempts,
    )
    if settings.certificate_notifications_enabled and redis_client is not None:
        issuer.add_listener(RedisCertificatePublisher(redis_client))

    aggregator = ProgressAggregator(
        completions=completion_store,
        enrollments=enrollments,
        structure=structure,
        issuer=issuer,
        locks=locks or build_locks(settings, redis_client),
    )
    evaluator = AccessEvaluator(
        graph=graph,
        completions=completion_store,
        structure=structure,
        users=users,
    )
    return GatingService(
        graph=graph,
        completions=completion_store,
        evaluator=evaluator,
        aggregator=aggregator,
        issuer=issuer,
        structure=structure,
    )


def build_memory_gating_service(
    settings: Settings,
    structure: CourseStructureProvider | None = None,
    users: UserDirectory | None = None,
    redis_client: "Redis | None" = None,
) -> GatingService:
    """Gating service with all storage in process memory."""
    return build_gating_service(
        settings,
        edges=InMemoryEdgeRepository(),
        completions=InMemoryCompletionRepository(),
        enrollments=InMemoryEnrollmentRepository(),
        certificates=InMemoryCertificateRepository(),
        structure=structure or InMemoryCourseStructure(),
        users=users or InMemoryUserDirectory(),
        redis_client=redis_client,
    )


def build_cassandra_gating_service(
    settings: Settings,
    session: "Session",
    redis_client: "Redis | None" = None,
) -> GatingService:
    """Gating service on Cassandra tables in ``settings.cassandra_keyspace``."""
    keyspace = settings.cassandra_keyspace
    return build_gating_service(
        settings,
        edges=CassandraEdgeRepository(session, keyspace),
        completions=CassandraCompletionRepository(session, keyspace),
        enrollments=CassandraEnrollmentRepository(session, keyspace),
        certificates=CassandraCertificateRepository(session, keyspace),
        structure=CassandraCourseStructure(session, keyspace),
        users=CassandraUserDirectory(session, keyspace),
        redis_client=redis_client,
    )
