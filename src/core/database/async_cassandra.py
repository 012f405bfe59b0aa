"""Cassandra connection and schema bootstrap (cassandra-asyncio-driver).

The session returned here supports ``await session.aexecute(...)``, which all
Cassandra repositories use. Connecting is synchronous; queries are not.

Schema bootstrap creates the keyspace and every table the gating engine
touches. Catalog tables owned by other services (users, courses, lessons and
their junction tables) are declared with only the columns read here, and
``IF NOT EXISTS`` leaves an existing catalog untouched.
"""

from typing import TYPE_CHECKING

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.auth.directory import AUTH_TABLES_CQL
from src.certificates.models import CERTIFICATES_TABLES_CQL
from src.config.settings import Settings, get_settings
from src.courses.models import COURSE_STRUCTURE_TABLES_CQL
from src.prerequisites.models import PREREQUISITE_TABLES_CQL
from src.progress.models import PROGRESS_TABLES_CQL


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

TABLE_GROUPS: dict[str, list[str]] = {
    "users": AUTH_TABLES_CQL,
    "course_structure": COURSE_STRUCTURE_TABLES_CQL,
    "prerequisites": PREREQUISITE_TABLES_CQL,
    "progress": PROGRESS_TABLES_CQL,
    "certificates": CERTIFICATES_TABLES_CQL,
}


def keyspace_cql(settings: Settings) -> str:
    """CREATE KEYSPACE statement for the configured environment.

    Production uses NetworkTopologyStrategy (3 replicas in datacenter1) so
    LWT reads at SERIAL survive a node loss; elsewhere a single replica.
    """
    if settings.is_production:
        replication = "'class': 'NetworkTopologyStrategy', 'datacenter1': 3"
    else:
        replication = "'class': 'SimpleStrategy', 'replication_factor': 1"
    return (
        f"CREATE KEYSPACE IF NOT EXISTS {settings.cassandra_keyspace} "
        f"WITH replication = {{{replication}}} AND durable_writes = true"
    )


async def init_schema(session: "Session", settings: Settings) -> None:
    """Create the keyspace and every table group, idempotently."""
    keyspace = settings.cassandra_keyspace
    await session.aexecute(keyspace_cql(settings))
    for group, statements in TABLE_GROUPS.items():
        for cql_template in statements:
            await session.aexecute(cql_template.format(keyspace=keyspace))
        logger.info("cassandra_tables_ready", keyspace=keyspace, group=group)


class AsyncCassandraConnection:
    """Process-wide cluster/session pair."""

    _cluster: Cluster | None = None
    _session: "Session | None" = None

    @classmethod
    def connect(cls, settings: Settings) -> "Session":
        """Connect once; later calls return the same session.

        Raises:
            ConnectionError: Cluster unreachable
        """
        if cls._session is not None:
            return cls._session

        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        cls._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=settings.cassandra_connect_timeout,
        )
        try:
            session = cls._cluster.connect()
        except Exception as e:
            logger.error("cassandra_connection_failed", error=str(e))
            cls._cluster.shutdown()
            cls._cluster = None
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        session.default_timeout = settings.cassandra_request_timeout
        cls._session = session
        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
        )
        return session

    @classmethod
    def disconnect(cls) -> None:
        if cls._session is not None:
            cls._session.shutdown()
            cls._session = None
        if cls._cluster is not None:
            cls._cluster.shutdown()
            cls._cluster = None
            logger.info("cassandra_disconnected")


async def init_async_cassandra(settings: Settings | None = None) -> "Session":
    """Connect, bootstrap the schema and bind the session to the keyspace."""
    settings = settings or get_settings()
    session = AsyncCassandraConnection.connect(settings)
    await init_schema(session, settings)
    session.set_keyspace(settings.cassandra_keyspace)
    logger.info("cassandra_initialized", keyspace=settings.cassandra_keyspace)
    return session


async def shutdown_async_cassandra() -> None:
    AsyncCassandraConnection.disconnect()
