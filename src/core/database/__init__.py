"""Cassandra connection and schema bootstrap."""

from src.core.database.async_cassandra import (
    AsyncCassandraConnection,
    init_async_cassandra,
    init_schema,
    shutdown_async_cassandra,
)


__all__ = [
    "AsyncCassandraConnection",
    "init_async_cassandra",
    "init_schema",
    "shutdown_async_cassandra",
]
