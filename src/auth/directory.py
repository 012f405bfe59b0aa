"""User existence lookups.

The gating engine never authenticates; it only needs to know that a user id
refers to a real account before answering access questions about it.
"""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID


if TYPE_CHECKING:
    from cassandra.cluster import Session


USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    email TEXT,
    name TEXT,
    is_active BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

AUTH_TABLES_CQL = [USER_TABLE_CQL]


class UserDirectory(Protocol):
    async def user_exists(self, user_id: UUID) -> bool: ...


class InMemoryUserDirectory:
    """Known user ids held in process memory."""

    def __init__(self, user_ids: set[UUID] | None = None) -> None:
        self._user_ids: set[UUID] = set(user_ids or ())

    def add_user(self, user_id: UUID) -> None:
        self._user_ids.add(user_id)

    async def user_exists(self, user_id: UUID) -> bool:
        return user_id in self._user_ids


class CassandraUserDirectory:
    """User lookups on the users table. Inactive accounts count as absent."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._get_user_by_id = self.session.prepare(
            f"SELECT id, is_active FROM {self.keyspace}.users WHERE id = ?"
        )

    async def user_exists(self, user_id: UUID) -> bool:
        result = await self.session.aexecute(self._get_user_by_id, [user_id])
        row = result.one()
        return row is not None and row.is_active is not False
