"""Completion and enrollment persistence.

Provides:
- CompletionRepository / EnrollmentRepository: storage contracts
- In-memory implementations (tests, single process)
- Cassandra implementations using lightweight transactions for write-once rows
"""

import asyncio
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from src.prerequisites.models import Scope

from .models import CompletionRecord, EnrollmentState


if TYPE_CHECKING:
    from cassandra.cluster import Session


class CompletionRepository(Protocol):
    """Contract for completion record persistence."""

    async def insert_if_absent(
        self, record: CompletionRecord
    ) -> tuple[CompletionRecord, bool]:
        """Store the record unless one exists. Returns (stored record, created)."""
        ...

    async def get(
        self, user_id: UUID, scope: Scope, item_id: UUID
    ) -> CompletionRecord | None: ...

    async def list_item_ids(self, user_id: UUID, scope: Scope) -> set[UUID]: ...


class EnrollmentRepository(Protocol):
    """Contract for enrollment state persistence."""

    async def create_if_absent(
        self, state: EnrollmentState
    ) -> tuple[EnrollmentState, bool]: ...

    async def get(self, user_id: UUID, course_id: UUID) -> EnrollmentState | None: ...

    async def save(self, state: EnrollmentState) -> bool:
        """Overwrite a non-terminal state. False if the stored one is completed."""
        ...


# ==============================================================================
# In-memory
# ==============================================================================


class InMemoryCompletionRepository:
    """Completion records held in process memory.

    Every call yields to the event loop once, like a network round trip would,
    so concurrent callers interleave the same way they do against a database.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[UUID, Scope], dict[UUID, CompletionRecord]] = {}

    async def insert_if_absent(
        self, record: CompletionRecord
    ) -> tuple[CompletionRecord, bool]:
        await asyncio.sleep(0)
        bucket = self._records.setdefault((record.user_id, record.scope), {})
        existing = bucket.get(record.item_id)
        if existing is not None:
            return existing, False
        bucket[record.item_id] = record
        return record, True

    async def get(
        self, user_id: UUID, scope: Scope, item_id: UUID
    ) -> CompletionRecord | None:
        await asyncio.sleep(0)
        return self._records.get((user_id, scope), {}).get(item_id)

    async def list_item_ids(self, user_id: UUID, scope: Scope) -> set[UUID]:
        await asyncio.sleep(0)
        return set(self._records.get((user_id, scope), {}))


class InMemoryEnrollmentRepository:
    """Enrollment states held in process memory. Returns copies, never aliases."""

    def __init__(self) -> None:
        self._states: dict[tuple[UUID, UUID], EnrollmentState] = {}

    async def create_if_absent(
        self, state: EnrollmentState
    ) -> tuple[EnrollmentState, bool]:
        await asyncio.sleep(0)
        key = (state.user_id, state.course_id)
        existing = self._states.get(key)
        if existing is not None:
            return existing.copy(), False
        self._states[key] = state.copy()
        return state, True

    async def get(self, user_id: UUID, course_id: UUID) -> EnrollmentState | None:
        await asyncio.sleep(0)
        state = self._states.get((user_id, course_id))
        return state.copy() if state else None

    async def save(self, state: EnrollmentState) -> bool:
        await asyncio.sleep(0)
        key = (state.user_id, state.course_id)
        stored = self._states.get(key)
        if stored is None or stored.is_completed:
            return False
        self._states[key] = state.copy()
        return True


# ==============================================================================
# Cassandra
# ==============================================================================


class CassandraCompletionRepository:
    """Completion records on the completion_records table."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert_record = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.completion_records
            (user_id, scope, item_id, completed_at)
            VALUES (?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._get_record = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.completion_records
            WHERE user_id = ? AND scope = ? AND item_id = ?
        """)

        self._list_records = self.session.prepare(f"""
            SELECT item_id FROM {self.keyspace}.completion_records
            WHERE user_id = ? AND scope = ?
        """)

    async def insert_if_absent(
        self, record: CompletionRecord
    ) -> tuple[CompletionRecord, bool]:
        result = await self.session.aexecute(
            self._insert_record,
            [record.user_id, record.scope.value, record.item_id, record.completed_at],
        )
        if result.was_applied:
            return record, True

        # An unapplied LWT answers with the row it lost to
        return CompletionRecord.from_row(result.one()), False

    async def get(
        self, user_id: UUID, scope: Scope, item_id: UUID
    ) -> CompletionRecord | None:
        result = await self.session.aexecute(
            self._get_record, [user_id, scope.value, item_id]
        )
        row = result.one()
        return CompletionRecord.from_row(row) if row else None

    async def list_item_ids(self, user_id: UUID, scope: Scope) -> set[UUID]:
        rows = await self.session.aexecute(self._list_records, [user_id, scope.value])
        return {row.item_id for row in rows}


class CassandraEnrollmentRepository:
    """Enrollment state on the enrollment_state table.

    All writes to a row are lightweight transactions: creation is
    ``IF NOT EXISTS`` and saves are ``IF status != 'completed'``. Plain
    upserts must not be mixed into a row written with LWT.
    """

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        columns = (
            "user_id, course_id, status, progress_percent, lessons_completed, "
            "lessons_total, enrolled_at, started_at, completed_at, updated_at"
        )

        self._create_state = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollment_state ({columns})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._update_state = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollment_state
            SET status = ?, progress_percent = ?, lessons_completed = ?,
                lessons_total = ?, started_at = ?, completed_at = ?, updated_at = ?
            WHERE user_id = ? AND course_id = ?
            IF status != 'completed'
        """)

        self._get_state = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollment_state
            WHERE user_id = ? AND course_id = ?
        """)

    @staticmethod
    def _values(state: EnrollmentState) -> list:
        return [
            state.user_id,
            state.course_id,
            state.status,
            state.progress_percent,
            state.lessons_completed,
            state.lessons_total,
            state.enrolled_at,
            state.started_at,
            state.completed_at,
            state.updated_at,
        ]

    async def create_if_absent(
        self, state: EnrollmentState
    ) -> tuple[EnrollmentState, bool]:
        result = await self.session.aexecute(self._create_state, self._values(state))
        if not result.was_applied:
            return EnrollmentState.from_row(result.one()), False
        return state, True

    async def get(self, user_id: UUID, course_id: UUID) -> EnrollmentState | None:
        result = await self.session.aexecute(self._get_state, [user_id, course_id])
        row = result.one()
        return EnrollmentState.from_row(row) if row else None

    async def save(self, state: EnrollmentState) -> bool:
        result = await self.session.aexecute(
            self._update_state,
            [
                state.status,
                state.progress_percent,
                state.lessons_completed,
                state.lessons_total,
                state.started_at,
                state.completed_at,
                state.updated_at,
                state.user_id,
                state.course_id,
            ],
        )
        return bool(result.was_applied)
