"""Tests for the Cassandra completion and enrollment repositories."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from src.prerequisites import Scope
from src.progress import CompletionRecord, EnrollmentState
from src.progress.repository import (
    CassandraCompletionRepository,
    CassandraEnrollmentRepository,
)


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(return_value=Mock())
    session.aexecute = AsyncMock(return_value=Mock())
    return session


def single(row, was_applied: bool = True) -> Mock:
    result = Mock(was_applied=was_applied)
    result.one.return_value = row
    return result


def state_row(state: EnrollmentState) -> Mock:
    return Mock(**{key: getattr(state, key) for key in state.to_dict()})


class TestCassandraCompletionRepository:
    """Tests for CassandraCompletionRepository."""

    @pytest.mark.asyncio
    async def test_first_insert_is_created(self, mock_session):
        repository = CassandraCompletionRepository(mock_session, "ks")
        record = CompletionRecord(uuid4(), uuid4(), Scope.LESSON)
        mock_session.aexecute.return_value = Mock(was_applied=True)

        stored, created = await repository.insert_if_absent(record)

        assert created is True
        assert stored is record
        assert mock_session.aexecute.await_count == 1

    @pytest.mark.asyncio
    async def test_repeat_returns_original_timestamp(self, mock_session):
        """Should return the row carried by the unapplied LWT."""
        repository = CassandraCompletionRepository(mock_session, "ks")
        record = CompletionRecord(uuid4(), uuid4(), Scope.LESSON)
        original = datetime(2024, 1, 1, 12, 0)
        mock_session.aexecute.return_value = single(
            Mock(
                user_id=record.user_id,
                item_id=record.item_id,
                scope="lesson",
                completed_at=original,
            ),
            was_applied=False,
        )

        stored, created = await repository.insert_if_absent(record)

        assert created is False
        assert stored.completed_at == original.replace(tzinfo=UTC)
        assert mock_session.aexecute.await_count == 1

    @pytest.mark.asyncio
    async def test_list_item_ids(self, mock_session):
        repository = CassandraCompletionRepository(mock_session, "ks")
        ids = [uuid4(), uuid4()]
        mock_session.aexecute.return_value = [Mock(item_id=i) for i in ids]

        assert await repository.list_item_ids(uuid4(), Scope.COURSE) == set(ids)
        assert mock_session.aexecute.call_args.args[1][1] == "course"


class TestCassandraEnrollmentRepository:
    """Tests for CassandraEnrollmentRepository."""

    @pytest.mark.asyncio
    async def test_create_is_a_single_lwt(self, mock_session):
        repository = CassandraEnrollmentRepository(mock_session, "ks")
        state = EnrollmentState(uuid4(), uuid4())
        mock_session.aexecute.return_value = Mock(was_applied=True)

        _, created = await repository.create_if_absent(state)

        assert created is True
        assert mock_session.aexecute.await_count == 1

    @pytest.mark.asyncio
    async def test_create_existing_returns_stored_state(self, mock_session):
        """Should return the row carried by the unapplied LWT."""
        repository = CassandraEnrollmentRepository(mock_session, "ks")
        existing = EnrollmentState(
            uuid4(), uuid4(), status="in_progress", progress_percent=50
        )
        mock_session.aexecute.return_value = single(
            state_row(existing), was_applied=False
        )

        state, created = await repository.create_if_absent(
            EnrollmentState(existing.user_id, existing.course_id)
        )

        assert created is False
        assert state.progress_percent == 50
        assert mock_session.aexecute.await_count == 1

    def test_save_is_conditional_on_non_terminal_status(self, mock_session):
        CassandraEnrollmentRepository(mock_session, "ks")

        statements = [call.args[0] for call in mock_session.prepare.call_args_list]
        update = next(s for s in statements if "UPDATE" in s)

        assert "IF status != 'completed'" in update
        assert not any(
            "INSERT" in s and "IF NOT EXISTS" not in s for s in statements
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("applied", [True, False])
    async def test_save_reports_lwt_result(self, mock_session, applied):
        repository = CassandraEnrollmentRepository(mock_session, "ks")
        state = EnrollmentState(
            uuid4(), uuid4(), status="in_progress", progress_percent=33
        )
        mock_session.aexecute.return_value = Mock(was_applied=applied)

        assert await repository.save(state) is applied
        values = mock_session.aexecute.call_args.args[1]
        assert values[0] == "in_progress"
        assert values[-2:] == [state.user_id, state.course_id]
