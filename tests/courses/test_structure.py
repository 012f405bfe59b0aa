"""Tests for course structure providers."""

from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from src.courses.structure import CassandraCourseStructure, InMemoryCourseStructure


def single(row) -> Mock:
    result = Mock()
    result.one.return_value = row
    return result


class TestInMemoryCourseStructure:
    """Tests for InMemoryCourseStructure."""

    @pytest.mark.asyncio
    async def test_lessons_in_module_order_without_duplicates(self):
        l1, l2, l3 = uuid4(), uuid4(), uuid4()
        course_id = uuid4()
        structure = InMemoryCourseStructure()
        structure.add_course(course_id, [[l1, l2], [l2, l3]])

        assert await structure.get_course_lessons(course_id) == [l1, l2, l3]

    @pytest.mark.asyncio
    async def test_unknown_course(self):
        structure = InMemoryCourseStructure()

        assert await structure.get_course_lessons(uuid4()) is None
        assert await structure.course_exists(uuid4()) is False

    @pytest.mark.asyncio
    async def test_lesson_courses(self):
        shared, first, second = uuid4(), uuid4(), uuid4()
        structure = InMemoryCourseStructure()
        structure.add_course(first, [[shared]])
        structure.add_course(second, [[uuid4()], [shared]])

        assert set(await structure.get_lesson_courses(shared)) == {first, second}
        assert await structure.lesson_exists(shared) is True

    @pytest.mark.asyncio
    async def test_standalone_lesson(self):
        lesson_id = uuid4()
        structure = InMemoryCourseStructure()
        structure.add_lesson(lesson_id)

        assert await structure.lesson_exists(lesson_id) is True
        assert await structure.get_lesson_courses(lesson_id) == []


class TestCassandraCourseStructure:
    """Tests for CassandraCourseStructure."""

    @pytest.fixture
    def mock_session(self):
        session = Mock(spec=Session)
        session.prepare = Mock(return_value=Mock())
        session.aexecute = AsyncMock(return_value=Mock())
        return session

    @pytest.mark.asyncio
    async def test_lessons_sorted_by_position(self, mock_session):
        """Should order modules, then lessons within each module, by position."""
        course_id, m1, m2 = uuid4(), uuid4(), uuid4()
        l1, l2, l3 = uuid4(), uuid4(), uuid4()
        mock_session.aexecute.side_effect = [
            single(Mock(id=course_id)),
            [
                Mock(course_id=course_id, module_id=m2, position=2),
                Mock(course_id=course_id, module_id=m1, position=1),
            ],
            [
                Mock(module_id=m1, lesson_id=l2, position=2),
                Mock(module_id=m1, lesson_id=l1, position=1),
            ],
            [Mock(module_id=m2, lesson_id=l3, position=1)],
        ]
        structure = CassandraCourseStructure(mock_session, "ks")

        assert await structure.get_course_lessons(course_id) == [l1, l2, l3]

    @pytest.mark.asyncio
    async def test_unknown_course(self, mock_session):
        mock_session.aexecute.return_value = single(None)
        structure = CassandraCourseStructure(mock_session, "ks")

        assert await structure.get_course_lessons(uuid4()) is None

    @pytest.mark.asyncio
    async def test_lesson_courses_via_modules(self, mock_session):
        lesson_id, m1, m2, course_id = uuid4(), uuid4(), uuid4(), uuid4()
        mock_session.aexecute.side_effect = [
            [Mock(module_id=m1), Mock(module_id=m2)],
            [Mock(course_id=course_id)],
            [Mock(course_id=course_id)],
        ]
        structure = CassandraCourseStructure(mock_session, "ks")

        assert await structure.get_lesson_courses(lesson_id) == [course_id]
