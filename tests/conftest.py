"""Shared test fixtures."""

import os
from uuid import UUID, uuid4

import pytest


# Settings are cached on first use; pin the test environment before any import
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("LOCK_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient  # noqa: E402

from src.auth.directory import InMemoryUserDirectory  # noqa: E402
from src.config import get_settings  # noqa: E402
from src.courses.structure import InMemoryCourseStructure  # noqa: E402
from src.gating import GatingService, build_memory_gating_service  # noqa: E402


@pytest.fixture
def user_id() -> UUID:
    """Test user ID."""
    return uuid4()


@pytest.fixture
def structure() -> InMemoryCourseStructure:
    """Empty in-memory course catalog."""
    return InMemoryCourseStructure()


@pytest.fixture
def users(user_id: UUID) -> InMemoryUserDirectory:
    """User directory containing the test user."""
    return InMemoryUserDirectory({user_id})


@pytest.fixture
def gating_service(
    structure: InMemoryCourseStructure, users: InMemoryUserDirectory
) -> GatingService:
    """Gating service over in-memory storage."""
    return build_memory_gating_service(
        get_settings(), structure=structure, users=users
    )


@pytest.fixture
def client(gating_service: GatingService) -> TestClient:
    """Test client with the in-memory gating service installed.

    The lifespan is not entered, so no Redis or Cassandra connection is tried.
    """
    from src.main import create_app

    app = create_app()
    app.state.gating_service = gating_service
    return TestClient(app)
