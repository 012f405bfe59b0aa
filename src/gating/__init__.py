"""Gating facade: prerequisites, access, progress and certificates."""

from .factory import (
    build_cassandra_gating_service,
    build_gating_service,
    build_memory_gating_service,
)
from .service import GatingService, LessonCompletionResult


__all__ = [
    "GatingService",
    "LessonCompletionResult",
    "build_cassandra_gating_service",
    "build_gating_service",
    "build_memory_gating_service",
]
