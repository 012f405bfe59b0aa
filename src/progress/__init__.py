"""Completion tracking and course progress.

Provides:
- CompletionStore: write-once lesson/course completions
- ProgressAggregator: enrollment state machine and course completion
"""

from .aggregator import ProgressAggregator, ProgressResult
from .completion import CompletionStore
from .models import (
    PROGRESS_TABLES_CQL,
    CompletionRecord,
    EnrollmentState,
    EnrollmentStatus,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CompletionRecord",
    "CompletionStore",
    "EnrollmentState",
    "EnrollmentStatus",
    "ProgressAggregator",
    "ProgressResult",
]
