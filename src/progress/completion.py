"""Per-user completion store. Write-once per (user, scope, item)."""

from uuid import UUID

import structlog

from src.prerequisites.models import Scope

from .models import CompletionRecord
from .repository import CompletionRepository


logger = structlog.get_logger(__name__)


class CompletionStore:
    """Records which lessons and courses a user has completed."""

    def __init__(self, repository: CompletionRepository):
        self.repository = repository

    async def mark_complete(
        self, user_id: UUID, item_id: UUID, scope: Scope
    ) -> tuple[CompletionRecord, bool]:
        """Record a completion. Repeat calls are no-ops.

        Returns:
            (stored record, created) where created is False for repeats and the
            record keeps its original completed_at
        """
        record, created = await self.repository.insert_if_absent(
            CompletionRecord(user_id=user_id, item_id=item_id, scope=scope)
        )
        if created:
            logger.info(
                "item_completed",
                user_id=user_id,
                item_id=item_id,
                scope=scope.value,
            )
        else:
            logger.debug(
                "item_already_completed",
                user_id=user_id,
                item_id=item_id,
                scope=scope.value,
            )
        return record, created

    async def is_complete(self, user_id: UUID, item_id: UUID, scope: Scope) -> bool:
        return await self.repository.get(user_id, scope, item_id) is not None

    async def list_completed(self, user_id: UUID, scope: Scope) -> set[UUID]:
        return await self.repository.list_item_ids(user_id, scope)
