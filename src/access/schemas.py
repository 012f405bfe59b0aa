"""Pydantic schemas for access checks."""

from uuid import UUID

from pydantic import BaseModel, Field

from src.prerequisites.models import Scope

from .evaluator import AccessDecision


class AccessResponse(BaseModel):
    """Access decision for a course or lesson."""

    item_id: UUID
    scope: Scope
    has_access: bool
    missing_prerequisites: list[UUID] = Field(
        default_factory=list, description="Enforced prerequisites still to complete"
    )
    advisory_prerequisites: list[UUID] = Field(
        default_factory=list, description="Recommended prerequisites not completed"
    )

    @classmethod
    def from_entity(cls, entity: AccessDecision) -> "AccessResponse":
        """Create response from entity."""
        return cls(
            item_id=entity.item_id,
            scope=entity.scope,
            has_access=entity.allowed,
            missing_prerequisites=entity.missing_prerequisites,
            advisory_prerequisites=entity.advisory_prerequisites,
        )
