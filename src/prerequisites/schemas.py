"""Pydantic schemas for prerequisite management."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import PrerequisiteEdge, Scope


class AddPrerequisiteRequest(BaseModel):
    """Request to declare a prerequisite."""

    prerequisite_id: UUID = Field(..., description="Course or lesson to require")
    enforce: bool = Field(
        default=True,
        description="Block access until complete (False: advisory only)",
    )


class PrerequisiteResponse(BaseModel):
    """Prerequisite edge response."""

    model_config = ConfigDict(from_attributes=True)

    dependent_id: UUID
    prerequisite_id: UUID
    scope: Scope
    enforce: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: PrerequisiteEdge) -> "PrerequisiteResponse":
        """Create response from entity."""
        return cls(
            dependent_id=entity.dependent_id,
            prerequisite_id=entity.prerequisite_id,
            scope=entity.scope,
            enforce=entity.enforce,
            created_at=entity.created_at,
        )


class PrerequisiteListResponse(BaseModel):
    """Direct prerequisites of a course or lesson."""

    item_id: UUID
    scope: Scope
    prerequisites: list[PrerequisiteResponse]

    @classmethod
    def from_edges(
        cls, item_id: UUID, scope: Scope, edges: list[PrerequisiteEdge]
    ) -> "PrerequisiteListResponse":
        return cls(
            item_id=item_id,
            scope=scope,
            prerequisites=[PrerequisiteResponse.from_entity(e) for e in edges],
        )
