"""Schemas for component relation endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from beaver_core.models.types import ComponentRelationType


class RelationCreate(BaseModel):
    source_id: int = Field(description="Component the relation starts from")
    target_id: int = Field(description="Component the relation points to")
    type: ComponentRelationType = Field(description="DEPENDS_ON, CONNECTS_TO, RUNS_ON, STORES_DATA_IN, CONTAINS or PROTECTS")
    properties: dict[str, Any] = Field(default_factory=dict)


class RelationUpdate(RelationCreate):
    """Full replacement of a relation; its id and created_at are kept."""


class RelationResponse(BaseModel):
    id: str = Field(description="Generated relation id")
    type: ComponentRelationType
    source_id: int
    target_id: int
    properties: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None
