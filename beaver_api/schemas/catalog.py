"""Request schemas for catalogue and ADR endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from beaver_core.models.types import (
    ADRStatus,
    ComponentStatus,
    ImpactLevel,
    ParticipantRole,
    UserRole,
)


class NamedCreate(BaseModel):
    """Environment or team creation."""

    name: str = Field(min_length=1, description="Unique name")
    description: str | None = Field(default=None, description="Free text description")


class NamedUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None


class UserCreate(BaseModel):
    username: str = Field(min_length=1, description="Unique login name")
    email: str | None = None
    role: UserRole = Field(default=UserRole.USER, description="ADMIN, ARCHITECT or USER")


class UserUpdate(BaseModel):
    username: str | None = Field(default=None, min_length=1)
    email: str | None = None
    role: UserRole | None = None


class ComponentCreate(BaseModel):
    name: str = Field(min_length=1, description="Unique component name")
    description: str | None = None
    status: ComponentStatus = Field(default=ComponentStatus.ACTIVE)
    team_id: int | None = Field(default=None, description="Owning team")
    category_id: int | None = None


class ComponentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: ComponentStatus | None = None
    team_id: int | None = None
    category_id: int | None = None


class InstanceCreate(BaseModel):
    component_id: int
    environment_id: int
    hostname: str | None = None
    specs: dict[str, Any] | None = Field(default=None, description="Deployment specs, stored as JSON")


class InstanceUpdate(BaseModel):
    hostname: str | None = None
    specs: dict[str, Any] | None = None


class ADRCreate(BaseModel):
    title: str = Field(min_length=1, description="Unique ADR title")
    owner_id: int = Field(description="User recorded as the OWNER participant")
    description: str | None = None
    status: ADRStatus = Field(default=ADRStatus.DRAFT)


class ADRUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: ADRStatus | None = None


class ParticipantCreate(BaseModel):
    user_id: int
    role: ParticipantRole


class ParticipantUpdate(BaseModel):
    role: ParticipantRole


class ADRInstanceCreate(BaseModel):
    instance_id: int
    impact_level: ImpactLevel = Field(default=ImpactLevel.MEDIUM)
    notes: str | None = None


class ADRInstanceUpdate(BaseModel):
    impact_level: ImpactLevel | None = None
    notes: str | None = None


class ADRComponentCreate(BaseModel):
    component_id: int
