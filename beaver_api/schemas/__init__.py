"""API schemas for Beaver."""

from beaver_api.schemas.catalog import (
    ADRComponentCreate,
    ADRCreate,
    ADRInstanceCreate,
    ADRInstanceUpdate,
    ADRUpdate,
    ComponentCreate,
    ComponentUpdate,
    InstanceCreate,
    InstanceUpdate,
    NamedCreate,
    NamedUpdate,
    ParticipantCreate,
    ParticipantUpdate,
    UserCreate,
    UserUpdate,
)
from beaver_api.schemas.common import ErrorResponse, HealthResponse, MutationResponse, SyncInfo
from beaver_api.schemas.integrity import (
    CorrectionItem,
    DiscrepancyItem,
    RepairResponse,
    SyncResponse,
    SyncStatsItem,
    ValidationResponse,
)
from beaver_api.schemas.jobs import JobRequest, JobResponse
from beaver_api.schemas.relations import RelationCreate, RelationResponse, RelationUpdate

__all__ = [
    "ADRComponentCreate",
    "ADRCreate",
    "ADRInstanceCreate",
    "ADRInstanceUpdate",
    "ADRUpdate",
    "ComponentCreate",
    "ComponentUpdate",
    "InstanceCreate",
    "InstanceUpdate",
    "NamedCreate",
    "NamedUpdate",
    "ParticipantCreate",
    "ParticipantUpdate",
    "UserCreate",
    "UserUpdate",
    "ErrorResponse",
    "HealthResponse",
    "MutationResponse",
    "SyncInfo",
    "CorrectionItem",
    "DiscrepancyItem",
    "RepairResponse",
    "SyncResponse",
    "SyncStatsItem",
    "ValidationResponse",
    "JobRequest",
    "JobResponse",
    "RelationCreate",
    "RelationResponse",
    "RelationUpdate",
]
