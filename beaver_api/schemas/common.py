"""Common Pydantic schemas for Beaver API responses."""

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status: 'healthy', 'degraded', or 'unhealthy'")
    services: dict[str, str] = Field(
        default_factory=dict,
        description="Status of individual services (database, graph)",
    )


class ErrorResponse(BaseModel):
    """RFC 7807 Problem Details for error responses."""

    type: str = Field(default="about:blank", description="Error type URI")
    title: str = Field(description="Short error title")
    status: int = Field(description="HTTP status code")
    detail: str | None = Field(default=None, description="Detailed error message")
    instance: str | None = Field(default=None, description="Request identifier")


class SyncInfo(BaseModel):
    """Outcome of the graph side of a mutation."""

    status: str = Field(description="'ok' or 'warning'")
    warning: str | None = Field(default=None, description="Why the graph sync failed")
    sync_failed: bool = Field(default=False, description="True when the graph lags the record store")


class MutationResponse(BaseModel):
    """A committed relational write and its graph sync outcome."""

    entity: dict[str, Any] | None = Field(default=None, description="Row after the write (snapshot for deletes)")
    sync: SyncInfo
