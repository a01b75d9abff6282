"""Schemas for background job endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class JobRequest(BaseModel):
    """Request to run a sync or integrity operation in the background."""

    mode: Literal["sync", "validate", "repair", "reconcile"] = Field(
        default="reconcile", description="Operation to run"
    )
    entity: str | None = Field(default=None, description="Entity type for a single-type sync")


class JobResponse(BaseModel):
    """Response from job status query."""

    job_id: str = Field(description="Job ID")
    mode: str = Field(description="Job mode")
    status: str = Field(description="pending, running, complete, failed or cancelled")
    progress: int = Field(description="Progress percentage (0-100)")
    entity: str | None = Field(default=None, description="Entity type for a single-type sync")
    result: dict[str, Any] | None = Field(default=None, description="Operation result once complete")
    started_at: str | None = Field(default=None, description="Start timestamp")
    completed_at: str | None = Field(default=None, description="Completion timestamp")
    error_message: str | None = Field(default=None, description="Error message (if failed)")
    created_at: str = Field(description="Creation timestamp")
