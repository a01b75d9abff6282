"""Schemas for sync, validation and repair endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class DiscrepancyItem(BaseModel):
    """One integrity finding.

    Count checks carry ``relational``, ``graph`` and ``difference``;
    orphan and stale checks carry ``count``, ``description`` and ``details``.
    """

    entity: str = Field(description="Check name, e.g. 'components' or 'orphanedInstances'")
    relational: int | None = None
    graph: int | None = None
    difference: int | None = Field(default=None, description="Relational count minus graph count")
    count: int | None = None
    description: str | None = None
    details: dict[str, Any] | None = None


class ValidationResponse(BaseModel):
    valid: bool
    discrepancies: list[DiscrepancyItem] = Field(default_factory=list)
    countsRelational: dict[str, int] = Field(default_factory=dict)
    countsGraph: dict[str, int] = Field(default_factory=dict)


class CorrectionItem(BaseModel):
    entity: str
    action: str = Field(description="'resync', 'fix' or 'prune'")
    status: str = Field(description="'success' or 'failed'")
    error: str | None = None


class RepairResponse(BaseModel):
    fixed: bool
    corrections: list[CorrectionItem] = Field(default_factory=list)
    finalReport: ValidationResponse | None = None


class SyncStatsItem(BaseModel):
    entity: str
    rows: int
    relationships: int
    derived: int = Field(default=0, description="ADR component links derived during the sync")


class SyncResponse(BaseModel):
    synced: list[SyncStatsItem]
