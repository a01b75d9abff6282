"""Schemas for the metrics API."""

from pydantic import BaseModel, Field


class PerformanceMetrics(BaseModel):
    """Current request, sync and job metrics."""

    total_requests: int = Field(..., description="Total number of API requests")
    active_requests: int = Field(..., description="Currently active requests")
    avg_request_duration_ms: float = Field(..., description="Average request duration in milliseconds")
    p95_request_duration_ms: float = Field(..., description="95th percentile request duration")
    p99_request_duration_ms: float = Field(..., description="99th percentile request duration")
    error_rate: float = Field(..., description="Error rate (0-1)")
    total_errors: int = Field(..., description="Total number of errors")

    targeted_syncs: int = Field(..., description="Mutations followed by a targeted graph sync")
    sync_warnings: int = Field(..., description="Targeted syncs that left the graph behind")
    validations: int = Field(..., description="Integrity validations run")
    last_validation_valid: bool | None = Field(default=None, description="Outcome of the latest validation")
    last_validation_discrepancies: int = Field(..., description="Discrepancies in the latest validation")
    repairs: int = Field(..., description="Repair passes run")
    repair_failures: int = Field(..., description="Repair passes that did not converge")

    active_jobs: int = Field(..., description="Number of active background jobs")
    completed_jobs: int = Field(..., description="Number of completed jobs")
    failed_jobs: int = Field(..., description="Number of failed jobs")

    uptime_seconds: float = Field(..., description="Process uptime in seconds")
    memory_usage_mb: float = Field(..., description="Current memory usage in MB")


class MetricsResponse(BaseModel):
    metrics: PerformanceMetrics
    timestamp: float = Field(..., description="Response timestamp")
