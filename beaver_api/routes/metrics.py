"""Metrics endpoint for request and sync health monitoring."""

import logging
import time
from typing import Any

from fastapi import APIRouter

from beaver_api.metrics import get_metrics_collector
from beaver_api.schemas.metrics import MetricsResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/metrics", response_model=MetricsResponse, tags=["metrics"])
async def get_metrics() -> MetricsResponse:
    """Get current metrics.

    ``sync_warnings`` counts writes whose graph sync failed under the
    best-effort policy; a growing value means the graph is falling behind
    until the next repair.
    """
    return MetricsResponse(metrics=get_metrics_collector().get_metrics(), timestamp=time.time())


@router.get("/metrics/endpoints", tags=["metrics"])
async def get_endpoint_metrics() -> dict[str, dict[str, Any]]:
    """Get per-endpoint request metrics."""
    return get_metrics_collector().get_endpoint_metrics()


@router.post("/metrics/reset", tags=["metrics"])
async def reset_metrics() -> dict[str, str]:
    """Reset all metrics."""
    get_metrics_collector().reset()
    logger.info("Metrics reset via API")
    return {"message": "Metrics reset successfully"}
