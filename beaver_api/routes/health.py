"""Health check endpoint for the Beaver API."""

import logging
from pathlib import Path

from fastapi import APIRouter

from beaver_api.dependencies import get_graph_store
from beaver_api.schemas.common import HealthResponse
from beaver_core.container import get_container
from beaver_core.storage.graph_store import GraphStoreError

router = APIRouter()
logger = logging.getLogger(__name__)


def get_db_status(db_path: str) -> str:
    """Check record store status."""
    path = Path(db_path)
    if not path.exists():
        return "missing"
    if not path.is_file():
        return "invalid"
    return "ok"


def get_graph_status() -> str:
    """Check graph store connectivity."""
    try:
        get_graph_store().verify_connectivity()
    except GraphStoreError as e:
        logger.debug(f"Graph check failed: {e}")
        return "unavailable"
    return "ok"


def overall_status(services: dict[str, str]) -> str:
    # Writes still commit while the graph is down, so that only degrades
    if all(s == "ok" for s in services.values()):
        return "healthy"
    if services.get("database") != "ok":
        return "unhealthy"
    return "degraded"


@router.get("/health", response_model=HealthResponse, tags=["health"])
def health_check() -> HealthResponse:
    """Health check endpoint.

    Returns the status of:
    - database: SQLite record store (source of truth)
    - graph: Neo4j graph store (derived)
    """
    services = {
        "database": get_db_status(get_container().get_config().db_path),
        "graph": get_graph_status(),
    }
    return HealthResponse(status=overall_status(services), services=services)
