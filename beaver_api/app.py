"""FastAPI application for the Beaver dual-store engine."""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from beaver_api.middleware import RequestContextMiddleware, TracingMiddleware, create_error_response
from beaver_api.routes.adrs import router as adrs_router
from beaver_api.routes.catalog import router as catalog_router
from beaver_api.routes.health import router as health_router
from beaver_api.routes.integrity import router as integrity_router
from beaver_api.routes.jobs import router as jobs_router
from beaver_api.routes.metrics import router as metrics_router
from beaver_api.routes.relations import router as relations_router
from beaver_core.container import get_container
from beaver_core.services.catalog import CatalogRuleError
from beaver_core.storage.graph_store import GraphStoreError, GraphUnavailableError
from beaver_core.storage.sqlite_store import (
    ConstraintViolationError,
    NotFoundError,
    OwnerInvariantError,
)
from beaver_core.sync.repair import RepairConfigurationError
from beaver_core.sync.synchronizer import GraphSyncError
from beaver_core.utils import setup_logging

# Get configuration from environment
BEAVER_LOG_LEVEL = os.environ.get("BEAVER_LOG_LEVEL", "INFO")
BEAVER_LOG_FORMAT = os.environ.get("BEAVER_LOG_FORMAT", "json") == "json"

# API versioning configuration
API_VERSION = os.environ.get("BEAVER_API_VERSION", "v1")

setup_logging(level=BEAVER_LOG_LEVEL, json_format=BEAVER_LOG_FORMAT)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events.

    Checks the configuration on startup and closes the graph driver on
    shutdown.
    """
    logger.info("Starting Beaver API server")

    config = get_container().get_config()
    for error in config.get_validation_errors():
        logger.warning(f"Configuration problem: {error}")
    if not Path(config.db_path).exists():
        logger.warning(f"Database not found: {config.db_path}")
    logger.info(f"Using database: {config.db_path}")

    yield

    logger.info("Shutting down Beaver API server")
    get_container().clear()


app = FastAPI(
    title="Beaver",
    description="Relational catalogue with a synchronized Neo4j graph",
    version="0.2.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(TracingMiddleware, service_name="beaver-api")

# Health check endpoint is unversioned (always available)
app.include_router(health_router, tags=["health"])

app.include_router(catalog_router, prefix=f"/api/{API_VERSION}", tags=["catalog"])
app.include_router(adrs_router, prefix=f"/api/{API_VERSION}", tags=["adrs"])
app.include_router(relations_router, prefix=f"/api/{API_VERSION}", tags=["relations"])
app.include_router(integrity_router, prefix=f"/api/{API_VERSION}", tags=["integrity"])
app.include_router(jobs_router, prefix=f"/api/{API_VERSION}", tags=["jobs"])
app.include_router(metrics_router, prefix=f"/api/{API_VERSION}", tags=["metrics"])


@app.get("/", tags=["root"])
async def root() -> dict[str, object]:
    """Root endpoint with API information."""
    return {
        "name": "Beaver API",
        "version": "0.2.0",
        "docs": "/docs",
        "api_version": API_VERSION,
        "endpoints": {
            "current": f"/api/{API_VERSION}",
            "health": "/health",
        },
    }


def _problem(request: Request, status_code: int, title: str, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return create_error_response(status_code=status_code, title=title, detail=str(exc), request_id=request_id)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with structured error responses."""
    request_id = getattr(request.state, "request_id", None)
    return create_error_response(
        status_code=exc.status_code,
        title=exc.detail or "HTTP Error",
        detail=exc.detail,
        request_id=request_id,
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _problem(request, 404, "Not Found", exc)


@app.exception_handler(ConstraintViolationError)
async def constraint_handler(request: Request, exc: ConstraintViolationError) -> JSONResponse:
    return _problem(request, 409, "Constraint Violation", exc)


@app.exception_handler(OwnerInvariantError)
async def owner_invariant_handler(request: Request, exc: OwnerInvariantError) -> JSONResponse:
    return _problem(request, 409, "ADR Owner Required", exc)


@app.exception_handler(CatalogRuleError)
async def catalog_rule_handler(request: Request, exc: CatalogRuleError) -> JSONResponse:
    return _problem(request, 409, "Catalog Rule Violation", exc)


@app.exception_handler(GraphSyncError)
async def graph_sync_handler(request: Request, exc: GraphSyncError) -> JSONResponse:
    # Strict policy: the relational write is committed, the graph is behind
    return _problem(request, 502, "Graph Sync Failed", exc)


@app.exception_handler(GraphUnavailableError)
async def graph_unavailable_handler(request: Request, exc: GraphUnavailableError) -> JSONResponse:
    return _problem(request, 503, "Graph Store Unavailable", exc)


@app.exception_handler(GraphStoreError)
async def graph_error_handler(request: Request, exc: GraphStoreError) -> JSONResponse:
    return _problem(request, 502, "Graph Store Error", exc)


@app.exception_handler(RepairConfigurationError)
async def repair_configuration_handler(request: Request, exc: RepairConfigurationError) -> JSONResponse:
    return _problem(request, 500, "Repair Misconfigured", exc)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _problem(request, 422, "Invalid Value", exc)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    request_id = getattr(request.state, "request_id", None)
    return create_error_response(
        status_code=500,
        title="Internal Server Error",
        detail=str(exc) if os.environ.get("BEAVER_DEBUG") else "An unexpected error occurred",
        request_id=request_id,
    )


def run_server(host: str = "0.0.0.0", port: int = 8080) -> None:
    """Run the FastAPI server with uvicorn.

    Args:
        host: Server host
        port: Server port
    """
    import uvicorn

    uvicorn.run(
        "beaver_api.app:app",
        host=host,
        port=port,
        reload=os.environ.get("BEAVER_RELOAD", "false").lower() == "true",
        log_config=None,  # Use our own logging configuration
    )


if __name__ == "__main__":
    run_server()
