"""API routes for Beaver."""

from beaver_api.routes import adrs, catalog, health, integrity, jobs, metrics, relations  # noqa: F401

__all__ = ["adrs", "catalog", "health", "integrity", "jobs", "metrics", "relations"]
