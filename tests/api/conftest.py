"""Configuration and fixtures for API tests."""

import time

import pytest

from beaver_api.metrics import get_metrics_collector
from beaver_core.container import get_container, reset_container
from beaver_core.storage.job_queue import reset_job_queue
from beaver_core.storage.sqlite_store import RecordStore

API = "/api/v1"


@pytest.fixture(autouse=True)
def reset_api_state():
    """Reset the DI container, job queue and metrics between tests."""
    reset_container()
    reset_job_queue()
    get_metrics_collector().reset()
    yield
    reset_container()
    reset_job_queue()
    get_metrics_collector().reset()


@pytest.fixture
def api_client(db_path, graph, monkeypatch):
    """Create a test API client backed by a temporary database and the in-memory graph."""
    from fastapi.testclient import TestClient

    monkeypatch.setenv("BEAVER_DB_PATH", db_path)
    monkeypatch.setenv("BEAVER_LOG_LEVEL", "WARNING")
    monkeypatch.delenv("BEAVER_SYNC_POLICY", raising=False)

    # Initialize the database with schema
    RecordStore(db_path).close()
    get_container().register_instance("graph_store", graph)

    from beaver_api.app import app

    return TestClient(app)


@pytest.fixture
def wait_for_job(api_client):
    """Poll a job until it leaves the pending and running states."""

    def wait(job_id: str, timeout: float = 5.0) -> dict:
        deadline = time.time() + timeout
        while time.time() < deadline:
            job = api_client.get(f"{API}/jobs/{job_id}").json()
            if job["status"] not in ("pending", "running"):
                return job
            time.sleep(0.05)
        raise AssertionError(f"Job {job_id} did not finish within {timeout}s")

    return wait
