"""Tests for the Reconciler entry point and background job execution."""

import pytest

from beaver_core.config import BeaverConfig
from beaver_core.models.types import NodeLabel
from beaver_core.services.reconcile import Reconciler, execute_job
from beaver_core.storage.graph_store import GraphStoreError
from beaver_core.storage.job_queue import JobQueue
from beaver_core.storage.sqlite_store import RecordStore


@pytest.fixture
def config(db_path: str) -> BeaverConfig:
    return BeaverConfig(db_path=db_path)


@pytest.fixture
def reconciler(store: RecordStore, graph, config: BeaverConfig) -> Reconciler:
    return Reconciler(store, graph, config)


class TestModes:
    def test_sync_reports_progress(self, reconciler: Reconciler, graph, catalog):
        progress = []

        result = reconciler.sync(on_progress=progress.append)

        assert len(result["synced"]) == 9
        assert result["synced"][0]["entity"] == "user"
        assert progress[-1] == 100
        assert progress == sorted(progress)
        assert graph.has_node(NodeLabel.ADR, catalog["adr"]["id"])

    def test_sync_single_entity(self, reconciler: Reconciler, graph, catalog):
        result = reconciler.run("sync", entity="team")

        assert result == {"synced": [{"entity": "team", "rows": 1, "relationships": 0, "derived": 0}]}
        assert graph.has_node(NodeLabel.TEAM, catalog["team"]["id"])

    def test_validate_does_not_repair(self, reconciler: Reconciler, graph, catalog):
        result = reconciler.run("validate")

        assert result["validation"]["valid"] is False
        assert graph.nodes == {}

    def test_reconcile_repairs_when_invalid(self, reconciler: Reconciler, catalog):
        result = reconciler.run("reconcile")

        assert result["validation"]["valid"] is False
        assert result["repair"]["fixed"] is True

    def test_reconcile_skips_repair_when_valid(self, reconciler: Reconciler, catalog):
        reconciler.sync()

        result = reconciler.run("reconcile")

        assert result["validation"]["valid"] is True
        assert "repair" not in result

    def test_repair_mode(self, reconciler: Reconciler, catalog):
        assert reconciler.run("repair")["repair"]["fixed"] is True

    def test_unknown_mode(self, reconciler: Reconciler):
        with pytest.raises(ValueError):
            reconciler.run("rebuild")

    def test_detect_stale_follows_config(self, store: RecordStore, graph, db_path: str):
        reconciler = Reconciler(store, graph, BeaverConfig(db_path=db_path, detect_stale=False))

        assert reconciler.validator.detect_stale is False


class TestExecuteJob:
    def test_job_result_stored(self, store: RecordStore, graph, config: BeaverConfig, catalog):
        queue = JobQueue(store)
        job = queue.create_job("reconcile")

        execute_job(queue, job.job_id, store, graph, config)

        done = queue.get_job(job.job_id)
        assert done.status == "complete"
        assert done.result["repair"]["fixed"] is True

    def test_sync_job_progress(self, store: RecordStore, graph, config: BeaverConfig, catalog):
        queue = JobQueue(store)
        job = queue.create_job("sync")

        execute_job(queue, job.job_id, store, graph, config)

        done = queue.get_job(job.job_id)
        assert done.progress == 100
        assert len(done.result["synced"]) == 9

    def test_graph_failure_marks_job_failed(self, store: RecordStore, graph, config: BeaverConfig, catalog):
        queue = JobQueue(store)
        job = queue.create_job("sync")
        graph.fail_writes = True

        with pytest.raises(GraphStoreError):
            execute_job(queue, job.job_id, store, graph, config)

        assert queue.get_job(job.job_id).status == "failed"
