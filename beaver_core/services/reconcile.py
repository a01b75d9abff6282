"""Sync, validate and repair as one reconciliation entry point.

Used by the background job worker and by ``beaver reconcile``. Running
``reconcile`` periodically bounds how long the graph can stay behind the
record store after a best-effort sync failure.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from beaver_core.config import BeaverConfig
from beaver_core.models.types import EntityType
from beaver_core.storage.graph_store import GraphStore
from beaver_core.storage.job_queue import JobQueue
from beaver_core.storage.sqlite_store import RecordStore
from beaver_core.sync.repair import IntegrityRepair
from beaver_core.sync.synchronizer import FULL_SYNC_ORDER, EntitySynchronizer
from beaver_core.sync.validator import IntegrityValidator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class Reconciler:
    """Run one sync/integrity operation against a store pair."""

    def __init__(
        self,
        store: RecordStore,
        graph: GraphStore,
        config: BeaverConfig,
        cancel_event: threading.Event | None = None,
        fail_fast: bool = False,
    ) -> None:
        self.synchronizer = EntitySynchronizer(store, graph, cancel_event=cancel_event)
        self.validator = IntegrityValidator(store, graph, detect_stale=config.detect_stale)
        self.repairer = IntegrityRepair(
            store,
            graph,
            synchronizer=self.synchronizer,
            validator=self.validator,
            fail_fast=fail_fast,
        )

    def sync(self, entity: str | None = None, on_progress: ProgressCallback | None = None) -> dict[str, Any]:
        if entity is not None:
            stats = self.synchronizer.sync_type(EntityType(entity))
            return {"synced": [stats.to_dict()]}

        synced = []
        for index, entity_type in enumerate(FULL_SYNC_ORDER, start=1):
            synced.append(self.synchronizer.sync_type(entity_type).to_dict())
            if on_progress is not None:
                on_progress(int(index * 100 / len(FULL_SYNC_ORDER)))
        return {"synced": synced}

    def validate(self) -> dict[str, Any]:
        return {"validation": self.validator.validate().to_dict()}

    def repair(self) -> dict[str, Any]:
        return {"repair": self.repairer.repair().to_dict()}

    def reconcile(self) -> dict[str, Any]:
        """Validate, and repair only when something is off."""
        report = self.validator.validate()
        result: dict[str, Any] = {"validation": report.to_dict()}
        if not report.valid:
            result["repair"] = self.repairer.repair(report).to_dict()
        return result

    def run(
        self,
        mode: str,
        entity: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        if mode == "sync":
            return self.sync(entity, on_progress)
        if mode == "validate":
            return self.validate()
        if mode == "repair":
            return self.repair()
        if mode == "reconcile":
            return self.reconcile()
        raise ValueError(f"Unknown mode: {mode}")


def execute_job(
    queue: JobQueue,
    job_id: str,
    store: RecordStore,
    graph: GraphStore,
    config: BeaverConfig,
) -> None:
    """Acquire a pending job, run it, and store its result.

    Failures are recorded on the job by ``acquire_job`` and re-raised.
    """
    with queue.acquire_job(job_id) as job:
        reconciler = Reconciler(store, graph, config, cancel_event=queue.cancel_event(job_id))
        result = reconciler.run(
            job.mode,
            entity=job.entity,
            on_progress=lambda pct: queue.update_job_status(job_id, progress=pct),
        )
        queue.update_job_status(job_id, result=result)
