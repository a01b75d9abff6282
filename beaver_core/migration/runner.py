"""Sequenced v2 migration: backup, schema, data, sync, references, extended sync.

Required steps abort the run when they fail. Best-effort steps log a
warning and let the run continue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from beaver_core.config import BeaverConfig
from beaver_core.migration.backup import backup_database, cleanup_old_backups
from beaver_core.migration.data import run_data_migration, update_references
from beaver_core.storage.graph_store import GraphStore
from beaver_core.storage.sqlite_store import RecordStore
from beaver_core.sync.repair import IntegrityRepair
from beaver_core.sync.synchronizer import EntitySynchronizer
from beaver_core.sync.validator import IntegrityValidator

logger = logging.getLogger(__name__)


@dataclass
class MigrationStep:
    name: str
    run: Callable[[], Any]
    required: bool = True


@dataclass
class StepResult:
    name: str
    status: str
    detail: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status, "detail": self.detail, "error": self.error}


@dataclass
class MigrationReport:
    success: bool = True
    steps: list[StepResult] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "steps": [step.to_dict() for step in self.steps]}


class MigrationRunner:
    """Run the v2 migration against one record store and graph."""

    def __init__(
        self,
        config: BeaverConfig,
        store: RecordStore,
        graph: GraphStore,
    ) -> None:
        self.config = config
        self.store = store
        self.graph = graph
        self.synchronizer = EntitySynchronizer(store, graph)
        self.validator = IntegrityValidator(store, graph, detect_stale=config.detect_stale)
        self.repair = IntegrityRepair(
            store, graph, synchronizer=self.synchronizer, validator=self.validator
        )

    def steps(self) -> list[MigrationStep]:
        return [
            MigrationStep("backup", self._backup),
            MigrationStep("schema", self.store.ensure_schema),
            MigrationStep("data", lambda: run_data_migration(self.store)),
            MigrationStep("sync", self._sync),
            MigrationStep("references", lambda: update_references(self.store), required=False),
            MigrationStep("extended_sync", self._extended_sync, required=False),
        ]

    def run(self) -> MigrationReport:
        report = MigrationReport()

        for step in self.steps():
            logger.info(
                f"Migration step '{step.name}' started",
                extra={"event": "migration_step_start", "step": step.name},
            )
            try:
                detail = step.run()
            except Exception as e:
                if step.required:
                    logger.error(
                        f"Migration step '{step.name}' failed, aborting: {e}",
                        extra={"event": "migration_step_failed", "step": step.name, "error": str(e)},
                    )
                    report.steps.append(StepResult(step.name, "failed", error=str(e)))
                    report.success = False
                    break
                logger.warning(
                    f"Migration step '{step.name}' failed, continuing: {e}",
                    extra={"event": "migration_step_warning", "step": step.name, "error": str(e)},
                )
                report.steps.append(StepResult(step.name, "warning", error=str(e)))
                continue

            report.steps.append(StepResult(step.name, "success", detail=detail))

        logger.info(
            f"Migration {'completed' if report.success else 'aborted'}",
            extra={"event": "migration_finished", "success": report.success},
        )
        return report

    def _backup(self) -> dict[str, Any]:
        path = backup_database(self.store, self.config.backup_dir)
        removed = cleanup_old_backups(self.config.backup_dir, self.config.backup_keep)
        return {"backup": path, "removed": removed}

    def _sync(self) -> list[dict[str, Any]]:
        return [stats.to_dict() for stats in self.synchronizer.sync_all()]

    def _extended_sync(self) -> dict[str, Any]:
        self.synchronizer.sync_all()
        report = self.validator.validate()
        result: dict[str, Any] = {"validation": report.to_dict()}
        if not report.valid:
            result["repair"] = self.repair.repair(report).to_dict()
        return result
