"""Self-healing for integrity discrepancies.

Every :class:`IntegrityCheck` maps to exactly one corrective action:
count mismatches re-run the matching sync routine, orphaned instances go
through the orphan fixer, and stale graph data is pruned before the rows it
stood in for are synced again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from beaver_core.models.types import (
    NODE_LABELS,
    REL_OWNERS,
    Correction,
    Discrepancy,
    EntityType,
    IntegrityCheck,
    NodeLabel,
    RelType,
    RepairAction,
    RepairReport,
    ValidationReport,
)
from beaver_core.storage.graph_store import GraphStore
from beaver_core.storage.sqlite_store import RecordStore
from beaver_core.sync.synchronizer import FULL_SYNC_ORDER, EntitySynchronizer, SyncCancelledError
from beaver_core.sync.validator import (
    IntegrityValidator,
    find_stale_nodes,
    find_stale_relationships,
)

logger = logging.getLogger(__name__)

ActionTable = dict[IntegrityCheck, tuple[RepairAction, Callable[[Discrepancy], Any]]]

_CHECK_ORDER = {check: index for index, check in enumerate(IntegrityCheck)}

LABEL_ENTITY_TYPES: dict[NodeLabel, EntityType] = {
    label: entity_type for entity_type, label in NODE_LABELS.items()
}

# Which routine restores each count check.
RESYNC_ROUTINES: dict[IntegrityCheck, EntityType] = {
    IntegrityCheck.USERS: EntityType.USER,
    IntegrityCheck.ENVIRONMENTS: EntityType.ENVIRONMENT,
    IntegrityCheck.COMPONENTS: EntityType.COMPONENT,
    IntegrityCheck.TEAMS: EntityType.TEAM,
    IntegrityCheck.COMPONENT_TEAMS: EntityType.TEAM,
    IntegrityCheck.ADRS: EntityType.ADR,
    IntegrityCheck.COMPONENT_INSTANCES: EntityType.COMPONENT_INSTANCE,
    IntegrityCheck.ADR_PARTICIPANTS: EntityType.ADR_PARTICIPANT,
    IntegrityCheck.ADR_COMPONENT_INSTANCES: EntityType.ADR_COMPONENT_INSTANCE,
    IntegrityCheck.ADR_COMPONENTS: EntityType.ADR_COMPONENT,
}


class RepairConfigurationError(Exception):
    """An integrity check has no corrective action."""


@dataclass
class OrphanFixResult:
    relinked: int = 0
    deleted: int = 0
    unresolved: int = 0


class OrphanFixer:
    """Relink or delete ComponentInstance nodes missing a structural relationship.

    An orphan whose relational row exists gets its INSTANTIATES and
    DEPLOYED_IN relationships merged again. An orphan with no row is
    detach-deleted.
    """

    def __init__(self, store: RecordStore, graph: GraphStore) -> None:
        self.store = store
        self.graph = graph

    def fix(self) -> OrphanFixResult:
        result = OrphanFixResult()

        with self.graph.session() as session:
            for instance_id in session.find_orphaned_instances():
                row = self.store.get_component_instance(instance_id)
                if row is None:
                    session.detach_delete_node(NodeLabel.COMPONENT_INSTANCE, instance_id)
                    result.deleted += 1
                    continue

                instantiated = session.merge_relationship(
                    RelType.INSTANTIATES, row["component_id"], instance_id
                )
                deployed = session.merge_relationship(
                    RelType.DEPLOYED_IN, instance_id, row["environment_id"]
                )
                if instantiated and deployed:
                    result.relinked += 1
                else:
                    result.unresolved += 1

        logger.info(
            f"Orphan fix: {result.relinked} relinked, {result.deleted} deleted, "
            f"{result.unresolved} unresolved",
            extra={
                "event": "orphans_fixed",
                "relinked": result.relinked,
                "deleted": result.deleted,
                "unresolved": result.unresolved,
            },
        )
        return result


class IntegrityRepair:
    """Validate, correct each discrepancy, then validate again.

    Args:
        store: Record store
        graph: Graph store
        synchronizer: Synchronizer used for resync actions
        validator: Validator used before and after correcting
        fail_fast: Propagate the first failing action instead of recording
            it as failed and continuing
    """

    def __init__(
        self,
        store: RecordStore,
        graph: GraphStore,
        synchronizer: EntitySynchronizer | None = None,
        validator: IntegrityValidator | None = None,
        fail_fast: bool = False,
    ) -> None:
        self.store = store
        self.graph = graph
        self.synchronizer = synchronizer or EntitySynchronizer(store, graph)
        self.validator = validator or IntegrityValidator(store, graph)
        self.orphan_fixer = OrphanFixer(store, graph)
        self.fail_fast = fail_fast

        self._actions = self._build_action_table()
        missing = [check.value for check in IntegrityCheck if check not in self._actions]
        if missing:
            raise RepairConfigurationError(f"No corrective action for: {', '.join(missing)}")

    def _build_action_table(self) -> ActionTable:
        table: ActionTable = {}
        for check, entity_type in RESYNC_ROUTINES.items():
            table[check] = (RepairAction.RESYNC, self._resync(entity_type))
        table[IntegrityCheck.ORPHANED_INSTANCES] = (
            RepairAction.FIX,
            lambda discrepancy: self.orphan_fixer.fix(),
        )
        table[IntegrityCheck.STALE_NODES] = (RepairAction.PRUNE, self._prune_stale_nodes)
        table[IntegrityCheck.STALE_RELATIONSHIPS] = (RepairAction.PRUNE, self._prune_stale_relationships)
        return table

    def _resync(self, entity_type: EntityType) -> Callable[[Discrepancy], Any]:
        return lambda discrepancy: self.synchronizer.sync_type(entity_type)

    def _prune_stale_nodes(self, discrepancy: Discrepancy) -> int:
        """Detach-delete stale nodes, then resync the types they were standing in for.

        A stale node can hide a missing one of the same label when the
        counts balance, so the owning routine runs even if no count check
        failed.
        """
        deleted = 0
        touched: set[EntityType] = set()
        with self.graph.session() as session:
            for label, ids in find_stale_nodes(self.store, session).items():
                touched.add(LABEL_ENTITY_TYPES[NodeLabel(label)])
                for node_id in ids:
                    deleted += session.detach_delete_node(NodeLabel(label), node_id)
        logger.info(
            f"Pruned {deleted} stale graph nodes",
            extra={"event": "stale_nodes_pruned", "deleted": deleted},
        )
        self._resync_owners(touched)
        return deleted

    def _prune_stale_relationships(self, discrepancy: Discrepancy) -> int:
        """Delete stale relationships, then resync the rows that imply their type.

        A relationship left behind by a team change or an instance move is
        replaced by the one the current row implies.
        """
        deleted = 0
        touched: set[EntityType] = set()
        with self.graph.session() as session:
            for rel_type, pairs in find_stale_relationships(self.store, session).items():
                touched.add(REL_OWNERS[RelType(rel_type)])
                for start_id, end_id in pairs:
                    deleted += session.delete_relationship(RelType(rel_type), start_id, end_id)
        logger.info(
            f"Pruned {deleted} stale graph relationships",
            extra={"event": "stale_relationships_pruned", "deleted": deleted},
        )
        self._resync_owners(touched)
        return deleted

    def _resync_owners(self, entity_types: set[EntityType]) -> None:
        for entity_type in FULL_SYNC_ORDER:
            if entity_type in entity_types:
                self.synchronizer.sync_type(entity_type)

    def repair(self, report: ValidationReport | None = None) -> RepairReport:
        """Correct every discrepancy in ``report`` (validating first if not given).

        A consistent system returns immediately without any write.
        """
        if report is None:
            report = self.validator.validate()

        if report.valid:
            logger.info("No integrity issues to repair", extra={"event": "repair_noop"})
            return RepairReport(fixed=True, corrections=[], final_report=report)

        corrections: list[Correction] = []
        for discrepancy in sorted(report.discrepancies, key=lambda d: _CHECK_ORDER[d.check]):
            corrections.append(self._apply(discrepancy))

        final_report = self.validator.validate()
        failed = [c for c in corrections if c.status == "failed"]
        logger.info(
            f"Repair finished: fixed={final_report.valid}, {len(corrections)} actions, {len(failed)} failed",
            extra={
                "event": "repair_complete",
                "fixed": final_report.valid,
                "actions": len(corrections),
                "failed": len(failed),
            },
        )
        return RepairReport(fixed=final_report.valid, corrections=corrections, final_report=final_report)

    def _apply(self, discrepancy: Discrepancy) -> Correction:
        action, run = self._actions[discrepancy.check]
        correction = Correction(entity=discrepancy.entity, action=action)

        try:
            run(discrepancy)
        except SyncCancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Corrective {action.value} for {discrepancy.entity} failed: {e}",
                extra={
                    "event": "repair_action_failed",
                    "entity": discrepancy.entity,
                    "action": action.value,
                    "error": str(e),
                },
            )
            if self.fail_fast:
                raise
            correction.status = "failed"
            correction.error = str(e)

        return correction
