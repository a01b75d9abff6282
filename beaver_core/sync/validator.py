"""Compare the record store against the graph.

The validator only reads. Connectivity failures propagate; everything
it finds is reported as a :class:`Discrepancy`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from beaver_core.models.types import (
    ENTITY_TABLES,
    NODE_LABELS,
    Discrepancy,
    IntegrityCheck,
    NodeLabel,
    RelType,
    ValidationReport,
)
from beaver_core.storage.graph_store import GraphSession, GraphStore
from beaver_core.storage.sqlite_store import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountCheck:
    """A relational count paired with the graph count that should match it."""

    check: IntegrityCheck
    relational: Callable[[RecordStore], int]
    graph: Callable[[GraphSession], int]


def _rows(table: str) -> Callable[[RecordStore], int]:
    return lambda store: store.count_rows(table)


def _nodes(label: NodeLabel) -> Callable[[GraphSession], int]:
    return lambda session: session.count_nodes(label)


def _rels(rel_type: RelType) -> Callable[[GraphSession], int]:
    return lambda session: session.count_relationships(rel_type)


COUNT_CHECKS: tuple[CountCheck, ...] = (
    CountCheck(IntegrityCheck.USERS, _rows("users"), _nodes(NodeLabel.USER)),
    CountCheck(IntegrityCheck.ENVIRONMENTS, _rows("environments"), _nodes(NodeLabel.ENVIRONMENT)),
    CountCheck(IntegrityCheck.COMPONENTS, _rows("components"), _nodes(NodeLabel.COMPONENT)),
    CountCheck(IntegrityCheck.TEAMS, _rows("teams"), _nodes(NodeLabel.TEAM)),
    CountCheck(
        IntegrityCheck.COMPONENT_TEAMS,
        lambda store: store.count_components_with_team(),
        _rels(RelType.MANAGED_BY),
    ),
    CountCheck(IntegrityCheck.ADRS, _rows("adrs"), _nodes(NodeLabel.ADR)),
    CountCheck(
        IntegrityCheck.COMPONENT_INSTANCES,
        _rows("component_instances"),
        _nodes(NodeLabel.COMPONENT_INSTANCE),
    ),
    CountCheck(IntegrityCheck.ADR_PARTICIPANTS, _rows("adr_participants"), _rels(RelType.PARTICIPATES_IN)),
    CountCheck(
        IntegrityCheck.ADR_COMPONENT_INSTANCES,
        _rows("adr_component_instances"),
        _rels(RelType.AFFECTS_INSTANCE),
    ),
    CountCheck(IntegrityCheck.ADR_COMPONENTS, _rows("adr_components"), _rels(RelType.AFFECTS)),
)


def expected_relationship_pairs(store: RecordStore) -> dict[RelType, set[tuple[int, int]]]:
    """(start id, end id) pairs the graph should hold for each relationship type."""
    return {
        RelType.MANAGED_BY: {
            (row["id"], row["team_id"])
            for row in store.query("SELECT id, team_id FROM components WHERE team_id IS NOT NULL")
        },
        RelType.INSTANTIATES: {
            (row["component_id"], row["id"])
            for row in store.query("SELECT id, component_id FROM component_instances")
        },
        RelType.DEPLOYED_IN: {
            (row["id"], row["environment_id"])
            for row in store.query("SELECT id, environment_id FROM component_instances")
        },
        RelType.PARTICIPATES_IN: {
            (row["user_id"], row["adr_id"])
            for row in store.query("SELECT user_id, adr_id FROM adr_participants")
        },
        RelType.AFFECTS_INSTANCE: {
            (row["adr_id"], row["instance_id"])
            for row in store.query("SELECT adr_id, instance_id FROM adr_component_instances")
        },
        RelType.AFFECTS: {
            (row["adr_id"], row["component_id"])
            for row in store.query("SELECT adr_id, component_id FROM adr_components")
        },
    }


def find_stale_nodes(store: RecordStore, session: GraphSession) -> dict[str, list[int]]:
    """Graph node ids, per label, that have no relational row."""
    stale: dict[str, list[int]] = {}
    for entity_type, label in NODE_LABELS.items():
        extra_ids = session.node_ids(label) - store.list_ids(ENTITY_TABLES[entity_type])
        if extra_ids:
            stale[label.value] = sorted(extra_ids)
    return stale


def find_stale_relationships(store: RecordStore, session: GraphSession) -> dict[str, list[list[int]]]:
    """Graph relationships, per type, whose endpoint pair has no relational counterpart."""
    stale: dict[str, list[list[int]]] = {}
    for rel_type, expected in expected_relationship_pairs(store).items():
        extra_pairs = session.relationship_pairs(rel_type) - expected
        if extra_pairs:
            stale[rel_type.value] = [list(pair) for pair in sorted(extra_pairs)]
    return stale


class IntegrityValidator:
    """Read-only comparison of the two stores.

    Args:
        store: Record store (source of truth)
        graph: Graph store (derived)
        detect_stale: Also report graph nodes and relationships that have
            no relational row. Count checks alone cannot see these when a
            missing row is offset by an extra one.
    """

    def __init__(self, store: RecordStore, graph: GraphStore, detect_stale: bool = True) -> None:
        self.store = store
        self.graph = graph
        self.detect_stale = detect_stale

    def validate(self) -> ValidationReport:
        discrepancies: list[Discrepancy] = []
        counts_relational: dict[str, int] = {}
        counts_graph: dict[str, int] = {}

        with self.graph.session() as session:
            for count_check in COUNT_CHECKS:
                relational = count_check.relational(self.store)
                graph = count_check.graph(session)
                counts_relational[count_check.check.value] = relational
                counts_graph[count_check.check.value] = graph
                if relational != graph:
                    discrepancies.append(
                        Discrepancy(
                            check=count_check.check,
                            relational=relational,
                            graph=graph,
                            difference=relational - graph,
                        )
                    )

            orphans = session.find_orphaned_instances()
            if orphans:
                discrepancies.append(
                    Discrepancy(
                        check=IntegrityCheck.ORPHANED_INSTANCES,
                        count=len(orphans),
                        description="ComponentInstance nodes without an INSTANTIATES or DEPLOYED_IN relationship",
                        details={"ids": orphans},
                    )
                )

            if self.detect_stale:
                discrepancies.extend(self._stale_discrepancies(session))

        report = ValidationReport(
            valid=not discrepancies,
            discrepancies=discrepancies,
            counts_relational=counts_relational,
            counts_graph=counts_graph,
        )
        self._log_report(report)
        return report

    def _stale_discrepancies(self, session: GraphSession) -> list[Discrepancy]:
        found: list[Discrepancy] = []

        stale_nodes = find_stale_nodes(self.store, session)
        if stale_nodes:
            found.append(
                Discrepancy(
                    check=IntegrityCheck.STALE_NODES,
                    count=sum(len(ids) for ids in stale_nodes.values()),
                    description="Graph nodes with no relational row",
                    details=stale_nodes,
                )
            )

        stale_rels = find_stale_relationships(self.store, session)
        if stale_rels:
            found.append(
                Discrepancy(
                    check=IntegrityCheck.STALE_RELATIONSHIPS,
                    count=sum(len(pairs) for pairs in stale_rels.values()),
                    description="Graph relationships with no relational counterpart",
                    details=stale_rels,
                )
            )

        return found

    def _log_report(self, report: ValidationReport) -> None:
        extra: dict[str, Any] = {
            "event": "integrity_validated",
            "valid": report.valid,
            "discrepancy_count": len(report.discrepancies),
        }
        if report.valid:
            logger.info("Integrity validation passed", extra=extra)
        else:
            logger.warning(
                f"Integrity validation found {len(report.discrepancies)} discrepancies: "
                f"{', '.join(d.entity for d in report.discrepancies)}",
                extra=extra,
            )
