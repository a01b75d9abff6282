"""Push record store rows into the graph.

Each full-table routine reads every row of one entity type and upserts
its graph counterpart. Routines are idempotent and never delete: stale
graph data is the integrity repair's concern. Targeted sync upserts or
removes the counterpart of a single row.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable

from beaver_core.models.types import (
    ENTITY_TABLES,
    NODE_LABELS,
    VALID_TO_OPEN,
    EntityType,
    NodeLabel,
    RelType,
    SyncStats,
)
from beaver_core.storage.graph_store import GraphSession, GraphStore
from beaver_core.storage.sqlite_store import NotFoundError, RecordStore

logger = logging.getLogger(__name__)

# Dependency order: every node a relationship needs is written first.
FULL_SYNC_ORDER = (
    EntityType.USER,
    EntityType.ENVIRONMENT,
    EntityType.COMPONENT,
    EntityType.TEAM,
    EntityType.ADR,
    EntityType.COMPONENT_INSTANCE,
    EntityType.ADR_PARTICIPANT,
    EntityType.ADR_COMPONENT_INSTANCE,
    EntityType.ADR_COMPONENT,
)

RelKey = tuple[RelType, int, int]
Upsert = Callable[[GraphSession, dict[str, Any], SyncStats], None]


class SyncError(Exception):
    """Base error for synchronization."""


class GraphSyncError(SyncError):
    """A targeted graph sync failed under the strict policy."""


class SyncCancelledError(SyncError):
    """A sync was cancelled between rows."""


def implied_relationships(entity_type: EntityType, row: dict[str, Any]) -> set[RelKey]:
    """Graph relationships whose existence follows from one relational row."""
    if entity_type == EntityType.COMPONENT:
        if row.get("team_id") is None:
            return set()
        return {(RelType.MANAGED_BY, row["id"], row["team_id"])}
    if entity_type == EntityType.COMPONENT_INSTANCE:
        return {
            (RelType.INSTANTIATES, row["component_id"], row["id"]),
            (RelType.DEPLOYED_IN, row["id"], row["environment_id"]),
        }
    if entity_type == EntityType.ADR_PARTICIPANT:
        return {(RelType.PARTICIPATES_IN, row["user_id"], row["adr_id"])}
    if entity_type == EntityType.ADR_COMPONENT_INSTANCE:
        return {(RelType.AFFECTS_INSTANCE, row["adr_id"], row["instance_id"])}
    if entity_type == EntityType.ADR_COMPONENT:
        return {(RelType.AFFECTS, row["adr_id"], row["component_id"])}
    return set()


class EntitySynchronizer:
    """Relational → graph synchronizer.

    Args:
        store: Record store to read from
        graph: Graph store to write to
        cancel_event: Optional event; when set, the running routine stops
            before its next row and raises SyncCancelledError
    """

    def __init__(
        self,
        store: RecordStore,
        graph: GraphStore,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.store = store
        self.graph = graph
        self.cancel_event = cancel_event

        self._routines: dict[EntityType, tuple[Callable[[], list[dict[str, Any]]], Upsert]] = {
            EntityType.ENVIRONMENT: (store.list_environments, self._upsert_environment),
            EntityType.TEAM: (store.list_teams, self._upsert_team),
            EntityType.USER: (store.list_users, self._upsert_user),
            EntityType.COMPONENT: (store.list_components, self._upsert_component),
            EntityType.ADR: (store.list_adrs, self._upsert_adr),
            EntityType.COMPONENT_INSTANCE: (
                store.list_component_instances, self._upsert_component_instance
            ),
            EntityType.ADR_PARTICIPANT: (store.list_participants, self._upsert_adr_participant),
            EntityType.ADR_COMPONENT_INSTANCE: (
                store.list_adr_component_instances, self._upsert_adr_component_instance
            ),
            EntityType.ADR_COMPONENT: (store.list_adr_components, self._upsert_adr_component),
        }
        self._fetchers: dict[EntityType, Callable[[int], dict[str, Any] | None]] = {
            EntityType.ENVIRONMENT: store.get_environment,
            EntityType.TEAM: store.get_team,
            EntityType.USER: store.get_user,
            EntityType.COMPONENT: store.get_component,
            EntityType.ADR: store.get_adr,
            EntityType.COMPONENT_INSTANCE: store.get_component_instance,
            EntityType.ADR_PARTICIPANT: store.get_participant,
            EntityType.ADR_COMPONENT_INSTANCE: store.get_adr_component_instance,
            EntityType.ADR_COMPONENT: store.get_adr_component,
        }

    # ========================
    # Full-table routines
    # ========================

    def sync_all(self) -> list[SyncStats]:
        """Run every routine in dependency order."""
        logger.info("Starting full sync", extra={"event": "full_sync_start"})
        results = [self.sync_type(entity_type) for entity_type in FULL_SYNC_ORDER]
        logger.info(
            "Full sync completed",
            extra={
                "event": "full_sync_complete",
                "rows": sum(stats.rows for stats in results),
            },
        )
        return results

    def sync_type(self, entity_type: EntityType) -> SyncStats:
        """Full-table sync of one entity type.

        The graph session is released before any error propagates.
        """
        entity_type = EntityType(entity_type)
        load_rows, upsert = self._routines[entity_type]
        stats = SyncStats(entity=entity_type)

        try:
            with self.graph.session() as session:
                rows = load_rows()
                logger.info(
                    f"Syncing {len(rows)} {entity_type.value} records",
                    extra={"event": "sync_start", "entity": entity_type.value, "rows": len(rows)},
                )
                for row in rows:
                    self._check_cancelled()
                    upsert(session, row, stats)
                    stats.rows += 1
        except SyncCancelledError:
            logger.warning(
                f"Sync of {entity_type.value} cancelled after {stats.rows} rows",
                extra={"event": "sync_cancelled", "entity": entity_type.value},
            )
            raise
        except Exception as e:
            logger.error(
                f"Sync of {entity_type.value} failed: {e}",
                extra={"event": "sync_failed", "entity": entity_type.value, "error": str(e)},
            )
            raise

        logger.info(
            f"Synced {stats.rows} {entity_type.value} records",
            extra={"event": "sync_complete", **stats.to_dict()},
        )
        return stats

    def sync_environments(self) -> SyncStats:
        return self.sync_type(EntityType.ENVIRONMENT)

    def sync_teams(self) -> SyncStats:
        return self.sync_type(EntityType.TEAM)

    def sync_users(self) -> SyncStats:
        return self.sync_type(EntityType.USER)

    def sync_components(self) -> SyncStats:
        return self.sync_type(EntityType.COMPONENT)

    def sync_adrs(self) -> SyncStats:
        return self.sync_type(EntityType.ADR)

    def sync_component_instances(self) -> SyncStats:
        return self.sync_type(EntityType.COMPONENT_INSTANCE)

    def sync_adr_participants(self) -> SyncStats:
        return self.sync_type(EntityType.ADR_PARTICIPANT)

    def sync_adr_component_instances(self) -> SyncStats:
        return self.sync_type(EntityType.ADR_COMPONENT_INSTANCE)

    def sync_adr_components(self) -> SyncStats:
        return self.sync_type(EntityType.ADR_COMPONENT)

    # ========================
    # Targeted sync
    # ========================

    def sync_entity(
        self,
        entity_type: EntityType,
        entity_id: int,
        previous: dict[str, Any] | None = None,
    ) -> SyncStats:
        """Upsert the graph counterpart of one row.

        Args:
            entity_type: Type of the row
            entity_id: Relational id of the row
            previous: Row snapshot before an update. Relationships it implied
                that the current row no longer implies are deleted.

        Raises:
            NotFoundError: If the row does not exist
        """
        entity_type = EntityType(entity_type)
        row = self._fetchers[entity_type](entity_id)
        if row is None:
            raise NotFoundError(ENTITY_TABLES[entity_type], entity_id)

        _, upsert = self._routines[entity_type]
        stats = SyncStats(entity=entity_type)
        with self.graph.session() as session:
            if previous is not None:
                retracted = implied_relationships(entity_type, previous) - implied_relationships(entity_type, row)
                for rel_type, start_id, end_id in sorted(retracted):
                    session.delete_relationship(rel_type, start_id, end_id)
            upsert(session, row, stats)
            stats.rows = 1
        return stats

    def remove_entity(
        self,
        entity_type: EntityType,
        entity_id: int,
        snapshot: dict[str, Any] | None = None,
    ) -> None:
        """Remove the graph counterpart of a deleted row.

        Node-modeled types are detach-deleted by id. Relationship-modeled
        types are deleted by the endpoint pair in ``snapshot``.
        """
        entity_type = EntityType(entity_type)
        label = NODE_LABELS.get(entity_type)
        if label is None and snapshot is None:
            raise ValueError(f"Removing a {entity_type.value} requires its pre-delete snapshot")

        with self.graph.session() as session:
            if label is not None:
                session.detach_delete_node(label, entity_id)
            else:
                for rel_type, start_id, end_id in sorted(implied_relationships(entity_type, snapshot)):
                    session.delete_relationship(rel_type, start_id, end_id)

        logger.debug(
            f"Removed graph counterpart of {entity_type.value} {entity_id}",
            extra={"event": "graph_remove", "entity": entity_type.value, "id": entity_id},
        )

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SyncCancelledError("Sync cancelled")

    # ========================
    # Per-row upserts
    # ========================

    def _upsert_environment(self, session: GraphSession, row: dict[str, Any], stats: SyncStats) -> None:
        session.merge_node(
            NodeLabel.ENVIRONMENT,
            row["id"],
            {"name": row["name"], "description": row.get("description")},
            {"created_at": row.get("created_at")},
        )

    def _upsert_team(self, session: GraphSession, row: dict[str, Any], stats: SyncStats) -> None:
        session.merge_node(
            NodeLabel.TEAM,
            row["id"],
            {"name": row["name"], "description": row.get("description")},
            {"created_at": row.get("created_at")},
        )
        managed = self.store.query("SELECT id FROM components WHERE team_id = ? ORDER BY id", (row["id"],))
        for component in managed:
            if session.merge_relationship(RelType.MANAGED_BY, component["id"], row["id"]):
                stats.relationships += 1

    def _upsert_user(self, session: GraphSession, row: dict[str, Any], stats: SyncStats) -> None:
        session.merge_node(
            NodeLabel.USER,
            row["id"],
            {"username": row["username"], "email": row.get("email"), "role": row["role"]},
            {"created_at": row.get("created_at")},
        )

    def _upsert_component(self, session: GraphSession, row: dict[str, Any], stats: SyncStats) -> None:
        session.merge_node(
            NodeLabel.COMPONENT,
            row["id"],
            {"name": row["name"], "description": row.get("description"), "status": row["status"]},
            {
                "created_at": row.get("created_at"),
                "valid_from": row.get("created_at"),
                "valid_to": VALID_TO_OPEN,
            },
        )
        if row.get("team_id") is not None:
            if session.merge_relationship(RelType.MANAGED_BY, row["id"], row["team_id"]):
                stats.relationships += 1

    def _upsert_adr(self, session: GraphSession, row: dict[str, Any], stats: SyncStats) -> None:
        session.merge_node(
            NodeLabel.ADR,
            row["id"],
            {"title": row["title"], "description": row.get("description"), "status": row["status"]},
            {"created_at": row.get("created_at")},
        )

    def _upsert_component_instance(self, session: GraphSession, row: dict[str, Any], stats: SyncStats) -> None:
        specs = row.get("specs")
        session.merge_node(
            NodeLabel.COMPONENT_INSTANCE,
            row["id"],
            {
                "hostname": row.get("hostname"),
                "specs": json.dumps(specs) if specs is not None else None,
            },
            {"created_at": row.get("created_at")},
        )
        if session.merge_relationship(RelType.INSTANTIATES, row["component_id"], row["id"]):
            stats.relationships += 1
        if session.merge_relationship(RelType.DEPLOYED_IN, row["id"], row["environment_id"]):
            stats.relationships += 1

    def _upsert_adr_participant(self, session: GraphSession, row: dict[str, Any], stats: SyncStats) -> None:
        if session.merge_relationship(
            RelType.PARTICIPATES_IN, row["user_id"], row["adr_id"], {"role": row["role"]}
        ):
            stats.relationships += 1

    def _upsert_adr_component_instance(self, session: GraphSession, row: dict[str, Any], stats: SyncStats) -> None:
        """Link an ADR to an instance and derive the ADR→component link.

        The first impact on any instance of a component also records the
        ADRComponent row relationally and adds the AFFECTS relationship.
        """
        if session.merge_relationship(
            RelType.AFFECTS_INSTANCE,
            row["adr_id"],
            row["instance_id"],
            {"impact_level": row["impact_level"], "notes": row.get("notes")},
        ):
            stats.relationships += 1

        _, created = self.store.ensure_adr_component(row["adr_id"], row["component_id"])
        if created:
            stats.derived += 1
            logger.info(
                f"Derived ADR component link adr={row['adr_id']} component={row['component_id']}",
                extra={
                    "event": "adr_component_derived",
                    "adr_id": row["adr_id"],
                    "component_id": row["component_id"],
                },
            )
            if session.merge_relationship(RelType.AFFECTS, row["adr_id"], row["component_id"]):
                stats.relationships += 1

    def _upsert_adr_component(self, session: GraphSession, row: dict[str, Any], stats: SyncStats) -> None:
        if session.merge_relationship(RelType.AFFECTS, row["adr_id"], row["component_id"]):
            stats.relationships += 1
