"""Unit tests for IntegrityRepair and OrphanFixer."""

from unittest.mock import MagicMock

import pytest

from beaver_core.models.types import (
    Discrepancy,
    IntegrityCheck,
    NodeLabel,
    RelType,
    RepairAction,
    ValidationReport,
)
from beaver_core.storage.graph_store import GraphStoreError
from beaver_core.storage.sqlite_store import RecordStore
from beaver_core.sync.repair import RESYNC_ROUTINES, IntegrityRepair, OrphanFixer
from beaver_core.sync.synchronizer import EntitySynchronizer
from beaver_core.sync.validator import IntegrityValidator


class TestNoOp:
    def test_consistent_system_is_not_touched(self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog):
        synchronizer.sync_all()
        writes = graph.writes
        statements: list[str] = []
        store.conn.set_trace_callback(statements.append)

        report = IntegrityRepair(store, graph).repair()

        store.conn.set_trace_callback(None)
        assert report.fixed is True
        assert report.corrections == []
        assert graph.writes == writes
        assert [s for s in statements if s.lstrip().upper().startswith(("INSERT", "UPDATE", "DELETE"))] == []

    def test_valid_report_skips_every_action(self, store: RecordStore, graph):
        synchronizer = MagicMock(spec=EntitySynchronizer)
        validator = MagicMock(spec=IntegrityValidator)
        repair = IntegrityRepair(store, graph, synchronizer=synchronizer, validator=validator)

        report = repair.repair(ValidationReport(valid=True))

        assert report.fixed is True
        synchronizer.sync_type.assert_not_called()
        validator.validate.assert_not_called()


class TestConvergence:
    def test_empty_graph_is_rebuilt(self, store: RecordStore, graph, catalog):
        report = IntegrityRepair(store, graph).repair()

        assert report.fixed is True
        assert report.final_report.valid is True
        assert {c.entity for c in report.corrections} >= {"environments", "components", "componentInstances"}
        assert all(c.status == "success" for c in report.corrections)

    def test_environments_scenario(self, store: RecordStore, graph, synchronizer: EntitySynchronizer):
        for name in ("development", "homologation", "production", "dr", "lab"):
            store.create_environment(name)
        synchronizer.sync_environments()
        for env in store.list_environments()[3:]:
            del graph.nodes[(NodeLabel.ENVIRONMENT, env["id"])]

        validator = IntegrityValidator(store, graph)
        before = validator.validate()
        assert before.discrepancies[0].to_dict() == {
            "entity": "environments",
            "relational": 5,
            "graph": 3,
            "difference": 2,
        }

        report = IntegrityRepair(store, graph, validator=validator).repair(before)

        assert [c.to_dict() for c in report.corrections] == [
            {"entity": "environments", "action": "resync", "status": "success"}
        ]
        assert report.fixed is True
        assert len([key for key in graph.nodes if key[0] == NodeLabel.ENVIRONMENT]) == 5

    def test_stale_nodes_pruned(self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog):
        synchronizer.sync_all()
        graph.nodes[(NodeLabel.ENVIRONMENT, 999)] = {"id": 999, "name": "decommissioned"}

        report = IntegrityRepair(store, graph).repair()

        assert report.fixed is True
        assert not graph.has_node(NodeLabel.ENVIRONMENT, 999)
        actions = {c.entity: c.action for c in report.corrections}
        assert actions["staleNodes"] == RepairAction.PRUNE

    def test_stale_relationship_pruned(self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog):
        synchronizer.sync_all()
        graph.relationships[(RelType.MANAGED_BY, catalog["worker"]["id"], catalog["team"]["id"])] = {}

        report = IntegrityRepair(store, graph).repair()

        assert report.fixed is True
        assert not graph.has_relationship(RelType.MANAGED_BY, catalog["worker"]["id"], catalog["team"]["id"])

    def test_component_team_link_restored(self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog):
        synchronizer.sync_all()
        del graph.relationships[(RelType.MANAGED_BY, catalog["api"]["id"], catalog["team"]["id"])]

        report = IntegrityRepair(store, graph).repair()

        assert report.fixed is True
        assert graph.has_relationship(RelType.MANAGED_BY, catalog["api"]["id"], catalog["team"]["id"])

    def test_deleted_environment_row_is_pruned(self, store: RecordStore, graph, synchronizer: EntitySynchronizer):
        store.create_environment("development")
        production = store.create_environment("production")
        synchronizer.sync_all()
        validator = IntegrityValidator(store, graph)
        assert validator.validate().counts_graph["environments"] == 2

        store.execute("DELETE FROM environments WHERE id = ?", (production["id"],))
        before = validator.validate()

        assert before.discrepancies[0].to_dict() == {
            "entity": "environments",
            "relational": 1,
            "graph": 2,
            "difference": -1,
        }
        assert before.discrepancies[1].details == {"Environment": [production["id"]]}

        report = IntegrityRepair(store, graph, validator=validator).repair(before)

        assert [(c.entity, c.action) for c in report.corrections] == [
            ("environments", RepairAction.RESYNC),
            ("staleNodes", RepairAction.PRUNE),
        ]
        assert report.fixed is True
        assert not graph.has_node(NodeLabel.ENVIRONMENT, production["id"])


class TestStaleReplacement:
    def test_team_change_moves_link(self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog):
        synchronizer.sync_all()
        operations = store.create_team("Operations")
        store.update_component(catalog["api"]["id"], team_id=operations["id"])

        report = IntegrityRepair(store, graph).repair()

        assert report.fixed is True
        assert graph.has_relationship(RelType.MANAGED_BY, catalog["api"]["id"], operations["id"])
        assert not graph.has_relationship(RelType.MANAGED_BY, catalog["api"]["id"], catalog["team"]["id"])

    def test_instance_move_relinks_environment(self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog):
        synchronizer.sync_all()
        qa = store.create_environment("qa")
        instance_id = catalog["api_staging"]["id"]
        store.update_component_instance(instance_id, environment_id=qa["id"])

        report = IntegrityRepair(store, graph).repair()

        assert report.fixed is True
        assert graph.has_relationship(RelType.DEPLOYED_IN, instance_id, qa["id"])
        assert not graph.has_relationship(RelType.DEPLOYED_IN, instance_id, catalog["staging"]["id"])

    def test_ghost_node_hiding_missing_team(self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog):
        synchronizer.sync_all()
        team_id = catalog["team"]["id"]
        with graph.session() as session:
            session.detach_delete_node(NodeLabel.TEAM, team_id)
        graph.nodes[(NodeLabel.TEAM, 999)] = {"id": 999, "name": "Ghost"}

        report = IntegrityRepair(store, graph).repair()

        assert report.fixed is True
        assert graph.has_node(NodeLabel.TEAM, team_id)
        assert not graph.has_node(NodeLabel.TEAM, 999)
        assert graph.has_relationship(RelType.MANAGED_BY, catalog["api"]["id"], team_id)


class TestOrphanFixer:
    def test_orphan_with_row_is_relinked(self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog):
        synchronizer.sync_all()
        instance_id = catalog["api_prod"]["id"]
        del graph.relationships[(RelType.INSTANTIATES, catalog["api"]["id"], instance_id)]

        result = OrphanFixer(store, graph).fix()

        assert (result.relinked, result.deleted, result.unresolved) == (1, 0, 0)
        assert graph.has_relationship(RelType.INSTANTIATES, catalog["api"]["id"], instance_id)

    def test_orphan_without_row_is_deleted(self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog):
        synchronizer.sync_all()
        graph.nodes[(NodeLabel.COMPONENT_INSTANCE, 999)] = {"id": 999}

        result = OrphanFixer(store, graph).fix()

        assert (result.relinked, result.deleted) == (0, 1)
        assert not graph.has_node(NodeLabel.COMPONENT_INSTANCE, 999)

    def test_orphan_with_missing_endpoint_is_unresolved(
        self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog
    ):
        synchronizer.sync_all()
        graph.nodes.pop((NodeLabel.ENVIRONMENT, catalog["staging"]["id"]))
        del graph.relationships[(RelType.DEPLOYED_IN, catalog["api_staging"]["id"], catalog["staging"]["id"])]

        result = OrphanFixer(store, graph).fix()

        assert result.unresolved == 1

    def test_repair_fixes_orphans_after_environments(
        self, store: RecordStore, graph, synchronizer: EntitySynchronizer, catalog
    ):
        synchronizer.sync_all()
        staging_id = catalog["staging"]["id"]
        graph.nodes.pop((NodeLabel.ENVIRONMENT, staging_id))
        del graph.relationships[(RelType.DEPLOYED_IN, catalog["api_staging"]["id"], staging_id)]

        report = IntegrityRepair(store, graph).repair()

        assert report.fixed is True
        entities = [c.entity for c in report.corrections]
        assert entities.index("environments") < entities.index("orphanedInstances")


class TestFailures:
    @pytest.fixture
    def broken_report(self):
        return ValidationReport(
            valid=False,
            discrepancies=[
                Discrepancy(check=IntegrityCheck.USERS, relational=2, graph=1, difference=1),
                Discrepancy(check=IntegrityCheck.TEAMS, relational=1, graph=0, difference=1),
            ],
        )

    def _repair(self, store, graph, fail_fast=False):
        synchronizer = MagicMock(spec=EntitySynchronizer)
        synchronizer.sync_type.side_effect = [GraphStoreError("write timed out"), MagicMock()]
        validator = MagicMock(spec=IntegrityValidator)
        validator.validate.return_value = ValidationReport(valid=False)
        return IntegrityRepair(store, graph, synchronizer=synchronizer, validator=validator, fail_fast=fail_fast)

    def test_failed_action_reported_and_others_continue(self, store: RecordStore, graph, broken_report):
        repair = self._repair(store, graph)

        report = repair.repair(broken_report)

        assert [c.to_dict() for c in report.corrections] == [
            {"entity": "users", "action": "resync", "status": "failed", "error": "write timed out"},
            {"entity": "teams", "action": "resync", "status": "success"},
        ]
        assert report.fixed is False
        assert repair.synchronizer.sync_type.call_count == 2

    def test_fail_fast_propagates(self, store: RecordStore, graph, broken_report):
        repair = self._repair(store, graph, fail_fast=True)

        with pytest.raises(GraphStoreError):
            repair.repair(broken_report)

        assert repair.synchronizer.sync_type.call_count == 1


def test_every_check_has_an_action():
    covered = set(RESYNC_ROUTINES) | {
        IntegrityCheck.ORPHANED_INSTANCES,
        IntegrityCheck.STALE_NODES,
        IntegrityCheck.STALE_RELATIONSHIPS,
    }
    assert covered == set(IntegrityCheck)
