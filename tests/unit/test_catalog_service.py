"""Tests for CatalogService: relational write first, then targeted sync."""

import pytest

from beaver_core.models.types import NodeLabel, ParticipantRole, RelType, SyncPolicy, UserRole
from beaver_core.services.catalog import CatalogRuleError, CatalogService
from beaver_core.storage.sqlite_store import NotFoundError, OwnerInvariantError, RecordStore, UniqueViolationError
from beaver_core.sync.hooks import SyncHooks
from beaver_core.sync.synchronizer import EntitySynchronizer, GraphSyncError


@pytest.fixture
def service(store: RecordStore, synchronizer: EntitySynchronizer) -> CatalogService:
    return CatalogService(store, SyncHooks(synchronizer))


@pytest.fixture
def synced(synchronizer: EntitySynchronizer, catalog):
    synchronizer.sync_all()
    return catalog


class TestEnvironments:
    def test_create_syncs_node(self, service: CatalogService, graph):
        result = service.create_environment("production", "Live traffic")

        assert result.sync_warning is False
        assert result.entity["name"] == "production"
        assert graph.nodes[(NodeLabel.ENVIRONMENT, result.entity["id"])]["description"] == "Live traffic"

    def test_update_changes_node(self, service: CatalogService, graph, synced):
        env_id = synced["staging"]["id"]

        result = service.update_environment(env_id, name="preprod")

        assert result.entity["name"] == "preprod"
        assert graph.nodes[(NodeLabel.ENVIRONMENT, env_id)]["name"] == "preprod"

    def test_delete_in_use_rejected(self, service: CatalogService, store: RecordStore, synced):
        with pytest.raises(CatalogRuleError):
            service.delete_environment(synced["production"]["id"])

        assert store.get_environment(synced["production"]["id"]) is not None

    def test_delete_unused(self, service: CatalogService, graph):
        env = service.create_environment("lab").entity

        result = service.delete_environment(env["id"])

        assert result.entity["id"] == env["id"]
        assert not graph.has_node(NodeLabel.ENVIRONMENT, env["id"])

    def test_update_missing_raises(self, service: CatalogService):
        with pytest.raises(NotFoundError):
            service.update_environment(404, name="nowhere")


class TestComponents:
    def test_team_change_moves_relationship(self, service: CatalogService, store: RecordStore, graph, synced):
        platform = service.create_team("Platform").entity
        api_id = synced["api"]["id"]

        service.update_component(api_id, team_id=platform["id"])

        assert graph.has_relationship(RelType.MANAGED_BY, api_id, platform["id"])
        assert not graph.has_relationship(RelType.MANAGED_BY, api_id, synced["team"]["id"])

    def test_unknown_team_rejected(self, service: CatalogService):
        with pytest.raises(NotFoundError):
            service.create_component("orphan", team_id=404)

    def test_delete_removes_instance_nodes(self, service: CatalogService, store: RecordStore, graph, synced):
        api_id = synced["api"]["id"]

        result = service.delete_component(api_id)

        assert result.sync_warning is False
        assert not graph.has_node(NodeLabel.COMPONENT, api_id)
        assert not graph.has_node(NodeLabel.COMPONENT_INSTANCE, synced["api_prod"]["id"])
        assert not graph.has_node(NodeLabel.COMPONENT_INSTANCE, synced["api_staging"]["id"])
        assert store.list_component_instances(api_id) == []


class TestInstances:
    def test_duplicate_pair_rejected(self, service: CatalogService, synced):
        with pytest.raises(UniqueViolationError):
            service.create_component_instance(synced["api"]["id"], synced["production"]["id"])

    def test_create_links_component_and_environment(self, service: CatalogService, graph, synced):
        worker_id = synced["worker"]["id"]
        env_id = synced["production"]["id"]

        instance = service.create_component_instance(worker_id, env_id, "ledger-worker-pro").entity

        assert graph.has_relationship(RelType.INSTANTIATES, worker_id, instance["id"])
        assert graph.has_relationship(RelType.DEPLOYED_IN, instance["id"], env_id)

    def test_environment_move_redeploys(self, service: CatalogService, graph, synced):
        worker_id = synced["worker"]["id"]
        instance = service.create_component_instance(worker_id, synced["production"]["id"]).entity

        service.update_component_instance(instance["id"], environment_id=synced["staging"]["id"])

        assert graph.has_relationship(RelType.DEPLOYED_IN, instance["id"], synced["staging"]["id"])
        assert not graph.has_relationship(RelType.DEPLOYED_IN, instance["id"], synced["production"]["id"])


class TestADRs:
    def test_create_syncs_owner(self, service: CatalogService, store: RecordStore, graph, synced):
        admin_id = synced["admin"]["id"]

        result = service.create_adr("Adopt gRPC", admin_id)

        adr_id = result.entity["id"]
        assert result.sync_warning is False
        assert graph.has_node(NodeLabel.ADR, adr_id)
        assert graph.has_relationship(RelType.PARTICIPATES_IN, admin_id, adr_id)
        assert graph.relationships[(RelType.PARTICIPATES_IN, admin_id, adr_id)]["role"] == "OWNER"
        assert store.count_owners(adr_id) == 1

    def test_create_with_unknown_owner(self, service: CatalogService, store: RecordStore):
        with pytest.raises(NotFoundError):
            service.create_adr("Orphan decision", 404)

        assert store.list_adrs() == []

    def test_last_owner_cannot_be_removed(self, service: CatalogService, store: RecordStore, synced):
        owner = store.get_participant_by_pair(synced["adr"]["id"], synced["admin"]["id"])

        with pytest.raises(OwnerInvariantError):
            service.remove_participant(owner["id"])

    def test_duplicate_participant_rejected(self, service: CatalogService, synced):
        with pytest.raises(UniqueViolationError):
            service.add_participant(synced["adr"]["id"], synced["alice"]["id"], ParticipantRole.CONSUMER)

    def test_role_change_updates_relationship(self, service: CatalogService, graph, synced):
        adr_id, alice_id = synced["adr"]["id"], synced["alice"]["id"]

        service.update_participant_role(synced["reviewer"]["id"], ParticipantRole.OWNER)

        assert graph.relationships[(RelType.PARTICIPATES_IN, alice_id, adr_id)]["role"] == "OWNER"

    def test_removing_last_impact_removes_component_link(
        self, service: CatalogService, store: RecordStore, graph, synced
    ):
        adr_id, api_id = synced["adr"]["id"], synced["api"]["id"]
        assert graph.has_relationship(RelType.AFFECTS, adr_id, api_id)

        service.remove_adr_component_instance(synced["impact"]["id"])

        assert store.list_adr_components(adr_id) == []
        assert not graph.has_relationship(RelType.AFFECTS, adr_id, api_id)
        assert not graph.has_relationship(RelType.AFFECTS_INSTANCE, adr_id, synced["api_prod"]["id"])

    def test_component_link_kept_while_other_impact_remains(
        self, service: CatalogService, store: RecordStore, graph, synced
    ):
        adr_id, api_id = synced["adr"]["id"], synced["api"]["id"]
        service.add_adr_component_instance(adr_id, synced["api_staging"]["id"], "LOW")

        service.remove_adr_component_instance(synced["impact"]["id"])

        assert len(store.list_adr_components(adr_id)) == 1
        assert graph.has_relationship(RelType.AFFECTS, adr_id, api_id)

    def test_add_adr_component_idempotent(self, service: CatalogService, store: RecordStore, graph, synced):
        adr_id, worker_id = synced["adr"]["id"], synced["worker"]["id"]

        first = service.add_adr_component(adr_id, worker_id)
        second = service.add_adr_component(adr_id, worker_id)

        assert first.entity["id"] == second.entity["id"]
        assert len(store.list_adr_components(adr_id)) == 2
        assert graph.has_relationship(RelType.AFFECTS, adr_id, worker_id)


class TestSyncFailures:
    def test_best_effort_keeps_relational_write(self, service: CatalogService, store: RecordStore, graph):
        graph.fail_writes = True

        result = service.create_user("bob", "bob@example.com", UserRole.USER)

        assert result.sync_warning is True
        assert store.get_user(result.entity["id"]) is not None
        assert not graph.has_node(NodeLabel.USER, result.entity["id"])

    def test_combined_warnings_on_adr_create(self, service: CatalogService, graph, synced):
        graph.fail_writes = True

        result = service.create_adr("Adopt gRPC", synced["admin"]["id"])

        assert result.sync_warning is True
        assert result.sync.warning.count("Graph sync failed") == 2

    def test_strict_policy_raises_after_commit(
        self, store: RecordStore, graph, synchronizer: EntitySynchronizer
    ):
        service = CatalogService(store, SyncHooks(synchronizer, policy=SyncPolicy.STRICT))
        graph.fail_writes = True

        with pytest.raises(GraphSyncError):
            service.create_team("Platform")

        assert store.get_team_by_name("Platform") is not None
