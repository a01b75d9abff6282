"""Tests for targeted sync hooks and sync policies."""

from unittest.mock import MagicMock

import pytest

from beaver_core.models.types import EntityType, NodeLabel, SyncPolicy, SyncStatus
from beaver_core.storage.sqlite_store import RecordStore
from beaver_core.sync.hooks import SyncHooks
from beaver_core.sync.synchronizer import EntitySynchronizer, GraphSyncError, SyncCancelledError


class TestBestEffort:
    def test_success_is_ok(self, store: RecordStore, graph, synchronizer: EntitySynchronizer):
        env = store.create_environment("production")

        result = SyncHooks(synchronizer).on_entity_created(EntityType.ENVIRONMENT, env["id"])

        assert result.status == SyncStatus.OK
        assert result.sync_failed is False
        assert graph.has_node(NodeLabel.ENVIRONMENT, env["id"])

    def test_graph_failure_becomes_warning(self, store: RecordStore, graph, synchronizer: EntitySynchronizer):
        env = store.create_environment("production")
        graph.fail_writes = True

        result = SyncHooks(synchronizer).on_entity_created(EntityType.ENVIRONMENT, env["id"])

        assert result.sync_failed is True
        assert "create of environment" in result.warning
        assert result.to_dict()["status"] == "warning"
        assert store.get_environment(env["id"]) is not None

    def test_outage_becomes_warning(self, store: RecordStore, graph, synchronizer: EntitySynchronizer):
        env = store.create_environment("production")
        graph.unavailable = True

        result = SyncHooks(synchronizer).on_entity_updated(EntityType.ENVIRONMENT, env["id"], previous=env)

        assert result.sync_failed is True

    def test_delete_of_missing_node_is_ok(self, synchronizer: EntitySynchronizer):
        result = SyncHooks(synchronizer).on_entity_deleted(EntityType.TEAM, 42)

        assert result.sync_failed is False


class TestStrict:
    def test_graph_failure_raises(self, store: RecordStore, graph, synchronizer: EntitySynchronizer):
        env = store.create_environment("production")
        graph.fail_writes = True
        hooks = SyncHooks(synchronizer, policy=SyncPolicy.STRICT)

        with pytest.raises(GraphSyncError):
            hooks.on_entity_created(EntityType.ENVIRONMENT, env["id"])

        assert store.get_environment(env["id"]) is not None

    def test_policy_accepts_string(self, synchronizer: EntitySynchronizer):
        assert SyncHooks(synchronizer, policy="strict").policy == SyncPolicy.STRICT


def test_cancellation_is_not_a_warning(store: RecordStore):
    env = store.create_environment("production")
    synchronizer = MagicMock(spec=EntitySynchronizer)
    synchronizer.sync_entity.side_effect = SyncCancelledError("Sync cancelled")

    with pytest.raises(SyncCancelledError):
        SyncHooks(synchronizer).on_entity_created(EntityType.ENVIRONMENT, env["id"])
