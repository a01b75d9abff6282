"""Shared fixtures: a temporary record store and an in-memory graph store."""

from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterator

import pytest

from beaver_core.models.types import ComponentRelation, NodeLabel, ParticipantRole, RelType, UserRole
from beaver_core.storage.graph_store import (
    REL_ENDPOINTS,
    GraphSession,
    GraphStore,
    GraphStoreError,
    GraphUnavailableError,
)
from beaver_core.storage.sqlite_store import RecordStore
from beaver_core.sync.synchronizer import EntitySynchronizer


class InMemoryGraphSession(GraphSession):
    """Graph session over plain dicts, with the same semantics as the Cypher one."""

    def __init__(self, graph: "InMemoryGraphStore") -> None:
        self.graph = graph

    def _write(self) -> None:
        if self.graph.fail_writes:
            raise GraphStoreError("simulated graph write failure")
        self.graph.writes += 1

    def _read(self) -> None:
        self.graph.reads += 1

    def run(self, query: str, params: dict[str, Any] | None = None, write: bool = True) -> list[dict[str, Any]]:
        self.graph.queries.append((query, params or {}))
        return []

    def merge_node(
        self,
        label: NodeLabel,
        node_id: int,
        properties: dict[str, Any],
        create_only: dict[str, Any] | None = None,
    ) -> None:
        self._write()
        key = (NodeLabel(label), node_id)
        if key not in self.graph.nodes:
            self.graph.nodes[key] = {"id": node_id, **(create_only or {})}
        self.graph.nodes[key].update(properties)

    def merge_relationship(
        self,
        rel_type: RelType,
        start_id: int,
        end_id: int,
        properties: dict[str, Any] | None = None,
    ) -> bool:
        self._write()
        start_label, end_label = REL_ENDPOINTS[RelType(rel_type)]
        if (start_label, start_id) not in self.graph.nodes or (end_label, end_id) not in self.graph.nodes:
            return False
        key = (RelType(rel_type), start_id, end_id)
        self.graph.relationships.setdefault(key, {}).update(properties or {})
        return True

    def delete_relationship(self, rel_type: RelType, start_id: int, end_id: int) -> int:
        self._write()
        return 1 if self.graph.relationships.pop((RelType(rel_type), start_id, end_id), None) is not None else 0

    def detach_delete_node(self, label: NodeLabel, node_id: int) -> int:
        self._write()
        label = NodeLabel(label)
        if self.graph.nodes.pop((label, node_id), None) is None:
            return 0
        for key in list(self.graph.relationships):
            rel_type, start_id, end_id = key
            start_label, end_label = REL_ENDPOINTS[rel_type]
            if (start_label == label and start_id == node_id) or (end_label == label and end_id == node_id):
                del self.graph.relationships[key]
        if label == NodeLabel.COMPONENT:
            for uid, relation in list(self.graph.component_relations.items()):
                if node_id in (relation.source_id, relation.target_id):
                    del self.graph.component_relations[uid]
        return 1

    def count_nodes(self, label: NodeLabel) -> int:
        self._read()
        return len(self.node_ids(label))

    def count_relationships(self, rel_type: RelType) -> int:
        self._read()
        return len(self.relationship_pairs(rel_type))

    def node_ids(self, label: NodeLabel) -> set[int]:
        return {node_id for (node_label, node_id) in self.graph.nodes if node_label == label}

    def relationship_pairs(self, rel_type: RelType) -> set[tuple[int, int]]:
        return {(start, end) for (rel, start, end) in self.graph.relationships if rel == rel_type}

    def find_orphaned_instances(self) -> list[int]:
        self._read()
        instantiated = {end for (start, end) in self.relationship_pairs(RelType.INSTANTIATES)}
        deployed = {start for (start, end) in self.relationship_pairs(RelType.DEPLOYED_IN)}
        return sorted(
            node_id
            for node_id in self.node_ids(NodeLabel.COMPONENT_INSTANCE)
            if node_id not in instantiated or node_id not in deployed
        )

    def _relation_endpoints_exist(self, relation: ComponentRelation) -> bool:
        components = self.node_ids(NodeLabel.COMPONENT)
        return relation.source_id in components and relation.target_id in components

    def create_component_relation(self, relation: ComponentRelation) -> ComponentRelation | None:
        self._write()
        if not self._relation_endpoints_exist(relation):
            return None
        self.graph.component_relations[relation.uid] = replace(relation, properties=dict(relation.properties))
        return replace(relation)

    def list_component_relations(self) -> list[ComponentRelation]:
        self._read()
        relations = sorted(self.graph.component_relations.values(), key=lambda r: (r.created_at or "", r.uid))
        return [replace(relation) for relation in relations]

    def get_component_relation(self, uid: str) -> ComponentRelation | None:
        self._read()
        relation = self.graph.component_relations.get(uid)
        return replace(relation) if relation is not None else None

    def replace_component_relation(self, relation: ComponentRelation) -> ComponentRelation | None:
        self._write()
        old = self.graph.component_relations.get(relation.uid)
        if old is None or not self._relation_endpoints_exist(relation):
            return None
        stored = replace(relation, created_at=old.created_at or relation.updated_at)
        self.graph.component_relations[relation.uid] = stored
        return replace(stored)

    def delete_component_relation(self, uid: str) -> int:
        self._write()
        return 1 if self.graph.component_relations.pop(uid, None) is not None else 0

    def find_components(self, name: str | None = None, valid_at: str | None = None) -> list[dict[str, Any]]:
        self._read()
        found = []
        for (label, _), node in self.graph.nodes.items():
            if label != NodeLabel.COMPONENT:
                continue
            if name and name not in (node.get("name") or ""):
                continue
            if valid_at:
                if node.get("valid_from") is None or node.get("valid_to") is None:
                    continue
                if not node["valid_from"].replace(" ", "T") <= valid_at <= node["valid_to"]:
                    continue
            found.append(dict(node))
        return sorted(found, key=lambda node: node.get("name") or "")


class InMemoryGraphStore(GraphStore):
    """Graph store test double.

    Attributes:
        nodes: (label, id) -> properties
        relationships: (type, start id, end id) -> properties
        component_relations: uid -> ComponentRelation
        writes: Number of write calls made through any session
        fail_writes: Make every write raise GraphStoreError
        unavailable: Make opening a session raise GraphUnavailableError
    """

    def __init__(self) -> None:
        self.nodes: dict[tuple[NodeLabel, int], dict[str, Any]] = {}
        self.relationships: dict[tuple[RelType, int, int], dict[str, Any]] = {}
        self.component_relations: dict[str, ComponentRelation] = {}
        self.queries: list[tuple[str, dict[str, Any]]] = []
        self.writes = 0
        self.reads = 0
        self.sessions_opened = 0
        self.sessions_closed = 0
        self.fail_writes = False
        self.unavailable = False
        self.closed = False

    @contextmanager
    def session(self) -> Iterator[GraphSession]:
        if self.unavailable:
            raise GraphUnavailableError("simulated graph outage")
        self.sessions_opened += 1
        try:
            yield InMemoryGraphSession(self)
        finally:
            self.sessions_closed += 1

    def verify_connectivity(self) -> None:
        if self.unavailable:
            raise GraphUnavailableError("simulated graph outage")

    def close(self) -> None:
        self.closed = True

    # Test helpers

    def has_node(self, label: NodeLabel, node_id: int) -> bool:
        return (label, node_id) in self.nodes

    def has_relationship(self, rel_type: RelType, start_id: int, end_id: int) -> bool:
        return (rel_type, start_id, end_id) in self.relationships

    def snapshot(self) -> tuple[dict, dict]:
        return (
            {key: dict(value) for key, value in self.nodes.items()},
            {key: dict(value) for key, value in self.relationships.items()},
        )


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "beaver.db")


@pytest.fixture
def store(db_path: str) -> Iterator[RecordStore]:
    """Temporary record store with the schema applied."""
    store = RecordStore(db_path)
    yield store
    store.close()


@pytest.fixture
def graph() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest.fixture
def synchronizer(store: RecordStore, graph: InMemoryGraphStore) -> EntitySynchronizer:
    return EntitySynchronizer(store, graph)


@pytest.fixture
def catalog(store: RecordStore) -> dict[str, Any]:
    """A small catalogue written straight to the record store.

    Two environments, one team, an admin and an architect, two components
    (one owned by the team), an instance of the owned component in each
    environment, and an ADR affecting the production instance.
    """
    production = store.create_environment("production", "Live traffic")
    staging = store.create_environment("staging")
    team = store.create_team("Payments")
    admin = store.create_user("admin", "admin@example.com", UserRole.ADMIN)
    alice = store.create_user("alice", "alice@example.com", UserRole.ARCHITECT)
    api = store.create_component("payments-api", "Payments API", team_id=team["id"])
    worker = store.create_component("ledger-worker")
    api_prod = store.create_component_instance(api["id"], production["id"], "payments-api-pro", {"cpu": 2})
    api_staging = store.create_component_instance(api["id"], staging["id"], "payments-api-sta")
    adr = store.create_adr("Use event sourcing", admin["id"], "Ledger as an event log")
    reviewer = store.add_participant(adr["id"], alice["id"], ParticipantRole.REVIEWER)
    impact = store.create_adr_component_instance(adr["id"], api_prod["id"], "HIGH", "Schema change")

    return {
        "production": production,
        "staging": staging,
        "team": team,
        "admin": admin,
        "alice": alice,
        "api": api,
        "worker": worker,
        "api_prod": api_prod,
        "api_staging": api_staging,
        "adr": adr,
        "reviewer": reviewer,
        "impact": impact,
    }
