"""Neo4j graph store for the Beaver catalogue.

The graph is a derived read model. Nodes are keyed by the relational
``id`` of their row and relationships are keyed by their endpoint pair.
Labels and relationship types cannot be passed as Cypher parameters, so
only values of :class:`NodeLabel`, :class:`RelType` and
:class:`ComponentRelationType` are interpolated into query text.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator

from neo4j import GraphDatabase, unit_of_work
from neo4j.exceptions import DriverError, Neo4jError, ServiceUnavailable, SessionExpired
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from beaver_core.models.types import ComponentRelation, ComponentRelationType, NodeLabel, RelType

logger = logging.getLogger(__name__)

# Retry configuration for connectivity checks
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 10

# Start and end label of every relationship type
REL_ENDPOINTS: dict[RelType, tuple[NodeLabel, NodeLabel]] = {
    RelType.MANAGED_BY: (NodeLabel.COMPONENT, NodeLabel.TEAM),
    RelType.INSTANTIATES: (NodeLabel.COMPONENT, NodeLabel.COMPONENT_INSTANCE),
    RelType.DEPLOYED_IN: (NodeLabel.COMPONENT_INSTANCE, NodeLabel.ENVIRONMENT),
    RelType.PARTICIPATES_IN: (NodeLabel.USER, NodeLabel.ADR),
    RelType.AFFECTS_INSTANCE: (NodeLabel.ADR, NodeLabel.COMPONENT_INSTANCE),
    RelType.AFFECTS: (NodeLabel.ADR, NodeLabel.COMPONENT),
}

RELATION_TYPE_VALUES = [rel_type.value for rel_type in ComponentRelationType]

# Shared RETURN clause of component relation queries; binds source, r and target
RELATION_RETURN = """
            RETURN r.uid AS uid, type(r) AS type, source.id AS source_id, target.id AS target_id,
                   r.properties AS properties, r.created_at AS created_at, r.updated_at AS updated_at
"""


class GraphStoreError(Exception):
    """A graph query failed."""


class GraphUnavailableError(GraphStoreError):
    """The graph database cannot be reached."""


class GraphSession(ABC):
    """One scoped unit of graph work.

    Sessions are acquired per sync routine and released when the routine
    ends, whether it succeeds or fails.
    """

    @abstractmethod
    def run(self, query: str, params: dict[str, Any] | None = None, write: bool = True) -> list[dict[str, Any]]:
        """Run a Cypher query and return its records as plain dicts."""

    @abstractmethod
    def merge_node(
        self,
        label: NodeLabel,
        node_id: int,
        properties: dict[str, Any],
        create_only: dict[str, Any] | None = None,
    ) -> None:
        """Upsert a node by id.

        ``properties`` are set on create and on match, ``create_only`` only
        on create.
        """

    @abstractmethod
    def merge_relationship(
        self,
        rel_type: RelType,
        start_id: int,
        end_id: int,
        properties: dict[str, Any] | None = None,
    ) -> bool:
        """Upsert a relationship between two existing nodes.

        Returns False when an endpoint node is missing, in which case
        nothing is written.
        """

    @abstractmethod
    def delete_relationship(self, rel_type: RelType, start_id: int, end_id: int) -> int:
        """Delete the relationship between two nodes. Returns the number deleted."""

    @abstractmethod
    def detach_delete_node(self, label: NodeLabel, node_id: int) -> int:
        """Delete a node and all its relationships. Returns the number deleted."""

    @abstractmethod
    def count_nodes(self, label: NodeLabel) -> int: ...

    @abstractmethod
    def count_relationships(self, rel_type: RelType) -> int: ...

    @abstractmethod
    def node_ids(self, label: NodeLabel) -> set[int]: ...

    @abstractmethod
    def relationship_pairs(self, rel_type: RelType) -> set[tuple[int, int]]: ...

    @abstractmethod
    def find_orphaned_instances(self) -> list[int]:
        """Ids of instance nodes missing an inbound INSTANTIATES or an outbound DEPLOYED_IN."""

    # Component relations live only in the graph.

    @abstractmethod
    def create_component_relation(self, relation: ComponentRelation) -> ComponentRelation | None:
        """Create a relation between two Component nodes.

        Returns None when either node is missing, in which case nothing
        is written.
        """

    @abstractmethod
    def list_component_relations(self) -> list[ComponentRelation]: ...

    @abstractmethod
    def get_component_relation(self, uid: str) -> ComponentRelation | None: ...

    @abstractmethod
    def replace_component_relation(self, relation: ComponentRelation) -> ComponentRelation | None:
        """Replace the relation with ``relation.uid``, keeping its uid and ``created_at``.

        The relationship is deleted and recreated, since its type may
        change. Returns None, writing nothing, when the relation or either
        endpoint node is missing.
        """

    @abstractmethod
    def delete_component_relation(self, uid: str) -> int: ...

    @abstractmethod
    def find_components(self, name: str | None = None, valid_at: str | None = None) -> list[dict[str, Any]]:
        """Component node properties ordered by name.

        Args:
            name: Substring the component name must contain
            valid_at: Normalized timestamp inside ``valid_from``..``valid_to``
        """


class GraphStore(ABC):
    """Factory for graph sessions."""

    @abstractmethod
    @contextmanager
    def session(self) -> Iterator[GraphSession]: ...

    def verify_connectivity(self) -> None:
        """Raise GraphUnavailableError if the graph cannot be reached."""

    def close(self) -> None:
        """Release driver resources."""


class Neo4jGraphSession(GraphSession):
    """GraphSession backed by a neo4j driver session."""

    def __init__(self, session: Any, timeout: float | None = None):
        self._session = session
        self._timeout = timeout

    def run(self, query: str, params: dict[str, Any] | None = None, write: bool = True) -> list[dict[str, Any]]:
        params = params or {}

        @unit_of_work(timeout=self._timeout)
        def work(tx: Any) -> list[dict[str, Any]]:
            result = tx.run(query, params)
            return [record.data() for record in result]

        try:
            if write:
                return self._session.execute_write(work)
            return self._session.execute_read(work)
        except (ServiceUnavailable, SessionExpired) as e:
            raise GraphUnavailableError(str(e)) from e
        except (Neo4jError, DriverError) as e:
            raise GraphStoreError(str(e)) from e

    def _single(self, query: str, params: dict[str, Any] | None, key: str, write: bool) -> int:
        records = self.run(query, params, write=write)
        if not records:
            return 0
        return int(records[0][key])

    def merge_node(
        self,
        label: NodeLabel,
        node_id: int,
        properties: dict[str, Any],
        create_only: dict[str, Any] | None = None,
    ) -> None:
        label = NodeLabel(label)
        self.run(
            f"""
            MERGE (n:{label.value} {{id: $id}})
            ON CREATE SET n += $properties, n += $create_only
            ON MATCH SET n += $properties
            """,
            {"id": node_id, "properties": properties, "create_only": create_only or {}},
        )

    def merge_relationship(
        self,
        rel_type: RelType,
        start_id: int,
        end_id: int,
        properties: dict[str, Any] | None = None,
    ) -> bool:
        rel_type = RelType(rel_type)
        start, end = REL_ENDPOINTS[rel_type]
        merged = self._single(
            f"""
            MATCH (a:{start.value} {{id: $start_id}}), (b:{end.value} {{id: $end_id}})
            MERGE (a)-[r:{rel_type.value}]->(b)
            SET r += $properties
            RETURN count(r) AS merged
            """,
            {"start_id": start_id, "end_id": end_id, "properties": properties or {}},
            "merged",
            write=True,
        )
        return merged > 0

    def delete_relationship(self, rel_type: RelType, start_id: int, end_id: int) -> int:
        rel_type = RelType(rel_type)
        start, end = REL_ENDPOINTS[rel_type]
        return self._single(
            f"""
            MATCH (a:{start.value} {{id: $start_id}})-[r:{rel_type.value}]->(b:{end.value} {{id: $end_id}})
            DELETE r
            RETURN count(r) AS deleted
            """,
            {"start_id": start_id, "end_id": end_id},
            "deleted",
            write=True,
        )

    def detach_delete_node(self, label: NodeLabel, node_id: int) -> int:
        label = NodeLabel(label)
        return self._single(
            f"""
            MATCH (n:{label.value} {{id: $id}})
            WITH n, n.id AS node_id
            DETACH DELETE n
            RETURN count(node_id) AS deleted
            """,
            {"id": node_id},
            "deleted",
            write=True,
        )

    def count_nodes(self, label: NodeLabel) -> int:
        label = NodeLabel(label)
        return self._single(
            f"MATCH (n:{label.value}) RETURN count(n) AS count", None, "count", write=False
        )

    def count_relationships(self, rel_type: RelType) -> int:
        rel_type = RelType(rel_type)
        return self._single(
            f"MATCH ()-[r:{rel_type.value}]->() RETURN count(r) AS count", None, "count", write=False
        )

    def node_ids(self, label: NodeLabel) -> set[int]:
        label = NodeLabel(label)
        records = self.run(f"MATCH (n:{label.value}) RETURN n.id AS id", write=False)
        return {int(record["id"]) for record in records if record["id"] is not None}

    def relationship_pairs(self, rel_type: RelType) -> set[tuple[int, int]]:
        rel_type = RelType(rel_type)
        start, end = REL_ENDPOINTS[rel_type]
        records = self.run(
            f"""
            MATCH (a:{start.value})-[:{rel_type.value}]->(b:{end.value})
            RETURN a.id AS start_id, b.id AS end_id
            """,
            write=False,
        )
        return {(int(r["start_id"]), int(r["end_id"])) for r in records}

    def find_orphaned_instances(self) -> list[int]:
        records = self.run(
            """
            MATCH (ci:ComponentInstance)
            WHERE NOT EXISTS { (ci)<-[:INSTANTIATES]-(:Component) }
               OR NOT EXISTS { (ci)-[:DEPLOYED_IN]->(:Environment) }
            RETURN ci.id AS id
            ORDER BY id
            """,
            write=False,
        )
        return [int(record["id"]) for record in records]

    # ========================
    # Component relations
    # ========================

    def create_component_relation(self, relation: ComponentRelation) -> ComponentRelation | None:
        rel_type = ComponentRelationType(relation.type)
        records = self.run(
            f"""
            MATCH (source:Component {{id: $source_id}}), (target:Component {{id: $target_id}})
            CREATE (source)-[r:{rel_type.value} {{
                uid: $uid, properties: $properties, created_at: $created_at, updated_at: $updated_at
            }}]->(target)
            {RELATION_RETURN}
            """,
            _relation_params(relation),
        )
        return _relation_from_record(records[0]) if records else None

    def list_component_relations(self) -> list[ComponentRelation]:
        records = self.run(
            f"""
            MATCH (source:Component)-[r]->(target:Component)
            WHERE type(r) IN $types
            {RELATION_RETURN}
            ORDER BY created_at, uid
            """,
            {"types": RELATION_TYPE_VALUES},
            write=False,
        )
        return [_relation_from_record(record) for record in records]

    def get_component_relation(self, uid: str) -> ComponentRelation | None:
        records = self.run(
            f"""
            MATCH (source:Component)-[r {{uid: $uid}}]->(target:Component)
            WHERE type(r) IN $types
            {RELATION_RETURN}
            """,
            {"uid": uid, "types": RELATION_TYPE_VALUES},
            write=False,
        )
        return _relation_from_record(records[0]) if records else None

    def replace_component_relation(self, relation: ComponentRelation) -> ComponentRelation | None:
        rel_type = ComponentRelationType(relation.type)
        # Endpoints are matched before the delete so a miss writes nothing
        records = self.run(
            f"""
            MATCH (source:Component {{id: $source_id}}), (target:Component {{id: $target_id}})
            MATCH (:Component)-[old {{uid: $uid}}]->(:Component)
            WHERE type(old) IN $types
            WITH source, target, old, coalesce(old.created_at, $updated_at) AS created_at
            DELETE old
            CREATE (source)-[r:{rel_type.value} {{
                uid: $uid, properties: $properties, created_at: created_at, updated_at: $updated_at
            }}]->(target)
            {RELATION_RETURN}
            """,
            {**_relation_params(relation), "types": RELATION_TYPE_VALUES},
        )
        return _relation_from_record(records[0]) if records else None

    def delete_component_relation(self, uid: str) -> int:
        return self._single(
            """
            MATCH (:Component)-[r {uid: $uid}]->(:Component)
            WHERE type(r) IN $types
            DELETE r
            RETURN count(r) AS deleted
            """,
            {"uid": uid, "types": RELATION_TYPE_VALUES},
            "deleted",
            write=True,
        )

    def find_components(self, name: str | None = None, valid_at: str | None = None) -> list[dict[str, Any]]:
        conditions = []
        params: dict[str, Any] = {}
        if name:
            conditions.append("c.name CONTAINS $name")
            params["name"] = name
        if valid_at:
            # valid_from carries the record store's space-separated timestamp
            conditions.append("$valid_at >= replace(c.valid_from, ' ', 'T') AND $valid_at <= c.valid_to")
            params["valid_at"] = valid_at
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        records = self.run(
            f"MATCH (c:Component) {where} RETURN properties(c) AS component ORDER BY c.name",
            params,
            write=False,
        )
        return [record["component"] for record in records]


def _relation_params(relation: ComponentRelation) -> dict[str, Any]:
    # Neo4j properties cannot hold maps, so relation properties are stored as JSON
    return {
        "uid": relation.uid,
        "source_id": relation.source_id,
        "target_id": relation.target_id,
        "properties": json.dumps(relation.properties or {}),
        "created_at": relation.created_at,
        "updated_at": relation.updated_at,
    }


def _relation_from_record(record: dict[str, Any]) -> ComponentRelation:
    properties = record.get("properties")
    return ComponentRelation(
        uid=record["uid"],
        type=ComponentRelationType(record["type"]),
        source_id=int(record["source_id"]),
        target_id=int(record["target_id"]),
        properties=json.loads(properties) if properties else {},
        created_at=record.get("created_at"),
        updated_at=record.get("updated_at"),
    )


class Neo4jGraphStore(GraphStore):
    """Graph store backed by the official neo4j driver."""

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: str | None = None,
        timeout: float | None = 30.0,
        driver: Any = None,
    ):
        self.uri = uri
        self.database = database
        self.timeout = timeout
        self._driver = driver or GraphDatabase.driver(uri, auth=(user, password))

    @classmethod
    def from_config(cls, config: Any) -> Neo4jGraphStore:
        return cls(
            uri=config.neo4j_uri,
            user=config.neo4j_user,
            password=config.neo4j_password,
            database=config.neo4j_database,
            timeout=config.graph_timeout,
        )

    @contextmanager
    def session(self) -> Iterator[GraphSession]:
        try:
            session = self._driver.session(database=self.database)
        except (ServiceUnavailable, DriverError) as e:
            raise GraphUnavailableError(str(e)) from e
        try:
            yield Neo4jGraphSession(session, timeout=self.timeout)
        finally:
            session.close()

    @retry(
        retry=retry_if_exception_type(GraphUnavailableError),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        reraise=True,
    )
    def verify_connectivity(self) -> None:
        try:
            self._driver.verify_connectivity()
        except (ServiceUnavailable, DriverError) as e:
            logger.warning(
                f"Graph store unreachable at {self.uri}: {e}",
                extra={"event": "graph_unavailable", "uri": self.uri},
            )
            raise GraphUnavailableError(str(e)) from e

    def close(self) -> None:
        self._driver.close()
