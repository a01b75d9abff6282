"""Component relations: graph-only links between catalogued components.

Relations such as DEPENDS_ON or RUNS_ON have no relational row. They are
written straight to the graph, so a graph failure raises instead of
becoming a sync warning. Both endpoints must be component rows, and the
component nodes must already be synced.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from beaver_core.models.types import ComponentRelation, ComponentRelationType, normalize_timestamp
from beaver_core.services.catalog import CatalogRuleError
from beaver_core.storage.graph_store import GraphStore
from beaver_core.storage.sqlite_store import NotFoundError, RecordStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class RelationService:
    """CRUD for component relations plus time-scoped component lookups."""

    def __init__(self, store: RecordStore, graph: GraphStore) -> None:
        self.store = store
        self.graph = graph

    def _require_components(self, *component_ids: int) -> None:
        for component_id in component_ids:
            if self.store.get_component(component_id) is None:
                raise NotFoundError("components", component_id)

    @staticmethod
    def _missing_nodes(source_id: int, target_id: int) -> CatalogRuleError:
        return CatalogRuleError(
            f"Component {source_id} or {target_id} has no graph node yet; sync components first"
        )

    def create_relation(
        self,
        source_id: int,
        target_id: int,
        relation_type: ComponentRelationType | str,
        properties: dict[str, Any] | None = None,
    ) -> ComponentRelation:
        """Create a relation between two existing components.

        Raises:
            ValueError: If ``relation_type`` is not a component relation type
            NotFoundError: If either component row does not exist
            CatalogRuleError: If either component node is missing from the graph
        """
        relation_type = ComponentRelationType(relation_type)
        self._require_components(source_id, target_id)

        now = _now()
        relation = ComponentRelation(
            uid=str(uuid.uuid4()),
            type=relation_type,
            source_id=source_id,
            target_id=target_id,
            properties=dict(properties or {}),
            created_at=now,
            updated_at=now,
        )
        with self.graph.session() as session:
            created = session.create_component_relation(relation)
        if created is None:
            raise self._missing_nodes(source_id, target_id)

        logger.info(
            f"Created {relation_type.value} relation {created.uid}: {source_id} -> {target_id}",
            extra={"event": "relation_created", "relation_id": created.uid, "type": relation_type.value},
        )
        return created

    def list_relations(self) -> list[ComponentRelation]:
        with self.graph.session() as session:
            return session.list_component_relations()

    def get_relation(self, relation_id: str) -> ComponentRelation:
        with self.graph.session() as session:
            relation = session.get_component_relation(relation_id)
        if relation is None:
            raise NotFoundError("component_relations", relation_id)
        return relation

    def update_relation(
        self,
        relation_id: str,
        source_id: int,
        target_id: int,
        relation_type: ComponentRelationType | str,
        properties: dict[str, Any] | None = None,
    ) -> ComponentRelation:
        """Replace a relation's endpoints, type and properties.

        The relation keeps its id and ``created_at``.
        """
        relation_type = ComponentRelationType(relation_type)
        self.get_relation(relation_id)
        self._require_components(source_id, target_id)

        relation = ComponentRelation(
            uid=relation_id,
            type=relation_type,
            source_id=source_id,
            target_id=target_id,
            properties=dict(properties or {}),
            updated_at=_now(),
        )
        with self.graph.session() as session:
            replaced = session.replace_component_relation(relation)
        if replaced is None:
            raise self._missing_nodes(source_id, target_id)

        logger.info(
            f"Updated relation {relation_id}",
            extra={"event": "relation_updated", "relation_id": relation_id, "type": relation_type.value},
        )
        return replaced

    def delete_relation(self, relation_id: str) -> ComponentRelation:
        """Delete a relation and return what it was."""
        relation = self.get_relation(relation_id)
        with self.graph.session() as session:
            session.delete_component_relation(relation_id)
        logger.info(
            f"Deleted relation {relation_id}",
            extra={"event": "relation_deleted", "relation_id": relation_id},
        )
        return relation

    def find_components(self, name: str | None = None, valid_at: str | None = None) -> list[dict[str, Any]]:
        """Component nodes whose name contains ``name`` and that are valid at ``valid_at``.

        Raises:
            ValueError: If ``valid_at`` is not an ISO 8601 timestamp
        """
        at = normalize_timestamp(valid_at) if valid_at else None
        with self.graph.session() as session:
            return session.find_components(name=name, valid_at=at)
