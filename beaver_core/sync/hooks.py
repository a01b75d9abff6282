"""Targeted sync hooks called after a relational write commits."""

from __future__ import annotations

import logging
from typing import Any

from beaver_core.models.types import EntityType, SyncPolicy, SyncResult
from beaver_core.sync.synchronizer import EntitySynchronizer, GraphSyncError, SyncCancelledError

logger = logging.getLogger(__name__)


class SyncHooks:
    """Propagate one committed row change to the graph.

    Under ``best_effort`` a graph failure is logged and returned as a
    warning result; the relational write stays committed and the next
    repair pass converges the graph. Under ``strict`` it raises
    :class:`GraphSyncError`.
    """

    def __init__(
        self,
        synchronizer: EntitySynchronizer,
        policy: SyncPolicy = SyncPolicy.BEST_EFFORT,
    ) -> None:
        self.synchronizer = synchronizer
        self.policy = SyncPolicy(policy)

    def on_entity_created(self, entity_type: EntityType, entity_id: int) -> SyncResult:
        return self._guard(
            "create", entity_type, entity_id,
            lambda: self.synchronizer.sync_entity(entity_type, entity_id),
        )

    def on_entity_updated(
        self,
        entity_type: EntityType,
        entity_id: int,
        previous: dict[str, Any] | None = None,
    ) -> SyncResult:
        return self._guard(
            "update", entity_type, entity_id,
            lambda: self.synchronizer.sync_entity(entity_type, entity_id, previous=previous),
        )

    def on_entity_deleted(
        self,
        entity_type: EntityType,
        entity_id: int,
        snapshot: dict[str, Any] | None = None,
    ) -> SyncResult:
        return self._guard(
            "delete", entity_type, entity_id,
            lambda: self.synchronizer.remove_entity(entity_type, entity_id, snapshot),
        )

    def _guard(self, operation: str, entity_type: EntityType, entity_id: int, sync: Any) -> SyncResult:
        entity = EntityType(entity_type).value
        try:
            sync()
        except SyncCancelledError:
            raise
        except Exception as e:
            message = f"Graph sync failed after {operation} of {entity} {entity_id}: {e}"
            if self.policy == SyncPolicy.STRICT:
                logger.error(
                    message,
                    extra={"event": "graph_sync_failed", "entity": entity, "entity_id": entity_id},
                )
                raise GraphSyncError(message) from e
            logger.warning(
                message,
                extra={"event": "graph_sync_warning", "entity": entity, "entity_id": entity_id},
            )
            return SyncResult.failed(message)
        return SyncResult.ok()
