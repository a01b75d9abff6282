"""Relational → graph synchronization and integrity reconciliation."""

from beaver_core.sync.hooks import SyncHooks
from beaver_core.sync.repair import IntegrityRepair, OrphanFixer
from beaver_core.sync.synchronizer import (
    EntitySynchronizer,
    GraphSyncError,
    SyncCancelledError,
    SyncError,
)
from beaver_core.sync.validator import IntegrityValidator

__all__ = [
    "EntitySynchronizer",
    "GraphSyncError",
    "IntegrityRepair",
    "IntegrityValidator",
    "OrphanFixer",
    "SyncCancelledError",
    "SyncError",
    "SyncHooks",
]
