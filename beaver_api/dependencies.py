"""Shared dependencies for API routes.

Provides context-managed record store connections and builds the
services each request needs from the DI container.
"""

import os
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException

from beaver_core.container import get_container
from beaver_core.services.catalog import CatalogService
from beaver_core.services.reconcile import Reconciler
from beaver_core.services.relations import RelationService
from beaver_core.storage.graph_store import GraphStore
from beaver_core.storage.job_queue import JobQueue, get_job_queue
from beaver_core.storage.sqlite_store import RecordStore
from beaver_core.sync.hooks import SyncHooks
from beaver_core.sync.synchronizer import EntitySynchronizer


def _db_path() -> str:
    db_path = get_container().get_config().db_path
    if not os.path.exists(db_path):
        raise HTTPException(status_code=503, detail="Database not available")
    return db_path


@contextmanager
def get_store() -> Iterator[RecordStore]:
    """Get a record store with automatic cleanup.

    Each request gets its own store so the thread-local connection is
    closed when the request ends.

    Example:
        @router.get("/endpoint")
        def endpoint():
            with get_store() as store:
                return store.list_teams()
    """
    store = RecordStore(_db_path())
    try:
        yield store
    finally:
        store.close()


def get_graph_store() -> GraphStore:
    """Get the shared graph store from the container."""
    return get_container().get_graph_store()


def get_catalog_service(store: RecordStore) -> CatalogService:
    """Build the catalogue service for one request's store."""
    config = get_container().get_config()
    synchronizer = EntitySynchronizer(store, get_graph_store())
    return CatalogService(store, SyncHooks(synchronizer, config.sync_policy))


def get_relation_service(store: RecordStore) -> RelationService:
    """Build the component relation service for one request's store."""
    return RelationService(store, get_graph_store())


def get_reconciler(store: RecordStore, fail_fast: bool = False) -> Reconciler:
    """Build a reconciler for one request's store."""
    return Reconciler(store, get_graph_store(), get_container().get_config(), fail_fast=fail_fast)


def get_jobs() -> JobQueue:
    """Get the process-wide job queue.

    Its store connection is thread-local, so background job threads open
    their own connection to the same file.
    """
    return get_job_queue(_db_path())
