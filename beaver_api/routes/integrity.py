"""Sync, validation and repair endpoints."""

import logging

from fastapi import APIRouter

from beaver_api.dependencies import get_reconciler, get_store
from beaver_api.metrics import get_metrics_collector
from beaver_api.schemas.integrity import RepairResponse, SyncResponse, ValidationResponse
from beaver_core.models.types import EntityType

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/integrity/validate", response_model=ValidationResponse, tags=["integrity"])
def validate() -> ValidationResponse:
    """Compare the record store with the graph without changing either.

    Count discrepancies report ``difference`` as relational minus graph,
    so a positive value means nodes or relationships are missing from the
    graph.
    """
    with get_store() as store:
        report = get_reconciler(store).validator.validate()

    get_metrics_collector().record_validation(report.valid, len(report.discrepancies))
    return ValidationResponse(**report.to_dict())


@router.post("/integrity/repair", response_model=RepairResponse, tags=["integrity"])
def repair(fail_fast: bool = False) -> RepairResponse:
    """Validate, apply one corrective action per discrepancy, and re-validate.

    A valid graph is left untouched. With ``fail_fast`` the first failing
    action aborts the pass; otherwise failures are reported per action.
    """
    with get_store() as store:
        report = get_reconciler(store, fail_fast=fail_fast).repairer.repair()

    get_metrics_collector().record_repair(report.fixed)
    return RepairResponse(**report.to_dict())


@router.post("/integrity/sync", response_model=SyncResponse, tags=["integrity"])
def sync_all() -> SyncResponse:
    """Run a full sync of every entity type in dependency order."""
    with get_store() as store:
        result = get_reconciler(store).sync()
    return SyncResponse(**result)


@router.post("/integrity/sync/{entity_type}", response_model=SyncResponse, tags=["integrity"])
def sync_entity_type(entity_type: EntityType) -> SyncResponse:
    """Run the full-table sync routine of one entity type."""
    with get_store() as store:
        result = get_reconciler(store).sync(entity_type.value)
    return SyncResponse(**result)
