"""ADR endpoints: decisions, participants and the components they affect."""

import logging
from typing import Any

from fastapi import APIRouter, status

from beaver_api.dependencies import get_catalog_service, get_store
from beaver_api.routes.catalog import found, to_response
from beaver_api.schemas.catalog import (
    ADRComponentCreate,
    ADRCreate,
    ADRInstanceCreate,
    ADRInstanceUpdate,
    ADRUpdate,
    ParticipantCreate,
    ParticipantUpdate,
)
from beaver_api.schemas.common import MutationResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/adrs", tags=["adrs"])
def list_adrs() -> list[dict[str, Any]]:
    with get_store() as store:
        return store.list_adrs()


@router.get("/adrs/{adr_id}", tags=["adrs"])
def get_adr(adr_id: int) -> dict[str, Any]:
    """Get an ADR with its participants, affected instances and components."""
    with get_store() as store:
        adr = found(store.get_adr(adr_id), "ADR", adr_id)
        return {
            **adr,
            "participants": store.list_participants(adr_id),
            "instances": store.list_adr_component_instances(adr_id),
            "components": store.list_adr_components(adr_id),
        }


@router.post("/adrs", response_model=MutationResponse, status_code=status.HTTP_201_CREATED, tags=["adrs"])
def create_adr(body: ADRCreate) -> MutationResponse:
    """Create an ADR; ``owner_id`` becomes its OWNER participant."""
    with get_store() as store:
        result = get_catalog_service(store).create_adr(
            body.title, body.owner_id, description=body.description, status=body.status
        )
        return to_response(result)


@router.patch("/adrs/{adr_id}", response_model=MutationResponse, tags=["adrs"])
def update_adr(adr_id: int, body: ADRUpdate) -> MutationResponse:
    with get_store() as store:
        fields = body.model_dump(mode="json", exclude_unset=True)
        return to_response(get_catalog_service(store).update_adr(adr_id, **fields))


@router.delete("/adrs/{adr_id}", response_model=MutationResponse, tags=["adrs"])
def delete_adr(adr_id: int) -> MutationResponse:
    with get_store() as store:
        return to_response(get_catalog_service(store).delete_adr(adr_id))


# ========================
# Participants
# ========================


@router.post(
    "/adrs/{adr_id}/participants",
    response_model=MutationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["adrs"],
)
def add_participant(adr_id: int, body: ParticipantCreate) -> MutationResponse:
    with get_store() as store:
        return to_response(get_catalog_service(store).add_participant(adr_id, body.user_id, body.role))


@router.patch("/participants/{participant_id}", response_model=MutationResponse, tags=["adrs"])
def update_participant(participant_id: int, body: ParticipantUpdate) -> MutationResponse:
    """Change a participant's role. Demoting the last OWNER is rejected with 409."""
    with get_store() as store:
        return to_response(get_catalog_service(store).update_participant_role(participant_id, body.role))


@router.delete("/participants/{participant_id}", response_model=MutationResponse, tags=["adrs"])
def remove_participant(participant_id: int) -> MutationResponse:
    """Remove a participant. Removing the last OWNER is rejected with 409."""
    with get_store() as store:
        return to_response(get_catalog_service(store).remove_participant(participant_id))


# ========================
# Affected instances and components
# ========================


@router.post(
    "/adrs/{adr_id}/instances",
    response_model=MutationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["adrs"],
)
def add_adr_instance(adr_id: int, body: ADRInstanceCreate) -> MutationResponse:
    with get_store() as store:
        result = get_catalog_service(store).add_adr_component_instance(
            adr_id, body.instance_id, impact_level=body.impact_level, notes=body.notes
        )
        return to_response(result)


@router.patch("/adr-instances/{row_id}", response_model=MutationResponse, tags=["adrs"])
def update_adr_instance(row_id: int, body: ADRInstanceUpdate) -> MutationResponse:
    with get_store() as store:
        fields = body.model_dump(mode="json", exclude_unset=True)
        return to_response(get_catalog_service(store).update_adr_component_instance(row_id, **fields))


@router.delete("/adr-instances/{row_id}", response_model=MutationResponse, tags=["adrs"])
def remove_adr_instance(row_id: int) -> MutationResponse:
    with get_store() as store:
        return to_response(get_catalog_service(store).remove_adr_component_instance(row_id))


@router.post("/adrs/{adr_id}/components", response_model=MutationResponse, tags=["adrs"])
def add_adr_component(adr_id: int, body: ADRComponentCreate) -> MutationResponse:
    """Link an ADR to a component directly. Linking twice is a no-op."""
    with get_store() as store:
        return to_response(get_catalog_service(store).add_adr_component(adr_id, body.component_id))


@router.delete("/adr-components/{row_id}", response_model=MutationResponse, tags=["adrs"])
def remove_adr_component(row_id: int) -> MutationResponse:
    with get_store() as store:
        return to_response(get_catalog_service(store).remove_adr_component(row_id))
