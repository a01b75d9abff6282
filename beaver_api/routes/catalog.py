"""Catalogue endpoints: environments, teams, users, components, instances.

Every write commits to the record store first and then runs a targeted
graph sync. The response carries the sync outcome so callers can tell a
fully propagated write from one the next repair pass has to converge.
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from beaver_api.dependencies import get_catalog_service, get_store
from beaver_api.middleware import record_sync_outcome
from beaver_api.schemas.catalog import (
    ComponentCreate,
    ComponentUpdate,
    InstanceCreate,
    InstanceUpdate,
    NamedCreate,
    NamedUpdate,
    UserCreate,
    UserUpdate,
)
from beaver_api.schemas.common import MutationResponse
from beaver_core.models.types import MutationResult

router = APIRouter()
logger = logging.getLogger(__name__)


def to_response(result: MutationResult) -> MutationResponse:
    """Convert a service result, reporting its sync outcome to the request middleware."""
    record_sync_outcome(result.sync)
    return MutationResponse(entity=result.entity, sync=result.sync.to_dict())


def found(row: dict[str, Any] | None, kind: str, record_id: int) -> dict[str, Any]:
    if row is None:
        raise HTTPException(status_code=404, detail=f"{kind} not found: {record_id}")
    return row


# ========================
# Environments
# ========================


@router.get("/environments", tags=["catalog"])
def list_environments() -> list[dict[str, Any]]:
    with get_store() as store:
        return store.list_environments()


@router.get("/environments/{env_id}", tags=["catalog"])
def get_environment(env_id: int) -> dict[str, Any]:
    with get_store() as store:
        return found(store.get_environment(env_id), "Environment", env_id)


@router.post(
    "/environments",
    response_model=MutationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["catalog"],
)
def create_environment(body: NamedCreate) -> MutationResponse:
    with get_store() as store:
        return to_response(get_catalog_service(store).create_environment(body.name, body.description))


@router.patch("/environments/{env_id}", response_model=MutationResponse, tags=["catalog"])
def update_environment(env_id: int, body: NamedUpdate) -> MutationResponse:
    with get_store() as store:
        fields = body.model_dump(mode="json", exclude_unset=True)
        return to_response(get_catalog_service(store).update_environment(env_id, **fields))


@router.delete("/environments/{env_id}", response_model=MutationResponse, tags=["catalog"])
def delete_environment(env_id: int) -> MutationResponse:
    """Delete an environment. Rejected with 409 while instances remain in it."""
    with get_store() as store:
        return to_response(get_catalog_service(store).delete_environment(env_id))


# ========================
# Teams
# ========================


@router.get("/teams", tags=["catalog"])
def list_teams() -> list[dict[str, Any]]:
    with get_store() as store:
        return store.list_teams()


@router.get("/teams/{team_id}", tags=["catalog"])
def get_team(team_id: int) -> dict[str, Any]:
    with get_store() as store:
        return found(store.get_team(team_id), "Team", team_id)


@router.post("/teams", response_model=MutationResponse, status_code=status.HTTP_201_CREATED, tags=["catalog"])
def create_team(body: NamedCreate) -> MutationResponse:
    with get_store() as store:
        return to_response(get_catalog_service(store).create_team(body.name, body.description))


@router.patch("/teams/{team_id}", response_model=MutationResponse, tags=["catalog"])
def update_team(team_id: int, body: NamedUpdate) -> MutationResponse:
    with get_store() as store:
        fields = body.model_dump(mode="json", exclude_unset=True)
        return to_response(get_catalog_service(store).update_team(team_id, **fields))


@router.delete("/teams/{team_id}", response_model=MutationResponse, tags=["catalog"])
def delete_team(team_id: int) -> MutationResponse:
    with get_store() as store:
        return to_response(get_catalog_service(store).delete_team(team_id))


# ========================
# Users
# ========================


@router.get("/users", tags=["catalog"])
def list_users() -> list[dict[str, Any]]:
    with get_store() as store:
        return store.list_users()


@router.get("/users/{user_id}", tags=["catalog"])
def get_user(user_id: int) -> dict[str, Any]:
    with get_store() as store:
        return found(store.get_user(user_id), "User", user_id)


@router.post("/users", response_model=MutationResponse, status_code=status.HTTP_201_CREATED, tags=["catalog"])
def create_user(body: UserCreate) -> MutationResponse:
    with get_store() as store:
        return to_response(get_catalog_service(store).create_user(body.username, body.email, body.role))


@router.patch("/users/{user_id}", response_model=MutationResponse, tags=["catalog"])
def update_user(user_id: int, body: UserUpdate) -> MutationResponse:
    with get_store() as store:
        fields = body.model_dump(mode="json", exclude_unset=True)
        return to_response(get_catalog_service(store).update_user(user_id, **fields))


@router.delete("/users/{user_id}", response_model=MutationResponse, tags=["catalog"])
def delete_user(user_id: int) -> MutationResponse:
    """Delete a user. Rejected with 409 while they are the only owner of an ADR."""
    with get_store() as store:
        return to_response(get_catalog_service(store).delete_user(user_id))


# ========================
# Categories (relational only)
# ========================


@router.get("/categories", tags=["catalog"])
def list_categories() -> list[dict[str, Any]]:
    with get_store() as store:
        return store.list_categories()


@router.post("/categories", status_code=status.HTTP_201_CREATED, tags=["catalog"])
def create_category(body: NamedCreate) -> dict[str, Any]:
    with get_store() as store:
        return store.create_category(body.name)


# ========================
# Components
# ========================


@router.get("/components", tags=["catalog"])
def list_components() -> list[dict[str, Any]]:
    with get_store() as store:
        return store.list_components()


@router.get("/components/{component_id}", tags=["catalog"])
def get_component(component_id: int) -> dict[str, Any]:
    with get_store() as store:
        return found(store.get_component(component_id), "Component", component_id)


@router.post(
    "/components",
    response_model=MutationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["catalog"],
)
def create_component(body: ComponentCreate) -> MutationResponse:
    with get_store() as store:
        result = get_catalog_service(store).create_component(
            body.name,
            description=body.description,
            status=body.status,
            team_id=body.team_id,
            category_id=body.category_id,
        )
        return to_response(result)


@router.patch("/components/{component_id}", response_model=MutationResponse, tags=["catalog"])
def update_component(component_id: int, body: ComponentUpdate) -> MutationResponse:
    with get_store() as store:
        fields = body.model_dump(mode="json", exclude_unset=True)
        return to_response(get_catalog_service(store).update_component(component_id, **fields))


@router.delete("/components/{component_id}", response_model=MutationResponse, tags=["catalog"])
def delete_component(component_id: int) -> MutationResponse:
    """Delete a component together with its instances."""
    with get_store() as store:
        return to_response(get_catalog_service(store).delete_component(component_id))


# ========================
# Component instances
# ========================


@router.get("/instances", tags=["catalog"])
def list_instances(component_id: int | None = None) -> list[dict[str, Any]]:
    with get_store() as store:
        return store.list_component_instances(component_id)


@router.get("/instances/{instance_id}", tags=["catalog"])
def get_instance(instance_id: int) -> dict[str, Any]:
    with get_store() as store:
        return found(store.get_component_instance(instance_id), "Component instance", instance_id)


@router.post("/instances", response_model=MutationResponse, status_code=status.HTTP_201_CREATED, tags=["catalog"])
def create_instance(body: InstanceCreate) -> MutationResponse:
    """Deploy a component into an environment (one instance per pair)."""
    with get_store() as store:
        result = get_catalog_service(store).create_component_instance(
            body.component_id, body.environment_id, body.hostname, body.specs
        )
        return to_response(result)


@router.patch("/instances/{instance_id}", response_model=MutationResponse, tags=["catalog"])
def update_instance(instance_id: int, body: InstanceUpdate) -> MutationResponse:
    with get_store() as store:
        fields = body.model_dump(mode="json", exclude_unset=True)
        return to_response(get_catalog_service(store).update_component_instance(instance_id, **fields))


@router.delete("/instances/{instance_id}", response_model=MutationResponse, tags=["catalog"])
def delete_instance(instance_id: int) -> MutationResponse:
    with get_store() as store:
        return to_response(get_catalog_service(store).delete_component_instance(instance_id))
