"""Component relation endpoints and time-scoped component lookups.

Relations are stored only in the graph. A graph failure therefore fails
the request (502 or 503) instead of returning a sync warning.
"""

from fastapi import APIRouter, Query, status

from beaver_api.dependencies import get_relation_service, get_store
from beaver_api.schemas.relations import RelationCreate, RelationResponse, RelationUpdate
from beaver_core.models.types import ComponentRelation

router = APIRouter()


def _response(relation: ComponentRelation) -> RelationResponse:
    return RelationResponse(**relation.to_dict())


@router.get("/relations", response_model=list[RelationResponse], tags=["relations"])
def list_relations() -> list[RelationResponse]:
    with get_store() as store:
        return [_response(r) for r in get_relation_service(store).list_relations()]


@router.get("/relations/{relation_id}", response_model=RelationResponse, tags=["relations"])
def get_relation(relation_id: str) -> RelationResponse:
    with get_store() as store:
        return _response(get_relation_service(store).get_relation(relation_id))


@router.post(
    "/relations",
    response_model=RelationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["relations"],
)
def create_relation(body: RelationCreate) -> RelationResponse:
    """Link two components. 404 for an unknown component, 409 if it is not synced yet."""
    with get_store() as store:
        relation = get_relation_service(store).create_relation(
            body.source_id, body.target_id, body.type, body.properties
        )
        return _response(relation)


@router.put("/relations/{relation_id}", response_model=RelationResponse, tags=["relations"])
def update_relation(relation_id: str, body: RelationUpdate) -> RelationResponse:
    with get_store() as store:
        relation = get_relation_service(store).update_relation(
            relation_id, body.source_id, body.target_id, body.type, body.properties
        )
        return _response(relation)


@router.delete("/relations/{relation_id}", response_model=RelationResponse, tags=["relations"])
def delete_relation(relation_id: str) -> RelationResponse:
    with get_store() as store:
        return _response(get_relation_service(store).delete_relation(relation_id))


@router.get("/graph/components", tags=["relations"])
def find_components(
    name: str | None = Query(default=None, description="Substring of the component name"),
    valid_at: str | None = Query(default=None, description="ISO 8601 instant inside the validity interval"),
) -> list[dict]:
    """Component nodes as the graph holds them, optionally scoped to an instant."""
    with get_store() as store:
        return get_relation_service(store).find_components(name=name, valid_at=valid_at)
