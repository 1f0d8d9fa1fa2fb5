"""
api/routes/v1/livestock.py -- Breed and cattle REST endpoints.

Routes:
  GET    /breeds               -- list (livestock:read)
  POST   /breeds               -- create (livestock:write)
  GET    /breeds/{breed_id}    -- detail (livestock:read)
  PATCH  /breeds/{breed_id}    -- partial update (livestock:write)
  DELETE /breeds/{breed_id}    -- hard delete; 409 while cattle reference it (livestock:write)
  GET    /cattle               -- list (livestock:read)
  POST   /cattle               -- create, owned by the caller (livestock:write)
  GET    /cattle/{cattle_id}   -- detail (livestock:read)
  PATCH  /cattle/{cattle_id}   -- partial update, owner only (livestock:write)
  DELETE /cattle/{cattle_id}   -- soft delete (is_active=false), owner only (livestock:write)

Permission dependencies also require an activated account.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.common import apply_patch, forbidden, paging
from api.models import (
    BreedCreate,
    BreedListResponse,
    BreedPatch,
    BreedResponse,
    CattleCreate,
    CattleListResponse,
    CattlePatch,
    CattleResponse,
    MessageResponse,
    MetaDataResponse,
)
from auth.dependencies import require_permission
from auth.models import User
from core.filters import Filters
from livestock.models import Breed, BreedFilters, Cattle, CattleFilters
from livestock.store import BreedStore, CattleStore

router = APIRouter()

_read = require_permission("livestock:read")
_write = require_permission("livestock:write")


# ---------------------------------------------------------------------------
# Breeds
# ---------------------------------------------------------------------------


@router.get("/breeds", response_model=BreedListResponse)
def list_breeds(
    request: Request,
    name: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    filters: Filters = Depends(paging),
    _: User = Depends(_read),
) -> BreedListResponse:
    store: BreedStore = request.app.state.breed_store
    page = store.list(BreedFilters(name=name, is_active=is_active, filters=filters))
    return BreedListResponse(
        breeds=[BreedResponse.model_validate(b) for b in page.items],
        metadata=MetaDataResponse.from_metadata(page.metadata),
    )


@router.post("/breeds", response_model=BreedResponse, status_code=201)
def create_breed(request: Request, body: BreedCreate, _: User = Depends(_write)) -> BreedResponse:
    breed = request.app.state.breed_store.insert(Breed(name=body.name, description=body.description))
    return BreedResponse.model_validate(breed)


@router.get("/breeds/{breed_id}", response_model=BreedResponse)
def get_breed(request: Request, breed_id: int, _: User = Depends(_read)) -> BreedResponse:
    return BreedResponse.model_validate(request.app.state.breed_store.get(breed_id))


@router.patch("/breeds/{breed_id}", response_model=BreedResponse)
def update_breed(request: Request, breed_id: int, body: BreedPatch, _: User = Depends(_write)) -> BreedResponse:
    store: BreedStore = request.app.state.breed_store
    breed = store.get(breed_id)
    apply_patch(breed, body)
    store.update(breed)
    return BreedResponse.model_validate(breed)


@router.delete("/breeds/{breed_id}", response_model=MessageResponse)
def delete_breed(request: Request, breed_id: int, _: User = Depends(_write)) -> MessageResponse:
    request.app.state.breed_store.hard_delete(breed_id)
    return MessageResponse(message="breed successfully deleted")


# ---------------------------------------------------------------------------
# Cattle
# ---------------------------------------------------------------------------


def _owned_cattle(request: Request, cattle_id: int, user: User) -> Cattle:
    animal = request.app.state.cattle_store.get(cattle_id)
    if animal.owner_id != user.id:
        raise forbidden("not_owner", "Only the owner can modify this record.")
    return animal


@router.get("/cattle", response_model=CattleListResponse)
def list_cattle(
    request: Request,
    owner_id: Optional[int] = Query(None),
    breed_id: Optional[int] = Query(None),
    tag_number: Optional[str] = Query(None),
    sex: Optional[str] = Query(None),
    is_pregnant: Optional[bool] = Query(None),
    is_castrated: Optional[bool] = Query(None),
    is_active: Optional[bool] = Query(None),
    filters: Filters = Depends(paging),
    _: User = Depends(_read),
) -> CattleListResponse:
    store: CattleStore = request.app.state.cattle_store
    page = store.list(
        CattleFilters(
            owner_id=owner_id,
            breed_id=breed_id,
            tag_number=tag_number,
            sex=sex,
            is_pregnant=is_pregnant,
            is_castrated=is_castrated,
            is_active=is_active,
            filters=filters,
        )
    )
    return CattleListResponse(
        cattle=[CattleResponse.model_validate(c) for c in page.items],
        metadata=MetaDataResponse.from_metadata(page.metadata),
    )


@router.post("/cattle", response_model=CattleResponse, status_code=201)
def create_cattle(request: Request, body: CattleCreate, user: User = Depends(_write)) -> CattleResponse:
    animal = Cattle(owner_id=user.id, **body.model_dump())
    request.app.state.cattle_store.insert(animal)
    return CattleResponse.model_validate(animal)


@router.get("/cattle/{cattle_id}", response_model=CattleResponse)
def get_cattle(request: Request, cattle_id: int, _: User = Depends(_read)) -> CattleResponse:
    return CattleResponse.model_validate(request.app.state.cattle_store.get(cattle_id))


@router.patch("/cattle/{cattle_id}", response_model=CattleResponse)
def update_cattle(request: Request, cattle_id: int, body: CattlePatch, user: User = Depends(_write)) -> CattleResponse:
    animal = _owned_cattle(request, cattle_id, user)
    apply_patch(animal, body)
    request.app.state.cattle_store.update(animal)
    return CattleResponse.model_validate(animal)


@router.delete("/cattle/{cattle_id}", response_model=CattleResponse)
def delete_cattle(request: Request, cattle_id: int, user: User = Depends(_write)) -> CattleResponse:
    """Mark an animal inactive (sold or deceased). A second delete returns 409 already_deleted."""
    animal = _owned_cattle(request, cattle_id, user)
    request.app.state.cattle_store.soft_delete(animal)
    return CattleResponse.model_validate(animal)
