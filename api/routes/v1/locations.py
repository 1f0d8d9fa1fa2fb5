"""
api/routes/v1/locations.py -- Region and area REST endpoints.

Routes:
  GET/POST          /regions               -- list / create
  GET/PATCH/DELETE  /regions/{region_id}   -- detail / update / hard delete
  GET/POST          /areas                 -- list / create
  GET/PATCH/DELETE  /areas/{area_id}       -- detail / update / hard delete

Reads need livestock:read, writes livestock:write. Deleting a region that
still has areas (or an area that still has listings) returns 409
constraint_violation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.common import apply_patch, paging
from api.models import (
    AreaCreate,
    AreaListResponse,
    AreaPatch,
    AreaResponse,
    MessageResponse,
    MetaDataResponse,
    RegionCreate,
    RegionListResponse,
    RegionPatch,
    RegionResponse,
)
from auth.dependencies import require_permission
from auth.models import User
from core.filters import Filters
from livestock.models import Area, AreaFilters, Region, RegionFilters
from livestock.store import AreaStore, RegionStore

router = APIRouter()

_read = require_permission("livestock:read")
_write = require_permission("livestock:write")


# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------


@router.get("/regions", response_model=RegionListResponse)
def list_regions(
    request: Request,
    name: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    filters: Filters = Depends(paging),
    _: User = Depends(_read),
) -> RegionListResponse:
    store: RegionStore = request.app.state.region_store
    page = store.list(RegionFilters(name=name, code=code, filters=filters))
    return RegionListResponse(
        regions=[RegionResponse.model_validate(r) for r in page.items],
        metadata=MetaDataResponse.from_metadata(page.metadata),
    )


@router.post("/regions", response_model=RegionResponse, status_code=201)
def create_region(request: Request, body: RegionCreate, _: User = Depends(_write)) -> RegionResponse:
    region = request.app.state.region_store.insert(Region(name=body.name, code=body.code))
    return RegionResponse.model_validate(region)


@router.get("/regions/{region_id}", response_model=RegionResponse)
def get_region(request: Request, region_id: int, _: User = Depends(_read)) -> RegionResponse:
    return RegionResponse.model_validate(request.app.state.region_store.get(region_id))


@router.patch("/regions/{region_id}", response_model=RegionResponse)
def update_region(request: Request, region_id: int, body: RegionPatch, _: User = Depends(_write)) -> RegionResponse:
    store: RegionStore = request.app.state.region_store
    region = store.get(region_id)
    apply_patch(region, body)
    store.update(region)
    return RegionResponse.model_validate(region)


@router.delete("/regions/{region_id}", response_model=MessageResponse)
def delete_region(request: Request, region_id: int, _: User = Depends(_write)) -> MessageResponse:
    request.app.state.region_store.hard_delete(region_id)
    return MessageResponse(message="region successfully deleted")


# ---------------------------------------------------------------------------
# Areas
# ---------------------------------------------------------------------------


@router.get("/areas", response_model=AreaListResponse)
def list_areas(
    request: Request,
    name: Optional[str] = Query(None),
    region_id: Optional[int] = Query(None),
    area_type: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    filters: Filters = Depends(paging),
    _: User = Depends(_read),
) -> AreaListResponse:
    store: AreaStore = request.app.state.area_store
    page = store.list(
        AreaFilters(name=name, region_id=region_id, area_type=area_type, is_active=is_active, filters=filters)
    )
    return AreaListResponse(
        areas=[AreaResponse.model_validate(a) for a in page.items],
        metadata=MetaDataResponse.from_metadata(page.metadata),
    )


@router.post("/areas", response_model=AreaResponse, status_code=201)
def create_area(request: Request, body: AreaCreate, _: User = Depends(_write)) -> AreaResponse:
    area = request.app.state.area_store.insert(Area(**body.model_dump()))
    return AreaResponse.model_validate(area)


@router.get("/areas/{area_id}", response_model=AreaResponse)
def get_area(request: Request, area_id: int, _: User = Depends(_read)) -> AreaResponse:
    return AreaResponse.model_validate(request.app.state.area_store.get(area_id))


@router.patch("/areas/{area_id}", response_model=AreaResponse)
def update_area(request: Request, area_id: int, body: AreaPatch, _: User = Depends(_write)) -> AreaResponse:
    store: AreaStore = request.app.state.area_store
    area = store.get(area_id)
    apply_patch(area, body)
    store.update(area)
    return AreaResponse.model_validate(area)


@router.delete("/areas/{area_id}", response_model=MessageResponse)
def delete_area(request: Request, area_id: int, _: User = Depends(_write)) -> MessageResponse:
    request.app.state.area_store.hard_delete(area_id)
    return MessageResponse(message="area successfully deleted")
