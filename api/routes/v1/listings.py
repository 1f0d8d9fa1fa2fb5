"""
api/routes/v1/listings.py -- Sale listing and listing price REST endpoints.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /listings                                -- list (livestock:read)
  POST   /listings                                -- create, seller is the caller (livestock:write)
  GET    /listings/{listing_id}                   -- detail (livestock:read)
  PATCH  /listings/{listing_id}                   -- partial update, seller only (livestock:write)
  DELETE /listings/{listing_id}                   -- withdraw (soft delete), seller only (livestock:write)
  GET    /listings/{listing_id}/prices            -- prices for a listing (livestock:read)
  POST   /listings/{listing_id}/prices            -- add a price, seller only (livestock:write)
  DELETE /listings/{listing_id}/prices/{price_id} -- remove a price, seller only (livestock:write)

A listing holds at most one price per cattle class; a second one for the same
class returns 409 duplicate_value naming cattle_class.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.common import apply_patch, forbidden, paging
from api.models import (
    ListingCreate,
    ListingListResponse,
    ListingPatch,
    ListingPriceCreate,
    ListingPriceListResponse,
    ListingPriceResponse,
    ListingResponse,
    MessageResponse,
    MetaDataResponse,
)
from auth.dependencies import require_permission
from auth.models import User
from core.errors import RecordNotFoundError
from core.filters import Filters
from livestock.models import Listing, ListingFilters, ListingPrice, ListingPriceFilters
from livestock.store import ListingPriceStore, ListingStore

router = APIRouter()

_read = require_permission("livestock:read")
_write = require_permission("livestock:write")


def _owned_listing(request: Request, listing_id: int, user: User) -> Listing:
    listing = request.app.state.listing_store.get(listing_id)
    if listing.seller_id != user.id:
        raise forbidden("not_owner", "Only the seller can modify this listing.")
    return listing


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


@router.get("/listings", response_model=ListingListResponse)
def list_listings(
    request: Request,
    seller_id: Optional[int] = Query(None),
    area_id: Optional[int] = Query(None),
    title: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    filters: Filters = Depends(paging),
    _: User = Depends(_read),
) -> ListingListResponse:
    store: ListingStore = request.app.state.listing_store
    page = store.list(
        ListingFilters(seller_id=seller_id, area_id=area_id, title=title, is_active=is_active, filters=filters)
    )
    return ListingListResponse(
        listings=[ListingResponse.model_validate(item) for item in page.items],
        metadata=MetaDataResponse.from_metadata(page.metadata),
    )


@router.post("/listings", response_model=ListingResponse, status_code=201)
def create_listing(request: Request, body: ListingCreate, user: User = Depends(_write)) -> ListingResponse:
    listing = Listing(seller_id=user.id, **body.model_dump())
    request.app.state.listing_store.insert(listing)
    return ListingResponse.model_validate(listing)


@router.get("/listings/{listing_id}", response_model=ListingResponse)
def get_listing(request: Request, listing_id: int, _: User = Depends(_read)) -> ListingResponse:
    return ListingResponse.model_validate(request.app.state.listing_store.get(listing_id))


@router.patch("/listings/{listing_id}", response_model=ListingResponse)
def update_listing(
    request: Request, listing_id: int, body: ListingPatch, user: User = Depends(_write)
) -> ListingResponse:
    listing = _owned_listing(request, listing_id, user)
    apply_patch(listing, body)
    request.app.state.listing_store.update(listing)
    return ListingResponse.model_validate(listing)


@router.delete("/listings/{listing_id}", response_model=ListingResponse)
def delete_listing(request: Request, listing_id: int, user: User = Depends(_write)) -> ListingResponse:
    listing = _owned_listing(request, listing_id, user)
    request.app.state.listing_store.soft_delete(listing)
    return ListingResponse.model_validate(listing)


# ---------------------------------------------------------------------------
# Listing prices
# ---------------------------------------------------------------------------


@router.get("/listings/{listing_id}/prices", response_model=ListingPriceListResponse)
def list_listing_prices(
    request: Request,
    listing_id: int,
    cattle_class: Optional[str] = Query(None),
    filters: Filters = Depends(paging),
    _: User = Depends(_read),
) -> ListingPriceListResponse:
    request.app.state.listing_store.get(listing_id)
    store: ListingPriceStore = request.app.state.listing_price_store
    page = store.list(ListingPriceFilters(listing_id=listing_id, cattle_class=cattle_class, filters=filters))
    return ListingPriceListResponse(
        prices=[ListingPriceResponse.model_validate(p) for p in page.items],
        metadata=MetaDataResponse.from_metadata(page.metadata),
    )


@router.post("/listings/{listing_id}/prices", response_model=ListingPriceResponse, status_code=201)
def create_listing_price(
    request: Request, listing_id: int, body: ListingPriceCreate, user: User = Depends(_write)
) -> ListingPriceResponse:
    _owned_listing(request, listing_id, user)
    price = ListingPrice(listing_id=listing_id, **body.model_dump())
    request.app.state.listing_price_store.insert(price)
    return ListingPriceResponse.model_validate(price)


@router.delete("/listings/{listing_id}/prices/{price_id}", response_model=MessageResponse)
def delete_listing_price(
    request: Request, listing_id: int, price_id: int, user: User = Depends(_write)
) -> MessageResponse:
    _owned_listing(request, listing_id, user)
    store: ListingPriceStore = request.app.state.listing_price_store
    if store.get(price_id).listing_id != listing_id:
        raise RecordNotFoundError()
    store.hard_delete(price_id)
    return MessageResponse(message="listing price successfully deleted")
