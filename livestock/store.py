"""
livestock/store.py -- SQLAlchemy Core persistence for marketplace records.

Pattern: Repository + Data Mapper. One VersionedStore subclass per table; the
compare-and-swap update, soft/hard delete and windowed list SQL all live in
core/store.py. What remains here is schema, mappers and filter predicates.

Referential integrity is left to the database (foreign_keys=ON on SQLite):
inserting cattle for an unknown breed, or deleting a breed that cattle still
reference, surfaces as ForeignKeyViolationError.

Delete modes:
  breeds, regions, areas, listing_prices -- hard delete
  cattle, listings                       -- soft delete (is_active = false)
"""

from typing import Any

from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String, Table, Text, UniqueConstraint

from auth.store import users
from core.db import metadata, versioned_columns
from core.filters import Page
from core.store import VersionedStore, contains_ci
from core.validator import Validator
from livestock.models import (
    Area,
    AreaFilters,
    Breed,
    BreedFilters,
    Cattle,
    CattleFilters,
    Listing,
    ListingFilters,
    ListingPrice,
    ListingPriceFilters,
    Region,
    RegionFilters,
)
from livestock.validation import (
    validate_area,
    validate_breed,
    validate_cattle,
    validate_listing,
    validate_listing_price,
    validate_region,
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

breeds = Table(
    "breeds",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    *versioned_columns(),
)

cattle = Table(
    "cattle",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, ForeignKey(users.c.id), nullable=False, index=True),
    Column("breed_id", Integer, ForeignKey(breeds.c.id), nullable=False, index=True),
    Column("tag_number", String(50), nullable=False, unique=True),
    Column("sex", String(10), nullable=False, server_default="unknown"),
    Column("age_months", Integer, nullable=False, server_default="0"),
    Column("weight_kg", Integer, nullable=False, server_default="0"),
    Column("vaccinations", Text, nullable=False, server_default=""),
    Column("medical_history", Text, nullable=False, server_default=""),
    Column("is_pregnant", Boolean, nullable=False, server_default="0"),
    Column("is_castrated", Boolean, nullable=False, server_default="0"),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    *versioned_columns(),
)

regions = Table(
    "regions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("code", String(10), nullable=False, unique=True),
    *versioned_columns(),
)

areas = Table(
    "areas",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("region_id", Integer, ForeignKey(regions.c.id), nullable=False, index=True),
    Column("area_type", String(10), nullable=False),
    Column("latitude", Float, nullable=False, server_default="0"),
    Column("longitude", Float, nullable=False, server_default="0"),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    *versioned_columns(),
)

listings = Table(
    "listings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("seller_id", Integer, ForeignKey(users.c.id), nullable=False, index=True),
    Column("area_id", Integer, ForeignKey(areas.c.id), nullable=False, index=True),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    *versioned_columns(),
)

listing_prices = Table(
    "listing_prices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("listing_id", Integer, ForeignKey(listings.c.id, ondelete="CASCADE"), nullable=False, index=True),
    Column("cattle_class", String(20), nullable=False),
    Column("price_per_kg", Integer, nullable=False),
    Column("quantity", Integer, nullable=False, server_default="1"),
    *versioned_columns(),
    UniqueConstraint("listing_id", "cattle_class", name="uq_listing_prices_class"),
)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class BreedStore(VersionedStore[Breed]):
    table = breeds
    unique_fields = ("name",)
    sort_fields = ("id", "name", "created_at", "updated_at")

    def _row_to_entity(self, row) -> Breed:
        return Breed(
            id=row.id,
            name=row.name,
            description=row.description,
            is_active=bool(row.is_active),
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _entity_to_values(self, b: Breed) -> dict[str, Any]:
        return {"name": b.name, "description": b.description, "is_active": b.is_active}

    def _validate(self, v: Validator, b: Breed) -> None:
        validate_breed(v, b)

    def list(self, f: BreedFilters) -> Page:
        c = breeds.c
        conditions = []
        if f.name:
            conditions.append(contains_ci(c.name, f.name))
        if f.is_active is not None:
            conditions.append(c.is_active == f.is_active)
        return self._list(conditions, f.filters)


class CattleStore(VersionedStore[Cattle]):
    """Cattle records. Soft delete sets is_active=False (sold or deceased)."""

    table = cattle
    unique_fields = ("tag_number",)
    soft_delete_flag = ("is_active", "is_active", False)
    sort_fields = ("id", "tag_number", "age_months", "weight_kg", "created_at", "updated_at")

    def _row_to_entity(self, row) -> Cattle:
        return Cattle(
            id=row.id,
            owner_id=row.owner_id,
            breed_id=row.breed_id,
            tag_number=row.tag_number,
            sex=row.sex,
            age_months=row.age_months,
            weight_kg=row.weight_kg,
            vaccinations=row.vaccinations,
            medical_history=row.medical_history,
            is_pregnant=bool(row.is_pregnant),
            is_castrated=bool(row.is_castrated),
            is_active=bool(row.is_active),
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _entity_to_values(self, c: Cattle) -> dict[str, Any]:
        return {
            "owner_id": c.owner_id,
            "breed_id": c.breed_id,
            "tag_number": c.tag_number,
            "sex": c.sex,
            "age_months": c.age_months,
            "weight_kg": c.weight_kg,
            "vaccinations": c.vaccinations,
            "medical_history": c.medical_history,
            "is_pregnant": c.is_pregnant,
            "is_castrated": c.is_castrated,
            "is_active": c.is_active,
        }

    def _validate(self, v: Validator, c: Cattle) -> None:
        validate_cattle(v, c)

    def list(self, f: CattleFilters) -> Page:
        c = cattle.c
        conditions = []
        if f.owner_id is not None:
            conditions.append(c.owner_id == f.owner_id)
        if f.breed_id is not None:
            conditions.append(c.breed_id == f.breed_id)
        if f.tag_number:
            conditions.append(contains_ci(c.tag_number, f.tag_number))
        if f.sex:
            conditions.append(c.sex == f.sex)
        if f.is_pregnant is not None:
            conditions.append(c.is_pregnant == f.is_pregnant)
        if f.is_castrated is not None:
            conditions.append(c.is_castrated == f.is_castrated)
        if f.is_active is not None:
            conditions.append(c.is_active == f.is_active)
        return self._list(conditions, f.filters)


class RegionStore(VersionedStore[Region]):
    table = regions
    unique_fields = ("name", "code")
    sort_fields = ("id", "name", "code", "created_at", "updated_at")

    def _row_to_entity(self, row) -> Region:
        return Region(
            id=row.id,
            name=row.name,
            code=row.code,
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _entity_to_values(self, r: Region) -> dict[str, Any]:
        return {"name": r.name, "code": r.code}

    def _validate(self, v: Validator, r: Region) -> None:
        validate_region(v, r)

    def list(self, f: RegionFilters) -> Page:
        c = regions.c
        conditions = []
        if f.name:
            conditions.append(contains_ci(c.name, f.name))
        if f.code:
            conditions.append(contains_ci(c.code, f.code))
        return self._list(conditions, f.filters)


class AreaStore(VersionedStore[Area]):
    table = areas
    sort_fields = ("id", "name", "area_type", "created_at", "updated_at")

    def _row_to_entity(self, row) -> Area:
        return Area(
            id=row.id,
            name=row.name,
            region_id=row.region_id,
            area_type=row.area_type,
            latitude=row.latitude,
            longitude=row.longitude,
            is_active=bool(row.is_active),
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _entity_to_values(self, a: Area) -> dict[str, Any]:
        return {
            "name": a.name,
            "region_id": a.region_id,
            "area_type": a.area_type,
            "latitude": a.latitude,
            "longitude": a.longitude,
            "is_active": a.is_active,
        }

    def _validate(self, v: Validator, a: Area) -> None:
        validate_area(v, a)

    def list(self, f: AreaFilters) -> Page:
        c = areas.c
        conditions = []
        if f.name:
            conditions.append(contains_ci(c.name, f.name))
        if f.region_id is not None:
            conditions.append(c.region_id == f.region_id)
        if f.area_type:
            conditions.append(c.area_type == f.area_type)
        if f.is_active is not None:
            conditions.append(c.is_active == f.is_active)
        return self._list(conditions, f.filters)


class ListingStore(VersionedStore[Listing]):
    """Sale listings. Soft delete sets is_active=False (withdrawn)."""

    table = listings
    soft_delete_flag = ("is_active", "is_active", False)
    sort_fields = ("id", "title", "created_at", "updated_at")

    def _row_to_entity(self, row) -> Listing:
        return Listing(
            id=row.id,
            seller_id=row.seller_id,
            area_id=row.area_id,
            title=row.title,
            description=row.description,
            is_active=bool(row.is_active),
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _entity_to_values(self, listing: Listing) -> dict[str, Any]:
        return {
            "seller_id": listing.seller_id,
            "area_id": listing.area_id,
            "title": listing.title,
            "description": listing.description,
            "is_active": listing.is_active,
        }

    def _validate(self, v: Validator, listing: Listing) -> None:
        validate_listing(v, listing)

    def list(self, f: ListingFilters) -> Page:
        c = listings.c
        conditions = []
        if f.seller_id is not None:
            conditions.append(c.seller_id == f.seller_id)
        if f.area_id is not None:
            conditions.append(c.area_id == f.area_id)
        if f.title:
            conditions.append(contains_ci(c.title, f.title))
        if f.is_active is not None:
            conditions.append(c.is_active == f.is_active)
        return self._list(conditions, f.filters)


class ListingPriceStore(VersionedStore[ListingPrice]):
    table = listing_prices
    # The constraint is (listing_id, cattle_class); the class is what the client got wrong.
    unique_fields = ("cattle_class",)
    sort_fields = ("id", "cattle_class", "price_per_kg", "quantity")

    def _row_to_entity(self, row) -> ListingPrice:
        return ListingPrice(
            id=row.id,
            listing_id=row.listing_id,
            cattle_class=row.cattle_class,
            price_per_kg=row.price_per_kg,
            quantity=row.quantity,
            version=row.version,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _entity_to_values(self, lp: ListingPrice) -> dict[str, Any]:
        return {
            "listing_id": lp.listing_id,
            "cattle_class": lp.cattle_class,
            "price_per_kg": lp.price_per_kg,
            "quantity": lp.quantity,
        }

    def _validate(self, v: Validator, lp: ListingPrice) -> None:
        validate_listing_price(v, lp)

    def list(self, f: ListingPriceFilters) -> Page:
        c = listing_prices.c
        conditions = []
        if f.listing_id is not None:
            conditions.append(c.listing_id == f.listing_id)
        if f.cattle_class:
            conditions.append(c.cattle_class == f.cattle_class)
        return self._list(conditions, f.filters)
