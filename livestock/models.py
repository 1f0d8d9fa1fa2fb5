"""
livestock/models.py -- Domain dataclasses for marketplace records.

Pure data containers. Validation lives in livestock/validation.py and all
persistence in livestock/store.py.

Every record carries version / created_at / updated_at and is written through
core.store.VersionedStore, so concurrent edits are detected the same way as
for users. id is None and version is 1 before the record is written.
"""

from dataclasses import dataclass, field
from typing import Optional

from core.filters import Filters

SEXES = ("male", "female", "unknown")
AREA_TYPES = ("city", "town", "village")

# Calves (under 11 months), weaners (11-12 months), adults (over 12 months).
CATTLE_CLASSES = (
    "calf",
    "heifer_calf",
    "steer_calf",
    "bull_calf",
    "weaner",
    "heifer_weaner",
    "steer_weaner",
    "bull_weaner",
    "yearling",
    "heifer",
    "cow",
    "spayed_heifer",
    "spayed_cow",
    "steer",
    "bull",
)


@dataclass
class Breed:
    name: str
    description: str = ""
    is_active: bool = True
    id: Optional[int] = None
    version: int = 1
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Cattle:
    """One animal owned by a user.

    vaccinations and medical_history are free text (comma-separated entries).
    is_active=False marks an animal sold or deceased; that is its soft delete.
    """

    owner_id: int
    breed_id: int
    tag_number: str
    sex: str = "unknown"  # "male" | "female" | "unknown"
    age_months: int = 0
    weight_kg: int = 0
    vaccinations: str = ""
    medical_history: str = ""
    is_pregnant: bool = False
    is_castrated: bool = False
    is_active: bool = True
    id: Optional[int] = None
    version: int = 1
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Region:
    name: str
    code: str
    id: Optional[int] = None
    version: int = 1
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Area:
    """A city, town or village inside a region. (0, 0) means "no coordinates"."""

    name: str
    region_id: int
    area_type: str  # "city" | "town" | "village"
    latitude: float = 0.0
    longitude: float = 0.0
    is_active: bool = True
    id: Optional[int] = None
    version: int = 1
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Listing:
    """A sale offer by a seller in one area. is_active=False withdraws it."""

    seller_id: int
    area_id: int
    title: str
    description: str = ""
    is_active: bool = True
    id: Optional[int] = None
    version: int = 1
    created_at: str = ""
    updated_at: str = ""


@dataclass
class ListingPrice:
    """Asking price for one cattle class on a listing.

    price_per_kg is in minor currency units (cents) to avoid float rounding.
    A listing carries at most one price per cattle class.
    """

    listing_id: int
    cattle_class: str
    price_per_kg: int
    quantity: int = 1
    id: Optional[int] = None
    version: int = 1
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# List filters -- None means "do not constrain"
# ---------------------------------------------------------------------------


@dataclass
class BreedFilters:
    name: Optional[str] = None
    is_active: Optional[bool] = None
    filters: Filters = field(default_factory=Filters)


@dataclass
class CattleFilters:
    owner_id: Optional[int] = None
    breed_id: Optional[int] = None
    tag_number: Optional[str] = None
    sex: Optional[str] = None
    is_pregnant: Optional[bool] = None
    is_castrated: Optional[bool] = None
    is_active: Optional[bool] = None
    filters: Filters = field(default_factory=Filters)


@dataclass
class RegionFilters:
    name: Optional[str] = None
    code: Optional[str] = None
    filters: Filters = field(default_factory=Filters)


@dataclass
class AreaFilters:
    name: Optional[str] = None
    region_id: Optional[int] = None
    area_type: Optional[str] = None
    is_active: Optional[bool] = None
    filters: Filters = field(default_factory=Filters)


@dataclass
class ListingFilters:
    seller_id: Optional[int] = None
    area_id: Optional[int] = None
    title: Optional[str] = None
    is_active: Optional[bool] = None
    filters: Filters = field(default_factory=Filters)


@dataclass
class ListingPriceFilters:
    listing_id: Optional[int] = None
    cattle_class: Optional[str] = None
    filters: Filters = field(default_factory=Filters)
