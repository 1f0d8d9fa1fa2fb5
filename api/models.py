"""
API request and response models for the Cash Cow REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
livestock/models.py, which own the internal domain representation. Route
handlers map between the two.

Request models only check JSON shape (types, presence). Domain rules such as
password strength or valid cattle classes are enforced by the Validator
functions so the same rules apply to the CLI and the stores, and violations
come back as 422 validation_failed with a per-field map.

Patch models: every field is optional and only fields present in the body are
applied (model_dump(exclude_unset=True)). `version`, when sent, must match the
stored version or the request fails with 409 edit_conflict.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from core.filters import MetaData

# Passwords are hashed byte for byte, so models carrying one strip their other
# fields individually instead of through str_strip_whitespace.
Stripped = Annotated[str, StringConstraints(strip_whitespace=True)]

# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[dict[str, str]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MetaDataResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    page: int
    page_size: int
    total_pages: int
    total_records: int

    @classmethod
    def from_metadata(cls, m: MetaData) -> "MetaDataResponse":
        return cls.model_validate(m)


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users."""

    email: Stripped
    password: str = Field(repr=False)
    first_name: Stripped
    last_name: Stripped
    middle_name: Stripped = ""
    farmer_id: Optional[Stripped] = None
    phone_number: Optional[Stripped] = None


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. Email and password have their own flows."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    middle_name: Optional[str] = None
    farmer_id: Optional[str] = None
    phone_number: Optional[str] = None
    version: Optional[int] = None


class UserResponse(BaseModel):
    """Public view of a user. The password hash is never part of it."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    middle_name: str
    farmer_id: Optional[str]
    phone_number: Optional[str]
    activated: bool
    verified: bool
    version: int
    created_at: str
    updated_at: str


class UserListResponse(BaseModel):
    users: list[UserResponse]
    metadata: MetaDataResponse


class ActivationRequest(BaseModel):
    token: str


class PasswordResetRequest(BaseModel):
    token: str
    password: str = Field(repr=False)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(repr=False)
    password: str = Field(repr=False)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class AuthenticationRequest(BaseModel):
    email: Stripped
    password: str = Field(repr=False)


class EmailRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str


class AuthenticationTokenResponse(BaseModel):
    token: str
    expiry: str


# ---------------------------------------------------------------------------
# Breeds
# ---------------------------------------------------------------------------


class BreedCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str
    description: str = ""


class BreedPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    version: Optional[int] = None


class BreedResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    is_active: bool
    version: int
    created_at: str
    updated_at: str


class BreedListResponse(BaseModel):
    breeds: list[BreedResponse]
    metadata: MetaDataResponse


# ---------------------------------------------------------------------------
# Cattle
# ---------------------------------------------------------------------------


class CattleCreate(BaseModel):
    """Request body for POST /api/v1/cattle. The owner is the authenticated user."""

    model_config = ConfigDict(str_strip_whitespace=True)

    breed_id: int
    tag_number: str
    sex: str = "unknown"
    age_months: int = 0
    weight_kg: int = 0
    vaccinations: str = ""
    medical_history: str = ""
    is_pregnant: bool = False
    is_castrated: bool = False


class CattlePatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    breed_id: Optional[int] = None
    tag_number: Optional[str] = None
    sex: Optional[str] = None
    age_months: Optional[int] = None
    weight_kg: Optional[int] = None
    vaccinations: Optional[str] = None
    medical_history: Optional[str] = None
    is_pregnant: Optional[bool] = None
    is_castrated: Optional[bool] = None
    version: Optional[int] = None


class CattleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    breed_id: int
    tag_number: str
    sex: str
    age_months: int
    weight_kg: int
    vaccinations: str
    medical_history: str
    is_pregnant: bool
    is_castrated: bool
    is_active: bool
    version: int
    created_at: str
    updated_at: str


class CattleListResponse(BaseModel):
    cattle: list[CattleResponse]
    metadata: MetaDataResponse


# ---------------------------------------------------------------------------
# Regions and areas
# ---------------------------------------------------------------------------


class RegionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str
    code: str


class RegionPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    code: Optional[str] = None
    version: Optional[int] = None


class RegionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: str
    version: int
    created_at: str
    updated_at: str


class RegionListResponse(BaseModel):
    regions: list[RegionResponse]
    metadata: MetaDataResponse


class AreaCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str
    region_id: int
    area_type: str
    latitude: float = 0.0
    longitude: float = 0.0


class AreaPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    region_id: Optional[int] = None
    area_type: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: Optional[bool] = None
    version: Optional[int] = None


class AreaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    region_id: int
    area_type: str
    latitude: float
    longitude: float
    is_active: bool
    version: int
    created_at: str
    updated_at: str


class AreaListResponse(BaseModel):
    areas: list[AreaResponse]
    metadata: MetaDataResponse


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class ListingCreate(BaseModel):
    """Request body for POST /api/v1/listings. The seller is the authenticated user."""

    model_config = ConfigDict(str_strip_whitespace=True)

    area_id: int
    title: str
    description: str = ""


class ListingPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    area_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    version: Optional[int] = None


class ListingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    seller_id: int
    area_id: int
    title: str
    description: str
    is_active: bool
    version: int
    created_at: str
    updated_at: str


class ListingListResponse(BaseModel):
    listings: list[ListingResponse]
    metadata: MetaDataResponse


class ListingPriceCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    cattle_class: str
    price_per_kg: int = Field(description="Price per kilogram in minor currency units (cents).")
    quantity: int = 1


class ListingPriceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    listing_id: int
    cattle_class: str
    price_per_kg: int
    quantity: int
    version: int
    created_at: str
    updated_at: str


class ListingPriceListResponse(BaseModel):
    prices: list[ListingPriceResponse]
    metadata: MetaDataResponse
