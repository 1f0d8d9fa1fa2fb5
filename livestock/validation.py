"""
livestock/validation.py -- Field rules for marketplace records.

Each validate_* adds field -> message entries to a Validator. Checks that
need the database (does the breed exist, is the tag unique) are left to the
store, which reports them as ForeignKeyViolationError / DuplicateValueError.
"""

from core.validator import Validator, permitted_value
from livestock.models import AREA_TYPES, CATTLE_CLASSES, SEXES, Area, Breed, Cattle, Listing, ListingPrice, Region


def validate_breed(v: Validator, b: Breed) -> None:
    v.check(b.name != "", "name", "must be provided")
    v.check(len(b.name) <= 255, "name", "must not be more than 255 characters long")
    v.check(len(b.description) <= 1000, "description", "must not be more than 1000 characters long")


def validate_cattle(v: Validator, c: Cattle) -> None:
    v.check(c.owner_id > 0, "owner_id", "must be provided and greater than zero")
    v.check(c.breed_id > 0, "breed_id", "must be provided and greater than zero")
    v.check(c.tag_number != "", "tag_number", "must be provided")
    v.check(len(c.tag_number) <= 50, "tag_number", "must not be more than 50 characters long")
    v.check(permitted_value(c.sex, SEXES), "sex", "must be one of: male, female, unknown")
    v.check(c.age_months >= 0, "age_months", "must not be negative")
    v.check(c.weight_kg >= 0, "weight_kg", "must not be negative")
    v.check(not (c.is_pregnant and c.sex == "male"), "is_pregnant", "must be false for male cattle")
    v.check(not (c.is_castrated and c.sex == "female"), "is_castrated", "must be false for female cattle")


def validate_region(v: Validator, r: Region) -> None:
    v.check(r.name != "", "name", "must be provided")
    v.check(len(r.name) <= 255, "name", "must not be more than 255 bytes long")
    v.check(r.code != "", "code", "must be provided")
    v.check(len(r.code) <= 10, "code", "must not be more than 10 bytes long")


def validate_coordinates(v: Validator, latitude: float, longitude: float) -> None:
    # (0, 0) is the "not set" marker and is not range-checked.
    if latitude != 0 or longitude != 0:
        v.check(-90 <= latitude <= 90, "latitude", "must be a valid latitude")
        v.check(-180 <= longitude <= 180, "longitude", "must be a valid longitude")


def validate_area(v: Validator, a: Area) -> None:
    v.check(a.name != "", "name", "must be provided")
    v.check(len(a.name) <= 255, "name", "must not be more than 255 bytes long")
    v.check(a.region_id > 0, "region_id", "must be provided and greater than zero")
    v.check(permitted_value(a.area_type, AREA_TYPES), "area_type", "must be a valid area type")
    validate_coordinates(v, a.latitude, a.longitude)


def validate_listing(v: Validator, listing: Listing) -> None:
    v.check(listing.seller_id > 0, "seller_id", "must be provided and greater than zero")
    v.check(listing.area_id > 0, "area_id", "must be provided and greater than zero")
    v.check(listing.title != "", "title", "must be provided")
    v.check(len(listing.title) <= 255, "title", "must not be more than 255 characters long")
    v.check(len(listing.description) <= 5000, "description", "must not be more than 5000 characters long")


def validate_listing_price(v: Validator, lp: ListingPrice) -> None:
    v.check(lp.cattle_class != "", "cattle_class", "must be provided")
    v.check(permitted_value(lp.cattle_class, CATTLE_CLASSES), "cattle_class", "must be a valid cattle class")
    v.check(lp.price_per_kg > 0, "price_per_kg", "must be greater than zero")
    v.check(lp.quantity >= 1, "quantity", "must be at least one")
