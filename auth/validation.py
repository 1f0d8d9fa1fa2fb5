"""
auth/validation.py -- Field rules for users and permissions.

Each function adds field -> message entries to a Validator; callers decide
when to raise. Password plaintext rules live in auth/passwords.py.
"""

from __future__ import annotations

from auth.models import CandidatePassword, Permission, User
from auth.passwords import validate_password_plaintext
from core.validator import EMAIL_RX, PHONE_RX, Validator, matches


def validate_email(v: Validator, email: str) -> None:
    v.check(email != "", "email", "must be provided")
    v.check(len(email.encode("utf-8")) <= 254, "email", "must not be more than 254 bytes long")
    v.check(matches(email, EMAIL_RX), "email", "must be a valid email address")


def validate_user(v: Validator, user: User, candidate: CandidatePassword | None = None) -> None:
    """Validate profile fields and, when given, the candidate password.

    Raises RuntimeError if the user carries neither a candidate nor a stored
    credential: that is a caller bug, not bad input.
    """
    v.check(user.first_name != "", "first_name", "must be provided")
    v.check(len(user.first_name) <= 50, "first_name", "must not be more than 50 characters long")
    v.check(user.last_name != "", "last_name", "must be provided")
    v.check(len(user.last_name) <= 50, "last_name", "must not be more than 50 characters long")
    v.check(len(user.middle_name) <= 50, "middle_name", "must not be more than 50 characters long")
    validate_email(v, user.email)

    if user.farmer_id:
        v.check(len(user.farmer_id) <= 50, "farmer_id", "must not be more than 50 characters long")
    if user.phone_number:
        v.check(len(user.phone_number) <= 15, "phone_number", "must not be more than 15 characters long")
        v.check(matches(user.phone_number, PHONE_RX), "phone_number", "must be a valid phone number")

    if candidate is not None:
        validate_password_plaintext(v, candidate)

    if candidate is None and user.password is None:
        raise RuntimeError("missing password hash for user")


def validate_permission(v: Validator, permission: Permission) -> None:
    v.check(permission.code != "", "code", "must be provided")
    v.check(len(permission.code) <= 100, "code", "must not exceed 100 characters")
    v.check(len(permission.description) <= 500, "description", "must not exceed 500 characters")
