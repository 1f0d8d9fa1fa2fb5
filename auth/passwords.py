"""
auth/passwords.py -- Password hashing, verification and plaintext policy.

bcrypt is used directly (no passlib wrapper). The cost factor comes from
Settings.bcrypt_rounds so tests can run with a low cost.

bcrypt only considers the first 72 bytes of its input. The plaintext policy
rejects anything longer, and verify_password() treats a longer candidate as
a mismatch, so no two distinct accepted passwords can share a hash.

Timing equalization: authenticate_user() always runs one bcrypt check, against
_DUMMY_HASH when the email is unknown, so response time does not reveal
whether an account exists.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING

import bcrypt

from auth.models import CandidatePassword, PasswordCredential
from core.config import get_settings
from core.errors import HashingFailedError, RecordNotFoundError
from core.validator import (
    PASSWORD_LOWER_RX,
    PASSWORD_NUMBER_RX,
    PASSWORD_SPECIAL_RX,
    PASSWORD_UPPER_RX,
    Validator,
    matches,
)

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("cashcow.auth")

MIN_PASSWORD_CHARS = 8
MAX_PASSWORD_BYTES = 72


def validate_password_plaintext(v: Validator, candidate: CandidatePassword) -> None:
    password = candidate.plaintext
    v.check(password != "", "password", "must be provided")
    v.check(len(password) >= MIN_PASSWORD_CHARS, "password", f"must be at least {MIN_PASSWORD_CHARS} characters long")
    v.check(
        len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES,
        "password",
        f"must not be more than {MAX_PASSWORD_BYTES} bytes long",
    )
    v.check(matches(password, PASSWORD_NUMBER_RX), "password", "must contain at least one number")
    v.check(matches(password, PASSWORD_UPPER_RX), "password", "must contain at least one uppercase letter")
    v.check(matches(password, PASSWORD_LOWER_RX), "password", "must contain at least one lowercase letter")
    v.check(matches(password, PASSWORD_SPECIAL_RX), "password", "must contain at least one special character")


def set_password(candidate: CandidatePassword) -> PasswordCredential:
    """Hash the candidate with a fresh salt. Raises HashingFailedError on library failure."""
    try:
        hashed = bcrypt.hashpw(candidate.plaintext.encode("utf-8"), bcrypt.gensalt(rounds=get_settings().bcrypt_rounds))
    except ValueError as exc:
        raise HashingFailedError("could not hash password") from exc
    return PasswordCredential(hash=hashed)


def verify_password(credential: PasswordCredential, plaintext: str) -> bool:
    """Return True if plaintext matches the stored hash.

    A mismatch is False, never an error. A malformed stored hash raises
    HashingFailedError because it means the stored data is broken.
    """
    encoded = plaintext.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, credential.hash)
    except ValueError as exc:
        raise HashingFailedError("could not verify password") from exc


@lru_cache
def _dummy_credential() -> PasswordCredential:
    # Built lazily so the dummy uses the configured cost, matching real hashes.
    return set_password(CandidatePassword("cashcow-timing-Dummy-1"))


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair. Returns the User on success, None otherwise.

    Unknown email, wrong password and deleted account are indistinguishable
    to the caller and take the same bcrypt time.
    """
    try:
        user = store.get_by_email(email)
    except RecordNotFoundError:
        verify_password(_dummy_credential(), password)
        return None
    if user.password is None:
        verify_password(_dummy_credential(), password)
        return None
    if not verify_password(user.password, password):
        return None
    if user.deleted:
        logger.info("Rejected login for deleted user id=%s", user.id)
        return None
    return user
