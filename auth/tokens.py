"""
auth/tokens.py -- Opaque bearer tokens for activation, authentication and password reset.

Security design decisions:
  Generation: 16 bytes from secrets.token_bytes() (128 bits of entropy),
       encoded URL-safe base64 without padding -> always 22 characters.
       The plaintext exists only on the Token returned by issue_token(); it is
       never logged and cannot be re-derived from storage.

  Storage: only SHA-256(plaintext) is persisted. A database leak yields no
       usable bearer tokens. The digest is deterministic, so lookup is O(1)
       by primary key; bcrypt is unnecessary for 128-bit random secrets.

  Scope: every token carries a TokenScope and resolution matches on it, so an
       activation token can never be replayed as an authentication credential.

  Resolution: wrong token, expired token and wrong scope all raise
       RecordNotFoundError. The caller cannot tell them apart.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from auth.models import Token, TokenScope
from core.validator import Validator

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import TokenStore

TOKEN_BYTES = 16
TOKEN_LENGTH = 22


def generate_token() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(TOKEN_BYTES)).rstrip(b"=").decode("ascii")


def hash_token(plaintext: str) -> bytes:
    return hashlib.sha256(plaintext.encode("utf-8")).digest()


def validate_token_plaintext(v: Validator, plaintext: str) -> None:
    v.check(plaintext != "", "token", "must be provided")
    v.check(len(plaintext) == TOKEN_LENGTH, "token", f"must be {TOKEN_LENGTH} characters long")


def expiry_after(ttl: timedelta) -> str:
    return (datetime.now(timezone.utc) + ttl).isoformat(timespec="microseconds")


def issue_token(store: TokenStore, user_id: int, ttl: timedelta, scope: TokenScope) -> Token:
    """Create, persist and return a new token. Raises PersistenceError if the write fails."""
    plaintext = generate_token()
    token = Token(
        hash=hash_token(plaintext),
        user_id=user_id,
        expiry=expiry_after(ttl),
        scope=scope,
        plaintext=plaintext,
    )
    store.insert(token)
    return token


def resolve_token(store: TokenStore, scope: TokenScope, plaintext: str) -> User:
    """Return the user owning a live token of `scope`.

    Raises ValidationFailedError for a malformed plaintext (before any store
    access) and RecordNotFoundError for an unknown, expired or wrongly scoped one.
    """
    v = Validator()
    validate_token_plaintext(v, plaintext)
    v.raise_if_invalid()
    return store.get_user_for_token(scope, hash_token(plaintext))


def revoke_tokens(store: TokenStore, scope: TokenScope, user_id: int) -> None:
    store.delete_all_for_user(scope, user_id)
