"""
auth/models.py -- Domain dataclasses for identity and access entities.

Pattern: Data class (pure data container, minimal logic). Stores and routes do
the work; these types own the domain shape.

Password handling is split across two types so the hash-only invariant is
carried by the type system:
  CandidatePassword   -- plaintext from a request, validated then hashed, never stored
  PasswordCredential  -- the bcrypt hash at rest, never serialized outward

The request principal is a tagged variant: Anonymous | Authenticated(user).
Callers branch with isinstance(), never with identity comparison.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from core.filters import Filters


@dataclass(frozen=True)
class CandidatePassword:
    """Plaintext password supplied by a client. Hidden from repr and logs."""

    plaintext: str = field(repr=False)


@dataclass(frozen=True)
class PasswordCredential:
    """At-rest bcrypt hash (salt and cost are embedded in the hash bytes)."""

    hash: bytes = field(repr=False)


@dataclass
class User:
    """Identity aggregate.

    farmer_id and phone_number are optional but unique when present; empty
    values are stored as NULL so they never collide with each other.
    password is None only between construction and set_password(); the store
    refuses to persist a user without one.
    """

    email: str
    first_name: str
    last_name: str
    middle_name: str = ""
    farmer_id: str | None = None
    phone_number: str | None = None
    password: PasswordCredential | None = None
    activated: bool = False
    deleted: bool = False
    verified: bool = False
    id: int | None = None
    version: int = 1
    created_at: str | None = None
    updated_at: str | None = None


class TokenScope(str, Enum):
    ACTIVATION = "activation"
    AUTHENTICATION = "authentication"
    PASSWORD_RESET = "password_reset"


@dataclass
class Token:
    """An issued bearer token. plaintext exists only on the value returned by issue_token()."""

    hash: bytes = field(repr=False)
    user_id: int
    expiry: str
    scope: TokenScope
    plaintext: str = field(default="", repr=False)


@dataclass
class Permission:
    code: str
    description: str = ""
    id: int | None = None


class Permissions(frozenset):
    """Permission codes held by one user, loaded once per request."""

    def includes(self, code: str) -> bool:
        return code in self


# ---------------------------------------------------------------------------
# Request principal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Anonymous:
    """The unauthenticated principal. Never persisted."""


@dataclass(frozen=True)
class Authenticated:
    user: User


Principal = Anonymous | Authenticated

ANONYMOUS = Anonymous()


# ---------------------------------------------------------------------------
# List filters
# ---------------------------------------------------------------------------


@dataclass
class UserFilters:
    """Optional predicates for UserStore.list(). None means "do not constrain"."""

    email: str | None = None
    farmer_id: str | None = None
    phone_number: str | None = None
    name: str | None = None
    activated: bool | None = None
    verified: bool | None = None
    include_deleted: bool = False
    filters: Filters = field(default_factory=Filters)
