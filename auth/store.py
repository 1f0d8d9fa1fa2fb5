"""
auth/store.py -- SQLAlchemy Core persistence layer for identity entities.

Pattern: Repository + Data Mapper.
UserStore is a VersionedStore (optimistic concurrency, soft delete via
is_deleted). TokenStore and PermissionStore are append/delete-only and carry
no version column. _row_to_user is the shared mapper.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Tokens are stored by SHA-256 digest only (see auth/tokens.py).
  Password hashes never leave this module except inside PasswordCredential.

Uniqueness: email, farmer_id and phone_number are UNIQUE. farmer_id and
phone_number are nullable; NULLs never collide, so users without them can
coexist.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Table,
    UniqueConstraint,
    literal,
    or_,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite

from auth.models import PasswordCredential, Permission, Permissions, Token, TokenScope, User, UserFilters
from auth.validation import validate_permission, validate_user
from core.db import metadata, versioned_columns
from core.errors import RecordNotFoundError
from core.filters import Page
from core.store import Store, VersionedStore, contains_ci, now_iso
from core.validator import Validator

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("farmer_id", String(50), unique=True),
    Column("email", String(254), nullable=False, unique=True),
    Column("phone_number", String(15), unique=True),
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("middle_name", String(50), nullable=False, server_default=""),
    Column("password_hash", LargeBinary, nullable=False),
    Column("is_activated", Boolean, nullable=False, server_default="0"),
    Column("is_deleted", Boolean, nullable=False, server_default="0"),
    Column("is_verified", Boolean, nullable=False, server_default="0"),
    *versioned_columns(),
)

tokens = Table(
    "tokens",
    metadata,
    Column("hash", LargeBinary, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("expiry", String(32), nullable=False),
    Column("scope", String(20), nullable=False),
)

permissions = Table(
    "permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(100), nullable=False, unique=True),
    Column("description", String(500), nullable=False, server_default=""),
)

user_permissions = Table(
    "user_permissions",
    metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False),
    UniqueConstraint("user_id", "permission_id", name="uq_user_permissions"),
)

DEFAULT_PERMISSIONS: tuple[Permission, ...] = (
    Permission(code="users:read", description="View user accounts"),
    Permission(code="users:write", description="Modify and delete user accounts"),
    Permission(code="livestock:read", description="View breeds, cattle, locations and listings"),
    Permission(code="livestock:write", description="Create and modify breeds, cattle, locations and listings"),
)


def _dialect_insert(engine, table: Table):
    """INSERT construct that supports ON CONFLICT DO NOTHING on the active dialect."""
    if engine.dialect.name == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore(VersionedStore[User]):
    """Repository for the User aggregate.

    Usage:
        store = UserStore(engine)
        user = store.insert(User(email="a@b.cz", first_name="Ana", last_name="Lee",
                                 password=set_password(CandidatePassword("..."))))
        user.first_name = "Anna"
        store.update(user)          # EditConflictError if someone else wrote first
    """

    table = users
    unique_fields = ("email", "farmer_id", "phone_number")
    soft_delete_flag = ("is_deleted", "deleted", True)
    sort_fields = ("id", "farmer_id", "email", "first_name", "last_name", "created_at", "updated_at")

    def _row_to_entity(self, row) -> User:
        return _row_to_user(row)

    def _validate(self, v: Validator, user: User) -> None:
        validate_user(v, user)

    def _entity_to_values(self, user: User) -> dict[str, Any]:
        if user.password is None or not user.password.hash:
            raise RuntimeError("missing password hash for user")
        return {
            "farmer_id": user.farmer_id or None,
            "email": user.email,
            "phone_number": user.phone_number or None,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "middle_name": user.middle_name,
            "password_hash": user.password.hash,
            "is_activated": user.activated,
            "is_deleted": user.deleted,
            "is_verified": user.verified,
        }

    def get_by_id(self, user_id: int) -> User:
        return self.get(user_id)

    def get_by_email(self, email: str) -> User:
        return self._get_where(users.c.email == email)

    def get_by_farmer_id(self, farmer_id: str) -> User:
        return self._get_where(users.c.farmer_id == farmer_id)

    def update_password(self, user: User) -> User:
        """Persist a new credential with a version bump. Other fields are untouched."""
        if user.password is None or not user.password.hash:
            raise RuntimeError("missing password hash for user")
        stamp = self._update(user.id, user.version, {"password_hash": user.password.hash})
        user.version = stamp.version
        user.updated_at = stamp.updated_at
        return user

    def delete_soft(self, user: User) -> User:
        return self.soft_delete(user)

    def delete_hard(self, user_id: int) -> None:
        self.hard_delete(user_id)

    def list(self, f: UserFilters) -> Page:
        c = users.c
        conditions = []
        if f.email:
            conditions.append(contains_ci(c.email, f.email))
        if f.farmer_id:
            conditions.append(contains_ci(c.farmer_id, f.farmer_id))
        if f.phone_number:
            conditions.append(contains_ci(c.phone_number, f.phone_number))
        if f.name:
            conditions.append(
                or_(
                    contains_ci(c.first_name, f.name),
                    contains_ci(c.last_name, f.name),
                    contains_ci(c.middle_name, f.name),
                )
            )
        if f.activated is not None:
            conditions.append(c.is_activated == f.activated)
        if f.verified is not None:
            conditions.append(c.is_verified == f.verified)
        if not f.include_deleted:
            conditions.append(c.is_deleted == False)  # noqa: E712
        return self._list(conditions, f.filters)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TokenStore(Store):
    """Append-only token persistence with scoped mass deletion."""

    def insert(self, token: Token) -> None:
        with self._operation() as conn:
            conn.execute(
                tokens.insert().values(
                    hash=token.hash,
                    user_id=token.user_id,
                    expiry=token.expiry,
                    scope=token.scope.value,
                )
            )

    def get_user_for_token(self, scope: TokenScope, token_hash: bytes) -> User:
        """Return the owner of a non-expired token. RecordNotFoundError otherwise."""
        stmt = (
            select(users)
            .join(tokens, tokens.c.user_id == users.c.id)
            .where(
                (tokens.c.hash == token_hash)
                & (tokens.c.scope == scope.value)
                & (tokens.c.expiry > now_iso())
            )
        )
        with self._operation() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            raise RecordNotFoundError()
        return _row_to_user(row)

    def delete_all_for_user(self, scope: TokenScope, user_id: int) -> None:
        with self._operation() as conn:
            conn.execute(tokens.delete().where((tokens.c.scope == scope.value) & (tokens.c.user_id == user_id)))

    def delete_expired(self) -> int:
        """Remove every expired token. Returns the number of rows deleted."""
        with self._operation() as conn:
            result = conn.execute(tokens.delete().where(tokens.c.expiry <= now_iso()))
        return result.rowcount


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionStore(Store):
    """Flat permission codes and their many-to-many link to users."""

    unique_fields = ("code",)

    def get_all_for_user(self, user_id: int) -> Permissions:
        stmt = (
            select(permissions.c.code)
            .join(user_permissions, user_permissions.c.permission_id == permissions.c.id)
            .where(user_permissions.c.user_id == user_id)
        )
        with self._operation() as conn:
            codes = conn.execute(stmt).scalars().all()
        return Permissions(codes)

    def grant(self, user_id: int, *codes: str) -> None:
        """Link the user to each known code. Held and unknown codes are ignored."""
        if not codes:
            return
        source = select(literal(user_id, Integer), permissions.c.id).where(permissions.c.code.in_(codes))
        stmt = (
            _dialect_insert(self.engine, user_permissions)
            .from_select(["user_id", "permission_id"], source)
            .on_conflict_do_nothing()
        )
        with self._operation() as conn:
            conn.execute(stmt)

    def create(self, permission: Permission) -> Permission:
        """Insert a new permission code. DuplicateValueError("code") if it exists."""
        v = Validator()
        validate_permission(v, permission)
        v.raise_if_invalid()
        with self._operation() as conn:
            result = conn.execute(
                permissions.insert().values(code=permission.code, description=permission.description)
            )
            permission.id = result.inserted_primary_key[0]
        return permission

    def list_all(self) -> list[Permission]:
        with self._operation() as conn:
            rows = conn.execute(permissions.select().order_by(permissions.c.code)).fetchall()
        return [Permission(id=r.id, code=r.code, description=r.description) for r in rows]

    def ensure_defaults(self) -> None:
        """Seed the built-in permission codes. Idempotent; safe on every startup."""
        stmt = (
            _dialect_insert(self.engine, permissions)
            .values([{"code": p.code, "description": p.description} for p in DEFAULT_PERMISSIONS])
            .on_conflict_do_nothing()
        )
        with self._operation() as conn:
            conn.execute(stmt)


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        farmer_id=row.farmer_id,
        email=row.email,
        phone_number=row.phone_number,
        first_name=row.first_name,
        last_name=row.last_name,
        middle_name=row.middle_name,
        password=PasswordCredential(hash=bytes(row.password_hash)),
        activated=bool(row.is_activated),
        deleted=bool(row.is_deleted),
        verified=bool(row.is_verified),
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
