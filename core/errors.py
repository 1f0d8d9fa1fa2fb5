"""
core/errors.py -- Named error taxonomy shared by every store and the HTTP layer.

Stores raise these instead of leaking driver exceptions. Expected outcomes
(not found, conflicts, duplicates) are ordinary exceptions the caller is
expected to handle; they are never logged by the store layer.

Hierarchy:
  ValidationFailedError            -- malformed input, raised before store access
  HashingFailedError               -- password hashing/verification machinery failed
  StoreError
    RecordNotFoundError            -- zero rows affected / returned
    EditConflictError              -- version precondition did not match
    AlreadyDeletedError            -- soft delete on an already soft-deleted row
    DuplicateValueError(field)     -- unique constraint violation
    ForeignKeyViolationError       -- referential constraint violation
    PersistenceError               -- opaque infrastructure failure
      OperationTimeoutError        -- the per-operation deadline was exceeded

translate_db_error() maps raw SQLAlchemy exceptions onto the hierarchy.
PostgreSQL errors are classified by SQLSTATE; SQLite errors by message text
because sqlite3 exposes no structured codes through SQLAlchemy.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

_PG_UNIQUE_VIOLATION = "23505"
_PG_FOREIGN_KEY_VIOLATION = "23503"
_PG_QUERY_CANCELED = "57014"
_PG_KEY_RX = re.compile(r"Key \(([^)]*)\)=")


class ValidationFailedError(Exception):
    """Input failed validation. errors maps field name -> human message."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__(f"validation failed: {self.errors}")


class HashingFailedError(Exception):
    """The password hashing library could not hash or verify a value."""


class StoreError(Exception):
    """Base class for every error raised by a store."""


class RecordNotFoundError(StoreError):
    def __init__(self, message: str = "record not found") -> None:
        super().__init__(message)


class EditConflictError(StoreError):
    def __init__(self, message: str = "edit conflict detected") -> None:
        super().__init__(message)


class AlreadyDeletedError(StoreError):
    def __init__(self, message: str = "record already deleted") -> None:
        super().__init__(message)


class DuplicateValueError(StoreError):
    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"duplicate value for column: {field}")


class ForeignKeyViolationError(StoreError):
    def __init__(self, message: str = "constraint violation") -> None:
        super().__init__(message)


class PersistenceError(StoreError):
    """Opaque infrastructure failure. Safe to retry with backoff."""


class OperationTimeoutError(PersistenceError):
    def __init__(self, message: str = "database operation timed out") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate.
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _duplicate_field(exc: IntegrityError, unique_fields: Iterable[str]) -> str | None:
    """Return the unique column named in the constraint error, if any.

    SQLite:      "UNIQUE constraint failed: users.email"
    PostgreSQL:  "Key (email)=(a@b.c) already exists." in the detail line
    """
    text = str(exc.orig)
    diag = getattr(exc.orig, "diag", None)
    detail = getattr(diag, "message_detail", None) or text
    match = _PG_KEY_RX.search(detail)
    pg_columns = {col.strip() for col in match.group(1).split(",")} if match else set()
    sqlite_columns = {col.strip().rpartition(".")[2] for col in text.partition(":")[2].split(",")}
    for field in unique_fields:
        if field in pg_columns or field in sqlite_columns:
            return field
    return None


def translate_db_error(exc: SQLAlchemyError, unique_fields: Iterable[str] = ()) -> StoreError:
    """Map a raw SQLAlchemy exception onto the store error taxonomy.

    The returned exception is meant to be raised `from exc` by the caller so
    the driver error stays on the chain for server-side debugging while the
    message exposed to clients stays generic.
    """
    if isinstance(exc, IntegrityError):
        state = _sqlstate(exc)
        message = str(exc.orig)
        if state == _PG_FOREIGN_KEY_VIOLATION or "FOREIGN KEY constraint failed" in message:
            return ForeignKeyViolationError()
        if state == _PG_UNIQUE_VIOLATION or "UNIQUE constraint failed" in message:
            field = _duplicate_field(exc, unique_fields)
            return DuplicateValueError(field or "unknown")
        return PersistenceError("integrity error")
    if isinstance(exc, OperationalError):
        if _sqlstate(exc) == _PG_QUERY_CANCELED or "interrupted" in str(exc.orig):
            return OperationTimeoutError()
        return PersistenceError("database unavailable")
    return PersistenceError("database error")
