"""
core/store.py -- Generic versioned repository over a SQLAlchemy Core table.

Pattern: Repository + Data Mapper (same split the auth and livestock stores
follow). VersionedStore owns the SQL for the write protocol every mutable
record shares; subclasses supply the table, the mappers and their filters.

Optimistic concurrency:
  Every versioned row carries an integer `version`. Writes are conditioned on
  `id = :id AND version = :read_version` and set `version = read_version + 1`.
  A write that matches no row raises EditConflictError. No locks are taken;
  of two concurrent writers tagged with the same version exactly one wins.

  Because the version matched, the new version is always read_version + 1, so
  no RETURNING clause (and no second read) is needed on the update path.

Soft delete:
  Flips the subclass's soft-delete flag only where it is not already flipped.
  Already flipped -> AlreadyDeletedError; no such row -> RecordNotFoundError.

Listing:
  One statement returns the page and COUNT(*) OVER () so MetaData reflects
  exactly the predicate that produced the page.

Security: all queries use bound parameters. ORDER BY columns come from the
table's column collection after safelist validation, never from raw input.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import ColumnElement, Table, and_, func, select, true
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.db import operation
from core.errors import AlreadyDeletedError, EditConflictError, RecordNotFoundError
from core.filters import Filters, Page, calculate_metadata, validate_filters
from core.validator import Validator

T = TypeVar("T")


def now_iso() -> str:
    # Fixed precision keeps ISO strings lexically comparable.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def contains_ci(column, value: str) -> ColumnElement:
    """Case-insensitive substring match with LIKE wildcards escaped."""
    return func.lower(column).contains(value.lower(), autoescape=True)


@dataclass(frozen=True)
class Inserted:
    id: int
    version: int
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class Written:
    version: int
    updated_at: str


class Store:
    """Engine plus per-operation timeout. Every call runs inside core.db.operation()."""

    unique_fields: ClassVar[tuple[str, ...]] = ()

    def __init__(self, engine: Engine, timeout: float | None = None) -> None:
        settings = get_settings()
        self.engine = engine
        self.timeout = timeout if timeout is not None else settings.db_timeout_seconds

    def _operation(self):
        return operation(self.engine, self.timeout, self.unique_fields)


class VersionedStore(Store, Generic[T]):
    """Base repository for tables built with core.db.versioned_columns().

    Subclasses set:
      table            -- the SQLAlchemy Table
      unique_fields    -- columns whose unique violations map to DuplicateValueError(field)
      soft_delete_flag -- (column, entity attribute, value meaning deleted), or None if rows
                          are only hard-deleted
      sort_fields      -- columns clients may sort by
    and implement _row_to_entity() / _entity_to_values().
    """

    table: ClassVar[Table]
    soft_delete_flag: ClassVar[tuple[str, str, bool] | None] = None
    sort_fields: ClassVar[tuple[str, ...]] = ("id",)

    def __init__(self, engine: Engine, timeout: float | None = None) -> None:
        super().__init__(engine, timeout)
        self.max_page_size = get_settings().max_page_size

    # ------------------------------------------------------------------
    # Mapper hooks
    # ------------------------------------------------------------------

    def _row_to_entity(self, row) -> T:
        raise NotImplementedError

    def _entity_to_values(self, entity: T) -> dict[str, Any]:
        raise NotImplementedError

    def _validate(self, v: Validator, entity: T) -> None:
        """Add field errors for entity. Runs before every insert and update."""

    @classmethod
    def sort_safelist(cls) -> tuple[str, ...]:
        return tuple(cls.sort_fields) + tuple(f"-{c}" for c in cls.sort_fields)

    # ------------------------------------------------------------------
    # Write protocol
    # ------------------------------------------------------------------

    def _insert(self, values: dict[str, Any]) -> Inserted:
        now = now_iso()
        with self._operation() as conn:
            result = conn.execute(self.table.insert().values(**values, version=1, created_at=now, updated_at=now))
            new_id = result.inserted_primary_key[0]
        return Inserted(id=new_id, version=1, created_at=now, updated_at=now)

    def _update(self, record_id: int, version: int, values: dict[str, Any]) -> Written:
        """Compare-and-swap write. Raises EditConflictError when `version` is stale."""
        now = now_iso()
        c = self.table.c
        with self._operation() as conn:
            result = conn.execute(
                self.table.update()
                .where((c.id == record_id) & (c.version == version))
                .values(**values, version=c.version + 1, updated_at=now)
            )
            if result.rowcount == 0:
                raise EditConflictError()
        return Written(version=version + 1, updated_at=now)

    def _soft_delete(self, record_id: int) -> Written:
        if self.soft_delete_flag is None:
            raise RuntimeError(f"{self.table.name} does not support soft delete")
        flag, _, deleted_value = self.soft_delete_flag
        c = self.table.c
        now = now_iso()
        with self._operation() as conn:
            result = conn.execute(
                self.table.update()
                .where((c.id == record_id) & (c[flag] != deleted_value))
                .values({flag: deleted_value, "version": c.version + 1, "updated_at": now})
            )
            if result.rowcount == 0:
                exists = conn.execute(select(c.id).where(c.id == record_id)).first()
                if exists is None:
                    raise RecordNotFoundError()
                raise AlreadyDeletedError()
            version = conn.execute(select(c.version).where(c.id == record_id)).scalar_one()
        return Written(version=version, updated_at=now)

    # ------------------------------------------------------------------
    # Entity-level operations
    # ------------------------------------------------------------------

    def _check(self, entity: T) -> None:
        v = Validator()
        self._validate(v, entity)
        v.raise_if_invalid()

    def insert(self, entity: T) -> T:
        """Persist a new record and stamp id, version and timestamps onto it."""
        self._check(entity)
        stamp = self._insert(self._entity_to_values(entity))
        entity.id = stamp.id
        entity.version = stamp.version
        entity.created_at = stamp.created_at
        entity.updated_at = stamp.updated_at
        return entity

    def update(self, entity: T) -> T:
        """Write every mutable field, conditioned on entity.version."""
        self._check(entity)
        stamp = self._update(entity.id, entity.version, self._entity_to_values(entity))
        entity.version = stamp.version
        entity.updated_at = stamp.updated_at
        return entity

    def soft_delete(self, entity: T) -> T:
        stamp = self._soft_delete(entity.id)
        _, attr, deleted_value = self.soft_delete_flag
        setattr(entity, attr, deleted_value)
        entity.version = stamp.version
        entity.updated_at = stamp.updated_at
        return entity

    def hard_delete(self, record_id: int) -> None:
        """Remove the row. RecordNotFoundError if absent; ForeignKeyViolationError if referenced."""
        with self._operation() as conn:
            result = conn.execute(self.table.delete().where(self.table.c.id == record_id))
            if result.rowcount == 0:
                raise RecordNotFoundError()

    def get(self, record_id: int) -> T:
        return self._get_where(self.table.c.id == record_id)

    def _get_where(self, *conditions: ColumnElement) -> T:
        with self._operation() as conn:
            row = conn.execute(self.table.select().where(*conditions)).first()
        if row is None:
            raise RecordNotFoundError()
        return self._row_to_entity(row)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _list(self, conditions: Sequence[ColumnElement], filters: Filters) -> Page:
        """Return one page of rows matching every condition, plus its MetaData.

        Raises ValidationFailedError for out-of-range paging or an unknown sort.
        """
        filters = replace(filters, sort_safelist=self.sort_safelist())
        v = Validator()
        validate_filters(v, filters, self.max_page_size)
        v.raise_if_invalid()

        c = self.table.c
        sort_col = c[filters.sort_column()]
        order = sort_col.desc() if filters.sort_descending() else sort_col.asc()
        stmt = (
            select(func.count().over().label("total_records"), *c)
            .where(and_(true(), *conditions))
            .order_by(order, c.id.asc())
            .limit(filters.limit)
            .offset(filters.offset)
        )
        with self._operation() as conn:
            rows = conn.execute(stmt).fetchall()
        total = rows[0].total_records if rows else 0
        return Page(
            items=[self._row_to_entity(r) for r in rows],
            metadata=calculate_metadata(total, filters.page, filters.page_size),
        )
