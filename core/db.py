"""
core/db.py -- Engine construction and per-operation transaction scope.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses remain the
authoritative representation. Swapping SQLite for PostgreSQL is a connection
string change.

Every store call runs inside operation(): one transaction, bounded by a
fixed deadline. The deadline is enforced by the database itself where it can
be (PostgreSQL statement_timeout) and by a progress handler on SQLite, so an
overrunning statement is cancelled rather than abandoned. Raw driver errors
raised inside the block are translated to the core/errors.py taxonomy before
they leave.

Table definitions from every package register on the shared `metadata`
object so a single create_all() builds the whole schema.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from sqlalchemy import Column, Integer, MetaData, String, create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.errors import OperationTimeoutError, PersistenceError, translate_db_error

metadata = MetaData()

# SQLite progress handler granularity (VM instructions between deadline checks).
_PROGRESS_STEPS = 1000


def versioned_columns() -> list[Column]:
    """Bookkeeping columns carried by every versioned table."""
    return [
        Column("version", Integer, nullable=False, server_default="1"),
        Column("created_at", String(32), nullable=False),
        Column("updated_at", String(32), nullable=False),
    ]


# ---------------------------------------------------------------------------
# Connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. Foreign keys are off by default in SQLite;
    without them referential errors would never surface.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_db_engine(db_url: str) -> Engine:
    """Build the process-wide engine (and its connection pool) for db_url."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a thread pool, so the same pooled
        # connection may be used from more than one thread.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=not db_url.startswith("sqlite"))
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _configure_sqlite)
    return engine


def create_schema(engine: Engine) -> None:
    metadata.create_all(engine)


# ---------------------------------------------------------------------------
# Operation scope
# ---------------------------------------------------------------------------


def _apply_deadline(conn: Connection, timeout: float) -> float:
    deadline = time.monotonic() + timeout
    if conn.dialect.name == "postgresql":
        # SET does not accept bind parameters; the value is an int we computed.
        conn.execute(text(f"SET LOCAL statement_timeout = {max(1, int(timeout * 1000))}"))
    elif conn.dialect.name == "sqlite":
        raw = conn.connection.driver_connection
        raw.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, _PROGRESS_STEPS)
    return deadline


def _clear_deadline(conn: Connection) -> None:
    if conn.dialect.name == "sqlite" and not conn.closed and not conn.invalidated:
        conn.connection.driver_connection.set_progress_handler(None, 0)


@contextmanager
def operation(engine: Engine, timeout: float, unique_fields: Iterable[str] = ()) -> Iterator[Connection]:
    """Yield a connection inside a transaction bounded by `timeout` seconds.

    Commits on normal exit, rolls back on any exception. SQLAlchemy errors
    are re-raised as StoreError subclasses; everything else propagates as-is.
    """
    deadline = None
    try:
        with engine.begin() as conn:
            try:
                deadline = _apply_deadline(conn, timeout)
                yield conn
            finally:
                _clear_deadline(conn)
    except SQLAlchemyError as exc:
        err = translate_db_error(exc, unique_fields)
        if type(err) is PersistenceError and deadline is not None and time.monotonic() > deadline:
            err = OperationTimeoutError()
        raise err from exc
