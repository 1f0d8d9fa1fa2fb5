"""
api/main.py -- FastAPI application entry point for Cash Cow.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the engine (the only process-wide shared resource: its
connection pool), creates the schema, seeds the built-in permissions and puts
one store per table on app.state. Shutdown disposes the pool.

Error envelope: every error response, whatever raised it, has the shape
  {"error": {"code": ..., "message": ..., "detail"?: ..., "fields"?: {...}}}
Store exceptions from core/errors.py are mapped to status codes here, so
route handlers let them propagate instead of catching them one by one.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.listings import router as listings_router
from api.routes.v1.livestock import router as livestock_router
from api.routes.v1.locations import router as locations_router
from api.routes.v1.tokens import router as tokens_router
from api.routes.v1.users import router as users_router
from auth.mailer import TokenMailer
from auth.store import PermissionStore, TokenStore, UserStore
from core.config import get_settings
from core.db import create_db_engine, create_schema, operation
from core.errors import (
    AlreadyDeletedError,
    DuplicateValueError,
    EditConflictError,
    ForeignKeyViolationError,
    HashingFailedError,
    PersistenceError,
    RecordNotFoundError,
    StoreError,
    ValidationFailedError,
)
from livestock.store import AreaStore, BreedStore, CattleStore, ListingPriceStore, ListingStore, RegionStore

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cashcow.api")


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


def init_app_state(app: FastAPI, engine: Engine, mailer: TokenMailer) -> None:
    """Create the schema and attach the engine, stores and mailer to app.state.

    Shared by the real lifespan and the test fixtures so both wire the app
    identically; only the engine and the mailer differ.
    """
    create_schema(engine)
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.token_store = TokenStore(engine)
    app.state.permission_store = PermissionStore(engine)
    app.state.breed_store = BreedStore(engine)
    app.state.cattle_store = CattleStore(engine)
    app.state.region_store = RegionStore(engine)
    app.state.area_store = AreaStore(engine)
    app.state.listing_store = ListingStore(engine)
    app.state.listing_price_store = ListingPriceStore(engine)
    app.state.mailer = mailer
    app.state.permission_store.ensure_defaults()


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    settings = get_settings()
    logger.info("Cash Cow API starting up")
    engine = create_db_engine(settings.database_url)
    init_app_state(app, engine, TokenMailer(settings))
    logger.info(
        "Database ready (%s), mail delivery %s",
        engine.dialect.name,
        "enabled" if app.state.mailer.enabled else "disabled",
    )

    yield

    engine.dispose()
    logger.info("Cash Cow API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Cash Cow API",
    description="Livestock marketplace backend: farmer accounts, cattle inventory, locations and sale listings.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=get_settings().allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time around call_next gives the latency.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(tokens_router, prefix="/api/v1", tags=["Tokens"])
app.include_router(livestock_router, prefix="/api/v1", tags=["Livestock"])
app.include_router(locations_router, prefix="/api/v1", tags=["Locations"])
app.include_router(listings_router, prefix="/api/v1", tags=["Listings"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, fields: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, fields=fields)).model_dump(
            exclude_none=True
        ),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(exclude_none=True),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(ValidationFailedError)
async def validation_failed_handler(request: Request, exc: ValidationFailedError) -> JSONResponse:
    return _error(422, "validation_failed", "One or more fields are invalid.", fields=exc.errors)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Map the store error taxonomy onto status codes.

    PersistenceError (including timeouts) is logged with its cause chain but
    answered with a generic 503; raw database text never reaches the client.
    """
    if isinstance(exc, RecordNotFoundError):
        return _error(404, "not_found", "The requested resource could not be found.")
    if isinstance(exc, EditConflictError):
        return _error(
            409, "edit_conflict", "Unable to update the record due to an edit conflict, please try again."
        )
    if isinstance(exc, AlreadyDeletedError):
        return _error(409, "already_deleted", "The record has already been deleted.")
    if isinstance(exc, DuplicateValueError):
        return _error(
            409,
            "duplicate_value",
            "A record with this value already exists.",
            fields={exc.field: "a record with this value already exists"},
        )
    if isinstance(exc, ForeignKeyViolationError):
        return _error(409, "constraint_violation", "The record is referenced by, or references, another record.")
    if isinstance(exc, PersistenceError):
        logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return _error(503, "service_unavailable", "The server is temporarily unable to handle the request.")
    logger.exception("Unmapped store error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, "internal_error", "An unexpected error occurred.")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers and dependencies raise HTTPException with detail={"code", "message"}
    (a dict). When detail is already a structured dict, use it directly as the
    error field rather than stringifying it. Headers such as WWW-Authenticate
    are carried over.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(exclude_none=True),
        headers=exc.headers,
    )


@app.exception_handler(HashingFailedError)
async def hashing_failed_handler(request: Request, exc: HashingFailedError) -> JSONResponse:
    logger.exception("Password hashing failed on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, "internal_error", "An unexpected error occurred.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the log only, never to the
    response body. The client receives only a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    database = "ok"
    try:
        with operation(request.app.state.engine, get_settings().db_timeout_seconds) as conn:
            conn.execute(text("SELECT 1"))
    except PersistenceError:
        logger.warning("Health check could not reach the database")
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": database},
    )
