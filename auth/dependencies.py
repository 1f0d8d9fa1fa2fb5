"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Authentication uses one method: an `Authorization: Bearer <token>` header
carrying an authentication-scoped token issued by POST /api/v1/tokens/authentication.

  get_principal()              -- Anonymous when no header is sent, Authenticated(user)
                                  for a live token, HTTP 401 for anything else.
  require_authenticated_user() -- HTTP 401 unless Authenticated.
  require_activated_user()     -- additionally HTTP 403 until the account is activated.
  require_permission(code)     -- additionally HTTP 403 unless the user holds `code`.

The principal and the user's permission set are cached on request.state so
one request costs at most one token lookup and one permission query, however
many dependencies run.

auth/dependencies.py may import from fastapi (Depends/HTTPException/Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.models import ANONYMOUS, Authenticated, Permissions, Principal, TokenScope, User
from auth.tokens import resolve_token
from core.errors import RecordNotFoundError, ValidationFailedError

logger = logging.getLogger("cashcow.auth")


def _invalid_token() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": "invalid_authentication_token", "message": "Invalid or missing authentication token."},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_principal(request: Request) -> Principal:
    """Resolve the request's principal from its Authorization header.

    A present but malformed, unknown or expired token is rejected outright
    rather than downgraded to Anonymous, so a client with a stale token finds
    out immediately. Tokens of deleted users are treated as invalid.
    """
    cached = getattr(request.state, "principal", None)
    if cached is not None:
        return cached

    header = request.headers.get("Authorization", "")
    if not header:
        request.state.principal = ANONYMOUS
        return ANONYMOUS

    scheme, _, token = header.partition(" ")
    if scheme != "Bearer" or not token:
        raise _invalid_token()

    try:
        user = resolve_token(request.app.state.token_store, TokenScope.AUTHENTICATION, token)
    except (ValidationFailedError, RecordNotFoundError):
        raise _invalid_token() from None
    if user.deleted:
        logger.info("Rejected token for deleted user id=%s", user.id)
        raise _invalid_token()

    principal = Authenticated(user)
    request.state.principal = principal
    return principal


def require_authenticated_user(principal: Principal = Depends(get_principal)) -> User:
    """Require a bearer token. Raises HTTP 401 for anonymous requests.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(require_authenticated_user)): ...
    """
    if not isinstance(principal, Authenticated):
        raise HTTPException(
            status_code=401,
            detail={"code": "authentication_required", "message": "You must be authenticated to access this resource."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal.user


def require_activated_user(user: User = Depends(require_authenticated_user)) -> User:
    if not user.activated:
        raise HTTPException(
            status_code=403,
            detail={"code": "inactive_account", "message": "Your account must be activated to access this resource."},
        )
    return user


def get_permissions(request: Request, user: User) -> Permissions:
    """Load the user's permission codes once per request."""
    cached = getattr(request.state, "permissions", None)
    if cached is None:
        cached = request.app.state.permission_store.get_all_for_user(user.id)
        request.state.permissions = cached
    return cached


def require_permission(code: str) -> Callable[..., User]:
    """Build a dependency that requires an activated user holding `code`.

    Use as a FastAPI dependency:
        @router.post("/breeds")
        def route(user: User = Depends(require_permission("livestock:write"))): ...
    """

    def dependency(request: Request, user: User = Depends(require_activated_user)) -> User:
        if not get_permissions(request, user).includes(code):
            raise HTTPException(
                status_code=403,
                detail={
                    "code": "not_permitted",
                    "message": "Your account doesn't have the necessary permissions to access this resource.",
                },
            )
        return user

    return dependency
