"""
api/routes/v1/users.py -- User registration, activation and account management.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /users                 -- register; grants default permissions, mails activation token.
                                   If granting or token issuance fails the new row is removed.
  PUT    /users/activated       -- activate with an activation token
  PUT    /users/password        -- reset password with a password-reset token
  GET    /users/me              -- current user
  GET    /users                 -- filtered, paginated list (users:read)
  GET    /users/{user_id}       -- one user (self or users:read)
  PATCH  /users/{user_id}       -- partial update (self or users:write)
  PUT    /users/{user_id}/password -- change own password with the current one
  DELETE /users/{user_id}       -- soft delete (self or users:write)

Security:
  Token plaintexts and passwords are never logged.
  Activation and reset tokens are single-use: every token of that scope for
  the user is revoked once one is consumed.
  A password change or reset also revokes the user's authentication tokens,
  so sessions opened with the old password end.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.common import apply_patch, forbidden, paging
from api.models import (
    ActivationRequest,
    MessageResponse,
    MetaDataResponse,
    PasswordChangeRequest,
    PasswordResetRequest,
    UserCreate,
    UserListResponse,
    UserPatch,
    UserResponse,
)
from auth.dependencies import get_permissions, require_authenticated_user, require_permission
from auth.models import CandidatePassword, TokenScope, User, UserFilters
from auth.passwords import set_password, validate_password_plaintext, verify_password
from auth.store import UserStore
from auth.tokens import issue_token, resolve_token, revoke_tokens, validate_token_plaintext
from auth.validation import validate_user
from core.config import get_settings
from core.errors import RecordNotFoundError, StoreError, ValidationFailedError
from core.filters import Filters
from core.validator import Validator

logger = logging.getLogger("cashcow.api")

router = APIRouter()


def _load_target(request: Request, actor: User, user_id: int, code: str) -> User:
    """Return the user being acted on, after checking the actor may touch it.

    Acting on yourself needs no permission. Acting on anyone else needs an
    activated account holding `code`. Soft-deleted users are not found.
    """
    if actor.id != user_id:
        if not actor.activated:
            raise forbidden("inactive_account", "Your account must be activated to access this resource.")
        if not get_permissions(request, actor).includes(code):
            raise forbidden(
                "not_permitted", "Your account doesn't have the necessary permissions to access this resource."
            )
    store: UserStore = request.app.state.user_store
    target = store.get_by_id(user_id)
    if target.deleted:
        raise RecordNotFoundError()
    return target


def _resolve_or_invalid(request: Request, scope: TokenScope, token: str) -> User:
    """Resolve a single-use token, reporting any failure as a token field error."""
    try:
        user = resolve_token(request.app.state.token_store, scope, token)
    except RecordNotFoundError:
        raise ValidationFailedError({"token": "invalid or expired token"}) from None
    if user.deleted:
        raise ValidationFailedError({"token": "invalid or expired token"})
    return user


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users", response_model=UserResponse, status_code=201)
def register_user(request: Request, body: UserCreate) -> UserResponse:
    """Create an account, grant the default permissions and mail an activation token."""
    settings = get_settings()
    store: UserStore = request.app.state.user_store

    user = User(
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        middle_name=body.middle_name,
        farmer_id=body.farmer_id or None,
        phone_number=body.phone_number or None,
    )
    candidate = CandidatePassword(body.password)
    v = Validator()
    validate_user(v, user, candidate)
    v.raise_if_invalid()

    user.password = set_password(candidate)
    store.insert(user)
    try:
        request.app.state.permission_store.grant(user.id, *settings.default_permissions)
        token = issue_token(
            request.app.state.token_store,
            user.id,
            timedelta(seconds=settings.activation_token_ttl_seconds),
            TokenScope.ACTIVATION,
        )
    except StoreError:
        # Grants and tokens cascade with the user row.
        logger.warning("Registration of user id=%s failed after insert; removing the account", user.id)
        store.delete_hard(user.id)
        raise
    request.app.state.mailer.send_activation(user.email, user.id, token.plaintext)
    logger.info("Registered user id=%s", user.id)
    return UserResponse.model_validate(user)


@router.put("/users/activated", response_model=UserResponse)
def activate_user(request: Request, body: ActivationRequest) -> UserResponse:
    v = Validator()
    validate_token_plaintext(v, body.token)
    v.raise_if_invalid()

    user = _resolve_or_invalid(request, TokenScope.ACTIVATION, body.token)
    user.activated = True
    request.app.state.user_store.update(user)
    revoke_tokens(request.app.state.token_store, TokenScope.ACTIVATION, user.id)
    logger.info("Activated user id=%s", user.id)
    return UserResponse.model_validate(user)


@router.put("/users/password", response_model=MessageResponse)
def reset_password(request: Request, body: PasswordResetRequest) -> MessageResponse:
    candidate = CandidatePassword(body.password)
    v = Validator()
    validate_password_plaintext(v, candidate)
    validate_token_plaintext(v, body.token)
    v.raise_if_invalid()

    user = _resolve_or_invalid(request, TokenScope.PASSWORD_RESET, body.token)
    user.password = set_password(candidate)
    request.app.state.user_store.update_password(user)
    token_store = request.app.state.token_store
    revoke_tokens(token_store, TokenScope.PASSWORD_RESET, user.id)
    revoke_tokens(token_store, TokenScope.AUTHENTICATION, user.id)
    logger.info("Password reset for user id=%s", user.id)
    return MessageResponse(message="your password was successfully reset")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/users/me", response_model=UserResponse)
def get_me(user: User = Depends(require_authenticated_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    email: Optional[str] = Query(None),
    farmer_id: Optional[str] = Query(None),
    phone_number: Optional[str] = Query(None),
    name: Optional[str] = Query(None, description="Matches first, last or middle name."),
    activated: Optional[bool] = Query(None),
    verified: Optional[bool] = Query(None),
    filters: Filters = Depends(paging),
    _: User = Depends(require_permission("users:read")),
) -> UserListResponse:
    store: UserStore = request.app.state.user_store
    page = store.list(
        UserFilters(
            email=email,
            farmer_id=farmer_id,
            phone_number=phone_number,
            name=name,
            activated=activated,
            verified=verified,
            filters=filters,
        )
    )
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in page.items],
        metadata=MetaDataResponse.from_metadata(page.metadata),
    )


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, actor: User = Depends(require_authenticated_user)) -> UserResponse:
    return UserResponse.model_validate(_load_target(request, actor, user_id, "users:read"))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    actor: User = Depends(require_authenticated_user),
) -> UserResponse:
    """Partially update a profile. Send `version` to guard against lost updates."""
    target = _load_target(request, actor, user_id, "users:write")
    apply_patch(target, body)
    target.farmer_id = target.farmer_id or None
    target.phone_number = target.phone_number or None
    request.app.state.user_store.update(target)
    return UserResponse.model_validate(target)


@router.put("/users/{user_id}/password", response_model=MessageResponse)
def change_password(
    request: Request,
    user_id: int,
    body: PasswordChangeRequest,
    actor: User = Depends(require_authenticated_user),
) -> MessageResponse:
    """Change your own password. The current password must be supplied."""
    if actor.id != user_id:
        raise forbidden("not_permitted", "You can only change your own password.")

    candidate = CandidatePassword(body.password)
    v = Validator()
    v.check(verify_password(actor.password, body.current_password), "current_password", "is incorrect")
    validate_password_plaintext(v, candidate)
    v.raise_if_invalid()

    actor.password = set_password(candidate)
    request.app.state.user_store.update_password(actor)
    token_store = request.app.state.token_store
    revoke_tokens(token_store, TokenScope.PASSWORD_RESET, actor.id)
    revoke_tokens(token_store, TokenScope.AUTHENTICATION, actor.id)
    logger.info("Password changed for user id=%s", actor.id)
    return MessageResponse(message="your password was successfully changed")


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(request: Request, user_id: int, actor: User = Depends(require_authenticated_user)) -> MessageResponse:
    """Soft-delete an account. Its tokens stop working immediately."""
    target = _load_target(request, actor, user_id, "users:write")
    request.app.state.user_store.delete_soft(target)
    revoke_tokens(request.app.state.token_store, TokenScope.AUTHENTICATION, target.id)
    logger.info("User id=%s deleted by user id=%s", target.id, actor.id)
    return MessageResponse(message="user successfully deleted")
