"""
api/routes/v1/tokens.py -- Token issuing endpoints.

Routes:
  POST /tokens/authentication  -- email + password -> bearer token (rate-limited)
  POST /tokens/activation      -- re-send an activation token by mail
  POST /tokens/password-reset  -- send a password-reset token by mail

Security:
  POST /tokens/authentication is rate-limited per client IP (AUTH_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline
  get_by_email() + verify_password().
  Cache-Control: no-store on the token response so proxies never cache it.
  POST /tokens/password-reset answers 202 whether or not the email exists, so
  it cannot be used to enumerate accounts.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AuthenticationRequest, AuthenticationTokenResponse, EmailRequest, MessageResponse
from auth.models import TokenScope
from auth.passwords import authenticate_user
from auth.store import UserStore
from auth.tokens import issue_token
from auth.validation import validate_email
from core.config import get_settings
from core.errors import RecordNotFoundError, ValidationFailedError
from core.validator import Validator

logger = logging.getLogger("cashcow.api")

router = APIRouter()


@limiter.limit(get_settings().auth_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/tokens/authentication", response_model=AuthenticationTokenResponse, status_code=201)
def create_authentication_token(request: Request, body: AuthenticationRequest) -> JSONResponse:
    """Exchange an email and password for a bearer token."""
    v = Validator()
    validate_email(v, body.email)
    v.check(body.password != "", "password", "must be provided")
    v.raise_if_invalid()

    user = authenticate_user(request.app.state.user_store, body.email, body.password)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "invalid_credentials", "message": "Invalid authentication credentials."},
        )

    settings = get_settings()
    token = issue_token(
        request.app.state.token_store,
        user.id,
        timedelta(seconds=settings.authentication_token_ttl_seconds),
        TokenScope.AUTHENTICATION,
    )
    logger.info("Issued authentication token for user id=%s", user.id)
    return JSONResponse(
        status_code=201,
        content=AuthenticationTokenResponse(token=token.plaintext, expiry=token.expiry).model_dump(),
        headers={"Cache-Control": "no-store"},
    )


@router.post("/tokens/activation", response_model=MessageResponse, status_code=202)
def create_activation_token(request: Request, body: EmailRequest) -> MessageResponse:
    """Issue a fresh activation token for an account that is not yet active."""
    v = Validator()
    validate_email(v, body.email)
    v.raise_if_invalid()

    store: UserStore = request.app.state.user_store
    try:
        user = store.get_by_email(body.email)
    except RecordNotFoundError:
        raise ValidationFailedError({"email": "no matching email address found"}) from None
    if user.deleted:
        raise ValidationFailedError({"email": "no matching email address found"})
    if user.activated:
        raise ValidationFailedError({"email": "user has already been activated"})

    token = issue_token(
        request.app.state.token_store,
        user.id,
        timedelta(seconds=get_settings().activation_token_ttl_seconds),
        TokenScope.ACTIVATION,
    )
    request.app.state.mailer.send_activation(user.email, user.id, token.plaintext)
    return MessageResponse(message="an email will be sent to you containing activation instructions")


@router.post("/tokens/password-reset", response_model=MessageResponse, status_code=202)
def create_password_reset_token(request: Request, body: EmailRequest) -> MessageResponse:
    """Mail a reset token to an active account. The response never reveals whether one exists."""
    v = Validator()
    validate_email(v, body.email)
    v.raise_if_invalid()

    store: UserStore = request.app.state.user_store
    try:
        user = store.get_by_email(body.email)
    except RecordNotFoundError:
        user = None

    if user is not None and user.activated and not user.deleted:
        token = issue_token(
            request.app.state.token_store,
            user.id,
            timedelta(seconds=get_settings().password_reset_token_ttl_seconds),
            TokenScope.PASSWORD_RESET,
        )
        request.app.state.mailer.send_password_reset(user.email, token.plaintext)
    return MessageResponse(message="if that email address is registered you will receive reset instructions")
