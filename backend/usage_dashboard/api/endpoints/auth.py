"""Authentication endpoints: CSRF token, login, logout."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy.exc import SQLAlchemyError

from usage_dashboard.api.deps import (
    AppSettings,
    Authority,
    Context,
    Events,
    enforce_csrf,
    get_csrf_guard,
    rate_limit,
    require_auth_configured,
)
from usage_dashboard.core.config import AuthMode, Settings
from usage_dashboard.core.csrf import CSRF_COOKIE_NAME, CsrfGuard
from usage_dashboard.core.errors import InvalidCredentialsError, ValidationError
from usage_dashboard.core.rate_limit import RateLimits
from usage_dashboard.services.auth import LoginCredentials
from usage_dashboard.services.authority import SESSION_COOKIE_NAME
from usage_dashboard.schemas.auth import CsrfResponse, LoginRequest, LoginResponse
from usage_dashboard.schemas.common import OkResponse
from usage_dashboard.schemas.user import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def set_session_cookie(response: Response, value: str, settings: Settings) -> None:
    """Session cookie: httpOnly, SameSite=Lax, Secure in production."""
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        httponly=True,  # Critical: prevents XSS from stealing the session
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.SESSION_TTL_DAYS * 24 * 60 * 60,
        path="/",
        domain=settings.COOKIE_DOMAIN,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value="",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=0,
        path="/",
        domain=settings.COOKIE_DOMAIN,
    )


def set_csrf_cookie(response: Response, token: str, settings: Settings) -> None:
    # NOT httpOnly: client script reads it and echoes it in x-csrf-token
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
        max_age=settings.CSRF_TOKEN_MAX_AGE_SECONDS,
        path="/",
        domain=settings.COOKIE_DOMAIN,
    )


@router.get("/csrf", response_model=CsrfResponse)
async def issue_csrf_token(
    response: Response,
    settings: AppSettings,
    guard: Annotated[CsrfGuard, Depends(get_csrf_guard)],
):
    """Issue a CSRF token as a cookie and in the body."""
    token = guard.issue()
    set_csrf_cookie(response, token, settings)
    response.headers["Cache-Control"] = "no-store"
    return CsrfResponse(token=token)


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    dependencies=[
        Depends(rate_limit("login", RateLimits.LOGIN)),
        Depends(require_auth_configured),
        Depends(enforce_csrf),
    ],
)
async def login(
    body: LoginRequest,
    response: Response,
    context: Context,
    authority: Authority,
    settings: AppSettings,
    events: Events,
):
    """Exchange credentials for a session cookie.

    Unknown email and wrong password produce the same 401.
    """
    backend = authority.backend
    if backend.mode is AuthMode.ACCOUNTS and not body.email:
        raise ValidationError("email is required")

    result = await backend.login(LoginCredentials(password=body.password, email=body.email), context)
    if result is None:
        events.log_login_failure(
            identifier=body.email,
            ip_address=context.client_ip,
            user_agent=context.user_agent,
        )
        raise InvalidCredentialsError()

    set_session_cookie(response, result.cookie_value, settings)
    user = result.identity.user
    events.log_login_success(
        user_id=str(user.id) if user else None,
        ip_address=context.client_ip,
        user_agent=context.user_agent,
        mode=backend.mode.value,
    )
    return LoginResponse(user=UserResponse.model_validate(user) if user else None)


@router.post("/logout", response_model=OkResponse)
async def logout(
    response: Response,
    context: Context,
    authority: Authority,
    settings: AppSettings,
    events: Events,
):
    """Clear the session cookie and end any persisted session. Always succeeds."""
    cookie = context.cookie(SESSION_COOKIE_NAME)
    if authority.backend is not None and cookie:
        try:
            await authority.backend.logout(cookie)
        except SQLAlchemyError as e:
            logger.warning("Could not delete session on logout: %s", e.__class__.__name__)
        events.log_logout(user_id=None, ip_address=context.client_ip)

    clear_session_cookie(response, settings)
    return OkResponse()
