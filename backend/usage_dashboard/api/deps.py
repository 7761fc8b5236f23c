"""API dependencies.

Components are built once in ``create_app`` and kept on ``app.state``;
these dependencies hand them to the endpoints and enforce, in order, rate
limits, configuration, CSRF, session and permission checks.
"""

import logging
from typing import Annotated, Callable

from fastapi import Depends, Request

from usage_dashboard.core.config import AuthMode, Settings
from usage_dashboard.core.csrf import CsrfGuard
from usage_dashboard.core.errors import (
    AuthNotConfiguredError,
    CsrfError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    UnauthorizedError,
)
from usage_dashboard.core.permissions import Permission
from usage_dashboard.core.rate_limit import RateLimiter, RateLimitPolicy
from usage_dashboard.core.request_context import RequestContext
from usage_dashboard.core.security_events import SecurityEventLogger
from usage_dashboard.services.auth import SessionIdentity
from usage_dashboard.services.authority import SessionShareAuthority

# Security logger for auth failures
security_logger = logging.getLogger("security.auth")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_request_context(request: Request) -> RequestContext:
    cached = getattr(request.state, "auth_context", None)
    if cached is None:
        cached = RequestContext.from_request(request, request.app.state.settings.TRUSTED_PROXY_IPS)
        request.state.auth_context = cached
    return cached


def get_authority(request: Request) -> SessionShareAuthority:
    return request.app.state.authority


def get_events(request: Request) -> SecurityEventLogger:
    return request.app.state.events


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


AppSettings = Annotated[Settings, Depends(get_settings)]
Context = Annotated[RequestContext, Depends(get_request_context)]
Authority = Annotated[SessionShareAuthority, Depends(get_authority)]
Events = Annotated[SecurityEventLogger, Depends(get_events)]


def rate_limit(bucket: str, policy: RateLimitPolicy) -> Callable:
    """Dependency factory: fixed-window limit per client IP for ``bucket``."""

    async def _check(
        context: Context,
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
        events: Events,
    ) -> None:
        result = limiter.check(f"{bucket}:{context.client_ip}", policy)
        if not result.allowed:
            events.log_rate_limit_exceeded(
                ip_address=context.client_ip,
                endpoint=context.path,
                limit=policy.max_requests,
            )
            raise RateLimitError(
                retry_after_ms=result.retry_after_ms,
                remaining=result.remaining,
                reset_at_ms=result.reset_at,
            )

    return _check


async def require_auth_configured(authority: Authority) -> None:
    if not authority.is_configured:
        raise AuthNotConfiguredError()


def get_csrf_guard(request: Request) -> CsrfGuard:
    guard = request.app.state.csrf_guard
    if guard is None:
        raise AuthNotConfiguredError()
    return guard


async def enforce_csrf(
    context: Context,
    guard: Annotated[CsrfGuard, Depends(get_csrf_guard)],
    events: Events,
) -> None:
    if not guard.validate(context):
        events.log_csrf_failure(
            method=context.method,
            path=context.path,
            ip_address=context.client_ip,
            user_agent=context.user_agent,
        )
        raise CsrfError()


async def require_accounts_mode(settings: AppSettings) -> None:
    """User management only exists when user accounts are enabled."""
    if settings.auth_mode is not AuthMode.ACCOUNTS:
        raise NotFoundError("Resource")


async def get_current_identity(context: Context, authority: Authority) -> SessionIdentity:
    """Full session required; share links never satisfy this."""
    if not authority.is_configured:
        raise AuthNotConfiguredError()
    identity = await authority.resolve_session(context)
    if identity is None:
        security_logger.warning(
            "Session required but missing or invalid",
            extra={
                "event_type": "security.auth.session_invalid",
                "path": context.path,
                "ip_address": context.client_ip,
            },
        )
        raise UnauthorizedError()
    return identity


CurrentIdentity = Annotated[SessionIdentity, Depends(get_current_identity)]


def require_permission(permission: Permission) -> Callable:
    """Dependency factory gating an endpoint on a role permission.

    Legacy sessions have no user and hold every permission.
    """

    async def _check(identity: CurrentIdentity, context: Context, events: Events) -> SessionIdentity:
        user = identity.user
        if user is not None and not user.has_permission(permission):
            events.log_access_denied(
                user_id=str(user.id),
                required_permission=permission.value,
                resource_type=permission.value.split(":", 1)[0],
                ip_address=context.client_ip,
            )
            raise ForbiddenError(f"Missing permission: {permission.value}")
        return identity

    return _check


def require_user_permission(permission: Permission) -> Callable:
    """Like ``require_permission`` but a concrete account is mandatory."""
    check = require_permission(permission)

    async def _check(identity: Annotated[SessionIdentity, Depends(check)]) -> SessionIdentity:
        if identity.user is None:
            raise UnauthorizedError()
        return identity

    return _check
