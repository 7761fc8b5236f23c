"""Session and share-link authorization decision.

Order matters and is fixed:

1. No backend configured          -> auth_not_configured (a server fault)
2. Valid session cookie           -> full access, any share token ignored
3. Share token present:
   - bad signature / expired / revoked  -> share_invalid
   - password digest, no password       -> share_password_required
   - password digest, wrong password    -> share_password_invalid
   - otherwise                          -> read-only access
4. Nothing usable                 -> unauthorized

Expired, revoked and forged share tokens all collapse into share_invalid so
an attacker learns nothing about a link's lifecycle.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from usage_dashboard.core.request_context import RequestContext
from usage_dashboard.core.security import TokenCodec, is_well_formed_token
from usage_dashboard.core.security_events import SecurityEventLogger, security_events
from usage_dashboard.services.auth import AuthBackend, SessionIdentity
from usage_dashboard.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "aud_session"
SHARE_QUERY_PARAM = "share"
SHARE_PASSWORD_HEADER = "x-share-password"


class AccessState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    SESSION = "session_authenticated"
    SHARE = "share_authenticated"
    SHARE_PASSWORD_PENDING = "share_password_pending"
    DENIED = "denied"


class DenialReason(str, Enum):
    UNAUTHORIZED = "unauthorized"
    SHARE_INVALID = "share_invalid"
    SHARE_PASSWORD_REQUIRED = "share_password_required"
    SHARE_PASSWORD_INVALID = "share_password_invalid"
    AUTH_NOT_CONFIGURED = "auth_not_configured"


@dataclass(frozen=True)
class AuthDecision:
    state: AccessState
    reason: DenialReason | None = None
    identity: SessionIdentity | None = None
    share_token: str | None = None

    @property
    def authorized(self) -> bool:
        return self.state in (AccessState.SESSION, AccessState.SHARE)

    @property
    def read_only(self) -> bool:
        return self.state is not AccessState.SESSION

    @property
    def is_configuration_error(self) -> bool:
        return self.reason is DenialReason.AUTH_NOT_CONFIGURED


def _denied(reason: DenialReason, state: AccessState = AccessState.DENIED, **kwargs) -> AuthDecision:
    return AuthDecision(state=state, reason=reason, **kwargs)


class SessionShareAuthority:
    """Resolves a request to a session, a share grant, or a denial."""

    def __init__(
        self,
        backend: AuthBackend | None,
        codec: TokenCodec | None,
        store: CredentialStore,
        events: SecurityEventLogger = security_events,
    ):
        self.backend = backend
        self.codec = codec
        self.store = store
        self.events = events

    @property
    def is_configured(self) -> bool:
        return self.backend is not None and self.codec is not None

    async def resolve_session(self, context: RequestContext) -> SessionIdentity | None:
        if self.backend is None:
            return None
        cookie = context.cookie(SESSION_COOKIE_NAME)
        if not cookie:
            return None
        return await self.backend.resolve_session(cookie)

    async def authorize(
        self,
        context: RequestContext,
        share_token: str | None = None,
        share_password: str | None = None,
    ) -> AuthDecision:
        """Decide access for ``context``.

        The share token and password default to the ``share`` query parameter
        and the ``x-share-password`` header.
        """
        if share_token is None:
            share_token = context.query.get(SHARE_QUERY_PARAM)
        if share_password is None:
            share_password = context.header(SHARE_PASSWORD_HEADER)

        if not self.is_configured:
            return _denied(DenialReason.AUTH_NOT_CONFIGURED)

        identity = await self.resolve_session(context)
        if identity is not None:
            return AuthDecision(state=AccessState.SESSION, identity=identity)

        if not share_token:
            return _denied(DenialReason.UNAUTHORIZED, state=AccessState.UNAUTHENTICATED)

        return await self._authorize_share(context, share_token, share_password)

    async def _authorize_share(
        self,
        context: RequestContext,
        share_token: str,
        share_password: str | None,
    ) -> AuthDecision:
        payload = self.codec.verify_share(share_token) if is_well_formed_token(share_token) else None

        # Store errors propagate: an unreachable store must not let revoked links through
        if payload is None or await self.store.is_share_link_revoked(share_token):
            return self._share_denied(context, share_token, DenialReason.SHARE_INVALID)

        if payload.password_digest is not None:
            if not share_password:
                return self._share_denied(
                    context,
                    share_token,
                    DenialReason.SHARE_PASSWORD_REQUIRED,
                    state=AccessState.SHARE_PASSWORD_PENDING,
                )
            if not self.codec.verify_share_password(share_password, payload.password_digest):
                return self._share_denied(context, share_token, DenialReason.SHARE_PASSWORD_INVALID)

        await self._record_share_access(context, share_token)
        return AuthDecision(state=AccessState.SHARE, share_token=share_token)

    def _share_denied(
        self,
        context: RequestContext,
        share_token: str,
        reason: DenialReason,
        state: AccessState = AccessState.DENIED,
    ) -> AuthDecision:
        self.events.log_share_denied(
            token=share_token,
            reason=reason.value,
            ip_address=context.client_ip,
            user_agent=context.user_agent,
        )
        return _denied(reason, state=state, share_token=share_token)

    async def _record_share_access(self, context: RequestContext, share_token: str) -> None:
        """Best-effort bookkeeping; never blocks the decision."""
        try:
            await self.store.record_share_access(share_token)
        except SQLAlchemyError as e:
            logger.warning("Could not record share link access: %s", e.__class__.__name__)
        self.events.log_share_accessed(
            token=share_token,
            ip_address=context.client_ip,
            user_agent=context.user_agent,
        )
