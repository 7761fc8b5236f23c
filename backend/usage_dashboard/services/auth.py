"""Authentication backends.

Exactly one backend is active per process, chosen from configuration at
start-up:

- ``LegacyPasswordBackend``: one shared dashboard password; the session
  cookie is a stateless signed session token.
- ``UserAccountsBackend``: per-user bcrypt passwords; the session cookie is
  a signed opaque identifier looked up in the sessions table.

Both hand back the same cookie shape and feed the same authorization checks.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta

from passlib.context import CryptContext

from usage_dashboard.core.config import AuthMode, Settings
from usage_dashboard.core.request_context import RequestContext
from usage_dashboard.core.security import (
    TokenCodec,
    build_password_context,
    constant_time_equals,
    generate_session_identifier,
)
from usage_dashboard.models import User, UserSession
from usage_dashboard.models.base import utc_now
from usage_dashboard.services.credential_store import CredentialStore, NewSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginCredentials:
    password: str
    email: str | None = None


@dataclass(frozen=True)
class SessionIdentity:
    """Who a valid session cookie belongs to. ``user`` is None in legacy mode."""

    user: User | None = None
    session: UserSession | None = None


@dataclass(frozen=True)
class LoginResult:
    cookie_value: str
    identity: SessionIdentity


class AuthBackend(ABC):
    """Issues and resolves session cookies for one authentication mode."""

    mode: AuthMode

    @abstractmethod
    async def login(self, credentials: LoginCredentials, context: RequestContext) -> LoginResult | None:
        """Check credentials and open a session, or return None on failure."""
        pass

    @abstractmethod
    async def resolve_session(self, cookie_value: str | None) -> SessionIdentity | None:
        """Identity behind a session cookie, or None if it is missing/invalid/expired."""
        pass

    async def logout(self, cookie_value: str | None) -> None:
        """End the session behind ``cookie_value``. Stateless backends do nothing."""
        return None


class LegacyPasswordBackend(AuthBackend):
    mode = AuthMode.LEGACY

    def __init__(self, codec: TokenCodec, dashboard_password: str):
        self._codec = codec
        self._password = dashboard_password

    async def login(self, credentials: LoginCredentials, context: RequestContext) -> LoginResult | None:
        if not constant_time_equals(credentials.password, self._password):
            return None
        return LoginResult(cookie_value=self._codec.issue_session_token(), identity=SessionIdentity())

    async def resolve_session(self, cookie_value: str | None) -> SessionIdentity | None:
        if self._codec.verify_session(cookie_value) is None:
            return None
        return SessionIdentity()


class UserAccountsBackend(AuthBackend):
    mode = AuthMode.ACCOUNTS

    def __init__(
        self,
        codec: TokenCodec,
        store: CredentialStore,
        pwd_context: CryptContext,
        session_ttl: timedelta = timedelta(days=7),
    ):
        self._codec = codec
        self._store = store
        self._pwd_context = pwd_context
        self._session_ttl = session_ttl

    @property
    def pwd_context(self) -> CryptContext:
        return self._pwd_context

    def hash_password(self, password: str) -> str:
        return self._pwd_context.hash(password)

    async def login(self, credentials: LoginCredentials, context: RequestContext) -> LoginResult | None:
        if not credentials.email:
            return None

        user = await self._store.get_user_by_email(credentials.email)
        if user is None or not user.is_active or not user.password_hash:
            # Burn a hash so unknown emails take as long as wrong passwords
            self._pwd_context.dummy_verify()
            return None

        if not self._pwd_context.verify(credentials.password, user.password_hash):
            return None

        identifier = generate_session_identifier()
        session = await self._store.create_session(
            NewSession(
                user_id=user.id,
                token=identifier,
                expires_at=utc_now() + self._session_ttl,
                user_agent=context.user_agent,
                ip_address=context.client_ip,
            )
        )
        user = await self._store.record_login(user.id) or user
        return LoginResult(
            cookie_value=self._codec.sign_opaque(identifier),
            identity=SessionIdentity(user=user, session=session),
        )

    async def resolve_session(self, cookie_value: str | None) -> SessionIdentity | None:
        identifier = self._codec.unsign_opaque(cookie_value)
        if identifier is None:
            return None

        session = await self._store.get_session(identifier)
        if session is None:
            return None

        if session.is_expired():
            await self._store.delete_session(identifier)
            return None

        user = session.user
        if user is None or not user.is_active:
            await self._store.delete_session(identifier)
            return None

        return SessionIdentity(user=user, session=session)

    async def logout(self, cookie_value: str | None) -> None:
        identifier = self._codec.unsign_opaque(cookie_value)
        if identifier is not None:
            await self._store.delete_session(identifier)


def build_auth_backend(settings: Settings, codec: TokenCodec | None, store: CredentialStore) -> AuthBackend | None:
    """Pick the backend for the configured mode; None when auth is unconfigured."""
    mode = settings.auth_mode
    if mode is AuthMode.UNCONFIGURED or codec is None:
        logger.warning("Authentication is not configured; protected endpoints will return 500")
        return None
    if mode is AuthMode.ACCOUNTS:
        return UserAccountsBackend(
            codec=codec,
            store=store,
            pwd_context=build_password_context(settings.BCRYPT_ROUNDS),
            session_ttl=timedelta(days=settings.SESSION_TTL_DAYS),
        )
    return LegacyPasswordBackend(codec=codec, dashboard_password=settings.DASHBOARD_PASSWORD)
