"""Credential store: users, persisted sessions and share links.

``CredentialStore`` is the contract the auth layer depends on;
``SqlCredentialStore`` implements it on SQLAlchemy async sessions. Store
errors (``SQLAlchemyError``) propagate to the caller: an unreachable store
is a hard failure, never a permissive one.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from usage_dashboard.db.session import session_scope
from usage_dashboard.models import ShareLink, User, UserSession
from usage_dashboard.models.base import utc_now


@dataclass(frozen=True)
class Conflict:
    """A unique constraint would be violated (e.g. duplicate email)."""

    field: str


@dataclass
class NewUser:
    email: str
    password_hash: str | None
    name: str | None = None
    role: str = "viewer"
    is_active: bool = True


@dataclass
class UserChanges:
    """Fields to change on a user; ``None`` means leave unchanged."""

    email: str | None = None
    name: str | None = None
    role: str | None = None
    is_active: bool | None = None
    password_hash: str | None = None

    def changed_fields(self) -> list[str]:
        return [name for name, value in vars(self).items() if value is not None]


@dataclass
class NewSession:
    user_id: int
    token: str
    expires_at: datetime
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass
class NewShareLink:
    token: str
    expires_at: datetime
    password_protected: bool = False
    created_by: str | None = None


@dataclass
class CleanupResult:
    sessions_deleted: int = 0
    share_links_deleted: int = 0


def normalize_email(email: str) -> str:
    return email.strip().casefold()


class CredentialStore(ABC):
    """Persistence contract for accounts, sessions and share links."""

    # Users

    @abstractmethod
    async def create_user(self, new_user: NewUser) -> User | Conflict:
        """Insert a user, or return ``Conflict("email")`` if the email is taken."""
        pass

    @abstractmethod
    async def get_user(self, user_id: int) -> User | None:
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> User | None:
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        pass

    @abstractmethod
    async def count_users(self) -> int:
        pass

    @abstractmethod
    async def update_user(self, user_id: int, changes: UserChanges) -> User | Conflict | None:
        """Apply ``changes``; None if the user does not exist, ``Conflict("email")`` if the new email is taken."""
        pass

    @abstractmethod
    async def delete_user(self, user_id: int) -> bool:
        """Hard delete; sessions cascade."""
        pass

    @abstractmethod
    async def record_login(self, user_id: int) -> User | None:
        """Stamp ``last_login_at`` and return the updated user."""
        pass

    # Sessions

    @abstractmethod
    async def create_session(self, new_session: NewSession) -> UserSession:
        pass

    @abstractmethod
    async def get_session(self, token: str) -> UserSession | None:
        """Session by raw token, with its user loaded."""
        pass

    @abstractmethod
    async def delete_session(self, token: str) -> bool:
        pass

    @abstractmethod
    async def delete_user_sessions(self, user_id: int) -> int:
        pass

    @abstractmethod
    async def delete_expired_sessions(self) -> int:
        pass

    # Share links

    @abstractmethod
    async def create_share_link(self, new_link: NewShareLink) -> ShareLink:
        pass

    @abstractmethod
    async def get_share_link(self, token: str) -> ShareLink | None:
        pass

    @abstractmethod
    async def list_share_links(self, include_inactive: bool = False) -> list[ShareLink]:
        pass

    @abstractmethod
    async def is_share_link_revoked(self, token: str) -> bool:
        pass

    @abstractmethod
    async def revoke_share_link(self, token: str) -> bool:
        """Set ``revoked_at`` once. Returns False if unknown or already revoked."""
        pass

    @abstractmethod
    async def record_share_access(self, token: str) -> bool:
        pass

    @abstractmethod
    async def delete_expired_share_links(self) -> int:
        pass

    async def cleanup_expired(self) -> CleanupResult:
        """Prune expired sessions and share links."""
        return CleanupResult(
            sessions_deleted=await self.delete_expired_sessions(),
            share_links_deleted=await self.delete_expired_share_links(),
        )


class SqlCredentialStore(CredentialStore):
    """SQLAlchemy implementation. Each call runs in its own short session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    def _session(self):
        return session_scope(self._session_factory)

    # Users

    async def create_user(self, new_user: NewUser) -> User | Conflict:
        email = normalize_email(new_user.email)
        async with self._session() as db:
            existing = await db.scalar(select(User.id).where(User.email == email))
            if existing is not None:
                return Conflict("email")

            user = User(
                email=email,
                password_hash=new_user.password_hash,
                name=new_user.name,
                role=new_user.role,
                is_active=new_user.is_active,
            )
            db.add(user)
            try:
                await db.commit()
            except IntegrityError:
                # Lost a race with a concurrent insert of the same email
                await db.rollback()
                return Conflict("email")
            await db.refresh(user)
            return user

    async def get_user(self, user_id: int) -> User | None:
        async with self._session() as db:
            return await db.get(User, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        async with self._session() as db:
            return await db.scalar(select(User).where(User.email == normalize_email(email)))

    async def list_users(self) -> list[User]:
        async with self._session() as db:
            result = await db.scalars(select(User).order_by(User.id))
            return list(result.all())

    async def count_users(self) -> int:
        async with self._session() as db:
            return await db.scalar(select(func.count()).select_from(User)) or 0

    async def update_user(self, user_id: int, changes: UserChanges) -> User | Conflict | None:
        if changes.email is not None:
            changes.email = normalize_email(changes.email)

        async with self._session() as db:
            user = await db.get(User, user_id)
            if user is None:
                return None

            if changes.email is not None and changes.email != user.email:
                taken = await db.scalar(
                    select(User.id).where(User.email == changes.email, User.id != user_id)
                )
                if taken is not None:
                    return Conflict("email")

            for name in changes.changed_fields():
                setattr(user, name, getattr(changes, name))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                return Conflict("email")
            await db.refresh(user)
            return user

    async def delete_user(self, user_id: int) -> bool:
        async with self._session() as db:
            result = await db.execute(delete(User).where(User.id == user_id))
            await db.commit()
            return result.rowcount > 0

    async def record_login(self, user_id: int) -> User | None:
        async with self._session() as db:
            user = await db.get(User, user_id)
            if user is None:
                return None
            user.last_login_at = utc_now()
            await db.commit()
            await db.refresh(user)
            return user

    # Sessions

    async def create_session(self, new_session: NewSession) -> UserSession:
        async with self._session() as db:
            session = UserSession(
                user_id=new_session.user_id,
                token=new_session.token,
                expires_at=new_session.expires_at,
                user_agent=(new_session.user_agent or "")[:500] or None,
                ip_address=new_session.ip_address,
            )
            db.add(session)
            await db.commit()
            await db.refresh(session)
            return session

    async def get_session(self, token: str) -> UserSession | None:
        async with self._session() as db:
            return await db.scalar(
                select(UserSession)
                .options(selectinload(UserSession.user))
                .where(UserSession.token == token)
            )

    async def delete_session(self, token: str) -> bool:
        async with self._session() as db:
            result = await db.execute(delete(UserSession).where(UserSession.token == token))
            await db.commit()
            return result.rowcount > 0

    async def delete_user_sessions(self, user_id: int) -> int:
        async with self._session() as db:
            result = await db.execute(delete(UserSession).where(UserSession.user_id == user_id))
            await db.commit()
            return result.rowcount

    async def delete_expired_sessions(self) -> int:
        async with self._session() as db:
            result = await db.execute(delete(UserSession).where(UserSession.expires_at <= utc_now()))
            await db.commit()
            return result.rowcount

    # Share links

    async def create_share_link(self, new_link: NewShareLink) -> ShareLink:
        async with self._session() as db:
            link = ShareLink(
                token=new_link.token,
                expires_at=new_link.expires_at,
                password_protected=new_link.password_protected,
                created_by=new_link.created_by,
            )
            db.add(link)
            await db.commit()
            await db.refresh(link)
            return link

    async def get_share_link(self, token: str) -> ShareLink | None:
        async with self._session() as db:
            return await db.scalar(select(ShareLink).where(ShareLink.token == token))

    async def list_share_links(self, include_inactive: bool = False) -> list[ShareLink]:
        query = select(ShareLink).order_by(ShareLink.created_at.desc())
        if not include_inactive:
            query = query.where(ShareLink.revoked_at.is_(None), ShareLink.expires_at > utc_now())
        async with self._session() as db:
            result = await db.scalars(query)
            return list(result.all())

    async def is_share_link_revoked(self, token: str) -> bool:
        async with self._session() as db:
            revoked_at = await db.scalar(select(ShareLink.revoked_at).where(ShareLink.token == token))
            return revoked_at is not None

    async def revoke_share_link(self, token: str) -> bool:
        async with self._session() as db:
            result = await db.execute(
                update(ShareLink)
                .where(ShareLink.token == token, ShareLink.revoked_at.is_(None))
                .values(revoked_at=utc_now())
            )
            await db.commit()
            return result.rowcount > 0

    async def record_share_access(self, token: str) -> bool:
        async with self._session() as db:
            result = await db.execute(
                update(ShareLink)
                .where(ShareLink.token == token)
                .values(access_count=ShareLink.access_count + 1, last_accessed_at=utc_now())
            )
            await db.commit()
            return result.rowcount > 0

    async def delete_expired_share_links(self) -> int:
        async with self._session() as db:
            result = await db.execute(delete(ShareLink).where(ShareLink.expires_at <= utc_now()))
            await db.commit()
            return result.rowcount
