"""Account management for accounts mode."""

import logging
from dataclasses import dataclass

from usage_dashboard.core.errors import ConflictError, ErrorCode, NotFoundError, ValidationError
from usage_dashboard.models import User
from usage_dashboard.services.auth import UserAccountsBackend
from usage_dashboard.services.credential_store import Conflict, CredentialStore, NewUser, UserChanges

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserUpdateResult:
    user: User
    changed_fields: list[str]
    sessions_revoked: int


class UserService:
    """Create, update and delete users; hashes passwords with the backend's context."""

    def __init__(self, store: CredentialStore, backend: UserAccountsBackend):
        self.store = store
        self.backend = backend

    async def list_users(self) -> list[User]:
        return await self.store.list_users()

    async def get_user(self, user_id: int) -> User:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def create_user(self, email: str, password: str, name: str | None, role: str) -> User:
        result = await self.store.create_user(
            NewUser(
                email=email,
                password_hash=self.backend.hash_password(password),
                name=name,
                role=role,
            )
        )
        if isinstance(result, Conflict):
            raise ConflictError(f"A user with this {result.field} already exists")
        return result

    async def update_user(
        self,
        user_id: int,
        email: str | None = None,
        name: str | None = None,
        role: str | None = None,
        is_active: bool | None = None,
        password: str | None = None,
    ) -> UserUpdateResult:
        changes = UserChanges(
            email=email,
            name=name,
            role=role,
            is_active=is_active,
            password_hash=self.backend.hash_password(password) if password else None,
        )
        user = await self.store.update_user(user_id, changes)
        if user is None:
            raise NotFoundError("User", user_id)
        if isinstance(user, Conflict):
            raise ConflictError(f"A user with this {user.field} already exists")

        sessions_revoked = 0
        # A new password or a deactivation ends every open session for the user
        if changes.password_hash is not None or is_active is False:
            sessions_revoked = await self.store.delete_user_sessions(user_id)

        return UserUpdateResult(
            user=user,
            changed_fields=changes.changed_fields(),
            sessions_revoked=sessions_revoked,
        )

    async def delete_user(self, user_id: int, acting_user_id: int) -> None:
        if user_id == acting_user_id:
            raise ValidationError("You cannot delete your own account", code=ErrorCode.SELF_DELETE_FORBIDDEN)
        if not await self.store.delete_user(user_id):
            raise NotFoundError("User", user_id)

    async def ensure_bootstrap_admin(self, email: str, password: str) -> User | None:
        """Create the first admin when the users table is empty."""
        if not email or not password:
            return None
        if await self.store.count_users() > 0:
            return None
        result = await self.store.create_user(
            NewUser(
                email=email,
                password_hash=self.backend.hash_password(password),
                name="Administrator",
                role="admin",
            )
        )
        if isinstance(result, Conflict):
            return None
        logger.info("Bootstrap admin account created", extra={"event_type": "system.bootstrap.admin_created"})
        return result
