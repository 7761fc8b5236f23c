"""Static role to permission mapping for account-mode users."""

from enum import Enum
from typing import Protocol


class Role(str, Enum):
    ADMIN = "admin"
    DEVELOPER = "developer"
    BILLING = "billing"
    VIEWER = "viewer"


class Permission(str, Enum):
    DASHBOARD_VIEW = "dashboard:view"
    DASHBOARD_EXPORT = "dashboard:export"
    DASHBOARD_SHARE = "dashboard:share"
    API_KEYS_VIEW = "api_keys:view"
    API_KEYS_CREATE = "api_keys:create"
    API_KEYS_DELETE = "api_keys:delete"
    ALERTS_VIEW = "alerts:view"
    ALERTS_MANAGE = "alerts:manage"
    TEAM_VIEW = "team:view"
    TEAM_MANAGE = "team:manage"
    USERS_VIEW = "users:view"
    USERS_MANAGE = "users:manage"
    SETTINGS_VIEW = "settings:view"
    SETTINGS_MANAGE = "settings:manage"


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.DEVELOPER: frozenset({
        Permission.DASHBOARD_VIEW,
        Permission.DASHBOARD_EXPORT,
        Permission.API_KEYS_VIEW,
        Permission.API_KEYS_CREATE,
        Permission.ALERTS_VIEW,
        Permission.TEAM_VIEW,
        Permission.SETTINGS_VIEW,
    }),
    Role.BILLING: frozenset({
        Permission.DASHBOARD_VIEW,
        Permission.DASHBOARD_EXPORT,
        Permission.ALERTS_VIEW,
        Permission.SETTINGS_VIEW,
    }),
    Role.VIEWER: frozenset({
        Permission.DASHBOARD_VIEW,
        Permission.ALERTS_VIEW,
    }),
}


class HasRole(Protocol):
    role: str


def permissions_for_role(role: Role | str) -> frozenset[Permission]:
    """Permissions granted to ``role``; unknown roles get none."""
    try:
        return ROLE_PERMISSIONS[Role(role)]
    except ValueError:
        return frozenset()


def has_permission(user: HasRole | None, permission: Permission | str) -> bool:
    """Pure lookup: does the user's role include ``permission``?"""
    if user is None:
        return False
    try:
        wanted = Permission(permission)
    except ValueError:
        return False
    return wanted in permissions_for_role(user.role)
