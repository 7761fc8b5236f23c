"""Unit tests for the role to permission mapping."""

from types import SimpleNamespace

import pytest

from usage_dashboard.core.permissions import (
    ROLE_PERMISSIONS,
    Permission,
    Role,
    has_permission,
    permissions_for_role,
)


def _user(role: str):
    return SimpleNamespace(role=role)


class TestRolePermissions:
    def test_admin_has_everything(self):
        assert ROLE_PERMISSIONS[Role.ADMIN] == frozenset(Permission)
        assert len(ROLE_PERMISSIONS[Role.ADMIN]) == 14

    def test_viewer_only_views(self):
        assert permissions_for_role("viewer") == {Permission.DASHBOARD_VIEW, Permission.ALERTS_VIEW}

    def test_roles_are_nested(self):
        viewer = permissions_for_role(Role.VIEWER)
        billing = permissions_for_role(Role.BILLING)
        developer = permissions_for_role(Role.DEVELOPER)
        assert viewer < billing < developer < permissions_for_role(Role.ADMIN)

    def test_only_admin_manages_users_and_shares(self):
        for role in (Role.DEVELOPER, Role.BILLING, Role.VIEWER):
            perms = permissions_for_role(role)
            assert Permission.USERS_MANAGE not in perms
            assert Permission.DASHBOARD_SHARE not in perms

    def test_unknown_role_has_nothing(self):
        assert permissions_for_role("superuser") == frozenset()


class TestHasPermission:
    @pytest.mark.parametrize(
        "role,permission,expected",
        [
            ("admin", "users:manage", True),
            ("developer", "api_keys:create", True),
            ("developer", "api_keys:delete", False),
            ("billing", "dashboard:export", True),
            ("viewer", "dashboard:export", False),
        ],
    )
    def test_lookup(self, role, permission, expected):
        assert has_permission(_user(role), permission) is expected

    def test_no_user(self):
        assert has_permission(None, Permission.DASHBOARD_VIEW) is False

    def test_unknown_permission(self):
        assert has_permission(_user("admin"), "dashboard:delete") is False
