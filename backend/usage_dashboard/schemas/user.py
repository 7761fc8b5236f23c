"""User management schemas. Password hashes never appear in responses."""

from datetime import datetime

from pydantic import EmailStr, Field

from usage_dashboard.core.permissions import Role
from usage_dashboard.schemas.common import CamelSchema

MIN_PASSWORD_LENGTH = 8


class UserResponse(CamelSchema):
    id: int
    email: str
    name: str | None = None
    role: Role
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None
    permissions: list[str] = []


class UserCreate(CamelSchema):
    email: EmailStr
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=256)
    name: str | None = Field(default=None, max_length=255)
    role: Role = Role.VIEWER


class UserUpdate(CamelSchema):
    email: EmailStr | None = None
    name: str | None = Field(default=None, max_length=255)
    role: Role | None = None
    is_active: bool | None = None
    password: str | None = Field(default=None, min_length=MIN_PASSWORD_LENGTH, max_length=256)


class UserListResponse(CamelSchema):
    users: list[UserResponse]
