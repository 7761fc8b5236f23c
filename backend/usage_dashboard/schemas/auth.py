"""Login and CSRF schemas."""

from pydantic import BaseModel, Field, field_validator

from usage_dashboard.schemas.common import OkResponse
from usage_dashboard.schemas.user import UserResponse


class LoginRequest(BaseModel):
    """``{password}`` in legacy mode, ``{email, password}`` in accounts mode."""

    password: str = Field(min_length=1, max_length=256)
    email: str | None = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def fold_email(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().casefold()
        return v or None


class LoginResponse(OkResponse):
    user: UserResponse | None = None


class CsrfResponse(BaseModel):
    token: str
