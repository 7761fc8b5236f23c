"""Share link schemas."""

from datetime import datetime

from pydantic import Field

from usage_dashboard.schemas.common import CamelSchema


class ShareCreateRequest(CamelSchema):
    # Range-checked here, then clamped to the configured allow-list
    expires_in_hours: int = Field(default=24, ge=1, le=168, strict=True)
    password: str | None = Field(default=None, min_length=1, max_length=256)


class ShareCreateResponse(CamelSchema):
    url: str
    expires_at: datetime
    password_protected: bool


class ShareRevokeRequest(CamelSchema):
    token: str = Field(min_length=1, max_length=2048)


class ShareLinkResponse(CamelSchema):
    id: int
    token: str
    created_at: datetime
    expires_at: datetime
    password_protected: bool
    access_count: int
    last_accessed_at: datetime | None = None
    revoked_at: datetime | None = None
    created_by: str | None = None


class ShareLinkListResponse(CamelSchema):
    links: list[ShareLinkResponse]
