"""Common schemas used across the application."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelSchema(BaseModel):
    """Schema serialised with camelCase keys, accepting either case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class OkResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    auth_mode: str
    timestamp: datetime
