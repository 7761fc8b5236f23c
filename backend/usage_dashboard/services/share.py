"""Share link issuance, listing and revocation."""

import logging
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError

from usage_dashboard.core.security import TokenCodec
from usage_dashboard.models import ShareLink
from usage_dashboard.services.credential_store import CredentialStore, NewShareLink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedShare:
    token: str
    url: str
    expires_at: datetime
    password_protected: bool


def clamp_expiry_hours(requested: int | None, allowed: list[int], default: int) -> int:
    """Only allow-listed expiries are honoured; anything else gets the default."""
    if requested in allowed:
        return requested
    return default


def build_share_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/?share={quote(token, safe='')}"


class ShareService:
    def __init__(
        self,
        codec: TokenCodec,
        store: CredentialStore,
        allowed_expiry_hours: list[int],
        default_expiry_hours: int,
    ):
        self.codec = codec
        self.store = store
        self.allowed_expiry_hours = allowed_expiry_hours
        self.default_expiry_hours = default_expiry_hours

    async def create_share(
        self,
        base_url: str,
        expires_in_hours: int | None = None,
        password: str | None = None,
        created_by: str | None = None,
    ) -> IssuedShare:
        hours = clamp_expiry_hours(expires_in_hours, self.allowed_expiry_hours, self.default_expiry_hours)
        token, payload = self.codec.issue_share(hours, password or None)

        # The token is valid without its row; the row only enables revocation and auditing
        try:
            await self.store.create_share_link(
                NewShareLink(
                    token=token,
                    expires_at=payload.expires_at,
                    password_protected=payload.password_protected,
                    created_by=created_by,
                )
            )
        except SQLAlchemyError as e:
            logger.warning("Could not persist share link record: %s", e.__class__.__name__)

        return IssuedShare(
            token=token,
            url=build_share_url(base_url, token),
            expires_at=payload.expires_at,
            password_protected=payload.password_protected,
        )

    async def list_shares(self, include_inactive: bool = False) -> list[ShareLink]:
        return await self.store.list_share_links(include_inactive=include_inactive)

    async def revoke_share(self, token: str) -> bool:
        return await self.store.revoke_share_link(token)
