"""Share link endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from usage_dashboard.api.deps import (
    AppSettings,
    Context,
    Events,
    enforce_csrf,
    rate_limit,
    require_auth_configured,
    require_permission,
)
from usage_dashboard.core.errors import NotFoundError
from usage_dashboard.core.permissions import Permission
from usage_dashboard.core.rate_limit import RateLimits
from usage_dashboard.schemas.common import OkResponse
from usage_dashboard.schemas.share import (
    ShareCreateRequest,
    ShareCreateResponse,
    ShareLinkListResponse,
    ShareLinkResponse,
    ShareRevokeRequest,
)
from usage_dashboard.services.auth import SessionIdentity
from usage_dashboard.services.share import ShareService

router = APIRouter()

ShareIdentity = Annotated[SessionIdentity, Depends(require_permission(Permission.DASHBOARD_SHARE))]


def get_share_service(request: Request) -> ShareService:
    return request.app.state.share_service


Shares = Annotated[ShareService, Depends(get_share_service)]


@router.post(
    "",
    response_model=ShareCreateResponse,
    dependencies=[
        Depends(rate_limit("share", RateLimits.SHARE_CREATE)),
        Depends(require_auth_configured),
        Depends(enforce_csrf),
    ],
)
async def create_share(
    body: ShareCreateRequest,
    request: Request,
    identity: ShareIdentity,
    shares: Shares,
    context: Context,
    settings: AppSettings,
    events: Events,
):
    """Create a read-only share link. Requires a full session, not a share link."""
    created_by = identity.user.email if identity.user else "dashboard"
    issued = await shares.create_share(
        base_url=settings.PUBLIC_BASE_URL or str(request.base_url),
        expires_in_hours=body.expires_in_hours,
        password=body.password,
        created_by=created_by,
    )
    events.log_share_created(
        created_by=created_by,
        token=issued.token,
        expires_at=issued.expires_at.isoformat(),
        password_protected=issued.password_protected,
        ip_address=context.client_ip,
    )
    return ShareCreateResponse(
        url=issued.url,
        expires_at=issued.expires_at,
        password_protected=issued.password_protected,
    )


@router.get("", response_model=ShareLinkListResponse)
async def list_shares(
    identity: ShareIdentity,
    shares: Shares,
    include_inactive: Annotated[bool, Query(alias="includeInactive")] = False,
):
    """List share links, active ones only unless ``includeInactive`` is set."""
    links = await shares.list_shares(include_inactive=include_inactive)
    return ShareLinkListResponse(links=[ShareLinkResponse.model_validate(link) for link in links])


@router.post("/revoke", response_model=OkResponse, dependencies=[Depends(enforce_csrf)])
async def revoke_share(
    body: ShareRevokeRequest,
    identity: ShareIdentity,
    shares: Shares,
    context: Context,
    events: Events,
):
    """Revoke a share link before it expires. Revocation is permanent."""
    if not await shares.revoke_share(body.token):
        raise NotFoundError("Share link")
    events.log_share_revoked(
        revoked_by=identity.user.email if identity.user else "dashboard",
        token=body.token,
        ip_address=context.client_ip,
    )
    return OkResponse()
