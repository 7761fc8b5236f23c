"""Dashboard data endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from usage_dashboard.api.deps import Authority, Context
from usage_dashboard.core.errors import AuthNotConfiguredError, DataSourceError, ErrorCode, UnauthorizedError
from usage_dashboard.services.data_source import DataSourceUnavailable

router = APIRouter()

CACHE_CONTROL = "private, max-age=60, stale-while-revalidate=300"


@router.get("/usage")
async def get_usage(request: Request, context: Context, authority: Authority):
    """Dashboard payload for a session cookie or a ``?share=`` link.

    Share access is read-only and flagged with ``X-Dashboard-Access``.
    """
    decision = await authority.authorize(context)

    if decision.is_configuration_error:
        raise AuthNotConfiguredError()
    if not decision.authorized:
        raise UnauthorizedError(code=ErrorCode(decision.reason.value), message="Access denied")

    try:
        data = await request.app.state.data_source.load()
    except DataSourceUnavailable as e:
        raise DataSourceError() from e

    return JSONResponse(
        content=data,
        headers={
            "Cache-Control": CACHE_CONTROL,
            "X-Dashboard-Access": "read-only" if decision.read_only else "full",
        },
    )
