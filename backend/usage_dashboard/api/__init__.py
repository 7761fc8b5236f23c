"""API routes."""

from fastapi import APIRouter, Depends

from usage_dashboard.api.deps import require_accounts_mode
from usage_dashboard.api.endpoints import auth, share, usage, users

api_router = APIRouter()

api_router.include_router(auth.router, tags=["Authentication"])
api_router.include_router(share.router, prefix="/share", tags=["Share Links"])
api_router.include_router(usage.router, tags=["Dashboard"])
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(require_accounts_mode)],
)
