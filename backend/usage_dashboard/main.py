"""Main FastAPI application.

Run with: uvicorn usage_dashboard.main:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from usage_dashboard.api import api_router
from usage_dashboard.core.config import AuthMode, Settings, get_settings, validate_production_secrets
from usage_dashboard.core.csrf import CsrfGuard
from usage_dashboard.core.errors import (
    APIException,
    api_exception_handler,
    api_rate_limit_exceeded_handler,
    database_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from usage_dashboard.core.logging_config import configure_logging
from usage_dashboard.core.middleware import SecurityHeadersMiddleware
from usage_dashboard.core.rate_limit import RateLimiter, build_api_limiter
from usage_dashboard.core.security import TokenCodec
from usage_dashboard.core.security_events import SecurityEventLogger
from usage_dashboard.db.session import build_engine, build_session_factory, create_tables
from usage_dashboard.schemas.common import HealthResponse
from usage_dashboard.services.auth import UserAccountsBackend, build_auth_backend
from usage_dashboard.services.authority import SessionShareAuthority
from usage_dashboard.services.credential_store import SqlCredentialStore
from usage_dashboard.services.data_source import DashboardDataSource
from usage_dashboard.services.maintenance import MaintenanceScheduler
from usage_dashboard.services.share import ShareService
from usage_dashboard.services.users import UserService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, bootstrap the first admin, run background jobs."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting %s v%s (environment=%s, auth_mode=%s)",
        settings.APP_NAME,
        settings.APP_VERSION,
        settings.ENVIRONMENT,
        settings.auth_mode.value,
    )

    await create_tables(app.state.engine)

    user_service: UserService | None = app.state.user_service
    if user_service is not None:
        await user_service.ensure_bootstrap_admin(
            settings.BOOTSTRAP_ADMIN_EMAIL,
            settings.BOOTSTRAP_ADMIN_PASSWORD,
        )

    maintenance: MaintenanceScheduler = app.state.maintenance
    if settings.BACKGROUND_JOBS_ENABLED:
        app.state.rate_limiter.start_sweeper()
        maintenance.start()

    yield

    logger.info("Shutting down...")
    maintenance.shutdown()
    app.state.rate_limiter.stop_sweeper()
    await app.state.engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application and every component it owns."""
    settings = settings or get_settings()
    validate_production_secrets(settings)
    if settings.LOG_FORMAT != "none":
        configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Usage dashboard API with session and share-link access control",
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url=f"{settings.API_PREFIX}/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    store = SqlCredentialStore(build_session_factory(engine))
    codec = (
        TokenCodec(settings.AUTH_SECRET, session_ttl_ms=settings.SESSION_TTL_DAYS * 24 * 60 * 60 * 1000)
        if settings.AUTH_SECRET
        else None
    )
    backend = build_auth_backend(settings, codec, store)
    events = SecurityEventLogger()

    app.state.settings = settings
    app.state.engine = engine
    app.state.store = store
    app.state.events = events
    app.state.authority = SessionShareAuthority(backend=backend, codec=codec, store=store, events=events)
    app.state.csrf_guard = (
        CsrfGuard(settings.csrf_secret, max_age_seconds=settings.CSRF_TOKEN_MAX_AGE_SECONDS)
        if settings.csrf_secret
        else None
    )
    app.state.rate_limiter = RateLimiter(sweep_interval_seconds=settings.RATE_LIMIT_SWEEP_SECONDS)
    app.state.share_service = (
        ShareService(
            codec=codec,
            store=store,
            allowed_expiry_hours=settings.SHARE_ALLOWED_EXPIRY_HOURS,
            default_expiry_hours=settings.SHARE_DEFAULT_EXPIRY_HOURS,
        )
        if codec
        else None
    )
    app.state.user_service = (
        UserService(store=store, backend=backend)
        if settings.auth_mode is AuthMode.ACCOUNTS and isinstance(backend, UserAccountsBackend)
        else None
    )
    app.state.data_source = DashboardDataSource.from_settings(settings)
    app.state.maintenance = MaintenanceScheduler(store, interval_minutes=settings.CLEANUP_INTERVAL_MINUTES)

    # Rate limiting (general API preset)
    app.state.limiter = build_api_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, api_rate_limit_exceeded_handler)

    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-CSRF-Token", "X-Share-Password"],
        expose_headers=["Retry-After", "X-Dashboard-Access"],
    )
    app.add_middleware(SecurityHeadersMiddleware, api_prefix=settings.API_PREFIX)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """Database connectivity check. 503 when the store is unreachable."""
        db_status = "connected"
        overall_status = "healthy"
        try:
            async with request.app.state.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            db_status = "error" if settings.is_production else f"error: {str(e)[:50]}"
            overall_status = "unhealthy"

        response = HealthResponse(
            status=overall_status,
            version=settings.APP_VERSION,
            database=db_status,
            auth_mode=settings.auth_mode.value,
            timestamp=datetime.now(timezone.utc),
        )
        if overall_status == "unhealthy":
            return JSONResponse(status_code=503, content=response.model_dump(mode="json"))
        return response

    app.state.limiter.exempt(health_check)

    app.include_router(api_router, prefix=settings.API_PREFIX)

    return app

