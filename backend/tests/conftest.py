"""
Pytest configuration and fixtures for Usage Dashboard tests.

Provides common fixtures for:
- Settings for each authentication mode
- Test clients built from ``create_app`` with an in-memory database
- An in-memory credential store for service-level tests
- Login and CSRF helpers
"""

from collections.abc import Iterator
from contextlib import contextmanager

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from usage_dashboard.core.config import Settings
from usage_dashboard.core.security import TokenCodec
from usage_dashboard.db.session import build_engine, build_session_factory, create_tables
from usage_dashboard.main import create_app
from usage_dashboard.services.credential_store import SqlCredentialStore

# Use SQLite for tests (faster, no external dependencies)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_AUTH_SECRET = "unit-test-auth-secret-0123456789abcdef"
DASHBOARD_PASSWORD = "correct horse battery staple"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password-123"


class FakeClock:
    """Settable clock returning seconds, like ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    """Settings isolated from any .env file, tuned for fast tests."""
    values = {
        "DATABASE_URL": TEST_DATABASE_URL,
        "AUTH_SECRET": TEST_AUTH_SECRET,
        "DASHBOARD_PASSWORD": DASHBOARD_PASSWORD,
        "BCRYPT_ROUNDS": 4,
        "BACKGROUND_JOBS_ENABLED": False,
        "LOG_FORMAT": "none",
        "ENVIRONMENT": "development",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@contextmanager
def build_client(settings: Settings) -> Iterator[TestClient]:
    """TestClient running the app lifespan (tables, bootstrap admin)."""
    app = create_app(settings)
    with TestClient(app) as client:
        yield client


# =============================================================================
# Settings and clients
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Legacy mode: one shared dashboard password."""
    return make_settings()


@pytest.fixture
def accounts_settings() -> Settings:
    """Accounts mode with a bootstrap admin."""
    return make_settings(
        ENABLE_USER_ACCOUNTS=True,
        DASHBOARD_PASSWORD="",
        BOOTSTRAP_ADMIN_EMAIL=ADMIN_EMAIL,
        BOOTSTRAP_ADMIN_PASSWORD=ADMIN_PASSWORD,
    )


@pytest.fixture
def client(settings) -> Iterator[TestClient]:
    with build_client(settings) as c:
        yield c


@pytest.fixture
def accounts_client(accounts_settings) -> Iterator[TestClient]:
    with build_client(accounts_settings) as c:
        yield c


@pytest.fixture
def unconfigured_client() -> Iterator[TestClient]:
    with build_client(make_settings(AUTH_SECRET="", DASHBOARD_PASSWORD="")) as c:
        yield c


# =============================================================================
# Service-level fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def codec(clock) -> TokenCodec:
    return TokenCodec(TEST_AUTH_SECRET, clock=clock)


@pytest_asyncio.fixture
async def store():
    """Credential store on a fresh in-memory database."""
    engine = build_engine(TEST_DATABASE_URL)
    await create_tables(engine)
    yield SqlCredentialStore(build_session_factory(engine))
    await engine.dispose()


# =============================================================================
# HTTP helpers
# =============================================================================


def csrf_headers(client: TestClient) -> dict[str, str]:
    """Fetch a CSRF token (sets the cookie) and return the matching header."""
    response = client.get("/api/csrf")
    assert response.status_code == 200
    return {"x-csrf-token": response.json()["token"]}


def login(client: TestClient, password: str = DASHBOARD_PASSWORD, email: str | None = None):
    body: dict = {"password": password}
    if email is not None:
        body["email"] = email
    return client.post("/api/login", json=body, headers=csrf_headers(client))


def switch_session(client: TestClient, session_cookie: str) -> None:
    """Replace the client's cookies with just ``session_cookie``."""
    client.cookies.clear()
    client.cookies.set("aud_session", session_cookie)
