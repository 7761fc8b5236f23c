"""Application configuration management."""

import hashlib
import hmac
import json
from enum import Enum
from functools import lru_cache
from typing import Annotated, Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AuthMode(str, Enum):
    """Authentication backend selected at start-up."""

    LEGACY = "legacy"
    ACCOUNTS = "accounts"
    UNCONFIGURED = "unconfigured"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Usage Dashboard"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # Must explicitly set to "production" in prod deployments

    # API
    API_PREFIX: str = "/api"

    # Authentication
    # Leave AUTH_SECRET empty to run with auth unconfigured (every request is a 500)
    AUTH_SECRET: str = ""
    DASHBOARD_PASSWORD: str = ""
    ENABLE_USER_ACCOUNTS: bool = False
    SESSION_TTL_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12

    @field_validator("ENABLE_USER_ACCOUNTS", mode="before")
    @classmethod
    def parse_enable_user_accounts(cls, v: Any) -> bool:
        """Parse ENABLE_USER_ACCOUNTS, stripping whitespace to handle Windows .env files."""
        if isinstance(v, str):
            v = v.strip().lower()
            if v in ("true", "1", "yes", "on"):
                return True
            if v in ("false", "0", "no", "off", ""):
                return False
        return v

    # CSRF
    # Empty = derived from AUTH_SECRET so CSRF tokens never share a key with sessions
    CSRF_SECRET_KEY: str = ""
    CSRF_TOKEN_MAX_AGE_SECONDS: int = 24 * 60 * 60

    # Cookie Security
    COOKIE_SECURE: bool | None = None  # Auto-detected from ENVIRONMENT (True in prod)
    COOKIE_DOMAIN: str | None = None

    # Share links
    SHARE_ALLOWED_EXPIRY_HOURS: Annotated[list[int], NoDecode] = [1, 24, 168]
    SHARE_DEFAULT_EXPIRY_HOURS: int = 24
    PUBLIC_BASE_URL: str = ""

    @field_validator("SHARE_ALLOWED_EXPIRY_HOURS", mode="before")
    @classmethod
    def parse_share_expiry_hours(cls, v: Any) -> list[int]:
        """Parse SHARE_ALLOWED_EXPIRY_HOURS from JSON string or comma-separated list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [int(part) for part in v.split(",") if part.strip()]
        return v

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./.data/usage_dashboard.db"

    # Bootstrap admin (accounts mode, empty users table only)
    BOOTSTRAP_ADMIN_EMAIL: str = ""
    BOOTSTRAP_ADMIN_PASSWORD: str = ""

    # Dashboard data source
    DASHBOARD_DATA_URL: str = ""
    DASHBOARD_DATA_TOKEN: str = ""
    DASHBOARD_DATA_PATH: str = ""
    DATA_CACHE_TTL_SECONDS: int = 60
    DATA_SOURCE_TIMEOUT_SECONDS: float = 10.0

    # Rate limiting
    RATE_LIMIT_PER_MINUTE: int = 100
    RATE_LIMIT_SWEEP_SECONDS: int = 300

    # Background jobs
    BACKGROUND_JOBS_ENABLED: bool = True
    CLEANUP_INTERVAL_MINUTES: int = 60

    # Reverse proxies allowed to set X-Forwarded-For (comma-separated IPs/CIDRs)
    TRUSTED_PROXY_IPS: str = ""

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # "json" for SIEM shipping, "text" for local development, "none" to leave logging alone

    # CORS
    CORS_ORIGINS: Annotated[list[str], NoDecode] = ["http://localhost:3000"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS_ORIGINS from JSON string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, treat as comma-separated
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @model_validator(mode="after")
    def set_computed_defaults(self) -> "Settings":
        """Set computed defaults based on other settings."""
        if self.COOKIE_SECURE is None:
            # Secure cookies only in production (requires HTTPS)
            object.__setattr__(self, "COOKIE_SECURE", self.ENVIRONMENT == "production")
        if self.SHARE_DEFAULT_EXPIRY_HOURS not in self.SHARE_ALLOWED_EXPIRY_HOURS:
            raise ValueError("SHARE_DEFAULT_EXPIRY_HOURS must be one of SHARE_ALLOWED_EXPIRY_HOURS")
        return self

    @property
    def auth_mode(self) -> AuthMode:
        """Which authentication backend this configuration selects."""
        if not self.AUTH_SECRET:
            return AuthMode.UNCONFIGURED
        if self.ENABLE_USER_ACCOUNTS:
            return AuthMode.ACCOUNTS
        if self.DASHBOARD_PASSWORD:
            return AuthMode.LEGACY
        return AuthMode.UNCONFIGURED

    @property
    def csrf_secret(self) -> str:
        """Key used to sign CSRF tokens, never equal to AUTH_SECRET."""
        if self.CSRF_SECRET_KEY:
            return self.CSRF_SECRET_KEY
        if not self.AUTH_SECRET:
            return ""
        return hmac.new(
            self.AUTH_SECRET.encode("utf-8"), b"usage-dashboard/csrf", hashlib.sha256
        ).hexdigest()

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


def validate_production_secrets(s: Settings) -> None:
    """
    CRITICAL: Fail hard if production uses weak or placeholder secrets.

    Secrets validated:
    - AUTH_SECRET: session/share token signing key (min 32 chars)
    - CSRF_SECRET_KEY: CSRF token signing (min 32 chars, only when set explicitly)
    """
    if not s.is_production:
        return

    secrets_to_check = {"AUTH_SECRET": 32}
    if s.CSRF_SECRET_KEY:
        secrets_to_check["CSRF_SECRET_KEY"] = 32

    # Common placeholder patterns that indicate non-production secrets
    placeholder_patterns = [
        "change",
        "replace",
        "your-",
        "example",
        "placeholder",
        "default",
        "insecure",
        "changeme",
        "todo",
        "xxx",
        "test",
        "demo",
        "sample",
    ]

    violations = []
    for key, min_length in secrets_to_check.items():
        actual_value = getattr(s, key, "")
        if not actual_value:
            violations.append(f"{key}: not set")
            continue

        if len(actual_value) < min_length:
            violations.append(f"{key}: {len(actual_value)} chars (minimum {min_length})")
            continue

        value_lower = actual_value.lower()
        for pattern in placeholder_patterns:
            if pattern in value_lower:
                violations.append(f"{key}: contains placeholder pattern '{pattern}'")
                break

    if violations:
        raise RuntimeError(
            "FATAL: Production deployment blocked - insecure secrets detected!\n\n"
            "Issues found:\n"
            + "\n".join(f"  - {v}" for v in violations)
            + "\n\nGenerate a key with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    s = Settings()
    validate_production_secrets(s)
    return s
