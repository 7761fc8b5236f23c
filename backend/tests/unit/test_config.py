"""Unit tests for settings: auth mode selection and production secret checks."""

import pytest

from usage_dashboard.core.config import AuthMode, validate_production_secrets
from usage_dashboard.main import create_app

from conftest import make_settings

STRONG_SECRET = "Zq8vN2pLr5Kt9WbX4mHc7JfD3sGy6UeA1oQi"


class TestAuthMode:
    def test_legacy(self):
        assert make_settings().auth_mode is AuthMode.LEGACY

    def test_accounts_wins_when_both_configured(self):
        assert make_settings(ENABLE_USER_ACCOUNTS=True).auth_mode is AuthMode.ACCOUNTS

    def test_no_secret_is_unconfigured(self):
        assert make_settings(AUTH_SECRET="").auth_mode is AuthMode.UNCONFIGURED

    def test_secret_without_password_is_unconfigured(self):
        assert make_settings(DASHBOARD_PASSWORD="").auth_mode is AuthMode.UNCONFIGURED

    @pytest.mark.parametrize("raw,expected", [(" true ", True), ("1", True), ("off", False), ("", False)])
    def test_enable_user_accounts_parsing(self, raw, expected):
        assert make_settings(ENABLE_USER_ACCOUNTS=raw).ENABLE_USER_ACCOUNTS is expected


class TestCsrfSecret:
    def test_derived_key_differs_from_auth_secret(self):
        settings = make_settings()
        assert settings.csrf_secret
        assert settings.csrf_secret != settings.AUTH_SECRET

    def test_explicit_key_used(self):
        assert make_settings(CSRF_SECRET_KEY="explicit").csrf_secret == "explicit"

    def test_empty_without_auth_secret(self):
        assert make_settings(AUTH_SECRET="").csrf_secret == ""


class TestListParsing:
    def test_share_expiry_hours_csv(self):
        assert make_settings(SHARE_ALLOWED_EXPIRY_HOURS="1,24,168").SHARE_ALLOWED_EXPIRY_HOURS == [1, 24, 168]

    def test_default_must_be_allowed(self):
        with pytest.raises(ValueError):
            make_settings(SHARE_ALLOWED_EXPIRY_HOURS="1,168", SHARE_DEFAULT_EXPIRY_HOURS=24)

    def test_cors_origins_csv(self):
        settings = make_settings(CORS_ORIGINS="https://a.example.com, https://b.example.com")
        assert settings.CORS_ORIGINS == ["https://a.example.com", "https://b.example.com"]


class TestProductionSecrets:
    def test_development_not_checked(self):
        validate_production_secrets(make_settings(AUTH_SECRET="short"))

    def test_cookie_secure_defaults_on_in_production(self):
        assert make_settings(ENVIRONMENT="production", AUTH_SECRET=STRONG_SECRET).COOKIE_SECURE is True
        assert make_settings().COOKIE_SECURE is False

    def test_strong_secret_passes(self):
        validate_production_secrets(make_settings(ENVIRONMENT="production", AUTH_SECRET=STRONG_SECRET))

    @pytest.mark.parametrize(
        "secret",
        ["", "too-short", "change-me-" + "x" * 40, "this-is-a-test-secret-of-sufficient-length"],
    )
    def test_weak_secrets_rejected(self, secret):
        with pytest.raises(RuntimeError):
            validate_production_secrets(make_settings(ENVIRONMENT="production", AUTH_SECRET=secret))

    def test_weak_explicit_csrf_key_rejected(self):
        settings = make_settings(ENVIRONMENT="production", AUTH_SECRET=STRONG_SECRET, CSRF_SECRET_KEY="short")
        with pytest.raises(RuntimeError):
            validate_production_secrets(settings)

    def test_create_app_applies_production_guard(self):
        settings = make_settings(ENVIRONMENT="production", AUTH_SECRET="short")
        with pytest.raises(RuntimeError):
            create_app(settings)
