"""Unit tests for double-submit CSRF validation."""

import pytest

from usage_dashboard.core.csrf import CSRF_COOKIE_NAME, CSRF_HEADER_NAME, CsrfGuard
from usage_dashboard.core.request_context import RequestContext

from conftest import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def guard(clock):
    return CsrfGuard("csrf-only-secret", max_age_seconds=3600, clock=clock)


def _post(cookie: str | None, header: str | None, method: str = "POST") -> RequestContext:
    cookies = {CSRF_COOKIE_NAME: cookie} if cookie is not None else {}
    headers = {CSRF_HEADER_NAME: header} if header is not None else {}
    return RequestContext(method=method, cookies=cookies, headers=headers)


class TestTokenFormat:
    def test_three_parts(self, guard):
        random_part, issued_at, signature = guard.issue().split(".")
        assert len(random_part) == 64
        int(issued_at, 16)
        assert len(signature) == 64

    def test_fresh_token_verifies(self, guard):
        assert guard.verify_token(guard.issue()) is True

    def test_tokens_are_unique(self, guard):
        assert guard.issue() != guard.issue()


class TestVerifyToken:
    def test_expired_token(self, guard, clock):
        token = guard.issue()
        clock.advance(3600)
        assert guard.verify_token(token) is True
        clock.advance(1)
        assert guard.verify_token(token) is False

    def test_future_dated_token(self, guard, clock):
        clock.advance(120)
        token = guard.issue()
        clock.advance(-120)
        assert guard.verify_token(token) is False

    def test_other_key(self, guard, clock):
        other = CsrfGuard("another-secret", clock=clock)
        assert guard.verify_token(other.issue()) is False

    def test_tampered_timestamp(self, guard):
        random_part, issued_at, signature = guard.issue().split(".")
        bumped = format(int(issued_at, 16) + 1, "x")
        assert guard.verify_token(f"{random_part}.{bumped}.{signature}") is False

    @pytest.mark.parametrize("token", [None, "", "a.b", "a..c", "zz.1.sig", "ab.xyz.sig"])
    def test_malformed(self, guard, token):
        assert guard.verify_token(token) is False


class TestValidate:
    def test_safe_methods_skip_check(self, guard):
        for method in ("GET", "HEAD", "OPTIONS"):
            assert guard.validate(_post(None, None, method=method)) is True

    def test_matching_cookie_and_header(self, guard):
        token = guard.issue()
        assert guard.validate(_post(token, token)) is True

    def test_missing_header(self, guard):
        assert guard.validate(_post(guard.issue(), None)) is False

    def test_missing_cookie(self, guard):
        assert guard.validate(_post(None, guard.issue())) is False

    def test_mismatched_tokens(self, guard):
        assert guard.validate(_post(guard.issue(), guard.issue())) is False

    def test_matching_but_forged(self, guard):
        forged = "00" * 32 + ".1." + "00" * 32
        assert guard.validate(_post(forged, forged)) is False

    def test_requires_secret(self):
        with pytest.raises(ValueError):
            CsrfGuard("")
