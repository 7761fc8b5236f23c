"""
Integration tests for the legacy-password login flow.

Tests cover:
- CSRF token issuance
- Login success and failure
- Session cookie attributes
- Dashboard access with and without a session
- Logout
"""

from conftest import DASHBOARD_PASSWORD, build_client, csrf_headers, login, make_settings


def _set_cookie_headers(response, name: str) -> list[str]:
    return [h for h in response.headers.get_list("set-cookie") if h.startswith(f"{name}=")]


class TestCsrfEndpoint:
    def test_issues_cookie_and_body_token(self, client):
        response = client.get("/api/csrf")
        assert response.status_code == 200
        token = response.json()["token"]
        assert client.cookies.get("aud_csrf") == token

        (cookie,) = _set_cookie_headers(response, "aud_csrf")
        assert "HttpOnly" not in cookie
        assert "SameSite=strict" in cookie
        assert response.headers["cache-control"] == "no-store"


class TestLogin:
    def test_success_sets_http_only_session_cookie(self, client):
        response = login(client)
        assert response.status_code == 200
        assert response.json() == {"ok": True}

        (cookie,) = _set_cookie_headers(response, "aud_session")
        assert "HttpOnly" in cookie
        assert "SameSite=lax" in cookie
        assert "Path=/" in cookie
        assert f"Max-Age={7 * 24 * 60 * 60}" in cookie
        assert "Secure" not in cookie

    def test_wrong_password_401_without_cookie(self, client):
        response = login(client, password="not the password")
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"
        assert _set_cookie_headers(response, "aud_session") == []

    def test_missing_csrf_rejected(self, client):
        response = client.post("/api/login", json={"password": DASHBOARD_PASSWORD})
        assert response.status_code == 403
        assert response.json()["error"] == "csrf_validation_failed"

    def test_csrf_header_must_match_cookie(self, client):
        # The second fetch replaces the cookie, so the first token no longer matches it
        stale = csrf_headers(client)
        csrf_headers(client)
        response = client.post("/api/login", json={"password": DASHBOARD_PASSWORD}, headers=stale)
        assert response.status_code == 403

    def test_empty_password_is_invalid_request(self, client):
        response = client.post("/api/login", json={"password": ""}, headers=csrf_headers(client))
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_missing_body_field(self, client):
        response = client.post("/api/login", json={}, headers=csrf_headers(client))
        assert response.status_code == 400

    def test_email_not_required_in_legacy_mode(self, client):
        response = login(client, email="ignored@example.com")
        assert response.status_code == 200


class TestDashboardAccess:
    def test_no_session_is_unauthorized(self, client):
        response = client.get("/api/usage")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_session_gets_full_access(self, client):
        login(client)
        response = client.get("/api/usage")
        assert response.status_code == 200
        assert isinstance(response.json(), dict)
        assert response.headers["x-dashboard-access"] == "full"
        assert response.headers["cache-control"] == "private, max-age=60, stale-while-revalidate=300"

    def test_forged_session_cookie(self, client):
        client.cookies.set("aud_session", "eyJ0eXBlIjoic2Vzc2lvbiJ9.forged")
        assert client.get("/api/usage").status_code == 401

    def test_security_headers(self, client):
        response = client.get("/api/usage")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "DENY"
        assert "default-src 'none'" in response.headers["content-security-policy"]


class TestLogout:
    def test_logout_clears_cookie(self, client):
        login(client)
        assert client.get("/api/usage").status_code == 200

        response = client.post("/api/logout")
        assert response.status_code == 200
        (cookie,) = _set_cookie_headers(response, "aud_session")
        assert "Max-Age=0" in cookie
        assert client.get("/api/usage").status_code == 401

    def test_logout_without_session_succeeds(self, client):
        assert client.post("/api/logout").json() == {"ok": True}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["auth_mode"] == "legacy"


class TestCustomApiPrefix:
    def test_api_headers_follow_prefix(self):
        with build_client(make_settings(API_PREFIX="/dashboard-api")) as client:
            response = client.get("/dashboard-api/usage")
            health = client.get("/health")

        assert response.status_code == 401
        assert "default-src 'none'" in response.headers["content-security-policy"]
        assert response.headers["cache-control"] == "no-store, no-cache, must-revalidate, private"
        assert "content-security-policy" not in health.headers
