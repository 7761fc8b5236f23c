"""Unit tests for share link issuance, listing and revocation."""

import time
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy.exc import OperationalError

from usage_dashboard.services.share import ShareService, build_share_url, clamp_expiry_hours

ALLOWED = [1, 24, 168]


class TestClampExpiryHours:
    @pytest.mark.parametrize("hours", ALLOWED)
    def test_allowed_values_kept(self, hours):
        assert clamp_expiry_hours(hours, ALLOWED, 24) == hours

    @pytest.mark.parametrize("hours", [None, 0, 2, 48, 169, -1])
    def test_other_values_get_default(self, hours):
        assert clamp_expiry_hours(hours, ALLOWED, 24) == 24


class TestBuildShareUrl:
    def test_token_in_query(self):
        url = build_share_url("https://dash.example.com/", "abc.def")
        assert url == "https://dash.example.com/?share=abc.def"

    def test_parses_back(self):
        url = build_share_url("http://testserver", "a_b-c.d")
        assert parse_qs(urlparse(url).query)["share"] == ["a_b-c.d"]


@pytest.fixture
def service(codec, store):
    return ShareService(codec=codec, store=store, allowed_expiry_hours=ALLOWED, default_expiry_hours=24)


class TestShareService:
    async def test_create_issues_verifiable_token(self, service, codec):
        issued = await service.create_share("http://testserver", expires_in_hours=1)
        assert codec.verify_share(issued.token) is not None
        assert issued.url.endswith(f"?share={issued.token}")
        assert issued.password_protected is False

    async def test_unlisted_expiry_uses_default(self, service, codec, clock):
        issued = await service.create_share("http://testserver", expires_in_hours=5)
        expected = codec.verify_share(issued.token).expires_at
        assert issued.expires_at == expected
        assert int(issued.expires_at.timestamp()) == int(clock.now) + 24 * 3600

    async def test_password_protected(self, service, codec):
        issued = await service.create_share("http://testserver", password="pw")
        assert issued.password_protected is True
        assert codec.verify_share(issued.token).password_digest is not None

    async def test_empty_password_means_none(self, service):
        issued = await service.create_share("http://testserver", password="")
        assert issued.password_protected is False

    async def test_record_persisted(self, service, store):
        issued = await service.create_share("http://testserver", created_by="admin@example.com")
        link = await store.get_share_link(issued.token)
        assert link is not None
        assert link.created_by == "admin@example.com"
        assert link.expires_at == issued.expires_at

    async def test_persistence_failure_still_issues(self, codec):
        store = MagicMock()
        store.create_share_link = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("down")))
        service = ShareService(codec=codec, store=store, allowed_expiry_hours=ALLOWED, default_expiry_hours=24)
        issued = await service.create_share("http://testserver")
        assert codec.verify_share(issued.token) is not None

    async def test_revoke(self, service):
        issued = await service.create_share("http://testserver")
        assert await service.revoke_share(issued.token) is True
        assert await service.revoke_share(issued.token) is False

    async def test_revoke_unknown(self, service):
        assert await service.revoke_share("unknown.token") is False

    async def test_list_hides_inactive_by_default(self, service, store, codec, clock):
        # Tokens are dated by the fake clock; move it to real time so rows count as active
        clock.now = time.time()
        active = await service.create_share("http://testserver")
        revoked = await service.create_share("http://testserver")
        await service.revoke_share(revoked.token)

        listed = [link.token for link in await service.list_shares()]
        assert listed == [active.token]

        everything = {link.token for link in await service.list_shares(include_inactive=True)}
        assert everything == {active.token, revoked.token}

    async def test_expired_rows_not_listed(self, service, clock):
        clock.now = time.time() - timedelta(hours=2).total_seconds()
        await service.create_share("http://testserver", expires_in_hours=1)
        assert await service.list_shares() == []
