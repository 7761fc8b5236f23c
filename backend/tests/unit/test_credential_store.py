"""Unit tests for the SQL credential store on an in-memory SQLite database."""

from datetime import timedelta

from usage_dashboard.models.base import utc_now
from usage_dashboard.services.credential_store import (
    Conflict,
    NewSession,
    NewShareLink,
    NewUser,
    UserChanges,
    normalize_email,
)


async def _user(store, email="user@example.com", role="viewer"):
    return await store.create_user(NewUser(email=email, password_hash="x", name="User", role=role))


async def _session(store, user_id, token="sess-1", expires_in=timedelta(days=1)):
    return await store.create_session(NewSession(user_id=user_id, token=token, expires_at=utc_now() + expires_in))


class TestUsers:
    async def test_create_and_fetch(self, store):
        user = await _user(store)
        assert user.id is not None
        assert user.is_active is True
        assert (await store.get_user(user.id)).email == "user@example.com"

    async def test_email_stored_case_folded(self, store):
        user = await _user(store, email="  Mixed.Case@Example.COM ")
        assert user.email == "mixed.case@example.com"
        assert (await store.get_user_by_email("MIXED.case@example.com")).id == user.id

    async def test_duplicate_email_conflict(self, store):
        await _user(store, email="dup@example.com")
        result = await _user(store, email="DUP@example.com")
        assert result == Conflict("email")
        assert await store.count_users() == 1

    async def test_list_ordered_by_id(self, store):
        a = await _user(store, email="a@example.com")
        b = await _user(store, email="b@example.com")
        assert [u.id for u in await store.list_users()] == [a.id, b.id]

    async def test_update_only_given_fields(self, store):
        user = await _user(store)
        updated = await store.update_user(user.id, UserChanges(role="admin"))
        assert updated.role == "admin"
        assert updated.name == "User"

    async def test_update_missing_user(self, store):
        assert await store.update_user(999, UserChanges(name="x")) is None

    async def test_update_email_case_folded(self, store):
        user = await _user(store)
        updated = await store.update_user(user.id, UserChanges(email=" New.Address@Example.COM"))
        assert updated.email == "new.address@example.com"
        assert (await store.get_user_by_email("new.address@example.com")).id == user.id

    async def test_update_email_to_own_address(self, store):
        user = await _user(store)
        updated = await store.update_user(user.id, UserChanges(email="USER@example.com"))
        assert updated.email == "user@example.com"

    async def test_update_email_conflict(self, store):
        await _user(store, email="taken@example.com")
        user = await _user(store, email="mine@example.com")
        result = await store.update_user(user.id, UserChanges(email="Taken@Example.com", name="Renamed"))
        assert result == Conflict("email")
        unchanged = await store.get_user(user.id)
        assert unchanged.email == "mine@example.com"
        assert unchanged.name == "User"

    async def test_record_login_missing_user(self, store):
        assert await store.record_login(999) is None

    def test_changed_fields(self):
        assert UserChanges(name="n", is_active=False).changed_fields() == ["name", "is_active"]

    async def test_record_login(self, store):
        user = await _user(store)
        updated = await store.record_login(user.id)
        assert updated.last_login_at is not None
        assert (await store.get_user(user.id)).last_login_at is not None

    async def test_delete_cascades_sessions(self, store):
        user = await _user(store)
        await _session(store, user.id)
        assert await store.delete_user(user.id) is True
        assert await store.get_session("sess-1") is None
        assert await store.delete_user(user.id) is False


class TestSessions:
    async def test_get_session_loads_user(self, store):
        user = await _user(store)
        await _session(store, user.id)
        session = await store.get_session("sess-1")
        assert session.user.email == "user@example.com"
        assert not session.is_expired()

    async def test_user_agent_truncated(self, store):
        user = await _user(store)
        session = await store.create_session(
            NewSession(user_id=user.id, token="t", expires_at=utc_now() + timedelta(hours=1), user_agent="x" * 900)
        )
        assert len(session.user_agent) == 500

    async def test_delete_user_sessions(self, store):
        user = await _user(store)
        await _session(store, user.id, token="a")
        await _session(store, user.id, token="b")
        assert await store.delete_user_sessions(user.id) == 2

    async def test_delete_expired_sessions(self, store):
        user = await _user(store)
        await _session(store, user.id, token="live")
        await _session(store, user.id, token="dead", expires_in=timedelta(seconds=-1))
        assert await store.delete_expired_sessions() == 1
        assert await store.get_session("live") is not None


class TestShareLinks:
    async def _link(self, store, token, expires_in=timedelta(hours=1)):
        return await store.create_share_link(NewShareLink(token=token, expires_at=utc_now() + expires_in))

    async def test_revoke_once(self, store):
        await self._link(store, "tok.a")
        assert await store.is_share_link_revoked("tok.a") is False
        assert await store.revoke_share_link("tok.a") is True
        assert await store.revoke_share_link("tok.a") is False
        assert await store.is_share_link_revoked("tok.a") is True
        assert (await store.get_share_link("tok.a")).is_revoked

    async def test_unknown_token_not_revoked(self, store):
        assert await store.is_share_link_revoked("never.seen") is False

    async def test_record_access(self, store):
        await self._link(store, "tok.a")
        assert await store.record_share_access("tok.a") is True
        assert await store.record_share_access("missing.b") is False
        assert (await store.get_share_link("tok.a")).access_count == 1

    async def test_cleanup_expired(self, store):
        user = await _user(store)
        await _session(store, user.id, token="dead", expires_in=timedelta(seconds=-1))
        await self._link(store, "tok.live")
        await self._link(store, "tok.dead", expires_in=timedelta(seconds=-1))

        result = await store.cleanup_expired()

        assert result.sessions_deleted == 1
        assert result.share_links_deleted == 1
        assert await store.get_share_link("tok.live") is not None


def test_normalize_email():
    assert normalize_email("  A@B.C ") == "a@b.c"
