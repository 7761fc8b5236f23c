"""Unit tests for expired session/share-link clean-up."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.exc import OperationalError

from usage_dashboard.models.base import utc_now
from usage_dashboard.services.credential_store import CleanupResult, NewShareLink
from usage_dashboard.services.maintenance import MaintenanceScheduler, prune_expired_records


class TestPruneExpiredRecords:
    async def test_removes_expired_links(self, store):
        await store.create_share_link(NewShareLink(token="old.tok", expires_at=utc_now() - timedelta(minutes=1)))
        await store.create_share_link(NewShareLink(token="new.tok", expires_at=utc_now() + timedelta(hours=1)))

        result = await prune_expired_records(store)

        assert result == CleanupResult(sessions_deleted=0, share_links_deleted=1)
        assert await store.get_share_link("new.tok") is not None


class TestMaintenanceScheduler:
    async def test_run_cleanup_swallows_store_errors(self):
        store = MagicMock()
        store.cleanup_expired = AsyncMock(side_effect=OperationalError("DELETE", {}, Exception("down")))
        assert await MaintenanceScheduler(store).run_cleanup() is None

    async def test_start_and_shutdown(self, store):
        scheduler = MaintenanceScheduler(store, interval_minutes=5)
        scheduler.start()
        try:
            job = scheduler._scheduler.get_job("credential_store_cleanup")
            assert job is not None
        finally:
            scheduler.shutdown()
        assert scheduler._scheduler is None

    def test_shutdown_without_start(self):
        MaintenanceScheduler(MagicMock()).shutdown()
