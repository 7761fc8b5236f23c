"""Periodic clean-up of expired sessions and share links."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from usage_dashboard.services.credential_store import CleanupResult, CredentialStore

logger = logging.getLogger(__name__)


async def prune_expired_records(store: CredentialStore) -> CleanupResult:
    result = await store.cleanup_expired()
    if result.sessions_deleted or result.share_links_deleted:
        logger.info(
            "Pruned %d expired sessions and %d expired share links",
            result.sessions_deleted,
            result.share_links_deleted,
            extra={"event_type": "maintenance.cleanup"},
        )
    return result


class MaintenanceScheduler:
    """Runs store clean-up on an interval inside the application's event loop."""

    def __init__(self, store: CredentialStore, interval_minutes: int = 60):
        self.store = store
        self.interval_minutes = interval_minutes
        self._scheduler: AsyncIOScheduler | None = None

    async def run_cleanup(self) -> CleanupResult | None:
        try:
            return await prune_expired_records(self.store)
        except Exception:
            logger.exception("Expired record clean-up failed")
            return None

    def start(self) -> None:
        if self._scheduler is not None:
            return
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.run_cleanup,
            trigger="interval",
            minutes=self.interval_minutes,
            id="credential_store_cleanup",
            coalesce=True,
            max_instances=1,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Maintenance scheduler started (every %d minutes)", self.interval_minutes)

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
