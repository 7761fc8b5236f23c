"""Rate limiting.

Two layers:
- ``RateLimiter``: in-process fixed-window counters for login and share
  creation. Callers get retry metadata back and tests can reset or clear it.
- slowapi ``Limiter``: the general API limit, built per application from its
  settings and applied to every route by ``SlowAPIMiddleware``.

Fixed windows allow up to 2x the nominal rate across a window boundary.
"""

import logging
import threading
import time
from dataclasses import dataclass

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import Request
from slowapi import Limiter

from usage_dashboard.core.client_ip import get_client_ip
from usage_dashboard.core.config import Settings
from usage_dashboard.core.security import Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_ms: int


@dataclass
class RateLimitEntry:
    count: int
    window_reset_at: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int
    retry_after_ms: int


class RateLimits:
    """Centralized rate limit presets."""

    LOGIN = RateLimitPolicy(max_requests=5, window_ms=15 * 60 * 1000)
    SHARE_CREATE = RateLimitPolicy(max_requests=10, window_ms=60 * 60 * 1000)
    API = RateLimitPolicy(max_requests=100, window_ms=60 * 1000)

    @staticmethod
    def api_limit_string(per_minute: int) -> str:
        """slowapi limit string for the general API preset."""
        return f"{per_minute}/minute"


def client_ip_key(request: Request) -> str:
    """slowapi key: the client IP, honouring trusted proxies."""
    return get_client_ip(request, request.app.state.settings.TRUSTED_PROXY_IPS)


def build_api_limiter(settings: Settings) -> Limiter:
    """General API limiter for one application; counters live in its own memory storage."""
    return Limiter(
        key_func=client_ip_key,
        default_limits=[RateLimits.api_limit_string(settings.RATE_LIMIT_PER_MINUTE)],
        storage_uri="memory://",
        strategy="fixed-window",
    )


class RateLimiter:
    """Fixed-window counter table keyed by identity string.

    ``check`` holds a lock for its read-modify-write so concurrent requests
    on one key can never both pass the last slot. The sweep takes the same
    lock and only drops entries whose window has already ended.
    """

    def __init__(self, clock: Clock = time.time, sweep_interval_seconds: int = 300):
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self.sweep_interval_seconds = sweep_interval_seconds
        self._scheduler: BackgroundScheduler | None = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def __len__(self) -> int:
        return len(self._entries)

    def check(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        now = self._now_ms()
        with self._lock:
            entry = self._entries.get(key)

            if entry is None or now >= entry.window_reset_at:
                entry = RateLimitEntry(count=1, window_reset_at=now + policy.window_ms)
                self._entries[key] = entry
                return RateLimitResult(
                    allowed=True,
                    remaining=policy.max_requests - 1,
                    reset_at=entry.window_reset_at,
                    retry_after_ms=0,
                )

            if entry.count >= policy.max_requests:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=entry.window_reset_at,
                    retry_after_ms=entry.window_reset_at - now,
                )

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=policy.max_requests - entry.count,
                reset_at=entry.window_reset_at,
                retry_after_ms=0,
            )

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Drop entries whose window has ended. Returns how many were removed."""
        now = self._now_ms()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now >= entry.window_reset_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Rate limiter sweep removed %d entries", len(expired))
        return len(expired)

    # Background sweep

    def start_sweeper(self) -> None:
        """Run ``sweep`` on a daemon scheduler thread."""
        if self._scheduler is not None:
            return
        scheduler = BackgroundScheduler(daemon=True)
        scheduler.add_job(
            self.sweep,
            trigger="interval",
            seconds=self.sweep_interval_seconds,
            id="rate_limit_sweep",
            coalesce=True,
            max_instances=1,
        )
        scheduler.start()
        self._scheduler = scheduler

    def stop_sweeper(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
