"""Dashboard data loading.

Sources, first configured wins:
1. ``DASHBOARD_DATA_URL`` over HTTP (optional bearer ``DASHBOARD_DATA_TOKEN``)
2. ``DASHBOARD_DATA_PATH`` JSON file
3. Bundled sample payload

Loaded payloads are cached in process for ``DATA_CACHE_TTL_SECONDS``.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any

import httpx

from usage_dashboard.core.config import Settings
from usage_dashboard.core.security import Clock

logger = logging.getLogger(__name__)

SAMPLE_DATA_PATH = Path(__file__).resolve().parent.parent / "data" / "sample_dashboard.json"


class DataSourceUnavailable(Exception):
    """The configured data source failed or returned unusable data."""


class DashboardDataSource:
    def __init__(
        self,
        data_url: str = "",
        data_token: str = "",
        data_path: str = "",
        cache_ttl_seconds: int = 60,
        timeout_seconds: float = 10.0,
        clock: Clock = time.monotonic,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.data_url = data_url
        self.data_token = data_token
        self.data_path = data_path
        self.cache_ttl_seconds = cache_ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._transport = transport
        self._cached: dict[str, Any] | None = None
        self._cached_at = 0.0
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "DashboardDataSource":
        return cls(
            data_url=settings.DASHBOARD_DATA_URL,
            data_token=settings.DASHBOARD_DATA_TOKEN,
            data_path=settings.DASHBOARD_DATA_PATH,
            cache_ttl_seconds=settings.DATA_CACHE_TTL_SECONDS,
            timeout_seconds=settings.DATA_SOURCE_TIMEOUT_SECONDS,
        )

    @property
    def source_name(self) -> str:
        if self.data_url:
            return "http"
        if self.data_path:
            return "file"
        return "sample"

    def invalidate(self) -> None:
        self._cached = None

    async def load(self) -> dict[str, Any]:
        async with self._lock:
            now = self._clock()
            if self._cached is not None and now - self._cached_at < self.cache_ttl_seconds:
                return self._cached

            data = await self._load_uncached()
            self._cached = data
            self._cached_at = now
            return data

    async def _load_uncached(self) -> dict[str, Any]:
        if self.data_url:
            data = await self._load_from_url()
        elif self.data_path:
            data = self._load_from_file(Path(self.data_path))
        else:
            data = self._load_from_file(SAMPLE_DATA_PATH)

        if not isinstance(data, dict):
            raise DataSourceUnavailable(f"{self.source_name} source returned a non-object payload")
        return data

    async def _load_from_url(self) -> Any:
        headers = {"Accept": "application/json"}
        if self.data_token:
            headers["Authorization"] = f"Bearer {self.data_token}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(self.data_url, headers=headers)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Upstream dashboard data request failed: %s", e.__class__.__name__)
            raise DataSourceUnavailable("upstream request failed") from e

    def _load_from_file(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Could not read dashboard data file %s: %s", path, e.__class__.__name__)
            raise DataSourceUnavailable(f"cannot read {path}") from e
