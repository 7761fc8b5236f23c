"""Unit tests for dashboard data loading and caching."""

import json

import httpx
import pytest

from usage_dashboard.services.data_source import DashboardDataSource, DataSourceUnavailable

from conftest import FakeClock

PAYLOAD = {"summary": {"totalCost": 12.5}, "models": []}


def _transport(handler):
    return httpx.MockTransport(handler)


class TestSourceSelection:
    def test_source_names(self):
        assert DashboardDataSource(data_url="http://upstream").source_name == "http"
        assert DashboardDataSource(data_path="/tmp/x.json").source_name == "file"
        assert DashboardDataSource().source_name == "sample"

    def test_url_wins_over_file(self):
        assert DashboardDataSource(data_url="http://upstream", data_path="/tmp/x.json").source_name == "http"


class TestSampleAndFile:
    async def test_sample_payload_loads(self):
        data = await DashboardDataSource().load()
        assert isinstance(data, dict)
        assert data

    async def test_file_payload(self, tmp_path):
        path = tmp_path / "usage.json"
        path.write_text(json.dumps(PAYLOAD), encoding="utf-8")
        assert await DashboardDataSource(data_path=str(path)).load() == PAYLOAD

    async def test_missing_file(self, tmp_path):
        with pytest.raises(DataSourceUnavailable):
            await DashboardDataSource(data_path=str(tmp_path / "missing.json")).load()

    async def test_invalid_json(self, tmp_path):
        path = tmp_path / "usage.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(DataSourceUnavailable):
            await DashboardDataSource(data_path=str(path)).load()

    async def test_non_object_payload(self, tmp_path):
        path = tmp_path / "usage.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        with pytest.raises(DataSourceUnavailable):
            await DashboardDataSource(data_path=str(path)).load()


class TestHttpSource:
    async def test_bearer_token_sent(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["authorization"] = request.headers.get("authorization")
            return httpx.Response(200, json=PAYLOAD)

        source = DashboardDataSource(
            data_url="http://upstream/usage", data_token="upstream-token", transport=_transport(handler)
        )
        assert await source.load() == PAYLOAD
        assert seen["authorization"] == "Bearer upstream-token"

    async def test_no_token_no_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["authorization"] = request.headers.get("authorization")
            return httpx.Response(200, json=PAYLOAD)

        await DashboardDataSource(data_url="http://upstream/usage", transport=_transport(handler)).load()
        assert seen["authorization"] is None

    async def test_upstream_error_status(self):
        source = DashboardDataSource(
            data_url="http://upstream/usage",
            transport=_transport(lambda request: httpx.Response(502, text="bad gateway")),
        )
        with pytest.raises(DataSourceUnavailable):
            await source.load()

    async def test_upstream_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(DataSourceUnavailable):
            await DashboardDataSource(data_url="http://upstream/usage", transport=_transport(handler)).load()

    async def test_upstream_non_json(self):
        source = DashboardDataSource(
            data_url="http://upstream/usage",
            transport=_transport(lambda request: httpx.Response(200, text="<html>")),
        )
        with pytest.raises(DataSourceUnavailable):
            await source.load()


class TestCaching:
    async def test_cached_within_ttl(self):
        calls = []
        clock = FakeClock(0.0)

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={"call": len(calls)})

        source = DashboardDataSource(
            data_url="http://upstream/usage", cache_ttl_seconds=60, clock=clock, transport=_transport(handler)
        )
        assert await source.load() == {"call": 1}
        clock.advance(59)
        assert await source.load() == {"call": 1}
        clock.advance(1)
        assert await source.load() == {"call": 2}

    async def test_invalidate(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={"call": len(calls)})

        source = DashboardDataSource(data_url="http://upstream/usage", transport=_transport(handler))
        await source.load()
        source.invalidate()
        assert await source.load() == {"call": 2}

    async def test_failures_not_cached(self):
        responses = [httpx.Response(500), httpx.Response(200, json=PAYLOAD)]
        source = DashboardDataSource(
            data_url="http://upstream/usage",
            transport=_transport(lambda request: responses.pop(0)),
        )
        with pytest.raises(DataSourceUnavailable):
            await source.load()
        assert await source.load() == PAYLOAD
