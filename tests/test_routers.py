"""Integration tests for FastAPI router endpoints.

Uses httpx.AsyncClient with ASGITransport to test endpoints against the real
FastAPI app with mocked DataStore, OkxClient, Collector and SeriesResolver
dependencies.
"""
from __future__ import annotations

import os

os.environ["TESTING"] = "1"

import sqlite3
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from httpx import ASGITransport

from backend.cache import CacheLayer
from backend.dependencies import (
    get_cache,
    get_collector,
    get_datastore,
    get_okx_client,
    get_series_resolver,
)
from backend.main import app
from leadwatch.errors import (
    CycleInProgressError,
    InvalidResolutionError,
    NoDataError,
    NotFoundError,
    OkxAPIError,
    PersistenceError,
    UpstreamBusinessError,
    ValidationError,
)
from leadwatch.models import (
    Alert,
    AlertKind,
    CycleResult,
    SeriesPoint,
    TopTraderListing,
    TraderSeries,
    WatchedOverview,
)
from leadwatch.series import RESOLUTIONS

from factories import make_info


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_top(inst_id: str, position: int) -> TopTraderListing:
    return TopTraderListing(
        inst_id=inst_id,
        nick_name=f"Trader {inst_id}",
        ccy="USDT",
        lead_days=10,
        copy_trader_num=5,
        max_copy_trader_num=100,
        avatar_url="https://x/a.png",
        trader_insts=["BTC-USDT-SWAP"],
        aum=1234.5,
        page=1,
        position=position,
    )


def _make_point(timestamp: int = 1_700_000_100_000, **overrides) -> SeriesPoint:
    defaults = dict(
        timestamp=timestamp,
        ccy="USDT",
        aum=100.0,
        invest_amt=80.0,
        cur_copy_trader_pnl=5.0,
        win_ratio=0.5,
        profit_days=3,
        loss_days=1,
        avg_sub_pos_notional=10.0,
        lead_pnl=0.0,
        u_time=timestamp,
    )
    defaults.update(overrides)
    return SeriesPoint(**defaults)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_datastore():
    """Return a MagicMock DataStore with default no-data returns."""
    ds = MagicMock()
    ds.list_watched_ids.return_value = []
    ds.watched_set.return_value = set()
    ds.list_watched_overview.return_value = []
    return ds


@pytest.fixture
def mock_okx():
    """Return an AsyncMock OkxClient."""
    return AsyncMock()


@pytest.fixture
def mock_collector():
    collector = MagicMock()
    collector.in_progress = False
    collector.collect_once = AsyncMock()
    return collector


@pytest.fixture
def mock_resolver():
    return MagicMock()


@pytest.fixture
def mock_cache():
    """Return a real CacheLayer (in-memory, no external deps)."""
    return CacheLayer()


@pytest.fixture
async def client(mock_datastore, mock_okx, mock_collector, mock_resolver, mock_cache):
    """Async httpx test client with dependency overrides."""
    app.dependency_overrides[get_datastore] = lambda: mock_datastore
    app.dependency_overrides[get_okx_client] = lambda: mock_okx
    app.dependency_overrides[get_collector] = lambda: mock_collector
    app.dependency_overrides[get_series_resolver] = lambda: mock_resolver
    app.dependency_overrides[get_cache] = lambda: mock_cache

    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================================================
# 1. GET /api/v1/health
# ===========================================================================


class TestHealthEndpoint:
    async def test_health_ok(self, client, mock_datastore):
        mock_datastore.list_watched_ids.return_value = ["A", "B"]

        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["dbConnected"] is True
        assert body["watchedCount"] == 2
        assert body["cycleInProgress"] is False
        assert "pushplusTokenSet" in body

    async def test_health_degraded_when_db_fails(self, client, mock_datastore):
        mock_datastore.list_watched_ids.side_effect = sqlite3.OperationalError("DB down")

        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["dbConnected"] is False


# ===========================================================================
# 2. GET /api/v1/traders/top
# ===========================================================================


class TestTopTraders:
    async def test_flags_watched(self, client, mock_okx, mock_datastore):
        mock_okx.list_top_traders.return_value = [_make_top("A", 1), _make_top("B", 2)]
        mock_datastore.watched_set.return_value = {"B"}

        resp = await client.get("/api/v1/traders/top", params={"limit": 2})
        assert resp.status_code == 200
        top = resp.json()["top"]

        assert [t["instId"] for t in top] == ["A", "B"]
        assert [t["watched"] for t in top] == [False, True]
        assert top[1]["position"] == 2
        assert top[0]["avatarUrl"] == "https://x/a.png"
        mock_okx.list_top_traders.assert_awaited_once_with(2)

    async def test_listing_cached_watched_fresh(self, client, mock_okx, mock_datastore):
        mock_okx.list_top_traders.return_value = [_make_top("A", 1)]

        first = await client.get("/api/v1/traders/top")
        mock_datastore.watched_set.return_value = {"A"}
        second = await client.get("/api/v1/traders/top")

        assert mock_okx.list_top_traders.await_count == 1
        assert first.json()["top"][0]["watched"] is False
        assert second.json()["top"][0]["watched"] is True

    async def test_upstream_error_is_502(self, client, mock_okx):
        mock_okx.list_top_traders.side_effect = OkxAPIError(503, "maintenance")

        resp = await client.get("/api/v1/traders/top")
        assert resp.status_code == 502
        assert "maintenance" in resp.json()["detail"]

    async def test_malformed_upstream_is_502(self, client, mock_okx):
        mock_okx.list_top_traders.side_effect = ValidationError("Missing ranks[0].nickName")

        resp = await client.get("/api/v1/traders/top")
        assert resp.status_code == 502
        assert "ranks[0].nickName" in resp.json()["detail"]

    async def test_limit_validated(self, client):
        resp = await client.get("/api/v1/traders/top", params={"limit": 0})
        assert resp.status_code == 422


# ===========================================================================
# 3. GET /api/v1/traders/{instId}
# ===========================================================================


class TestTraderSeries:
    async def test_series_camel_case(self, client, mock_resolver):
        mock_resolver.resolve.return_value = TraderSeries(
            inst_id="T1", watched=True, info=make_info("T1"), series=[_make_point()]
        )

        resp = await client.get("/api/v1/traders/T1", params={"interval": "1h"})
        assert resp.status_code == 200
        body = resp.json()

        assert body["instId"] == "T1"
        assert body["watched"] is True
        assert body["info"]["traderInsts"] == ["BTC-USDT-SWAP"]
        point = body["series"][0]
        assert point["investAmt"] == 80.0
        assert point["leadPnl"] == 0.0
        mock_resolver.resolve.assert_called_once_with("T1", "1h")

    async def test_series_cached(self, client, mock_resolver):
        mock_resolver.resolve.return_value = TraderSeries(
            inst_id="T1", watched=False, info=make_info("T1"), series=[_make_point()]
        )

        await client.get("/api/v1/traders/T1")
        await client.get("/api/v1/traders/T1")
        assert mock_resolver.resolve.call_count == 1

    async def test_not_found(self, client, mock_resolver):
        mock_resolver.resolve.side_effect = NotFoundError("Trader not found: X")

        resp = await client.get("/api/v1/traders/X")
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    async def test_no_data_distinct_from_not_found(self, client, mock_resolver):
        mock_resolver.resolve.side_effect = NoDataError("No metrics data found for T1")

        resp = await client.get("/api/v1/traders/T1")
        assert resp.status_code == 404
        assert resp.json()["code"] == "no_data"

    async def test_invalid_interval(self, client, mock_resolver):
        mock_resolver.resolve.side_effect = InvalidResolutionError("3m", list(RESOLUTIONS))

        resp = await client.get("/api/v1/traders/T1", params={"interval": "3m"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["valid"] == list(RESOLUTIONS)
        assert "Invalid interval: 3m" in body["detail"]


# ===========================================================================
# 4. Watch list
# ===========================================================================


class TestWatchList:
    async def test_list(self, client, mock_datastore):
        mock_datastore.list_watched_overview.return_value = [
            WatchedOverview(
                inst_id="T1",
                watched_created_at=1,
                watched_updated_at=2,
                info=make_info("T1"),
                metrics=_make_point(),
            )
        ]

        resp = await client.get("/api/v1/watch")
        assert resp.status_code == 200
        traders = resp.json()["traders"]
        assert traders[0]["instId"] == "T1"
        assert traders[0]["watchedUpdatedAt"] == 2
        assert traders[0]["metrics"]["aum"] == 100.0

    async def test_list_inconsistent_store(self, client, mock_datastore):
        mock_datastore.list_watched_overview.side_effect = ValidationError("Expected 2 watched")

        resp = await client.get("/api/v1/watch")
        assert resp.status_code == 502

    async def test_toggle_on(self, client, mock_okx, mock_datastore):
        with patch("backend.routers.watch.toggle_watch", new_callable=AsyncMock) as toggle:
            toggle.return_value = True
            resp = await client.post("/api/v1/watch/toggle", json={"instId": "T1"})

        assert resp.status_code == 200
        assert resp.json() == {"instId": "T1", "watched": True}
        toggle.assert_awaited_once_with(mock_okx, mock_datastore, "T1")

    async def test_toggle_unknown_trader(self, client):
        with patch(
            "backend.routers.watch.toggle_watch",
            new_callable=AsyncMock,
            side_effect=NotFoundError("OKX lead-traders: instId not found: X"),
        ):
            resp = await client.post("/api/v1/watch/toggle", json={"instId": "X"})

        assert resp.status_code == 404

    async def test_toggle_invalidates_series_cache(self, client, mock_cache):
        mock_cache.set("series:T1:5m", "stale")
        mock_cache.set("series:T2:5m", "keep")

        with patch("backend.routers.watch.toggle_watch", new_callable=AsyncMock, return_value=False):
            await client.post("/api/v1/watch/toggle", json={"instId": "T1"})

        assert mock_cache.get("series:T1:5m") is None
        assert mock_cache.get("series:T2:5m") == "keep"

    async def test_toggle_requires_inst_id(self, client):
        resp = await client.post("/api/v1/watch/toggle", json={"instId": ""})
        assert resp.status_code == 422


# ===========================================================================
# 5. POST /api/v1/collect
# ===========================================================================


class TestCollect:
    async def test_success(self, client, mock_collector):
        mock_collector.collect_once.return_value = CycleResult(
            status="success",
            watched_count=1,
            timestamp=1_700_000_100_000,
            alerts_count=1,
            alerts={
                "T1": [
                    Alert(horizon="5m", kind=AlertKind.TOTAL, old_value=150, new_value=180, percent=0.2)
                ]
            },
        )

        resp = await client.post("/api/v1/collect")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "success"
        assert body["watchedCount"] == 1
        assert body["alertsCount"] == 1
        assert body["alerts"]["T1"][0]["kind"] == "total"
        assert body["alerts"]["T1"][0]["oldValue"] == 150.0

    async def test_no_watched(self, client, mock_collector):
        mock_collector.collect_once.return_value = CycleResult(status="no_watched", watched_count=0)

        resp = await client.post("/api/v1/collect")
        assert resp.status_code == 200
        assert resp.json()["watchedCount"] == 0

    @pytest.mark.parametrize(
        "exc, status",
        [
            (CycleInProgressError("busy"), 409),
            (PersistenceError(1, 1, sqlite3.OperationalError("disk I/O error")), 500),
            (UpstreamBusinessError("50011", "{}"), 502),
            (NotFoundError("Watched trader(s) not found"), 502),
        ],
    )
    async def test_failures_mapped(self, client, mock_collector, exc, status):
        mock_collector.collect_once.side_effect = exc

        resp = await client.post("/api/v1/collect")
        assert resp.status_code == status
        assert resp.json()["detail"]

    async def test_missing_trader_is_cycle_failure(self, client, mock_collector, mock_cache):
        mock_cache.set("series:T1:5m", ["cached"])
        mock_collector.collect_once.side_effect = NotFoundError(
            "Watched trader not found in OKX lead-traders list: GONE"
        )

        resp = await client.post("/api/v1/collect")
        assert resp.status_code == 502
        body = resp.json()
        assert body["code"] == "cycle_failed"
        assert "GONE" in body["detail"]
        assert mock_cache.get("series:T1:5m") == ["cached"]
