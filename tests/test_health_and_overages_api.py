from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from src.watchdog.schemas.common import utc_now
from src.watchdog.schemas.instances import Instance, ResourceLimits, ResourceSnapshot
from src.watchdog.schemas.overages import CycleStatsOut
from src.watchdog.state import get_state

OVER = ResourceSnapshot(cpu_percent=300.0)


@pytest.fixture
def app_state(app):
    """Shared AppState of the test app, reset around each test."""
    st = get_state(app)
    st.tracker.forget_missing([])
    st.last_cycle = None
    yield st
    st.tracker.forget_missing([])
    st.last_cycle = None


@pytest.mark.anyio
async def test_root_health_ok(async_client: httpx.AsyncClient):
    res = await async_client.get("/")
    assert res.status_code == 200
    body = res.json()
    assert body.get("status") == "ok"
    assert "timestamp" in body


@pytest.mark.anyio
async def test_config_diagnostics_hide_secrets(async_client: httpx.AsyncClient):
    res = await async_client.get("/api/health/config")
    assert res.status_code == 200
    body = res.json()

    assert body["panel_url"] == "http://panel.test"
    assert body["app_api_key_configured"] is True
    assert body["client_api_key_configured"] is True
    assert body["webhook_configured"] is True
    assert body["watchdog_enabled"] is False
    assert body["report_after_sec"] == 7200
    assert body["kill_after_sec"] == 10800
    assert body["excluded_categories"] == [1, 6]
    assert "app-token" not in res.text
    assert "client-token" not in res.text


@pytest.mark.anyio
async def test_overages_reflect_tracker_state(async_client: httpx.AsyncClient, app_state):
    inst = Instance(id="srv-a", name="Alpha", category=5, limits=ResourceLimits(cpu=100))
    app_state.tracker.evaluate(inst, OVER, utc_now() - timedelta(seconds=120))

    res = await async_client.get("/api/overages")
    assert res.status_code == 200
    data = res.json()
    assert data["total"] == 1
    item = data["items"][0]
    assert item["instance_id"] == "srv-a"
    assert item["instance_name"] == "Alpha"
    assert item["notified"] is False
    assert item["elapsed_seconds"] >= 120
    assert item["kill_after_sec"] == 10800

    res = await async_client.get("/api/overages/srv-a")
    assert res.status_code == 200
    assert res.json()["instance_id"] == "srv-a"


@pytest.mark.anyio
async def test_unknown_overage_is_404(async_client: httpx.AsyncClient, app_state):
    res = await async_client.get("/api/overages/does-not-exist")
    assert res.status_code == 404
    assert "not over" in res.json()["detail"]


@pytest.mark.anyio
async def test_last_cycle_404_then_summary(async_client: httpx.AsyncClient, app_state):
    res = await async_client.get("/api/cycles/last")
    assert res.status_code == 404

    app_state.last_cycle = CycleStatsOut(started_at=utc_now(), instances_seen=7, batches=2, snapshots_fetched=7)
    res = await async_client.get("/api/cycles/last")
    assert res.status_code == 200
    body = res.json()
    assert body["instances_seen"] == 7
    assert body["batches"] == 2
    assert body["directory_failed"] is False
