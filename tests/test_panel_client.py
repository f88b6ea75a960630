from __future__ import annotations

import json

import httpx
import pytest

from src.watchdog.schemas.instances import Instance, ResourceLimits
from src.watchdog.services.panel_client import PanelClient

from tests.fakes import GB, PANEL_URL, FakePanel, make_config, server_item

RESOURCES = "/api/client/servers/{}/resources"


def _instance(uuid: str) -> Instance:
    return Instance(id=uuid, name=uuid, category=5, limits=ResourceLimits(cpu=100, memory=1024, disk=2048))


@pytest.mark.anyio
async def test_directory_paginates_and_skips_excluded_nests(state, fake_panel: FakePanel):
    fake_panel.page_size = 2
    fake_panel.add_server("a", nest_id=5, cpu=200, memory=4096, disk=10240)
    fake_panel.add_server("game-1", nest_id=1)
    fake_panel.add_server("b", nest_id=5)
    fake_panel.add_server("game-6", nest_id=6)
    fake_panel.add_server("c", nest_id=3)

    instances = await state.panel.list_instances()

    assert instances is not None
    assert [i.id for i in instances] == ["a", "b", "c"]
    first = instances[0]
    assert first.category == 5
    assert first.limits.cpu == 200
    assert first.limits.memory == 4096
    assert first.limits.disk == 10240

    listing_calls = [r for r in fake_panel.requests if r.url.path == "/api/application/servers"]
    assert [r.url.params["page"] for r in listing_calls] == ["1", "2", "3"]
    assert all(r.headers["Authorization"] == "Bearer app-token" for r in listing_calls)


@pytest.mark.anyio
async def test_directory_failure_on_any_page_returns_none(state, fake_panel: FakePanel):
    fake_panel.listing_status = 500
    fake_panel.add_server("a")

    assert await state.panel.list_instances() is None


@pytest.mark.anyio
async def test_empty_directory_is_not_a_failure(state, fake_panel: FakePanel):
    assert await state.panel.list_instances() == []


@pytest.mark.anyio
async def test_snapshot_uses_client_token_and_parses_resources(state, fake_panel: FakePanel):
    fake_panel.add_server("a")
    fake_panel.set_usage("a", cpu=42.5, memory_bytes=3 * GB, disk_bytes=GB)

    snap = await state.panel.fetch_snapshot(_instance("a"))

    assert snap is not None
    assert snap.cpu_percent == 42.5
    assert snap.memory_gb == 3.0
    assert snap.disk_gb == 1.0
    req = fake_panel.resource_requests()[0]
    assert req.headers["Authorization"] == "Bearer client-token"
    assert str(req.url) == f"{PANEL_URL}/api/client/servers/a/resources"


@pytest.mark.anyio
async def test_retry_on_gateway_timeout_then_success(state, fake_panel: FakePanel):
    fake_panel.add_server("a")
    fake_panel.scripted_status[RESOURCES.format("a")] = [504, 504]

    snap = await state.panel.fetch_snapshot(_instance("a"))

    assert snap is not None
    assert len(fake_panel.resource_requests()) == 3


@pytest.mark.anyio
async def test_retry_budget_is_bounded(state, fake_panel: FakePanel):
    fake_panel.add_server("a")
    fake_panel.scripted_status[RESOURCES.format("a")] = [504] * 10

    assert await state.panel.fetch_snapshot(_instance("a")) is None
    # One initial attempt plus retry_limit=3 retries.
    assert len(fake_panel.resource_requests()) == 4


@pytest.mark.anyio
async def test_non_retryable_status_is_not_retried(state, fake_panel: FakePanel):
    fake_panel.add_server("a")
    fake_panel.scripted_status[RESOURCES.format("a")] = [502, 200]

    assert await state.panel.fetch_snapshot(_instance("a")) is None
    assert len(fake_panel.resource_requests()) == 1


@pytest.mark.anyio
async def test_transport_error_resolves_to_none():
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(boom)) as http:
        panel = PanelClient(make_config(), http)
        assert await panel.fetch_json(f"{PANEL_URL}/api/client/servers/a/resources", "client") is None
        assert await panel.list_instances() is None
        assert await panel.kill_instance("a", "a") is False


@pytest.mark.anyio
async def test_non_json_body_resolves_to_none():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>"))) as http:
        panel = PanelClient(make_config(), http)
        assert await panel.fetch_snapshot(_instance("a")) is None


@pytest.mark.anyio
async def test_malformed_listing_resolves_to_none():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"data": None}))) as http:
        panel = PanelClient(make_config(), http)
        assert await panel.list_instances() is None


@pytest.mark.anyio
async def test_malformed_listing_entries_are_skipped():
    body = {
        "data": [
            "oops",
            {"attributes": {"uuid": "a", "limits": []}},
            {"attributes": "x"},
            None,
            server_item("good"),
        ],
        "meta": {"pagination": {"links": {}}},
    }
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body))) as http:
        panel = PanelClient(make_config(), http)
        instances = await panel.list_instances()

    assert instances is not None
    assert [i.id for i in instances] == ["good"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "body",
    [
        {"attributes": {"resources": []}},
        {"attributes": "x"},
        ["not", "an", "object"],
        {"attributes": {"resources": {"cpu_absolute": "high"}}},
    ],
)
async def test_malformed_resources_body_resolves_to_none(body):
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body))) as http:
        panel = PanelClient(make_config(), http)
        assert await panel.fetch_snapshot(_instance("a")) is None


@pytest.mark.anyio
async def test_kill_posts_kill_signal(state, fake_panel: FakePanel):
    fake_panel.add_server("a")

    assert await state.panel.kill_instance("a", "a") is True

    assert fake_panel.kills == ["a"]
    power = [r for r in fake_panel.requests if r.url.path.endswith("/power")][0]
    assert power.method == "POST"
    assert power.headers["Authorization"] == "Bearer client-token"
    assert json.loads(power.content) == {"signal": "kill"}


@pytest.mark.anyio
async def test_kill_failure_is_reported_not_raised(state, fake_panel: FakePanel):
    fake_panel.scripted_status["/api/client/servers/a/power"] = [500]

    assert await state.panel.kill_instance("a", "a") is False
    assert fake_panel.kills == []
