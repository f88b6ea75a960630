from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import httpx
import pytest

from src.watchdog.config import WatchdogConfig
from src.watchdog.state import AppState, build_state

from tests.fakes import PANEL_URL, WEBHOOK_URL, FakePanel, make_config


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_panel() -> FakePanel:
    return FakePanel()


@pytest.fixture
def config() -> WatchdogConfig:
    return make_config()


@pytest.fixture
async def state(fake_panel: FakePanel, config: WatchdogConfig) -> AsyncIterator[AppState]:
    """AppState wired to the fake panel through a mock transport."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_panel.handler))
    st = build_state(config, http)
    try:
        yield st
    finally:
        await http.aclose()


@pytest.fixture(scope="session")
def app() -> Iterator[object]:
    """
    FastAPI app fixture with env vars configured for deterministic tests.

    The background loop is disabled; tests drive tracker state directly.
    """
    with pytest.MonkeyPatch.context() as mp:
        mp.setenv("PANEL_URL", PANEL_URL)
        mp.setenv("PANEL_APP_API_KEY", "app-token")
        mp.setenv("PANEL_CLIENT_API_KEY", "client-token")
        mp.setenv("WATCHDOG_WEBHOOK_URL", WEBHOOK_URL)
        mp.setenv("WATCHDOG_ENABLED", "false")

        from src.watchdog.main import app as fastapi_app

        yield fastapi_app


@pytest.fixture
async def async_client(app) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client bound to the FastAPI ASGI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
