from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import FastAPI

from src.watchdog.config import WatchdogConfig
from src.watchdog.schemas.overages import CycleStatsOut
from src.watchdog.services.notifier import WebhookNotifier
from src.watchdog.services.overage_tracker import OverageTracker
from src.watchdog.services.panel_client import PanelClient


@dataclass
class AppState:
    """Typed app.state container for shared singletons."""

    config: WatchdogConfig
    panel: PanelClient
    notifier: WebhookNotifier
    tracker: OverageTracker
    last_cycle: Optional[CycleStatsOut] = None
    watchdog_task: Optional[object] = None  # asyncio.Task, but kept loose to avoid import cycles


# PUBLIC_INTERFACE
def build_state(config: WatchdogConfig, http: Optional[httpx.AsyncClient] = None) -> AppState:
    """Build AppState with one shared HTTP client for panel and webhook traffic."""
    http = http or httpx.AsyncClient()
    return AppState(
        config=config,
        panel=PanelClient(config, http),
        notifier=WebhookNotifier(config.webhook_url, http),
        tracker=OverageTracker(config),
    )


# PUBLIC_INTERFACE
def init_state(app: FastAPI, config: WatchdogConfig) -> None:
    """Initialize app.state with the watchdog's collaborators and config."""
    app.state.state = build_state(config)


# PUBLIC_INTERFACE
def get_state(app: FastAPI) -> AppState:
    """Fetch typed AppState from a FastAPI app."""
    return app.state.state  # type: ignore[attr-defined]
