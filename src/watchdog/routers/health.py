from __future__ import annotations

from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from src.watchdog.schemas.common import HealthResponse, utc_now
from src.watchdog.state import get_state

router = APIRouter(tags=["Health"])


class WatchdogConfigResponse(BaseModel):
    """Diagnostics model describing the effective watchdog configuration (no secrets)."""

    panel_url: str = Field(..., description="Base URL of the panel management API.")
    app_api_key_configured: bool = Field(..., description="Whether the application-scope token is set.")
    client_api_key_configured: bool = Field(..., description="Whether the client-scope token is set.")
    webhook_configured: bool = Field(..., description="Whether a notification webhook is set.")
    watchdog_enabled: bool = Field(..., description="Whether the background polling loop runs.")
    dry_run: bool = Field(..., description="Whether kill commands are suppressed.")
    batch_size: int = Field(..., description="Instances checked concurrently per batch.")
    batch_delay_sec: float = Field(..., description="Pause between batches (seconds).")
    cycle_delay_sec: float = Field(..., description="Pause between poll cycles (seconds).")
    retry_limit: int = Field(..., description="Retries per panel request on the retry status.")
    retry_delay_sec: float = Field(..., description="Pause between retries (seconds).")
    retry_status: int = Field(..., description="HTTP status that triggers a retry.")
    report_after_sec: int = Field(..., description="Episode age at which an overage report is sent.")
    kill_after_sec: int = Field(..., description="Default episode age at which an instance is killed.")
    extended_kill_after_sec: int = Field(..., description="Kill threshold for extended-grace categories.")
    extended_kill_categories: List[int] = Field(..., description="Categories using the extended kill threshold.")
    excluded_categories: List[int] = Field(..., description="Categories never monitored.")
    timestamp: str = Field(..., description="UTC timestamp when the diagnostics were produced (ISO string).")


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Health check",
    description="Basic service liveness check used by deployment.",
    operation_id="health_check",
)
def health_check() -> HealthResponse:
    """Return service liveness status."""
    return HealthResponse(status="ok", message="Healthy", timestamp=utc_now())


@router.get(
    "/api/health/config",
    response_model=WatchdogConfigResponse,
    summary="Watchdog configuration diagnostics",
    description="Reports the effective polling and escalation configuration. API tokens are reduced to booleans.",
    operation_id="watchdog_config_diagnostics",
)
def watchdog_config_diagnostics(request: Request) -> WatchdogConfigResponse:
    """Return the effective watchdog configuration without secrets."""
    cfg = get_state(request.app).config
    return WatchdogConfigResponse(
        panel_url=cfg.panel_url,
        app_api_key_configured=bool(cfg.app_api_key),
        client_api_key_configured=bool(cfg.client_api_key),
        webhook_configured=bool(cfg.webhook_url),
        watchdog_enabled=cfg.watchdog_enabled,
        dry_run=cfg.dry_run,
        batch_size=cfg.batch_size,
        batch_delay_sec=cfg.batch_delay_sec,
        cycle_delay_sec=cfg.cycle_delay_sec,
        retry_limit=cfg.retry_limit,
        retry_delay_sec=cfg.retry_delay_sec,
        retry_status=cfg.retry_status,
        report_after_sec=cfg.report_after_sec,
        kill_after_sec=cfg.kill_after_sec,
        extended_kill_after_sec=cfg.extended_kill_after_sec,
        extended_kill_categories=sorted(cfg.extended_kill_categories),
        excluded_categories=sorted(cfg.excluded_categories),
        timestamp=utc_now().isoformat(),
    )
