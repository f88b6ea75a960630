from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI

from src.watchdog.config import configure_logging, load_config
from src.watchdog.routers import health, overages
from src.watchdog.services.poll_scheduler import watchdog_loop
from src.watchdog.state import get_state, init_state

openapi_tags = [
    {"name": "Health", "description": "Service health and configuration diagnostics."},
    {"name": "Overages", "description": "Active over-limit episodes and poll cycle summaries (in-memory)."},
]

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Resource Watchdog",
    description=(
        "Polls panel-hosted instances for CPU, memory and disk usage against their limits, "
        "reports sustained overages to a webhook and kills instances that stay over their limits. "
        "Tracker state is in-memory only and resets on restart."
    ),
    version="1.0.0",
    openapi_tags=openapi_tags,
)

# Initialize typed app state (config + panel/webhook clients + tracker)
init_state(app, load_config())
configure_logging(get_state(app).config.log_level)


@app.on_event("startup")
async def _on_startup() -> None:
    """Startup hook: start the background watchdog loop unless disabled."""
    state = get_state(app)
    if not state.config.watchdog_enabled:
        logger.warning("WATCHDOG_ENABLED is off; serving diagnostics without polling")
        return

    app.state._watchdog_shutdown = asyncio.Event()
    state.watchdog_task = asyncio.create_task(watchdog_loop(state, app.state._watchdog_shutdown))


@app.on_event("shutdown")
async def _on_shutdown() -> None:
    """Shutdown hook: stop the watchdog loop and close the shared HTTP client."""
    state = get_state(app)

    watchdog_shutdown = getattr(app.state, "_watchdog_shutdown", None)
    if watchdog_shutdown is not None:
        watchdog_shutdown.set()
    watchdog_task = state.watchdog_task
    if watchdog_task is not None:
        try:
            await asyncio.wait_for(watchdog_task, timeout=5.0)
        except Exception:
            logger.exception("Error stopping watchdog task")

    await state.panel.aclose()


app.include_router(health.router)
app.include_router(overages.router)
