from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import FrozenSet

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    """Parse an int env var with a default."""
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return int(default)


def _env_float(name: str, default: float) -> float:
    """Parse a float env var with a default."""
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return float(default)


def _env_bool(name: str, default: bool = False) -> bool:
    """Parse a bool env var (true/false/1/0/yes/no/on/off)."""
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    val = raw.strip().lower()
    if val in ("1", "true", "yes", "y", "on"):
        return True
    if val in ("0", "false", "no", "n", "off"):
        return False
    return bool(default)


def _env_int_set(name: str, default: str) -> FrozenSet[int]:
    """Parse a comma-separated list of ints ("1,6"). Unparseable parts are dropped."""
    raw = os.getenv(name, default)
    out = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            out.add(int(part))
        except ValueError:
            logger.warning("Ignoring non-integer value %r in %s", part, name)
    return frozenset(out)


def _clamp_int(v: int, lo: int, hi: int) -> int:
    """Clamp integer to [lo, hi]."""
    return max(lo, min(hi, int(v)))


@dataclass(frozen=True)
class WatchdogConfig:
    """Runtime configuration loaded from env."""

    panel_url: str
    app_api_key: str
    client_api_key: str
    webhook_url: str

    # Background loop switches
    watchdog_enabled: bool
    dry_run: bool

    # Scheduling: batches bound concurrent requests against the panel.
    batch_size: int
    batch_delay_sec: float
    cycle_delay_sec: float

    # Panel request retries (only for retry_status, fixed delay between attempts)
    retry_limit: int
    retry_delay_sec: float
    retry_status: int

    # Escalation thresholds
    report_after_sec: int
    kill_after_sec: int
    extended_kill_after_sec: int
    extended_kill_categories: FrozenSet[int]

    # Categories (panel nests) never monitored
    excluded_categories: FrozenSet[int]

    log_level: str


# PUBLIC_INTERFACE
def load_config() -> WatchdogConfig:
    """Load WatchdogConfig from env vars."""
    panel_url = (os.getenv("PANEL_URL") or "").strip()
    if not panel_url:
        # Keep failure explicit and actionable; startup will log the exception.
        raise RuntimeError("Panel URL not configured. Provide PANEL_URL (e.g. https://panel.example.com).")
    if not re.match(r"^https?://", panel_url):
        raise RuntimeError(f"PANEL_URL appears invalid (must start with http:// or https://): {panel_url!r}")
    panel_url = panel_url.rstrip("/")

    app_api_key = os.getenv("PANEL_APP_API_KEY") or ""
    client_api_key = os.getenv("PANEL_CLIENT_API_KEY") or ""
    webhook_url = (os.getenv("WATCHDOG_WEBHOOK_URL") or "").strip()

    if not app_api_key or not client_api_key:
        logger.warning("Panel API keys are not fully configured; panel requests will likely be rejected")
    if not webhook_url:
        logger.warning("WATCHDOG_WEBHOOK_URL not set; overage reports will only be logged")

    batch_size = _clamp_int(_env_int("WATCHDOG_BATCH_SIZE", 5), 1, 100)
    batch_delay_sec = max(0.0, _env_float("WATCHDOG_BATCH_DELAY_SEC", 2.0))
    cycle_delay_sec = max(0.0, _env_float("WATCHDOG_CYCLE_DELAY_SEC", 10.0))

    retry_limit = _clamp_int(_env_int("PANEL_RETRY_LIMIT", 3), 0, 20)
    retry_delay_sec = max(0.0, _env_float("PANEL_RETRY_DELAY_SEC", 10.0))
    retry_status = _clamp_int(_env_int("PANEL_RETRY_STATUS", 504), 100, 599)

    report_after_sec = max(0, _env_int("OVERAGE_REPORT_AFTER_SEC", 2 * 3600))
    kill_after_sec = max(0, _env_int("OVERAGE_KILL_AFTER_SEC", 3 * 3600))
    extended_kill_after_sec = max(0, _env_int("OVERAGE_EXTENDED_KILL_AFTER_SEC", 5 * 3600))

    if kill_after_sec < report_after_sec:
        logger.warning(
            "OVERAGE_KILL_AFTER_SEC (%s) is below OVERAGE_REPORT_AFTER_SEC (%s); instances will be killed unreported",
            kill_after_sec,
            report_after_sec,
        )

    log_level = (os.getenv("WATCHDOG_LOG_LEVEL") or "INFO").strip().upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        log_level = "INFO"

    logger.info("Resolved panel url=%s webhook_configured=%s", panel_url, bool(webhook_url))

    return WatchdogConfig(
        panel_url=panel_url,
        app_api_key=app_api_key,
        client_api_key=client_api_key,
        webhook_url=webhook_url,
        watchdog_enabled=_env_bool("WATCHDOG_ENABLED", True),
        dry_run=_env_bool("WATCHDOG_DRY_RUN", False),
        batch_size=batch_size,
        batch_delay_sec=batch_delay_sec,
        cycle_delay_sec=cycle_delay_sec,
        retry_limit=retry_limit,
        retry_delay_sec=retry_delay_sec,
        retry_status=retry_status,
        report_after_sec=report_after_sec,
        kill_after_sec=kill_after_sec,
        extended_kill_after_sec=extended_kill_after_sec,
        extended_kill_categories=_env_int_set("OVERAGE_EXTENDED_KILL_CATEGORIES", "1,6"),
        excluded_categories=_env_int_set("WATCHDOG_EXCLUDED_CATEGORIES", "1,6"),
        log_level=log_level,
    )


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


# PUBLIC_INTERFACE
def configure_logging(level: str, name: str = "src.watchdog") -> logging.Logger:
    """
    Apply the configured level to the package logger and make sure its records are emitted.

    uvicorn only configures its own loggers, so without a handler here everything below
    WARNING would be dropped by the last-resort handler. A stderr handler is attached only
    when neither the package logger nor the root logger has one already; calling this
    again never adds a second handler.
    """
    pkg_logger = logging.getLogger(name)
    pkg_logger.setLevel(level)
    if not pkg_logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        pkg_logger.addHandler(handler)
    return pkg_logger
