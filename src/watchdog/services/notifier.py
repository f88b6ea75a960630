from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from src.watchdog.schemas.common import utc_now
from src.watchdog.schemas.instances import Instance, ResourceSnapshot

logger = logging.getLogger(__name__)

REPORT_COLOR = 0xFFCC00
ACTION_COLOR = 0xFF0000


def format_duration(seconds: int) -> str:
    if seconds >= 3600 and seconds % 3600 == 0:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''}"
    if seconds >= 60 and seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds} seconds"


# PUBLIC_INTERFACE
def usage_lines(instance: Instance, snapshot: ResourceSnapshot) -> str:
    """Render usage vs limit for CPU, memory and disk."""
    limits = instance.limits
    return (
        f"**CPU Usage**: {snapshot.cpu_percent:g}% (Limit: {limits.cpu:g}%)\n"
        f"**Memory Usage**: {snapshot.memory_gb:.2f} GB (Limit: {limits.memory_gb:.2f} GB)\n"
        f"**Disk Usage**: {snapshot.disk_gb:.2f} GB (Limit: {limits.disk_gb:.2f} GB)"
    )


def _embed(title: str, description: str, color: int, instance_id: str) -> Dict[str, Any]:
    return {
        "embeds": [
            {
                "title": title,
                "description": description,
                "color": color,
                "footer": {"text": f"Server UUID: {instance_id}"},
                "timestamp": utc_now().isoformat(),
            }
        ]
    }


# PUBLIC_INTERFACE
def build_overage_report(instance: Instance, snapshot: ResourceSnapshot, over_for_sec: int) -> Dict[str, Any]:
    """Webhook payload announcing a sustained overage."""
    description = (
        f"The server **{instance.name}** has exceeded its resource limits for {format_duration(over_for_sec)}.\n\n"
        f"{usage_lines(instance, snapshot)}"
    )
    return _embed(f"Server Over Limit: {instance.id}", description, REPORT_COLOR, instance.id)


# PUBLIC_INTERFACE
def build_action_log(instance_id: str, message: str) -> Dict[str, Any]:
    """Webhook payload recording an action taken against an instance."""
    return _embed(f"Action Taken: {instance_id}", message, ACTION_COLOR, instance_id)


class WebhookNotifier:
    """Posts embed payloads to a Discord-compatible webhook. Delivery is best-effort."""

    def __init__(self, webhook_url: str, http: Optional[httpx.AsyncClient] = None):
        self._webhook_url = webhook_url
        self._http = http or httpx.AsyncClient()

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    # PUBLIC_INTERFACE
    async def send(self, payload: Dict[str, Any], instance_id: str, instance_name: str = "") -> bool:
        """Deliver payload. Returns False (never raises) when delivery fails."""
        if not self.enabled:
            logger.warning("[%s] No webhook configured; dropping notification for %s", instance_name, instance_id)
            return False
        try:
            resp = await self._http.post(self._webhook_url, json=payload)
        except httpx.HTTPError as exc:
            logger.error("[%s] Error sending notification for server %s: %s", instance_name, instance_id, exc)
            return False

        if not resp.is_success:
            logger.error(
                "[%s] Failed to notify about server %s: %s - %s",
                instance_name,
                instance_id,
                resp.status_code,
                resp.reason_phrase,
            )
            return False

        logger.info("[%s] Notification sent for server %s.", instance_name, instance_id)
        return True

    # PUBLIC_INTERFACE
    async def send_overage_report(self, instance: Instance, snapshot: ResourceSnapshot, over_for_sec: int) -> bool:
        logger.warning("[%s] Notifying that server %s is over its limit.", instance.name, instance.id)
        return await self.send(build_overage_report(instance, snapshot, over_for_sec), instance.id, instance.name)

    # PUBLIC_INTERFACE
    async def send_action_log(self, instance: Instance, message: str) -> bool:
        return await self.send(build_action_log(instance.id, message), instance.id, instance.name)
