from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Literal, Optional

import httpx

from src.watchdog.config import WatchdogConfig
from src.watchdog.schemas.instances import Instance, ResourceLimits, ResourceSnapshot

logger = logging.getLogger(__name__)

TokenScope = Literal["application", "client"]

SERVERS_PATH = "/api/application/servers"
RESOURCES_PATH = "/api/client/servers/{instance_id}/resources"
POWER_PATH = "/api/client/servers/{instance_id}/power"


def _headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }


def _mapping(value: Any, what: str) -> Dict[str, Any]:
    """Treat a missing value as empty; reject anything else that is not a JSON object."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"expected an object for {what}, got {type(value).__name__}")
    return value


def _parse_instance(item: Any) -> Optional[Instance]:
    attrs = _mapping(_mapping(item, "server entry").get("attributes"), "attributes")
    uuid = attrs.get("uuid")
    if not uuid:
        return None
    limits = _mapping(attrs.get("limits"), "limits")
    return Instance(
        id=str(uuid),
        name=str(attrs.get("name") or ""),
        category=int(attrs.get("nest_id") or 0),
        limits=ResourceLimits(
            cpu=float(limits.get("cpu") or 0),
            memory=float(limits.get("memory") or 0),
            disk=float(limits.get("disk") or 0),
        ),
    )


def _parse_snapshot(payload: Any) -> ResourceSnapshot:
    attrs = _mapping(_mapping(payload, "resources body").get("attributes"), "attributes")
    res = _mapping(attrs.get("resources"), "resources")
    return ResourceSnapshot(
        cpu_percent=float(res.get("cpu_absolute") or 0.0),
        memory_bytes=int(res.get("memory_bytes") or 0),
        disk_bytes=int(res.get("disk_bytes") or 0),
    )


class PanelClient:
    """
    Thin async client for the panel management API.

    - Application-scope token for the server directory, client-scope token for per-instance calls.
    - Every read degrades to None on failure; callers treat that as "no data this cycle".
    """

    def __init__(self, config: WatchdogConfig, http: Optional[httpx.AsyncClient] = None):
        self._config = config
        self._http = http or httpx.AsyncClient()
        self._headers: Dict[TokenScope, Dict[str, str]] = {
            "application": _headers(config.app_api_key),
            "client": _headers(config.client_api_key),
        }

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    def url(self, path: str) -> str:
        return f"{self._config.panel_url}{path}"

    # PUBLIC_INTERFACE
    async def fetch_json(self, url: str, scope: TokenScope) -> Optional[Any]:
        """
        GET url and decode JSON.

        Retries up to retry_limit times, and only when the panel answers with retry_status,
        pausing retry_delay_sec between attempts. Any other failure returns None.
        """
        retry_limit = self._config.retry_limit
        for attempt in range(retry_limit + 1):
            logger.debug("Fetching URL: %s", url)
            try:
                resp = await self._http.get(url, headers=self._headers[scope])
            except httpx.HTTPError as exc:
                logger.error("Fetch failed due to error: %s: %s (url=%s)", type(exc).__name__, exc, url)
                return None

            if resp.is_success:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("Fetch returned a non-JSON body (url=%s)", url)
                    return None

            if resp.status_code == self._config.retry_status and attempt < retry_limit:
                logger.warning(
                    "Received %s error. Retrying... (%s/%s) url=%s",
                    resp.status_code,
                    attempt + 1,
                    retry_limit,
                    url,
                )
                await asyncio.sleep(self._config.retry_delay_sec)
                continue

            logger.error("Failed to fetch data: %s - %s (url=%s)", resp.status_code, resp.reason_phrase, url)
            return None
        return None

    # PUBLIC_INTERFACE
    async def list_instances(self) -> Optional[List[Instance]]:
        """
        Walk the paginated server listing and return all monitored instances.

        Instances whose nest is excluded are skipped. Returns None when any page cannot be
        retrieved so a partial directory is never mistaken for the whole fleet.
        """
        logger.info("Fetching all servers from App API...")
        instances: List[Instance] = []
        next_url: Optional[str] = f"{self.url(SERVERS_PATH)}?page=1"

        while next_url:
            data = await self.fetch_json(next_url, "application")
            if not isinstance(data, dict):
                return None

            items = data.get("data")
            try:
                links = ((data.get("meta") or {}).get("pagination") or {}).get("links") or {}
            except AttributeError:
                links = None
            if not isinstance(items, list) or not isinstance(links, dict):
                logger.error("Unexpected server listing payload (url=%s)", next_url)
                return None

            for item in items:
                try:
                    inst = _parse_instance(item)
                except (TypeError, ValueError) as exc:
                    logger.warning("Skipping malformed server entry in listing: %s", exc)
                    continue
                if inst is None:
                    continue
                if inst.category in self._config.excluded_categories:
                    logger.info("[%s] Skipping server with nest: %s", inst.name, inst.category)
                    continue
                instances.append(inst)

            next_url = links.get("next") or None

        logger.info("Retrieved %s monitored servers.", len(instances))
        return instances

    # PUBLIC_INTERFACE
    async def fetch_snapshot(self, instance: Instance) -> Optional[ResourceSnapshot]:
        """Return current resource usage for the instance, or None when unavailable."""
        url = self.url(RESOURCES_PATH.format(instance_id=instance.id))
        data = await self.fetch_json(url, "client")
        if not isinstance(data, dict):
            return None
        try:
            return _parse_snapshot(data)
        except (TypeError, ValueError):
            logger.exception("[%s] Unexpected resources payload for %s", instance.name, instance.id)
            return None

    # PUBLIC_INTERFACE
    async def kill_instance(self, instance_id: str, instance_name: str = "") -> bool:
        """Send the kill power signal. Failures are logged, never raised or retried."""
        url = self.url(POWER_PATH.format(instance_id=instance_id))
        logger.info("[%s] Attempting to kill server %s...", instance_name, instance_id)
        try:
            resp = await self._http.post(url, headers=self._headers["client"], json={"signal": "kill"})
        except httpx.HTTPError as exc:
            logger.error("[%s] Error while killing server %s: %s", instance_name, instance_id, exc)
            return False

        if not resp.is_success:
            logger.error(
                "[%s] Failed to kill server %s: %s - %s",
                instance_name,
                instance_id,
                resp.status_code,
                resp.reason_phrase,
            )
            return False

        logger.info("[%s] Server %s has been killed.", instance_name, instance_id)
        return True

    async def aclose(self) -> None:
        await self._http.aclose()
