"""MonitorClient: httpx client for the remote monitoring API.

Checks live under ``{api_url}/sites/{site_id}/checks`` and are keyed by task
name.  Pings go to a URL derived from the ping token and the task name, so it
can be computed without a network round trip::

    https://ping.ohdear.app/<ping-token>-<urlencoded-name>
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, quote_plus

import httpx

from schedule_monitor.config import settings
from schedule_monitor.monitor.errors import RemoteRejected, RemoteUnavailable
from schedule_monitor.monitor.models import LogItemType

if TYPE_CHECKING:
    from schedule_monitor.monitor.models import RemoteCheck

logger = logging.getLogger(__name__)

# Suffix appended to a task's ping URL for each ping kind.
PING_SUFFIXES: dict[str, str] = {
    LogItemType.STARTING.value: "/starting",
    LogItemType.FINISHED.value: "",
    LogItemType.FAILED.value: "/failed",
}


def build_ping_url(base_url: str, ping_token: str, name: str) -> str:
    """Deterministic ping URL for a task name, form-encoded like the monitor expects."""
    # quote_plus keeps "~" as is; the monitor's own clients send it as %7E
    encoded = quote_plus(name, safe="").replace("~", "%7E")
    return f"{base_url.rstrip('/')}/{ping_token}-{encoded}"


class MonitorClient:
    """Talks to the remote monitor: check upserts, deletions and pings.

    Every request is bounded by *timeout* seconds.  Network failures and
    timeouts raise :class:`RemoteUnavailable`; non-success answers raise
    :class:`RemoteRejected`.

    Args:
        api_url: Base URL of the monitor API.
        api_token: Bearer token attached to every API request.
        site_id: Remote site the checks belong to. None disables check calls.
        ping_url: Base URL for pings.
        ping_token: Token that prefixes every ping URL (default: *site_id*).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        api_url: str,
        api_token: str = "",
        site_id: str | None = None,
        ping_url: str = "https://ping.ohdear.app",
        ping_token: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.api_token = api_token
        self.site_id = (site_id or "").strip() or None
        self.ping_base_url = ping_url
        self.ping_token = ping_token.strip() or (self.site_id or "")
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> MonitorClient:
        """Build a client from the application settings."""
        return cls(
            api_url=settings.monitor_api_url,
            api_token=settings.monitor_api_token,
            site_id=settings.monitor_site_id,
            ping_url=settings.monitor_ping_url,
            ping_token=settings.get_ping_token(),
            timeout=settings.monitor_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        """True when a site id is configured."""
        return self.site_id is not None

    def build_ping_url(self, name: str) -> str | None:
        """Ping URL for *name*, or None when no ping token is configured."""
        if not self.ping_token:
            return None
        return build_ping_url(self.ping_base_url, self.ping_token, name)

    # -- Checks ----------------------------------------------------------------

    def _checks_url(self, name: str | None = None) -> str:
        url = f"{self.api_url}/sites/{self.site_id}/checks"
        if name is not None:
            url += f"/{quote(name, safe='')}"
        return url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Accept": "application/json",
        }

    async def upsert_check(self, check: RemoteCheck) -> str:
        """Create the check, or update it when it already exists.

        Safe to repeat: an update that finds no check falls back to a create,
        and a create that collides with an existing check falls back to an
        update.  Returns the remote check id.
        """
        self._require_site()
        payload = check.to_payload()

        resp = await self._request("PUT", self._checks_url(check.name), json=payload)
        if resp.status_code == 404:
            logger.debug("Check '%s' not found remotely, creating it", check.name)
            resp = await self._request("POST", self._checks_url(), json=payload)
            if resp.status_code == 409:
                resp = await self._request("PUT", self._checks_url(check.name), json=payload)

        self._raise_for_status(resp, f"upsert check '{check.name}'")
        logger.info("Synced check '%s' (%s)", check.name, check.cron_expression)
        return _check_id(resp, check.name)

    async def delete_check(self, name: str) -> None:
        """Delete a check. A check that does not exist counts as deleted."""
        self._require_site()
        resp = await self._request("DELETE", self._checks_url(name))
        if resp.status_code == 404:
            logger.debug("Check '%s' already absent remotely", name)
            return
        self._raise_for_status(resp, f"delete check '{name}'")
        logger.info("Deleted check '%s'", name)

    # -- Pings -----------------------------------------------------------------

    async def ping(self, url: str, kind: str, data: dict[str, Any] | None = None) -> bool:
        """Send a ``starting``, ``finished`` or ``failed`` ping to *url*.

        Raises:
            ValueError: If *kind* is not a known ping kind.
        """
        kind = LogItemType(kind).value
        if kind not in PING_SUFFIXES:
            msg = f"Cannot ping for '{kind}' events"
            raise ValueError(msg)
        target = url.rstrip("/") + PING_SUFFIXES[kind]
        resp = await self._request("POST", target, json=data or {}, authenticated=False)
        self._raise_for_status(resp, f"{kind} ping")
        logger.debug("Sent %s ping to %s", kind, target)
        return True

    # -- Internal --------------------------------------------------------------

    def _require_site(self) -> None:
        if not self.enabled:
            msg = "No monitor site id configured"
            raise RemoteRejected(msg, status_code=0)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        headers = self._headers() if authenticated else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            msg = f"{method} {url} timed out after {self.timeout}s"
            raise RemoteUnavailable(msg) from exc
        except httpx.HTTPError as exc:
            msg = f"{method} {url} failed: {exc}"
            raise RemoteUnavailable(msg) from exc

    @staticmethod
    def _raise_for_status(resp: httpx.Response, action: str) -> None:
        if 200 <= resp.status_code < 300:
            return
        msg = f"Monitor rejected {action}: {resp.status_code} {resp.text[:200]}"
        raise RemoteRejected(msg, status_code=resp.status_code)


def _check_id(resp: httpx.Response, fallback: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        return fallback
    if isinstance(data, dict) and data.get("id") is not None:
        return str(data["id"])
    return fallback
