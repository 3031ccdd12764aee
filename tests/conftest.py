"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from schedule_monitor.monitor.client import MonitorClient
from schedule_monitor.monitor.errors import RemoteUnavailable
from schedule_monitor.monitor.models import RemoteCheck
from schedule_monitor.monitor.store import MonitoredTaskStore

PING_BASE_URL = "https://ping.ohdear.app"
PING_TOKEN = "test-ping-url"


class FakeMonitorClient(MonitorClient):
    """Records every remote call instead of sending it."""

    def __init__(self, site_id: str | None = "test-site", ping_token: str = PING_TOKEN) -> None:
        super().__init__(
            api_url="https://monitor.test/api",
            api_token="test-token",
            site_id=site_id,
            ping_url=PING_BASE_URL,
            ping_token=ping_token,
        )
        self.synced_checks: list[RemoteCheck] = []
        self.deleted_checks: list[str] = []
        self.pings: list[tuple[str, str, dict[str, Any] | None]] = []
        self.fail_upserts: set[str] = set()
        self.fail_deletes: set[str] = set()
        self.fail_pings = False

    @property
    def calls(self) -> int:
        return len(self.synced_checks) + len(self.deleted_checks)

    def get_synced_check_attributes(self) -> list[dict[str, Any]]:
        return [check.to_payload() for check in self.synced_checks]

    async def upsert_check(self, check: RemoteCheck) -> str:
        if check.name in self.fail_upserts:
            msg = f"monitor unreachable for {check.name}"
            raise RemoteUnavailable(msg)
        self.synced_checks.append(check)
        return check.name

    async def delete_check(self, name: str) -> None:
        if name in self.fail_deletes:
            msg = f"monitor unreachable for {name}"
            raise RemoteUnavailable(msg)
        self.deleted_checks.append(name)

    async def ping(self, url: str, kind: str, data: dict[str, Any] | None = None) -> bool:
        if self.fail_pings:
            msg = "ping timed out"
            raise RemoteUnavailable(msg)
        self.pings.append((url, kind, data))
        return True


@pytest.fixture
async def store(tmp_path: Path) -> MonitoredTaskStore:
    """Create a MonitoredTaskStore backed by a temp database."""
    return MonitoredTaskStore(db_path=tmp_path / "test.db")


@pytest.fixture
def monitor() -> FakeMonitorClient:
    return FakeMonitorClient()
