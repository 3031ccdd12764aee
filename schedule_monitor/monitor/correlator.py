"""PingCorrelator: ties task lifecycle events to monitored records and pings."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from schedule_monitor.monitor.errors import LocalStoreError, MonitorError
from schedule_monitor.monitor.models import LogItemType, TaskLogItem

if TYPE_CHECKING:
    from schedule_monitor.monitor.client import MonitorClient
    from schedule_monitor.monitor.store import MonitoredTaskStore

logger = logging.getLogger(__name__)


class PingCorrelator:
    """Records lifecycle events of running tasks and forwards them as pings.

    Hooks fire for every task the host runs, monitored or not.  A name with
    no stored record is ignored.  None of the hooks raise: store and ping
    failures are logged so the task itself keeps running.

    Args:
        store: Local task store.
        client: Remote monitor client used for pings.
    """

    def __init__(self, store: MonitoredTaskStore, client: MonitorClient) -> None:
        self._store = store
        self._client = client

    async def on_start(self, name: str) -> bool:
        """A task started. Returns True when the task is monitored."""
        return await self._record(
            name,
            LogItemType.STARTING,
            ("last_started_at",),
        )

    async def on_finish(
        self,
        name: str,
        success: bool = True,
        *,
        runtime: float | None = None,
        exit_code: int | None = None,
        failure_message: str | None = None,
    ) -> bool:
        """A task finished, successfully or not. Returns True when the task is monitored."""
        meta: dict[str, Any] = {}
        if runtime is not None:
            meta["runtime"] = round(runtime, 3)
        if exit_code is not None:
            meta["exit_code"] = exit_code
        if failure_message:
            meta["failure_message"] = failure_message[:255]

        if success:
            return await self._record(
                name, LogItemType.FINISHED, ("last_finished_at",), meta
            )
        return await self._record(
            name, LogItemType.FAILED, ("last_finished_at", "last_failed_at"), meta
        )

    async def on_skip(self, name: str) -> bool:
        """The host decided not to run a task this time. No ping is sent."""
        return await self._record(
            name, LogItemType.SKIPPED, ("last_skipped_at",), ping=False
        )

    @asynccontextmanager
    async def track(self, name: str) -> AsyncIterator[None]:
        """Wrap one task run: start ping before, finish or failure ping after.

        Exceptions raised by the task body propagate unchanged::

            async with correlator.track("reports:send"):
                await send_reports()
        """
        await self.on_start(name)
        started = time.monotonic()
        try:
            yield
        except Exception as exc:
            await self.on_finish(
                name,
                success=False,
                runtime=time.monotonic() - started,
                failure_message=f"{type(exc).__name__}: {exc}",
            )
            raise
        await self.on_finish(name, success=True, runtime=time.monotonic() - started)

    # -- Internal --------------------------------------------------------------

    async def _record(
        self,
        name: str,
        event: LogItemType,
        fields: tuple[str, ...],
        meta: dict[str, Any] | None = None,
        *,
        ping: bool = True,
    ) -> bool:
        try:
            task = await self._store.get_task(name)
        except LocalStoreError:
            logger.exception("Could not look up monitored task '%s'", name)
            return False
        if task is None:
            logger.debug("Task '%s' is not monitored, ignoring %s", name, event.value)
            return False

        try:
            await self._store.touch(name, *fields)
            await self._store.add_log_item(
                TaskLogItem(task_name=name, type=event.value, meta=meta or {})
            )
        except LocalStoreError:
            logger.exception("Could not record %s event for '%s'", event.value, name)

        if ping and task.ping_url:
            try:
                await self._client.ping(task.ping_url, event.value, meta)
                await self._store.touch(name, "last_pinged_at")
            except MonitorError as exc:
                logger.warning("Could not send %s ping for '%s': %s", event.value, name, exc)
            except LocalStoreError:
                logger.exception("Could not record ping for '%s'", name)
        return True
