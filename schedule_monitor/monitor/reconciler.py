"""Reconciler: brings the local store and the remote monitor in line with the schedule."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from schedule_monitor.config import settings
from schedule_monitor.monitor.errors import MonitorError
from schedule_monitor.monitor.identity import build_descriptors
from schedule_monitor.monitor.models import (
    MonitoredTask,
    ReconciliationResult,
    RemoteCheck,
    TaskDescriptor,
)

if TYPE_CHECKING:
    from schedule_monitor.monitor.client import MonitorClient
    from schedule_monitor.monitor.store import MonitoredTaskStore
    from schedule_monitor.schedule import Schedule

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    """Staged changes for one pass. Kept tasks are in declaration order."""

    creates: list[TaskDescriptor] = field(default_factory=list)
    updates: list[tuple[MonitoredTask, TaskDescriptor]] = field(default_factory=list)
    unchanged: list[tuple[MonitoredTask, TaskDescriptor]] = field(default_factory=list)
    deletes: list[MonitoredTask] = field(default_factory=list)
    order: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)


def plan_reconciliation(
    declared: Iterable[TaskDescriptor],
    persisted: Iterable[MonitoredTask],
) -> ReconciliationPlan:
    """Diff declared tasks against persisted records.

    Only monitored tasks are kept.  When two declarations share a name the
    later one wins.  Every record without a kept declaration is deleted, which
    covers both removed tasks and tasks that opted out of monitoring.
    """
    wanted: dict[str, TaskDescriptor] = {}
    for descriptor in declared:
        if not descriptor.monitored:
            continue
        if descriptor.name in wanted:
            logger.warning(
                "Duplicate task name '%s': the later declaration replaces the earlier one",
                descriptor.name,
            )
        wanted[descriptor.name] = descriptor

    existing = {record.name: record for record in persisted}
    plan = ReconciliationPlan()

    for name, descriptor in wanted.items():
        record = existing.get(name)
        if record is None:
            plan.creates.append(descriptor)
        elif record.differs_from(descriptor):
            plan.updates.append((record, descriptor))
        else:
            plan.unchanged.append((record, descriptor))

    plan.order = list(wanted)
    plan.deletes = [record for name, record in existing.items() if name not in wanted]
    return plan


class Reconciler:
    """Applies a reconciliation plan to the store, then to the remote monitor.

    The local store is the source of truth: its failures abort the pass.
    Remote failures are logged and reported in the result, and the affected
    checks stay pending until the next pass. Remote deletes go through a
    pending-deletes table, so a check whose record is gone is still removed
    once the monitor can be reached.

    Args:
        store: Local task store.
        client: Remote monitor client.
        sync_enabled: Global remote-sync switch (default from settings).
    """

    def __init__(
        self,
        store: MonitoredTaskStore,
        client: MonitorClient,
        sync_enabled: bool | None = None,
    ) -> None:
        self._store = store
        self._client = client
        if sync_enabled is None:
            sync_enabled = settings.monitor_sync_enabled
        self._sync_enabled = sync_enabled

    async def reconcile(
        self,
        declared: Iterable[TaskDescriptor],
        *,
        remote_sync_enabled: bool | None = None,
    ) -> ReconciliationResult:
        """Run one reconciliation pass and return what changed."""
        persisted = await self._store.list_tasks()
        plan = plan_reconciliation(declared, persisted)
        result = ReconciliationResult()

        # Kept records, in declaration order
        records: dict[str, MonitoredTask] = {}

        for descriptor in plan.creates:
            task = MonitoredTask(
                name=descriptor.name,
                type=descriptor.kind.value,
                cron_expression=descriptor.cron_expression,
                timezone=descriptor.timezone,
                grace_time_in_minutes=descriptor.grace_time_in_minutes,
                ping_url=self._client.build_ping_url(descriptor.name),
            )
            records[task.name] = await self._store.upsert_task(task)
            result.created.append(task.name)

        for record, descriptor in plan.updates:
            record.type = descriptor.kind.value
            record.cron_expression = descriptor.cron_expression
            record.timezone = descriptor.timezone
            record.grace_time_in_minutes = descriptor.grace_time_in_minutes
            record.ping_url = self._client.build_ping_url(record.name) or record.ping_url
            # The remote check, if any, still has the old schedule
            record.needs_remote_sync = True
            await self._store.update_schedule(record)
            records[record.name] = record
            result.updated.append(record.name)

        for record, _ in plan.unchanged:
            ping_url = self._client.build_ping_url(record.name)
            if ping_url and ping_url != record.ping_url:
                record.ping_url = ping_url
                await self._store.update_schedule(record)
                logger.info("Refreshed ping URL of '%s'", record.name)
            records[record.name] = record
            result.unchanged.append(record.name)

        for record in plan.deletes:
            if record.is_registered:
                await self._store.add_pending_delete(record.name)
            await self._store.delete_task(record.name)
            result.deleted.append(record.name)

        records = {name: records[name] for name in plan.order}

        sync = self._sync_enabled if remote_sync_enabled is None else remote_sync_enabled
        if not sync or not self._client.enabled:
            logger.info(
                "Remote sync skipped (%s)",
                "disabled" if not sync else "no site id configured",
            )
        else:
            await self._sync_remote(records, result)

        logger.info(
            "Reconciled schedule: %d created, %d updated, %d deleted, %d synced, %d failed",
            len(result.created),
            len(result.updated),
            len(result.deleted),
            len(result.synced_checks),
            len(result.failed),
        )
        return result

    async def _sync_remote(
        self,
        records: dict[str, MonitoredTask],
        result: ReconciliationResult,
    ) -> None:
        for record in records.values():
            if record.is_synced:
                continue
            check = RemoteCheck.from_task(record)
            try:
                await self._client.upsert_check(check)
            except MonitorError as exc:
                logger.warning("Could not sync check '%s': %s", record.name, exc)
                result.failed[record.name] = str(exc)
                continue
            await self._store.mark_registered(record.name)
            result.synced_checks.append(check)

        # Includes deletes left over from earlier passes
        for name in await self._store.list_pending_deletes():
            if name in records:
                # Declared again, so its check is upserted instead
                await self._store.remove_pending_delete(name)
                continue
            try:
                await self._client.delete_check(name)
            except MonitorError as exc:
                logger.warning("Could not delete check '%s': %s", name, exc)
                result.failed[name] = str(exc)
                continue
            await self._store.remove_pending_delete(name)
            result.remote_deleted.append(name)


async def sync_schedule(
    schedule: Schedule,
    store: MonitoredTaskStore,
    client: MonitorClient,
    *,
    remote_sync_enabled: bool | None = None,
) -> ReconciliationResult:
    """Describe every declared task and reconcile them in one pass."""
    descriptors = build_descriptors(
        schedule.tasks(),
        default_grace_time_in_minutes=settings.default_grace_time_in_minutes,
    )
    reconciler = Reconciler(store, client)
    return await reconciler.reconcile(descriptors, remote_sync_enabled=remote_sync_enabled)
