"""Data models for monitored scheduled tasks."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from schedule_monitor.monitor.cron import CronExpression


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(UTC).isoformat()


class TaskType(str, Enum):
    """What a scheduled task runs."""

    COMMAND = "command"
    SHELL = "shell"
    CLOSURE = "closure"
    JOB = "job"


class LogItemType(str, Enum):
    """Lifecycle events recorded for a monitored task."""

    STARTING = "starting"
    FINISHED = "finished"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TaskDescriptor:
    """Monitoring-relevant view of one declared task.

    Built fresh on every reconciliation pass, never persisted.
    """

    name: str
    kind: TaskType
    cron: CronExpression
    grace_time_in_minutes: int = 5
    monitored: bool = True

    @property
    def timezone(self) -> str:
        return self.cron.timezone

    @property
    def cron_expression(self) -> str:
        return self.cron.canonical


@dataclass(frozen=True)
class RemoteCheck:
    """A check definition as sent to the remote monitor."""

    name: str
    type: str
    cron_expression: str
    grace_time_in_minutes: int

    @classmethod
    def from_task(cls, task: MonitoredTask) -> RemoteCheck:
        return cls(
            name=task.name,
            type=task.type,
            cron_expression=task.cron_expression,
            grace_time_in_minutes=task.grace_time_in_minutes,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "cron_expression": self.cron_expression,
            "grace_time_in_minutes": self.grace_time_in_minutes,
        }


@dataclass
class MonitoredTask:
    """A persisted monitored task, keyed by name.

    Attributes:
        name: Resolved task name (primary key).
        type: A :class:`TaskType` value.
        cron_expression: Canonical five-field cron expression.
        timezone: IANA timezone the cron expression is evaluated in.
        grace_time_in_minutes: Tolerance before the monitor alerts on a missed run.
        ping_url: Where lifecycle pings are sent, or None when pinging is not configured.
        registered_on_monitor_at: Set once the remote check exists. None means
            the task is pending remote registration.
        last_pinged_at: Last successful ping.
        last_started_at / last_finished_at / last_failed_at / last_skipped_at:
            Lifecycle timestamps, ISO 8601 UTC.
        created_at / updated_at: Row bookkeeping.
        needs_remote_sync: The remote check exists but its schedule is outdated.
    """

    name: str
    type: str
    cron_expression: str
    timezone: str = "UTC"
    grace_time_in_minutes: int = 5
    ping_url: str | None = None
    registered_on_monitor_at: str | None = None
    last_pinged_at: str | None = None
    last_started_at: str | None = None
    last_finished_at: str | None = None
    last_failed_at: str | None = None
    last_skipped_at: str | None = None
    created_at: str = ""
    updated_at: str = ""
    needs_remote_sync: bool = False

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now()
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def is_registered(self) -> bool:
        return self.registered_on_monitor_at is not None

    @property
    def is_synced(self) -> bool:
        """True when the remote check exists and matches this record."""
        return self.is_registered and not self.needs_remote_sync

    def differs_from(self, descriptor: TaskDescriptor) -> bool:
        """True when the schedule-defining fields no longer match *descriptor*."""
        return (
            self.cron_expression != descriptor.cron_expression
            or self.grace_time_in_minutes != descriptor.grace_time_in_minutes
            or self.timezone != descriptor.timezone
        )

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``monitored_scheduled_tasks`` column order."""
        return (
            self.name,
            self.type,
            self.cron_expression,
            self.timezone,
            self.grace_time_in_minutes,
            self.ping_url,
            self.registered_on_monitor_at,
            self.last_pinged_at,
            self.last_started_at,
            self.last_finished_at,
            self.last_failed_at,
            self.last_skipped_at,
            self.created_at,
            self.updated_at,
            int(self.needs_remote_sync),
        )

    @classmethod
    def from_row(cls, row: tuple) -> MonitoredTask:
        """Deserialize from a SQLite row tuple."""
        return cls(
            name=row[0],
            type=row[1],
            cron_expression=row[2],
            timezone=row[3],
            grace_time_in_minutes=int(row[4]),
            ping_url=row[5],
            registered_on_monitor_at=row[6],
            last_pinged_at=row[7],
            last_started_at=row[8],
            last_finished_at=row[9],
            last_failed_at=row[10],
            last_skipped_at=row[11],
            created_at=row[12],
            updated_at=row[13],
            needs_remote_sync=bool(row[14]),
        )


@dataclass
class TaskLogItem:
    """One lifecycle event of a monitored task."""

    task_name: str
    type: str
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    id: int | None = None

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utc_now()

    @classmethod
    def from_row(cls, row: tuple) -> TaskLogItem:
        return cls(
            id=row[0],
            task_name=row[1],
            type=row[2],
            meta=json.loads(row[3]) if row[3] else {},
            created_at=row[4],
        )


@dataclass
class ReconciliationResult:
    """Summary of one reconciliation pass."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    synced_checks: list[RemoteCheck] = field(default_factory=list)
    remote_deleted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def local_changes(self) -> int:
        return len(self.created) + len(self.updated) + len(self.deleted)

    @property
    def ok(self) -> bool:
        """False when any remote call failed during the pass."""
        return not self.failed
