"""Task declarations: the schedule as seen by the monitor.

A host scheduler declares its tasks as a flat list of immutable
:class:`TaskDeclaration` values, either in code through :class:`Schedule`::

    schedule = Schedule()
    schedule.command("reports:send", cron=HOURLY)
    schedule.call(cleanup, cron=DAILY, monitor_name="cleanup")
    schedule.job(SendInvoices, cron="0 9 * * 1-5", timezone="Europe/Brussels")

or in a YAML file loaded with :func:`load_schedule`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from schedule_monitor.config import settings
from schedule_monitor.monitor.cron import EVERY_MINUTE, resolve_frequency
from schedule_monitor.monitor.errors import ScheduleFileError
from schedule_monitor.monitor.models import TaskType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskDeclaration:
    """One declared scheduled task.

    Attributes:
        kind: What the task runs.
        action: Command string (command / shell), job class, instance or
            dotted class path (job), or a callable (closure).
        cron: Cron expression or preset name (see ``FREQUENCIES``).
        timezone: IANA timezone. None means the schedule default.
        monitor_name: Explicit name used for monitoring.
        grace_time_in_minutes: Override of the configured default.
        monitor: False opts the task out of monitoring.
    """

    kind: TaskType
    action: Any
    cron: str = EVERY_MINUTE
    timezone: str | None = None
    monitor_name: str | None = None
    grace_time_in_minutes: int | None = None
    monitor: bool = True


class Schedule:
    """Collects task declarations for one reconciliation pass.

    Args:
        timezone: Default timezone for declarations that set none
            (default from settings).
    """

    def __init__(self, timezone: str | None = None) -> None:
        self.timezone = timezone or settings.scheduler_timezone
        self._tasks: list[TaskDeclaration] = []

    def add(self, declaration: TaskDeclaration) -> TaskDeclaration:
        if declaration.timezone is None:
            declaration = replace(declaration, timezone=self.timezone)
        self._tasks.append(declaration)
        return declaration

    def command(self, command: str, cron: str = EVERY_MINUTE, **options: Any) -> TaskDeclaration:
        """Declare a console command."""
        return self._declare(TaskType.COMMAND, command, cron, options)

    def exec(self, command: str, cron: str = EVERY_MINUTE, **options: Any) -> TaskDeclaration:
        """Declare a shell command."""
        return self._declare(TaskType.SHELL, command, cron, options)

    def call(
        self, callback: Callable[..., Any], cron: str = EVERY_MINUTE, **options: Any
    ) -> TaskDeclaration:
        """Declare an in-process callable. Only monitored when given a ``monitor_name``."""
        return self._declare(TaskType.CLOSURE, callback, cron, options)

    def job(self, job: Any, cron: str = EVERY_MINUTE, **options: Any) -> TaskDeclaration:
        """Declare a queued job (class, instance or dotted class path)."""
        return self._declare(TaskType.JOB, job, cron, options)

    def tasks(self) -> list[TaskDeclaration]:
        """All declarations, in declaration order."""
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def _declare(
        self, kind: TaskType, action: Any, cron: str, options: dict[str, Any]
    ) -> TaskDeclaration:
        declaration = TaskDeclaration(
            kind=kind, action=action, cron=resolve_frequency(cron), **options
        )
        return self.add(declaration)


# -- YAML schedule files -------------------------------------------------------


class ScheduleEntry(BaseModel):
    """One task in a YAML schedule file."""

    command: str | None = None
    exec: str | None = None
    job: str | None = None
    cron: str = Field(default=EVERY_MINUTE, description="Cron expression or preset name")
    timezone: str | None = None
    monitor_name: str | None = None
    grace_time_in_minutes: int | None = Field(default=None, ge=0)
    monitor: bool = True

    @model_validator(mode="after")
    def _one_action(self) -> ScheduleEntry:
        given = [key for key in ("command", "exec", "job") if getattr(self, key)]
        if len(given) != 1:
            msg = "each task needs exactly one of 'command', 'exec' or 'job'"
            raise ValueError(msg)
        return self

    def to_declaration(self) -> TaskDeclaration:
        if self.command:
            kind, action = TaskType.COMMAND, self.command
        elif self.exec:
            kind, action = TaskType.SHELL, self.exec
        else:
            kind, action = TaskType.JOB, self.job
        return TaskDeclaration(
            kind=kind,
            action=action,
            cron=resolve_frequency(self.cron),
            timezone=self.timezone,
            monitor_name=self.monitor_name,
            grace_time_in_minutes=self.grace_time_in_minutes,
            monitor=self.monitor,
        )


class ScheduleFile(BaseModel):
    timezone: str | None = None
    tasks: list[ScheduleEntry] = Field(default_factory=list)


def load_schedule(path: Path, timezone: str | None = None) -> Schedule:
    """Read a YAML schedule file into a :class:`Schedule`.

    Raises:
        ScheduleFileError: If the file is missing, not YAML, or has invalid entries.
    """
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Cannot read schedule file {path}: {exc}"
        raise ScheduleFileError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"Schedule file {path} is not valid YAML: {exc}"
        raise ScheduleFileError(msg) from exc

    try:
        parsed = ScheduleFile.model_validate(raw or {})
    except ValidationError as exc:
        msg = f"Schedule file {path} is invalid: {exc}"
        raise ScheduleFileError(msg) from exc

    schedule = Schedule(timezone=timezone or parsed.timezone)
    for entry in parsed.tasks:
        schedule.add(entry.to_declaration())
    logger.info("Loaded %d task(s) from %s", len(schedule), path)
    return schedule
