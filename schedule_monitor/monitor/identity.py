"""Task identity: the stable name a declared task is monitored under."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from schedule_monitor.monitor.cron import CronExpression
from schedule_monitor.monitor.errors import InvalidCronExpression
from schedule_monitor.monitor.models import TaskDescriptor, TaskType

if TYPE_CHECKING:
    from schedule_monitor.schedule import TaskDeclaration

logger = logging.getLogger(__name__)


def _job_name(job: Any) -> str:
    if isinstance(job, str):
        return job.strip()
    cls = job if isinstance(job, type) else type(job)
    return f"{cls.__module__}.{cls.__qualname__}"


def resolve_name(declaration: TaskDeclaration) -> str | None:
    """Return the name a task is monitored under, or None to leave it unmonitored.

    An explicit ``monitor_name`` always wins.  Commands and shell commands are
    named after their command line, jobs after their class.  Anonymous
    callables get no name: hashing their code would give them a new identity
    on every deploy.
    """
    if declaration.monitor_name and declaration.monitor_name.strip():
        return declaration.monitor_name

    kind = TaskType(declaration.kind)
    if kind in (TaskType.COMMAND, TaskType.SHELL):
        name = str(declaration.action or "").strip()
    elif kind is TaskType.JOB:
        name = _job_name(declaration.action) if declaration.action else ""
    else:
        return None
    return name or None


def build_descriptors(
    declarations: Iterable[TaskDeclaration],
    default_grace_time_in_minutes: int = 5,
) -> list[TaskDescriptor]:
    """Turn declarations into descriptors, in declaration order.

    Tasks without a resolvable name are left out silently.  Tasks with an
    invalid cron expression or timezone are left out with a warning.
    """
    descriptors: list[TaskDescriptor] = []
    for declaration in declarations:
        name = resolve_name(declaration)
        if name is None:
            logger.debug("Not monitoring unnamed %s task", declaration.kind)
            continue

        try:
            cron = CronExpression.parse(declaration.cron, declaration.timezone or "UTC")
        except InvalidCronExpression as exc:
            logger.warning("Skipping task '%s': %s", name, exc)
            continue

        grace = declaration.grace_time_in_minutes
        if grace is not None and grace < 0:
            logger.warning("Skipping task '%s': negative grace time %d", name, grace)
            continue
        descriptors.append(
            TaskDescriptor(
                name=name,
                kind=TaskType(declaration.kind),
                cron=cron,
                grace_time_in_minutes=default_grace_time_in_minutes if grace is None else grace,
                monitored=declaration.monitor,
            )
        )
    return descriptors
