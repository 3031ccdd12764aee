"""Monitoring core: cron model, identity, persistence, reconciliation and pings."""

from schedule_monitor.monitor.client import MonitorClient, build_ping_url
from schedule_monitor.monitor.correlator import PingCorrelator
from schedule_monitor.monitor.cron import CronExpression
from schedule_monitor.monitor.errors import (
    InvalidCronExpression,
    LocalStoreError,
    MonitorError,
    RemoteRejected,
    RemoteUnavailable,
    ScheduleFileError,
    ScheduleMonitorError,
)
from schedule_monitor.monitor.identity import build_descriptors, resolve_name
from schedule_monitor.monitor.models import (
    MonitoredTask,
    ReconciliationResult,
    RemoteCheck,
    TaskDescriptor,
    TaskLogItem,
    TaskType,
)
from schedule_monitor.monitor.reconciler import Reconciler, plan_reconciliation, sync_schedule
from schedule_monitor.monitor.store import MonitoredTaskStore

__all__ = [
    "CronExpression",
    "InvalidCronExpression",
    "LocalStoreError",
    "MonitorClient",
    "MonitorError",
    "MonitoredTask",
    "MonitoredTaskStore",
    "PingCorrelator",
    "Reconciler",
    "ReconciliationResult",
    "RemoteCheck",
    "RemoteRejected",
    "RemoteUnavailable",
    "ScheduleFileError",
    "ScheduleMonitorError",
    "TaskDescriptor",
    "TaskLogItem",
    "TaskType",
    "build_descriptors",
    "build_ping_url",
    "plan_reconciliation",
    "resolve_name",
    "sync_schedule",
]
