"""Exceptions raised by the schedule monitor."""

from __future__ import annotations


class ScheduleMonitorError(Exception):
    """Base class for schedule monitor errors."""


class InvalidCronExpression(ScheduleMonitorError, ValueError):
    """Raised when a cron expression or its timezone cannot be parsed."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"Invalid cron expression '{expression}': {reason}")
        self.expression = expression
        self.reason = reason


class LocalStoreError(ScheduleMonitorError):
    """Raised when the local task store cannot be read or written."""


class ScheduleFileError(ScheduleMonitorError):
    """Raised when a schedule file is missing or malformed."""


class MonitorError(ScheduleMonitorError):
    """Base class for failures talking to the remote monitor."""


class RemoteUnavailable(MonitorError):
    """The remote monitor could not be reached (network error or timeout)."""


class RemoteRejected(MonitorError):
    """The remote monitor answered with a non-success status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code
