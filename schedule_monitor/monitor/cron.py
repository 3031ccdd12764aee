"""CronExpression: a cron string bound to a timezone."""

from __future__ import annotations

import zoneinfo
from dataclasses import dataclass, field
from datetime import UTC, datetime

from apscheduler.triggers.cron import CronTrigger

from schedule_monitor.monitor.errors import InvalidCronExpression

EVERY_MINUTE = "* * * * *"
EVERY_FIVE_MINUTES = "*/5 * * * *"
EVERY_TEN_MINUTES = "*/10 * * * *"
EVERY_FIFTEEN_MINUTES = "*/15 * * * *"
EVERY_THIRTY_MINUTES = "0,30 * * * *"
HOURLY = "0 * * * *"
DAILY = "0 0 * * *"
WEEKLY = "0 0 * * 0"
MONTHLY = "0 0 1 * *"
YEARLY = "0 0 1 1 *"

# Preset names accepted wherever a cron expression is expected.
FREQUENCIES: dict[str, str] = {
    "every_minute": EVERY_MINUTE,
    "every_five_minutes": EVERY_FIVE_MINUTES,
    "every_ten_minutes": EVERY_TEN_MINUTES,
    "every_fifteen_minutes": EVERY_FIFTEEN_MINUTES,
    "every_thirty_minutes": EVERY_THIRTY_MINUTES,
    "hourly": HOURLY,
    "daily": DAILY,
    "weekly": WEEKLY,
    "monthly": MONTHLY,
    "yearly": YEARLY,
}

_MACROS: dict[str, str] = {
    "@yearly": YEARLY,
    "@annually": YEARLY,
    "@monthly": MONTHLY,
    "@weekly": WEEKLY,
    "@daily": DAILY,
    "@midnight": DAILY,
    "@hourly": HOURLY,
}


# Cron counts weekdays from Sunday (0 or 7); APScheduler counts from Monday.
_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def resolve_frequency(value: str) -> str:
    """Return the cron expression for a preset name, or *value* unchanged."""
    return FREQUENCIES.get(value.strip().lower(), value)


def _weekday_field(value: str) -> str:
    """Rewrite numeric cron weekdays as names APScheduler reads the same way."""
    parts = []
    for part in value.split(","):
        if "/" in part:
            parts.append(part)
            continue
        start, _, end = part.partition("-")
        if not start.isdigit() or (end and not end.isdigit()):
            parts.append(part)
            continue
        first = int(start)
        if first > 7 or (end and int(end) > 7):
            parts.append(part)
            continue
        if not end:
            parts.append(_WEEKDAYS[first % 7])
            continue
        last = int(end)
        if first > last:
            parts.append(part)
            continue
        # Sunday sits at both ends of cron's range but only at the end of APScheduler's
        if first == 0:
            parts.append("sun")
            first = 1
        if last == 7:
            parts.append("sun")
            last = 6
        if first <= last:
            parts.append(f"{_WEEKDAYS[first]}-{_WEEKDAYS[last]}")
    return ",".join(parts)


@dataclass(frozen=True)
class CronExpression:
    """A validated cron expression evaluated in an IANA timezone.

    Six-field expressions carry a leading seconds field.  It is validated and
    kept in :attr:`seconds`, but the canonical form used for storage and
    comparison is always the five minute-resolution fields.

    Attributes:
        expression: The expression as given (whitespace-normalized).
        timezone: IANA timezone name, e.g. ``"Asia/Kolkata"``.
        canonical: Normalized five-field form, e.g. ``"0 0 * * *"``.
        seconds: The seconds field of a six-field expression, else ``None``.
    """

    expression: str
    timezone: str
    canonical: str
    seconds: str | None = None
    _trigger: CronTrigger = field(repr=False, compare=False, default=None)

    @classmethod
    def parse(cls, expression: str, timezone: str = "UTC") -> CronExpression:
        """Parse and validate *expression* in *timezone*.

        Raises:
            InvalidCronExpression: If the expression or timezone is invalid.
        """
        if not isinstance(expression, str) or not expression.strip():
            raise InvalidCronExpression(str(expression), "expression is empty")

        normalized = " ".join(expression.split())
        normalized = _MACROS.get(normalized.lower(), normalized)
        fields = normalized.split(" ")
        if len(fields) not in (5, 6):
            raise InvalidCronExpression(
                expression, f"expected 5 or 6 fields, got {len(fields)}"
            )

        try:
            tz = zoneinfo.ZoneInfo(timezone)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError, TypeError) as exc:
            raise InvalidCronExpression(expression, f"unknown timezone '{timezone}'") from exc

        seconds = fields[0] if len(fields) == 6 else None
        minute, hour, day, month, day_of_week = fields[-5:]
        try:
            trigger = CronTrigger(
                second=seconds or "0",
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=_weekday_field(day_of_week),
                timezone=tz,
            )
        except ValueError as exc:
            raise InvalidCronExpression(expression, str(exc)) from exc

        return cls(
            expression=normalized,
            timezone=timezone,
            canonical=" ".join(fields[-5:]),
            seconds=seconds,
            _trigger=trigger,
        )

    def next_run_at(self, after: datetime | None = None) -> datetime | None:
        """Return the next fire time after *after* (default: now), in the cron's timezone."""
        now = after or datetime.now(UTC)
        return self._trigger.get_next_fire_time(None, now)

    def __str__(self) -> str:
        return self.canonical
