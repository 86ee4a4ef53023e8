"""
Recurrence patterns for the job scheduler.

Only three shapes exist: hourly, daily at an hour, weekly on a day at an
hour. Anything else is rejected instead of being approximated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from enum import IntEnum
from typing import Union

from helpdesk.v1.core.exceptions import InvalidRecurrencePatternError


class Weekday(IntEnum):
    """Day of week, numbered like cron (Sunday is 0)."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, moment: datetime) -> Weekday:
        # datetime.weekday() counts from Monday
        return cls((moment.weekday() + 1) % 7)


def _validate_hour(hour: int) -> None:
    if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
        raise InvalidRecurrencePatternError(f"Hour must be between 0 and 23, got: {hour!r}")


def _localize(now: datetime, tz: tzinfo | None) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(tz or UTC)


def _at_hour(local: datetime, hour: int) -> datetime:
    """Wall-clock ``hour:00`` on the day of ``local``, in its time zone."""
    return datetime(local.year, local.month, local.day, hour, tzinfo=local.tzinfo)


@dataclass(frozen=True)
class Hourly:
    """Every hour at minute 0."""

    def next_run(self, now: datetime, tz: tzinfo | None = None) -> datetime:
        local = _localize(now, tz)
        # Step back to the local top of the hour in absolute time so DST
        # transitions can neither skip nor repeat an hour.
        top = local.astimezone(UTC) - timedelta(
            minutes=local.minute, seconds=local.second, microseconds=local.microsecond
        )
        return top + timedelta(hours=1)

    def describe(self) -> str:
        return "hourly"


@dataclass(frozen=True)
class DailyAt:
    """Every day at ``hour``:00."""

    hour: int

    def __post_init__(self) -> None:
        _validate_hour(self.hour)

    def next_run(self, now: datetime, tz: tzinfo | None = None) -> datetime:
        local = _localize(now, tz)
        candidate = _at_hour(local, self.hour)
        if candidate <= local:
            candidate = _at_hour(local + timedelta(days=1), self.hour)
        return candidate.astimezone(UTC)

    def describe(self) -> str:
        return f"daily at {self.hour:02d}:00"


@dataclass(frozen=True)
class WeeklyAt:
    """Every week on ``day`` at ``hour``:00."""

    day: Weekday
    hour: int

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "day", Weekday(self.day))
        except ValueError:
            raise InvalidRecurrencePatternError(
                f"Day must be between 0 (Sunday) and 6 (Saturday), got: {self.day!r}"
            ) from None
        _validate_hour(self.hour)

    def next_run(self, now: datetime, tz: tzinfo | None = None) -> datetime:
        local = _localize(now, tz)
        days_ahead = (self.day - Weekday.of(local)) % 7
        candidate = _at_hour(local + timedelta(days=days_ahead), self.hour)
        if candidate <= local:
            candidate = _at_hour(local + timedelta(days=days_ahead + 7), self.hour)
        return candidate.astimezone(UTC)

    def describe(self) -> str:
        return f"weekly on {self.day.name.title()} at {self.hour:02d}:00"


RecurrencePattern = Union[Hourly, DailyAt, WeeklyAt]

RECURRENCE_TYPES = (Hourly, DailyAt, WeeklyAt)


def ensure_pattern(pattern: object) -> RecurrencePattern:
    """Reject anything that is not one of the supported recurrence shapes."""
    if not isinstance(pattern, RECURRENCE_TYPES):
        raise InvalidRecurrencePatternError(
            f"Unsupported recurrence pattern: {pattern!r}. "
            "Use Hourly(), DailyAt(hour) or WeeklyAt(day, hour)."
        )
    return pattern


_CRON_RE = re.compile(r"^0 (\*|\d{1,2}) \* \* (\*|\d)$")


def parse_cron(expression: str) -> RecurrencePattern:
    """
    Parse the cron subset used for configured schedules.

    Accepted shapes: ``0 * * * *`` (hourly), ``0 H * * *`` (daily at H),
    ``0 H * * D`` (weekly on D at H, Sunday is 0).
    """
    match = _CRON_RE.match(expression.strip())
    if not match:
        raise InvalidRecurrencePatternError(f"Unsupported cron pattern: {expression!r}")

    hour, day = match.groups()
    if hour == "*":
        if day != "*":
            raise InvalidRecurrencePatternError(
                f"Unsupported cron pattern: {expression!r}"
            )
        return Hourly()
    if day == "*":
        return DailyAt(int(hour))
    return WeeklyAt(int(day), int(hour))
