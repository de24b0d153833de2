"""
Weekly availability of a doctor.

A window is a weekday range plus a time-of-day range. The weekday range may
wrap across the week (Friday to Monday); the time range never wraps across
midnight. Every day in the range shares the same hours: a doctor with different
hours on Monday and Tuesday cannot be described by this model.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from .errors import InvalidAvailability

SUNDAY = 0
SATURDAY = 6


def week_day_of(moment: datetime | date) -> int:
    """Weekday number with Sunday = 0 ... Saturday = 6."""
    return moment.isoweekday() % 7


@dataclass(frozen=True)
class Interval:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("Interval end must be after its start")

    @classmethod
    def starting_at(cls, start: datetime, duration: timedelta) -> "Interval":
        return cls(start, start + duration)

    def overlaps(self, other: "Interval") -> bool:
        # [a,b) and [c,d) overlap iff a < d and c < b
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class Availability:
    from_week_day: int
    to_week_day: int
    from_time: time
    to_time: time

    def __post_init__(self) -> None:
        for week_day in (self.from_week_day, self.to_week_day):
            if not SUNDAY <= week_day <= SATURDAY:
                raise InvalidAvailability(f"Weekday {week_day} is outside 0-6 (Sunday=0)")
        if self.from_time >= self.to_time:
            raise InvalidAvailability(
                f"Availability must start before it ends ({self.from_time:%H:%M} >= {self.to_time:%H:%M})"
            )

    def contains_week_day(self, week_day: int) -> bool:
        if self.from_week_day <= self.to_week_day:
            return self.from_week_day <= week_day <= self.to_week_day
        # wraps across the week, e.g. Fri(5)..Mon(1)
        return week_day >= self.from_week_day or week_day <= self.to_week_day

    def slots(self, day: date, duration: timedelta) -> list[datetime]:
        """Start of every back-to-back slot of `duration` that fits the window on `day`."""
        if not self.contains_week_day(week_day_of(day)):
            return []

        start = datetime.combine(day, self.from_time)
        closing = datetime.combine(day, self.to_time)
        result = []
        while start + duration <= closing:
            result.append(start)
            start += duration
        return result


def fits(availability: Availability, candidate: Interval) -> bool:
    """True when the whole candidate interval falls inside the availability window."""
    if not availability.contains_week_day(week_day_of(candidate.start)):
        return False

    day = candidate.start.date()
    opening = datetime.combine(day, availability.from_time)
    closing = datetime.combine(day, availability.to_time)
    return opening <= candidate.start and candidate.end <= closing
