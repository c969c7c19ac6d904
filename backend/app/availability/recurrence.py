from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum

from app import config
from app.availability.errors import AvailabilityValidationError
from app.availability.intervals import TimeInterval


class RecurrencePattern(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class RecurrenceRule:
    pattern: str
    bound_end_date: date

    @property
    def known_pattern(self) -> RecurrencePattern | None:
        try:
            return RecurrencePattern((self.pattern or "").strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class DateWindow:
    day: date
    start_time: time
    end_time: time

    @property
    def is_overnight(self) -> bool:
        return self.end_time <= self.start_time

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.day, self.start_time)

    @property
    def end_at(self) -> datetime:
        end_day = self.day + timedelta(days=1) if self.is_overnight else self.day
        return datetime.combine(end_day, self.end_time)

    def to_interval(self) -> TimeInterval:
        return TimeInterval.from_datetimes(self.start_at, self.end_at)


def expand_recurrence(
    start_date: date,
    start_time: time,
    end_time: time,
    rule: RecurrenceRule | None = None,
    max_occurrences: int | None = None,
) -> list[DateWindow]:
    """Expand one recurrence request into concrete dated windows.

    Without a rule, or with a pattern that is not daily/weekly/monthly, the
    request yields the start date only.
    """
    pattern = rule.known_pattern if rule is not None else None
    if pattern is None:
        return [DateWindow(start_date, start_time, end_time)]

    if rule.bound_end_date < start_date:
        raise AvailabilityValidationError("Recurrence end date is before the start date.")

    limit = max_occurrences or config.MAX_RECURRENCE_OCCURRENCES
    windows: list[DateWindow] = []
    for day in _iter_dates(start_date, rule.bound_end_date, pattern):
        windows.append(DateWindow(day, start_time, end_time))
        if len(windows) > limit:
            raise AvailabilityValidationError(
                f"Recurrence expands to more than {limit} dates; narrow the end date."
            )
    return windows


def _iter_dates(start_date: date, bound: date, pattern: RecurrencePattern):
    if pattern is RecurrencePattern.MONTHLY:
        months = 0
        while True:
            year, month = _shift_month(start_date.year, start_date.month, months)
            if (year, month) > (bound.year, bound.month):
                return
            months += 1
            # Months without the start day-of-month (e.g. the 31st) are skipped.
            if start_date.day > calendar.monthrange(year, month)[1]:
                continue
            candidate = date(year, month, start_date.day)
            if candidate > bound:
                return
            yield candidate

    step = timedelta(days=7 if pattern is RecurrencePattern.WEEKLY else 1)
    cursor = start_date
    while cursor <= bound:
        yield cursor
        cursor += step


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = month - 1 + offset
    return year + index // 12, index % 12 + 1
