"""Boundary between the naive wire/storage timestamps and the internal timeline.

Every timestamp handled by the availability engine is a naive local wall-clock
value (``YYYY-MM-DDTHH:MM:SS``). Nothing here attaches, converts or strips a
timezone by arithmetic: values are only re-shaped so they stay orderable
exactly as entered. Internally intervals are integer seconds counted from a
fixed naive epoch on the proleptic Gregorian calendar.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Any

from app.availability.errors import AvailabilityValidationError


NAIVE_FORMAT = "%Y-%m-%dT%H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

_EPOCH = datetime(1970, 1, 1)
_ONE_SECOND = timedelta(seconds=1)
_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_UTC_OFFSET_RE = re.compile(r"[+-]\d{2}:?\d{2}$")


def parse_naive_datetime(value: Any, field_name: str = "datetime") -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            raise AvailabilityValidationError(
                f"Invalid {field_name}: timestamps must not carry a timezone."
            )
        return value.replace(microsecond=0)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if not isinstance(value, str) or not value.strip():
        raise AvailabilityValidationError(f"Missing {field_name}.")

    text = value.strip().replace(" ", "T", 1)
    if text.endswith("Z"):
        text = text[:-1]

    if "T" not in text:
        return datetime.combine(parse_naive_date(text, field_name=field_name), time.min)

    date_part, _, time_part = text.partition("T")
    if _UTC_OFFSET_RE.search(time_part):
        raise AvailabilityValidationError(
            f"Invalid {field_name}: timestamps must not carry a UTC offset."
        )
    time_part = time_part.split(".")[0]
    if time_part.count(":") == 1:
        time_part = f"{time_part}:00"

    try:
        return datetime.strptime(f"{date_part}T{time_part}", NAIVE_FORMAT)
    except ValueError as exc:
        raise AvailabilityValidationError(
            f"Invalid {field_name}: expected YYYY-MM-DDTHH:MM:SS, got {value!r}."
        ) from exc


def parse_naive_date(value: Any, field_name: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_ONLY_RE.match(value.strip()):
        raise AvailabilityValidationError(f"Invalid {field_name}: expected YYYY-MM-DD.")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError as exc:
        raise AvailabilityValidationError(f"Invalid {field_name}: {value!r}.") from exc


def parse_naive_time(value: Any, field_name: str = "time") -> time:
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        raise AvailabilityValidationError(f"Missing {field_name}.")
    text = value.strip()
    if text.count(":") == 1:
        text = f"{text}:00"
    try:
        return datetime.strptime(text, "%H:%M:%S").time()
    except ValueError as exc:
        raise AvailabilityValidationError(
            f"Invalid {field_name}: expected HH:MM or HH:MM:SS."
        ) from exc


def is_date_only(value: Any) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and bool(_DATE_ONLY_RE.match(value.strip()))


def to_seconds(value: datetime) -> int:
    return (value - _EPOCH) // _ONE_SECOND


def from_seconds(seconds: int) -> datetime:
    return _EPOCH + timedelta(seconds=seconds)


def format_naive(value: datetime) -> str:
    return value.strftime(NAIVE_FORMAT)


def format_seconds(seconds: int) -> str:
    return format_naive(from_seconds(seconds))


def local_now() -> datetime:
    return datetime.now().replace(microsecond=0)
