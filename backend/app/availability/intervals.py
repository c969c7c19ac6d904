from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from app.availability import timeline


ACTIVE_BOOKING_STATUSES = frozenset({"pending", "confirmed", "completed"})


class BookingUnitType(str, Enum):
    DAILY = "daily"
    NIGHT = "night"
    HOURLY = "hourly"
    APPOINTMENT = "appointment"


GRANULAR_UNIT_TYPES = frozenset({BookingUnitType.HOURLY, BookingUnitType.APPOINTMENT})


class SlotKind(str, Enum):
    FULL = "full"
    SPLIT = "split"
    DURATION = "duration"
    PARTIAL = "partial"


class OccupancyKind(str, Enum):
    BOOKING = "booking"
    BLOCK = "block"


@dataclass(frozen=True, order=True)
class TimeInterval:
    """Half-open ``[start, end)`` span in timeline seconds."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Interval end {self.end} precedes start {self.start}")

    @classmethod
    def from_datetimes(cls, start: datetime, end: datetime) -> "TimeInterval":
        return cls(timeline.to_seconds(start), timeline.to_seconds(end))

    @property
    def start_at(self) -> datetime:
        return timeline.from_seconds(self.start)

    @property
    def end_at(self) -> datetime:
        return timeline.from_seconds(self.end)

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def overlaps(self, other: "TimeInterval") -> bool:
        return overlaps(self, other)

    def contains(self, other: "TimeInterval") -> bool:
        return self.start <= other.start and other.end <= self.end


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    # Strict half-open test: touching endpoints never overlap.
    return a.start < b.end and b.start < a.end


@dataclass(frozen=True)
class OccupancyInterval:
    source_kind: OccupancyKind
    source_id: int | None
    interval: TimeInterval
    status: str | None = None

    @property
    def start(self) -> int:
        return self.interval.start

    @property
    def end(self) -> int:
        return self.interval.end

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_kind": self.source_kind.value,
            "source_id": self.source_id,
            "start": timeline.format_seconds(self.interval.start),
            "end": timeline.format_seconds(self.interval.end),
            "status": self.status,
        }


@dataclass(frozen=True)
class SlotRef:
    source_window_id: int | None
    segment_index: int
    kind: SlotKind

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_window_id": self.source_window_id,
            "segment_index": self.segment_index,
            "kind": self.kind.value,
        }


@dataclass(frozen=True)
class WindowSpec:
    """The parts of a stored availability window the slot algorithms read."""

    window_id: int | None
    listing_id: int
    interval: TimeInterval
    booking_unit_type: BookingUnitType
    slot_duration_minutes: int
    price_override: Decimal | None = None


@dataclass(frozen=True)
class BookableSlot:
    ref: SlotRef
    listing_id: int
    interval: TimeInterval
    booking_unit_type: BookingUnitType
    slot_duration_minutes: int
    price_override: Decimal | None = None
    duration_hours: float | None = field(default=None, compare=False)

    @property
    def kind(self) -> SlotKind:
        return self.ref.kind

    @property
    def start(self) -> int:
        return self.interval.start

    @property
    def end(self) -> int:
        return self.interval.end

    def with_segment(self, interval: TimeInterval, segment_index: int, kind: SlotKind) -> "BookableSlot":
        return replace(
            self,
            interval=interval,
            ref=SlotRef(self.ref.source_window_id, segment_index, kind),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ref": self.ref.to_dict(),
            "listing_id": self.listing_id,
            "start": timeline.format_seconds(self.interval.start),
            "end": timeline.format_seconds(self.interval.end),
            "kind": self.kind.value,
            "booking_unit_type": self.booking_unit_type.value,
            "slot_duration_minutes": self.slot_duration_minutes,
            "duration_hours": self.duration_hours,
            "price_override": str(self.price_override) if self.price_override is not None else None,
        }


_UNIT_TYPE_ALIASES = {"hour": "hourly", "day": "daily"}


def parse_unit_type(value: Any, default: BookingUnitType = BookingUnitType.DAILY) -> BookingUnitType:
    if isinstance(value, BookingUnitType):
        return value
    text = (str(value) if value is not None else "").strip().lower()
    if not text:
        return default
    return BookingUnitType(_UNIT_TYPE_ALIASES.get(text, text))
