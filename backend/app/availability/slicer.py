from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import replace
from typing import Iterable

from app.availability.errors import AvailabilityValidationError
from app.availability.intervals import (
    GRANULAR_UNIT_TYPES,
    BookableSlot,
    BookingUnitType,
    SlotKind,
    TimeInterval,
)


SECONDS_PER_HOUR = 3600


def slice_free_intervals(
    free_slots: Iterable[BookableSlot],
    duration_minutes: int,
    booking_unit_type: BookingUnitType,
) -> list[BookableSlot]:
    """Cut free intervals into bookable units.

    Daily and night listings keep each free interval whole. Hourly and
    appointment listings get greedy left-aligned chunks of exactly
    ``duration_minutes``; a trailing remainder survives as one ``partial``
    slot only when it is at least half a unit long.
    """
    if booking_unit_type not in GRANULAR_UNIT_TYPES:
        return [
            replace(slot, duration_hours=math.ceil(slot.interval.length / SECONDS_PER_HOUR))
            for slot in free_slots
        ]

    if duration_minutes is None or duration_minutes <= 0:
        raise AvailabilityValidationError("Slot duration must be a positive number of minutes.")

    unit = duration_minutes * 60
    next_segment: dict[int | None, int] = defaultdict(int)
    sliced: list[BookableSlot] = []

    for slot in free_slots:
        if slot.interval.length < unit:
            continue

        window_id = slot.ref.source_window_id
        cursor = slot.interval.start
        while cursor + unit <= slot.interval.end:
            sliced.append(
                replace(
                    slot.with_segment(
                        TimeInterval(cursor, cursor + unit),
                        next_segment[window_id],
                        SlotKind.DURATION,
                    ),
                    duration_hours=duration_minutes / 60,
                )
            )
            next_segment[window_id] += 1
            cursor += unit

        remainder = slot.interval.end - cursor
        if remainder > 0 and remainder * 2 >= unit:
            sliced.append(
                replace(
                    slot.with_segment(
                        TimeInterval(cursor, slot.interval.end),
                        next_segment[window_id],
                        SlotKind.PARTIAL,
                    ),
                    duration_hours=remainder / SECONDS_PER_HOUR,
                )
            )
            next_segment[window_id] += 1

    return sliced
