from __future__ import annotations

from typing import Iterable

from app.availability.intervals import (
    BookableSlot,
    OccupancyInterval,
    SlotKind,
    SlotRef,
    TimeInterval,
    WindowSpec,
    overlaps,
)


def subtract_occupancies(
    window: WindowSpec,
    occupancies: Iterable[OccupancyInterval],
) -> list[BookableSlot]:
    """Return the free remainder of ``window`` after removing ``occupancies``.

    The sweep advances ``pointer`` with ``max(pointer, occupancy.end)``, so
    overlapping or nested occupancies never open a spurious gap and need no
    merging beforehand.
    """
    relevant = sorted(
        (occ for occ in occupancies if overlaps(occ.interval, window.interval)),
        key=lambda occ: (occ.start, occ.end),
    )

    if not relevant:
        if window.interval.is_empty:
            return []
        return [_build_slot(window, window.interval, 0, SlotKind.FULL)]

    pieces: list[TimeInterval] = []
    pointer = window.interval.start
    for occupancy in relevant:
        if pointer < occupancy.start:
            pieces.append(TimeInterval(pointer, occupancy.start))
        pointer = max(pointer, occupancy.end)

    if pointer < window.interval.end:
        pieces.append(TimeInterval(pointer, window.interval.end))

    return [
        _build_slot(window, piece, index, SlotKind.SPLIT)
        for index, piece in enumerate(piece for piece in pieces if not piece.is_empty)
    ]


def _build_slot(
    window: WindowSpec,
    interval: TimeInterval,
    segment_index: int,
    kind: SlotKind,
) -> BookableSlot:
    return BookableSlot(
        ref=SlotRef(window.window_id, segment_index, kind),
        listing_id=window.listing_id,
        interval=interval,
        booking_unit_type=window.booking_unit_type,
        slot_duration_minutes=window.slot_duration_minutes,
        price_override=window.price_override,
    )
