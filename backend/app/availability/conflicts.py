from __future__ import annotations

from typing import Any, Iterable

from app.availability.intervals import OccupancyInterval, OccupancyKind, TimeInterval, overlaps
from app.availability.stores import to_occupancies


def conflicting_occupancies(
    candidate: TimeInterval,
    occupancies: Iterable[OccupancyInterval],
    exclude_booking_ids: Iterable[int] | None = None,
) -> list[OccupancyInterval]:
    excluded = set(exclude_booking_ids or ())
    return [
        occupancy
        for occupancy in occupancies
        if overlaps(candidate, occupancy.interval)
        and not (occupancy.source_kind is OccupancyKind.BOOKING and occupancy.source_id in excluded)
    ]


def find_conflicts(
    uow: Any,
    listing_id: int,
    candidate: TimeInterval,
    exclude_booking_ids: Iterable[int] | None = None,
) -> list[OccupancyInterval]:
    """Active bookings and blocks of ``listing_id`` overlapping ``candidate``.

    An empty list means the candidate is free.
    """
    start_at, end_at = candidate.start_at, candidate.end_at
    occupancies = to_occupancies(
        uow.reservations.load_active(listing_id, start_at, end_at),
        uow.blocks.load(listing_id, start_at, end_at),
    )
    return conflicting_occupancies(candidate, occupancies, exclude_booking_ids)
