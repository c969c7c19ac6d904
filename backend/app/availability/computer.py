from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from app.availability import timeline
from app.availability.errors import AvailabilityValidationError, NotFoundError
from app.availability.intervals import BookableSlot
from app.availability.slicer import slice_free_intervals
from app.availability.stores import to_occupancies, window_spec
from app.availability.subtractor import subtract_occupancies

logger = logging.getLogger("slotengine.availability.computer")


def parse_query_range(range_start: Any, range_end: Any) -> tuple[datetime, datetime]:
    start_at = timeline.parse_naive_datetime(range_start, field_name="start")
    end_at = timeline.parse_naive_datetime(range_end, field_name="end")
    if timeline.is_date_only(range_end):
        end_at += timedelta(days=1)
    if end_at <= start_at:
        raise AvailabilityValidationError("Invalid range: end must be after start.")
    return start_at, end_at


def compute_available_slots(
    uow: Any,
    listing_id: int,
    range_start: Any,
    range_end: Any,
    now: datetime | None = None,
) -> list[BookableSlot]:
    """Bookable slots of every available window overlapping the range.

    Slots are not clipped to the range: a window that starts before the range
    still yields its own segments. Results are ordered by start, end and
    source window.
    """
    start_at, end_at = parse_query_range(range_start, range_end)

    listing = uow.listings.get(listing_id)
    if listing is None:
        raise NotFoundError("Listing not found.", error_code="LISTING_NOT_FOUND")

    windows = uow.windows.load(listing_id, start_at, end_at, only_available=True)
    if not windows:
        return []

    # Occupancies are loaded over the windows' full span, which may exceed the query range.
    span_start = min(window.start_at for window in windows)
    span_end = max(window.end_at for window in windows)
    occupancies = to_occupancies(
        uow.reservations.load_active(listing_id, span_start, span_end),
        uow.blocks.load(listing_id, span_start, span_end),
    )

    slots: list[BookableSlot] = []
    for window in windows:
        try:
            spec = window_spec(window, listing)
        except ValueError:
            logger.warning("Skipping malformed availability window id=%s", getattr(window, "id", None))
            continue
        free = subtract_occupancies(spec, occupancies)
        slots.extend(slice_free_intervals(free, spec.slot_duration_minutes, spec.booking_unit_type))

    slots = filter_advance_window(slots, listing, now or timeline.local_now())
    slots.sort(
        key=lambda slot: (
            slot.start,
            slot.end,
            slot.ref.source_window_id or 0,
            slot.ref.segment_index,
        )
    )
    return slots


def filter_advance_window(slots: list[BookableSlot], listing: Any, now: datetime) -> list[BookableSlot]:
    min_hours = getattr(listing, "min_advance_booking_hours", None)
    max_days = getattr(listing, "max_advance_booking_days", None)
    earliest = now + timedelta(hours=min_hours) if min_hours else None
    latest = now + timedelta(days=max_days) if max_days else None
    if earliest is None and latest is None:
        return slots

    kept = []
    for slot in slots:
        slot_start = slot.interval.start_at
        if earliest is not None and slot_start < earliest:
            continue
        if latest is not None and slot_start > latest:
            continue
        kept.append(slot)
    return kept
