from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import config
from app.availability.errors import AvailabilityError, TransactionError
from app.availability.intervals import (
    ACTIVE_BOOKING_STATUSES,
    OccupancyInterval,
    OccupancyKind,
    TimeInterval,
    WindowSpec,
    parse_unit_type,
)
from app.db.models import AvailabilityWindow, BlockedRange, Booking, Listing

logger = logging.getLogger("slotengine.availability.stores")


class AvailabilityWindowStore:
    def __init__(self, db: Session):
        self.db = db

    def load(
        self,
        listing_id: int,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
        only_available: bool = False,
    ) -> list[AvailabilityWindow]:
        query = self.db.query(AvailabilityWindow).filter(AvailabilityWindow.listing_id == listing_id)
        if range_start is not None:
            query = query.filter(AvailabilityWindow.end_at > range_start)
        if range_end is not None:
            query = query.filter(AvailabilityWindow.start_at < range_end)
        if only_available:
            query = query.filter(AvailabilityWindow.is_available.is_(True))
        return query.order_by(AvailabilityWindow.start_at, AvailabilityWindow.id).all()

    def load_all(self, listing_id: int) -> list[AvailabilityWindow]:
        return self.load(listing_id, only_available=True)

    def find_exact(
        self, listing_id: int, start_at: datetime, end_at: datetime
    ) -> AvailabilityWindow | None:
        return (
            self.db.query(AvailabilityWindow)
            .filter(AvailabilityWindow.listing_id == listing_id)
            .filter(AvailabilityWindow.start_at == start_at)
            .filter(AvailabilityWindow.end_at == end_at)
            .order_by(AvailabilityWindow.id)
            .first()
        )

    def get(self, window_id: int) -> AvailabilityWindow | None:
        return self.db.get(AvailabilityWindow, window_id)

    def insert(self, window: AvailabilityWindow) -> AvailabilityWindow:
        self.db.add(window)
        self.db.flush()
        return window

    def update(self, window_id: int, fields: dict[str, Any]) -> AvailabilityWindow | None:
        window = self.get(window_id)
        if window is None:
            return None
        for name, value in fields.items():
            setattr(window, name, value)
        self.db.flush()
        return window

    def delete(self, window_id: int) -> None:
        window = self.get(window_id)
        if window is not None:
            self.db.delete(window)
            self.db.flush()


class ReservationRepository:
    def __init__(self, db: Session):
        self.db = db

    def load_active(
        self,
        listing_id: int,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
    ) -> list[Booking]:
        query = (
            self.db.query(Booking)
            .filter(Booking.listing_id == listing_id)
            .filter(Booking.status.in_(sorted(ACTIVE_BOOKING_STATUSES)))
        )
        if range_start is not None:
            query = query.filter(Booking.end_at > range_start)
        if range_end is not None:
            query = query.filter(Booking.start_at < range_end)
        return query.order_by(Booking.start_at, Booking.id).all()


class BlockRepository:
    def __init__(self, db: Session):
        self.db = db

    def load(
        self,
        listing_id: int,
        range_start: datetime | None = None,
        range_end: datetime | None = None,
    ) -> list[BlockedRange]:
        query = self.db.query(BlockedRange).filter(BlockedRange.listing_id == listing_id)
        if range_start is not None:
            query = query.filter(BlockedRange.end_at > range_start)
        if range_end is not None:
            query = query.filter(BlockedRange.start_at < range_end)
        return query.order_by(BlockedRange.start_at, BlockedRange.id).all()

    def get(self, block_id: int) -> BlockedRange | None:
        return self.db.get(BlockedRange, block_id)

    def insert(self, block: BlockedRange) -> BlockedRange:
        self.db.add(block)
        self.db.flush()
        return block

    def delete(self, block_id: int) -> None:
        block = self.get(block_id)
        if block is not None:
            self.db.delete(block)
            self.db.flush()


class ListingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, listing_id: int) -> Listing | None:
        return self.db.get(Listing, listing_id)

    def lock(self, listing_id: int) -> Listing | None:
        # Row lock on the listing serializes check-then-write sequences per listing.
        return (
            self.db.query(Listing)
            .filter(Listing.id == listing_id)
            .with_for_update()
            .first()
        )

    def siblings(self, listing: Listing) -> list[Listing]:
        if listing.operator_id is None:
            return []
        return (
            self.db.query(Listing)
            .filter(Listing.operator_id == listing.operator_id)
            .filter(Listing.id != listing.id)
            .order_by(Listing.id)
            .all()
        )


class AvailabilityUnitOfWork:
    """Bundles the stores that share one session and its transaction."""

    def __init__(self, db: Session):
        self.db = db
        self.windows = AvailabilityWindowStore(db)
        self.reservations = ReservationRepository(db)
        self.blocks = BlockRepository(db)
        self.listings = ListingRepository(db)

    @contextmanager
    def transaction(self) -> Iterator["AvailabilityUnitOfWork"]:
        try:
            yield self
            self.db.commit()
        except AvailabilityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Availability transaction failed; rolled back.")
            raise TransactionError("Temporary storage issue; no changes were saved.") from exc
        except Exception:
            self.db.rollback()
            raise


def window_spec(window: Any, listing: Any) -> WindowSpec:
    unit_type = parse_unit_type(
        getattr(window, "booking_unit_type", None),
        default=parse_unit_type(getattr(listing, "booking_unit_type", None)),
    )
    duration = (
        getattr(window, "slot_duration_minutes", None)
        or getattr(listing, "slot_duration_minutes", None)
        or config.DEFAULT_SLOT_DURATION_MINUTES
    )
    return WindowSpec(
        window_id=window.id,
        listing_id=window.listing_id,
        interval=TimeInterval.from_datetimes(window.start_at, window.end_at),
        booking_unit_type=unit_type,
        slot_duration_minutes=int(duration),
        price_override=getattr(window, "price_override", None),
    )


def to_occupancies(bookings: Iterable[Any], blocks: Iterable[Any]) -> list[OccupancyInterval]:
    occupancies: list[OccupancyInterval] = []
    for booking in bookings:
        if str(getattr(booking, "status", "") or "").lower() not in ACTIVE_BOOKING_STATUSES:
            continue
        occupancy = _to_occupancy(OccupancyKind.BOOKING, booking, status=booking.status)
        if occupancy is not None:
            occupancies.append(occupancy)
    for block in blocks:
        occupancy = _to_occupancy(OccupancyKind.BLOCK, block)
        if occupancy is not None:
            occupancies.append(occupancy)
    return occupancies


def _to_occupancy(kind: OccupancyKind, row: Any, status: str | None = None) -> OccupancyInterval | None:
    try:
        interval = TimeInterval.from_datetimes(row.start_at, row.end_at)
    except (TypeError, ValueError):
        logger.warning(
            "Skipping malformed %s id=%s start=%s end=%s",
            kind.value,
            getattr(row, "id", None),
            getattr(row, "start_at", None),
            getattr(row, "end_at", None),
        )
        return None
    return OccupancyInterval(
        source_kind=kind,
        source_id=getattr(row, "id", None),
        interval=interval,
        status=status,
    )
