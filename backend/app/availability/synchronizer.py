from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from app import config
from app.availability.conflicts import conflicting_occupancies, find_conflicts
from app.availability.errors import AvailabilityError, NotFoundError
from app.availability.intervals import TimeInterval
from app.availability.stores import to_occupancies
from app.db.models import AvailabilityWindow

logger = logging.getLogger("slotengine.availability.synchronizer")

STATUS_COMMITTED = "committed"
STATUS_COMMITTED_WITH_WARNINGS = "committed_with_warnings"


@dataclass
class PropagationReport:
    propagated: list[dict[str, Any]] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    @property
    def status(self) -> str:
        return STATUS_COMMITTED_WITH_WARNINGS if self.failed else STATUS_COMMITTED

    def extend(self, other: "PropagationReport") -> None:
        self.propagated.extend(other.propagated)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "propagated": list(self.propagated),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
        }


def reconcile(uow: Any, listing_id: int) -> list[int]:
    """Delete every available window overlapping an active booking or block.

    Runs in one transaction under the listing lock. Returns the removed
    window ids; a second run on unchanged data removes nothing.
    """
    with uow.transaction():
        if uow.listings.lock(listing_id) is None:
            raise NotFoundError("Listing not found.", error_code="LISTING_NOT_FOUND")

        occupancies = to_occupancies(
            uow.reservations.load_active(listing_id),
            uow.blocks.load(listing_id),
        )
        if not occupancies:
            return []

        removed: list[int] = []
        for window in uow.windows.load_all(listing_id):
            try:
                interval = TimeInterval.from_datetimes(window.start_at, window.end_at)
            except (TypeError, ValueError):
                logger.warning("Skipping malformed availability window id=%s", window.id)
                continue
            if conflicting_occupancies(interval, occupancies):
                uow.windows.delete(window.id)
                removed.append(window.id)

    if removed:
        logger.info("Reconciled listing_id=%s removed_windows=%s", listing_id, removed)
    return removed


def propagate(uow: Any, listing: Any, window: Any) -> PropagationReport:
    """Copy ``window`` onto every sibling listing that is free at that time.

    Each sibling is written in its own transaction. Conflicting siblings are
    skipped and failures are recorded; nothing here is raised or retried.
    """
    report = PropagationReport()
    if not config.PROPAGATION_ENABLED:
        return report

    try:
        if not getattr(window, "is_available", True):
            return report
        listing_id, window_id = listing.id, window.id
        siblings = [(sibling.id, sibling) for sibling in uow.listings.siblings(listing)]
        candidate = TimeInterval.from_datetimes(window.start_at, window.end_at)
    except SQLAlchemyError:
        uow.db.rollback()
        logger.exception("Propagation aborted; linked listings could not be loaded.")
        report.failed.append(
            {
                "listing_id": None,
                "source_window_id": None,
                "error_code": "SYSTEM_DOWN",
                "human_message": "Linked listings could not be loaded.",
            }
        )
        return report

    for sibling_id, sibling in siblings:
        try:
            _propagate_to_sibling(uow, listing_id, sibling, window, candidate, report)
        except AvailabilityError as exc:
            logger.exception(
                "Propagation failed listing_id=%s sibling_id=%s window_id=%s",
                listing_id,
                sibling_id,
                window_id,
            )
            report.failed.append(
                {
                    "listing_id": sibling_id,
                    "source_window_id": window_id,
                    "error_code": exc.error_code,
                    "human_message": exc.human_message,
                }
            )
    return report


def _propagate_to_sibling(
    uow: Any,
    listing_id: int,
    sibling: Any,
    window: Any,
    candidate: TimeInterval,
    report: PropagationReport,
) -> None:
    with uow.transaction():
        if uow.listings.lock(sibling.id) is None:
            raise NotFoundError("Sibling listing disappeared.", error_code="LISTING_NOT_FOUND")

        conflicts = find_conflicts(uow, sibling.id, candidate)
        if conflicts:
            report.skipped.append(
                {
                    "listing_id": sibling.id,
                    "source_window_id": window.id,
                    "reason": "conflict",
                    "conflicts": [conflict.to_dict() for conflict in conflicts],
                }
            )
            return

        if uow.windows.find_exact(sibling.id, window.start_at, window.end_at) is not None:
            report.skipped.append(
                {"listing_id": sibling.id, "source_window_id": window.id, "reason": "duplicate"}
            )
            return

        copy = uow.windows.insert(
            AvailabilityWindow(
                listing_id=sibling.id,
                start_at=window.start_at,
                end_at=window.end_at,
                is_available=True,
                slot_type=window.slot_type,
                price_override=window.price_override,
                booking_unit_type=window.booking_unit_type,
                slot_duration_minutes=window.slot_duration_minutes,
                origin_listing_id=listing_id,
            )
        )
        report.propagated.append(
            {"listing_id": sibling.id, "source_window_id": window.id, "window_id": copy.id}
        )
