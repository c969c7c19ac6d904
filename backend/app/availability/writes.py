from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.exc import SQLAlchemyError

from app.availability import timeline
from app.availability.conflicts import find_conflicts
from app.availability.errors import (
    AvailabilityError,
    AvailabilityValidationError,
    ConflictError,
    NotFoundError,
)
from app.availability.intervals import OccupancyInterval, TimeInterval, parse_unit_type
from app.availability.recurrence import RecurrencePattern, RecurrenceRule, expand_recurrence
from app.availability.synchronizer import (
    STATUS_COMMITTED,
    STATUS_COMMITTED_WITH_WARNINGS,
    PropagationReport,
    propagate,
    reconcile,
)
from app.db.models import AvailabilityWindow, BlockedRange

logger = logging.getLogger("slotengine.availability.writes")

WINDOW_METADATA_FIELDS = (
    "slot_type",
    "price_override",
    "booking_unit_type",
    "slot_duration_minutes",
)


class RecurrenceArgs(BaseModel):
    pattern: str = Field(min_length=1, max_length=32)
    end_date: str = Field(min_length=1)


class CreateBlockArgs(BaseModel):
    start: str = Field(min_length=1)
    end: str = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=500)
    recurrence: RecurrenceArgs | None = None


class CreateWindowArgs(BaseModel):
    start: str = Field(min_length=1)
    end: str = Field(min_length=1)
    is_available: bool = True
    slot_type: Literal["regular", "generated", "split", "special"] = "regular"
    price_override: Decimal | None = Field(default=None, ge=0)
    booking_unit_type: str | None = None
    slot_duration_minutes: int | None = Field(default=None, gt=0)
    recurrence: RecurrenceArgs | None = None

    @field_validator("booking_unit_type")
    @classmethod
    def _known_unit_type(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return parse_unit_type(value).value


def parse_create_block_args(raw_args: dict[str, Any]) -> CreateBlockArgs:
    return CreateBlockArgs.model_validate(raw_args)


def parse_create_window_args(raw_args: dict[str, Any]) -> CreateWindowArgs:
    return CreateWindowArgs.model_validate(raw_args)


def map_validation_error(error: ValidationError) -> dict[str, str]:
    return {
        "error_code": "INVALID_ARGS",
        "human_message": f"Invalid args: {error.errors()[0]['msg']}",
    }


@dataclass
class BlockWriteResult:
    blocks: list[Any] = field(default_factory=list)
    reconciled_window_ids: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return STATUS_COMMITTED_WITH_WARNINGS if self.warnings else STATUS_COMMITTED


@dataclass
class WindowWriteResult:
    windows: list[Any] = field(default_factory=list)
    propagation: PropagationReport = field(default_factory=PropagationReport)

    @property
    def status(self) -> str:
        return self.propagation.status


def validate_and_persist_block(
    uow: Any,
    listing_id: int,
    args: CreateBlockArgs,
    host_id: int | None = None,
) -> BlockWriteResult:
    """Persist one or more blocked ranges, all or nothing.

    Every candidate is checked against the listing's bookings and existing
    blocks, including the ones inserted earlier in the same request. Windows
    overlapping the new blocks are reconciled away after commit.
    """
    candidates = block_intervals(args)

    result = BlockWriteResult()
    with uow.transaction():
        _lock_owned_listing(uow, listing_id, host_id)
        for candidate in candidates:
            _reject_conflicts(uow, listing_id, candidate)
            result.blocks.append(
                uow.blocks.insert(
                    BlockedRange(
                        listing_id=listing_id,
                        start_at=candidate.start_at,
                        end_at=candidate.end_at,
                        reason=args.reason,
                    )
                )
            )

    logger.info("Blocked listing_id=%s ranges=%s", listing_id, len(result.blocks))
    _reconcile_after_write(uow, listing_id, result)
    return result


def validate_and_persist_window(
    uow: Any,
    listing_id: int,
    args: CreateWindowArgs,
    host_id: int | None = None,
) -> WindowWriteResult:
    candidates = window_intervals(args)

    result = WindowWriteResult()
    with uow.transaction():
        listing = _lock_owned_listing(uow, listing_id, host_id)
        for candidate in candidates:
            if args.is_available:
                _reject_conflicts(uow, listing_id, candidate)

            fields = {"is_available": args.is_available}
            fields.update({name: getattr(args, name) for name in WINDOW_METADATA_FIELDS})
            existing = uow.windows.find_exact(listing_id, candidate.start_at, candidate.end_at)
            if existing is not None:
                # Metadata the request left out stays as stored.
                changed = {
                    name: value
                    for name, value in fields.items()
                    if name == "is_available" or name in args.model_fields_set
                }
                result.windows.append(uow.windows.update(existing.id, changed))
                continue
            result.windows.append(
                uow.windows.insert(
                    AvailabilityWindow(
                        listing_id=listing_id,
                        start_at=candidate.start_at,
                        end_at=candidate.end_at,
                        **fields,
                    )
                )
            )

    logger.info("Saved availability listing_id=%s windows=%s", listing_id, len(result.windows))
    for window in result.windows:
        try:
            result.propagation.extend(propagate(uow, listing, window))
        except (AvailabilityError, SQLAlchemyError):
            uow.db.rollback()
            logger.exception("Propagation aborted listing_id=%s", listing_id)
            result.propagation.failed.append(
                {
                    "listing_id": listing_id,
                    "source_window_id": None,
                    "error_code": "SYSTEM_DOWN",
                    "human_message": "Linked listings were not updated.",
                }
            )
    return result


def delete_block(
    uow: Any,
    listing_id: int,
    block_id: int,
    host_id: int | None = None,
) -> BlockWriteResult:
    with uow.transaction():
        _lock_owned_listing(uow, listing_id, host_id)
        block = uow.blocks.get(block_id)
        if block is None or block.listing_id != listing_id:
            raise NotFoundError("Blocked range not found.", error_code="BLOCK_NOT_FOUND")
        uow.blocks.delete(block_id)

    result = BlockWriteResult()
    _reconcile_after_write(uow, listing_id, result)
    return result


def delete_window(
    uow: Any,
    listing_id: int,
    window_id: int,
    host_id: int | None = None,
) -> None:
    with uow.transaction():
        _lock_owned_listing(uow, listing_id, host_id)
        window = uow.windows.get(window_id)
        if window is None or window.listing_id != listing_id:
            raise NotFoundError("Availability window not found.", error_code="WINDOW_NOT_FOUND")
        uow.windows.delete(window_id)


def block_intervals(args: CreateBlockArgs) -> list[TimeInterval]:
    rule = _recurrence_rule(args.recurrence)

    if timeline.is_date_only(args.start) and timeline.is_date_only(args.end):
        first = timeline.parse_naive_date(args.start, field_name="start")
        last = timeline.parse_naive_date(args.end, field_name="end")
        if last < first:
            raise AvailabilityValidationError("Invalid range: end date is before start date.")
        # Full days from midnight to the next midnight, end date included.
        if rule is None or rule.known_pattern is None:
            rule = RecurrenceRule(RecurrencePattern.DAILY.value, last)
            return [
                dated.to_interval()
                for dated in expand_recurrence(first, time.min, time.min, rule)
            ]
        return _repeated_day_spans(first, last, rule)

    start_at = timeline.parse_naive_datetime(args.start, field_name="start")
    end_at = timeline.parse_naive_datetime(args.end, field_name="end")
    return _timed_intervals(start_at, end_at, rule)


def window_intervals(args: CreateWindowArgs) -> list[TimeInterval]:
    start_at = timeline.parse_naive_datetime(args.start, field_name="start")
    end_at = timeline.parse_naive_datetime(args.end, field_name="end")
    if timeline.is_date_only(args.end):
        end_at += timedelta(days=1)
    return _timed_intervals(start_at, end_at, _recurrence_rule(args.recurrence))


def serialize_block(block: Any) -> dict[str, Any]:
    return {
        "id": block.id,
        "listing_id": block.listing_id,
        "start": timeline.format_naive(block.start_at),
        "end": timeline.format_naive(block.end_at),
        "reason": block.reason,
    }


def serialize_window(window: Any) -> dict[str, Any]:
    return {
        "id": window.id,
        "listing_id": window.listing_id,
        "start": timeline.format_naive(window.start_at),
        "end": timeline.format_naive(window.end_at),
        "is_available": window.is_available,
        "slot_type": window.slot_type,
        "price_override": str(window.price_override) if window.price_override is not None else None,
        "booking_unit_type": window.booking_unit_type,
        "slot_duration_minutes": window.slot_duration_minutes,
        "origin_listing_id": window.origin_listing_id,
    }


def _timed_intervals(
    start_at: datetime,
    end_at: datetime,
    rule: RecurrenceRule | None,
) -> list[TimeInterval]:
    if rule is None or rule.known_pattern is None:
        if end_at <= start_at:
            raise AvailabilityValidationError("Invalid range: end must be after start.")
        return [TimeInterval.from_datetimes(start_at, end_at)]

    # Only the times of day repeat; an end time at or before the start time runs overnight.
    return [
        dated.to_interval()
        for dated in expand_recurrence(start_at.date(), start_at.time(), end_at.time(), rule)
    ]


def _repeated_day_spans(first: date, last: date, rule: RecurrenceRule) -> list[TimeInterval]:
    """Repeat the whole-day span first..last, end date included, on every occurrence."""
    span = timedelta(days=(last - first).days + 1)
    intervals = [
        TimeInterval.from_datetimes(dated.start_at, dated.start_at + span)
        for dated in expand_recurrence(first, time.min, time.min, rule)
    ]
    for current, following in zip(intervals, intervals[1:]):
        if current.overlaps(following):
            raise AvailabilityValidationError(
                "Invalid range: the blocked dates run into the next repetition."
            )
    return intervals


def _recurrence_rule(recurrence: RecurrenceArgs | None) -> RecurrenceRule | None:
    if recurrence is None:
        return None
    bound = timeline.parse_naive_date(recurrence.end_date, field_name="recurrence end_date")
    return RecurrenceRule(pattern=recurrence.pattern, bound_end_date=bound)


def _lock_owned_listing(uow: Any, listing_id: int, host_id: int | None) -> Any:
    listing = uow.listings.lock(listing_id)
    if listing is None or (host_id is not None and listing.host_id != host_id):
        raise NotFoundError("Listing not found.", error_code="LISTING_NOT_FOUND")
    return listing


def _reject_conflicts(uow: Any, listing_id: int, candidate: TimeInterval) -> None:
    conflicts: list[OccupancyInterval] = find_conflicts(uow, listing_id, candidate)
    if conflicts:
        raise ConflictError(
            f"{timeline.format_naive(candidate.start_at)} to "
            f"{timeline.format_naive(candidate.end_at)} overlaps an existing booking or block.",
            conflicts=conflicts,
        )


def _reconcile_after_write(uow: Any, listing_id: int, result: BlockWriteResult) -> None:
    try:
        result.reconciled_window_ids.extend(reconcile(uow, listing_id))
    except AvailabilityError as exc:
        logger.exception("Reconcile after block write failed listing_id=%s", listing_id)
        result.warnings.append(f"Availability cleanup deferred: {exc.human_message}")
