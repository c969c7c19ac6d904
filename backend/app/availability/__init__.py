from app.availability.computer import compute_available_slots, parse_query_range
from app.availability.conflicts import conflicting_occupancies, find_conflicts
from app.availability.errors import (
    AvailabilityError,
    AvailabilityValidationError,
    ConflictError,
    NotFoundError,
    TransactionError,
)
from app.availability.recurrence import RecurrenceRule, expand_recurrence
from app.availability.slicer import slice_free_intervals
from app.availability.stores import AvailabilityUnitOfWork
from app.availability.subtractor import subtract_occupancies
from app.availability.synchronizer import PropagationReport, propagate, reconcile
from app.availability.writes import (
    CreateBlockArgs,
    CreateWindowArgs,
    delete_block,
    delete_window,
    map_validation_error,
    parse_create_block_args,
    parse_create_window_args,
    serialize_block,
    serialize_window,
    validate_and_persist_block,
    validate_and_persist_window,
)

__all__ = [
    "AvailabilityError",
    "AvailabilityUnitOfWork",
    "AvailabilityValidationError",
    "ConflictError",
    "CreateBlockArgs",
    "CreateWindowArgs",
    "NotFoundError",
    "PropagationReport",
    "RecurrenceRule",
    "TransactionError",
    "compute_available_slots",
    "conflicting_occupancies",
    "delete_block",
    "delete_window",
    "expand_recurrence",
    "find_conflicts",
    "map_validation_error",
    "parse_create_block_args",
    "parse_create_window_args",
    "parse_query_range",
    "propagate",
    "reconcile",
    "serialize_block",
    "serialize_window",
    "slice_free_intervals",
    "subtract_occupancies",
    "validate_and_persist_block",
    "validate_and_persist_window",
]
