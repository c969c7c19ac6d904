from __future__ import annotations

from typing import Any


class AvailabilityError(Exception):
    error_code = "AVAILABILITY_ERROR"
    status_code = 500

    def __init__(self, human_message: str, error_code: str | None = None):
        super().__init__(human_message)
        self.human_message = human_message
        if error_code:
            self.error_code = error_code

    def to_payload(self) -> dict[str, Any]:
        return {
            "ok": False,
            "error_code": self.error_code,
            "human_message": self.human_message,
        }


class AvailabilityValidationError(AvailabilityError, ValueError):
    """Malformed or missing date/time input, raised before any storage access."""

    error_code = "INVALID_ARGS"
    status_code = 400


class ConflictError(AvailabilityError):
    """The candidate interval overlaps an active booking or a blocked range."""

    error_code = "SLOT_CONFLICT"
    status_code = 409

    def __init__(self, human_message: str, conflicts: list[Any]):
        super().__init__(human_message)
        self.conflicts = list(conflicts)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["conflicts"] = [conflict.to_dict() for conflict in self.conflicts]
        return payload


class NotFoundError(AvailabilityError, LookupError):
    error_code = "NOT_FOUND"
    status_code = 404


class TransactionError(AvailabilityError):
    """Storage failed mid-write; every row of the request was rolled back."""

    error_code = "SYSTEM_DOWN"
    status_code = 500
