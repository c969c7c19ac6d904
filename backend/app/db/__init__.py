from app.db.base import Base
from app.db.models import (
    AvailabilityWindow,
    BlockedRange,
    Booking,
    Listing,
)

__all__ = [
    "Base",
    "AvailabilityWindow",
    "BlockedRange",
    "Booking",
    "Listing",
]
