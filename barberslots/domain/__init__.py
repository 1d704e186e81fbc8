"""
Domain layer - Pure business logic without external dependencies.
"""

from .exceptions import (
    BookingError,
    BookingNotFoundError,
    InvalidRequestError,
    InvalidTransitionError,
    PermissionDeniedError,
    SlotConflictError,
    StorageError,
)
from .models import (
    ACTIVE_STATUSES,
    BarberSettings,
    BookedSlot,
    Booking,
    BookingStatus,
    Caller,
    Role,
    Service,
    TimeOfDay,
    TimeRange,
    WorkingHours,
)
from .slot_calculator import Occupancy, SlotCalculator

__all__ = [
    "ACTIVE_STATUSES",
    "BarberSettings",
    "BookedSlot",
    "Booking",
    "BookingError",
    "BookingNotFoundError",
    "BookingStatus",
    "Caller",
    "InvalidRequestError",
    "InvalidTransitionError",
    "Occupancy",
    "PermissionDeniedError",
    "Role",
    "Service",
    "SlotCalculator",
    "SlotConflictError",
    "StorageError",
    "TimeOfDay",
    "TimeRange",
    "WorkingHours",
]
