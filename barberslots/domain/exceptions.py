"""
Domain-specific exception hierarchy for the booking core.
"""


class BookingError(Exception):
    """Base class for all application-level errors."""


class InvalidRequestError(BookingError, ValueError):
    """Raised when caller input is missing or malformed."""


class SlotConflictError(BookingError):
    """Raised when a proposed booking overlaps an active one."""


class BookingNotFoundError(BookingError):
    """Raised when a booking id does not resolve to a stored booking."""


class InvalidTransitionError(BookingError):
    """Raised when a status change would move a booking backwards."""


class PermissionDeniedError(BookingError):
    """Raised when the caller may not act on the target resource."""


class StorageError(BookingError):
    """Raised when the persistence layer fails."""
