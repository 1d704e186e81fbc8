"""
Service layer helpers that orchestrate store adapters and domain logic.
"""

from .availability import AvailabilityService, BookingReader, BookingStoreProtocol, BookingWriter
from .bookings import BookingService

__all__ = [
    "AvailabilityService",
    "BookingReader",
    "BookingService",
    "BookingStoreProtocol",
    "BookingWriter",
]
