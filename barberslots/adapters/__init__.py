"""
Adapters layer - Persistence backends for the booking store protocol.
"""

from .memory_store import MemoryBookingStore
from .sql_store import SqlBookingStore

__all__ = ["MemoryBookingStore", "SqlBookingStore"]
