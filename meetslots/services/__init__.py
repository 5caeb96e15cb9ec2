"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking import BookingService, CalendarStoreProtocol

__all__ = ["BookingService", "CalendarStoreProtocol"]
