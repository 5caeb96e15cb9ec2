"""
Domain-specific exception hierarchy for the meetslots engine.
"""

from __future__ import annotations

from typing import Sequence


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class InvalidTimezone(SchedulingError):
    """Raised when a zone id is not a recognised IANA timezone."""

    def __init__(self, zone_id: str):
        super().__init__(f"Unknown timezone: '{zone_id}'")
        self.zone_id = zone_id


class InvalidScheduleConfig(SchedulingError):
    """Raised for non-positive durations or malformed availability windows."""


class ScheduleNotFound(SchedulingError):
    """Raised when the requested schedule does not exist."""


class InvalidPeriod(SchedulingError):
    """Raised when a query period ends before it starts."""


class MalformedRecurrenceRule(SchedulingError):
    """Raised when a recurrence definition cannot be parsed or expanded."""


class EventNotFound(SchedulingError):
    """Raised when an event referenced by id does not exist."""


class StoreError(SchedulingError):
    """Raised when calendar data cannot be loaded or saved."""


class SlotBusy(SchedulingError):
    """Raised when a booking attempt targets an occupied slot."""

    def __init__(self, message: str, conflicts: Sequence[object] = ()):
        super().__init__(message)
        self.conflicts = list(conflicts)
