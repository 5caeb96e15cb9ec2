"""
Domain layer - Pure business logic without I/O.
"""

from .exceptions import (
    EventNotFound,
    InvalidPeriod,
    InvalidScheduleConfig,
    InvalidTimezone,
    MalformedRecurrenceRule,
    ScheduleNotFound,
    SchedulingError,
    SlotBusy,
    StoreError,
)
from .expander import EventExpander
from .models import (
    AvailabilityTemplate,
    EventRecord,
    Frequency,
    Occurrence,
    OccurrenceOverride,
    Period,
    RecurrenceRule,
    ScheduleConfig,
    Slot,
    TimeWindow,
)
from .overlap import OverlapChecker
from .slot_generator import SlotGenerator, group_by_day
from .timezone import TimezoneOffset, offset_millis

__all__ = [
    "AvailabilityTemplate",
    "EventExpander",
    "EventNotFound",
    "EventRecord",
    "Frequency",
    "InvalidPeriod",
    "InvalidScheduleConfig",
    "InvalidTimezone",
    "MalformedRecurrenceRule",
    "Occurrence",
    "OccurrenceOverride",
    "OverlapChecker",
    "Period",
    "RecurrenceRule",
    "ScheduleConfig",
    "ScheduleNotFound",
    "SchedulingError",
    "Slot",
    "SlotBusy",
    "SlotGenerator",
    "StoreError",
    "TimeWindow",
    "TimezoneOffset",
    "group_by_day",
    "offset_millis",
]
