"""
Core business logic for enumerating bookable slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .exceptions import ScheduleNotFound
from .expander import EventExpander
from .models import DAY_MS, EventRecord, Occurrence, Period, ScheduleConfig, Slot, Timestamp, TimeWindow
from .overlap import OverlapChecker
from .timezone import TimezoneOffset

logger = logging.getLogger(__name__)

# 1970-01-01 was a Thursday
_EPOCH_WEEKDAY = 4


class SlotGenerator:
    """
    Generates the free slots of a schedule within a period.

    Algorithm:
    1. Start at local midnight of the period start in the schedule's zone
    2. For each civil day, look up the weekday's availability windows
    3. Walk candidate starts through every window, stepping by
       duration + interval while the slot still fits the window
    4. Convert each local candidate back to an absolute instant, dropping
       wall times that do not exist and slots crossing a DST transition
    5. Admit candidates not before ``not_before`` that are not busy
    6. Recompute the offset for the next day from the previous day's
       absolute end, so DST transitions shift the windows correctly

    Every call works with its own offset resolver, nothing is cached
    between calls.
    """

    def generate(
        self,
        schedule: Optional[ScheduleConfig],
        occurrences: Iterable[Occurrence],
        period: Period,
        not_before: Timestamp,
    ) -> List[Slot]:
        """
        Find all bookable slots in the period.

        Args:
            schedule: The host's schedule configuration
            occurrences: Concrete (already expanded) calendar occurrences
            period: Query window; every civil day it touches is walked
            not_before: Earliest admissible slot start, usually "now"

        Returns:
            Slots ordered by start, without duplicates

        Raises:
            ScheduleNotFound: If no schedule is given
            InvalidTimezone: If the schedule's zone is unknown
        """
        if schedule is None:
            raise ScheduleNotFound("No schedule configuration supplied")

        timezones = TimezoneOffset()
        timezones.validate_zone(schedule.time_zone)
        checker = OverlapChecker(timezones)
        occurrences = list(occurrences)

        zone = schedule.time_zone
        slots: Dict[Timestamp, Slot] = {}

        tz_offset = timezones.offset_millis(period.start, zone)
        local_start = period.start + tz_offset
        day = local_start - local_start % DAY_MS
        local_end = period.end + tz_offset

        while day < local_end:
            weekday = (day // DAY_MS + _EPOCH_WEEKDAY) % 7

            for window in schedule.availability.for_weekday(weekday):
                for slot in self._window_slots(schedule, window, day, tz_offset, timezones):
                    if slot.start < not_before:
                        continue
                    if checker.is_busy(occurrences, slot.start, slot.end, tz_offset):
                        continue
                    slots.setdefault(slot.start, slot)

            next_day_start = day - tz_offset + DAY_MS
            tz_offset = timezones.offset_millis(next_day_start, zone)
            day += DAY_MS

        result = sorted(slots.values())
        logger.debug(
            "Generated %d slot(s) for schedule %s in %s-%s",
            len(result),
            schedule.schedule_id or "<anonymous>",
            period.start,
            period.end,
        )
        return result

    def generate_from_events(
        self,
        schedule: Optional[ScheduleConfig],
        raw_events: Iterable[EventRecord],
        period: Period,
        not_before: Timestamp,
        participants: Optional[Iterable[str]] = None,
    ) -> List[Slot]:
        """
        Expand raw events and generate slots in one call.

        The expansion window reaches one day past the period end, because the
        last civil day walked may extend beyond it.
        """
        if schedule is None:
            raise ScheduleNotFound("No schedule configuration supplied")

        expander = EventExpander(participants=participants)
        occurrences = expander.expand(raw_events, period.start, period.end + DAY_MS)
        return self.generate(schedule, occurrences, period, not_before)

    def _window_slots(
        self,
        schedule: ScheduleConfig,
        window: TimeWindow,
        day: Timestamp,
        tz_offset: int,
        timezones: TimezoneOffset,
    ) -> List[Slot]:
        """Candidate slots of one availability window, as absolute intervals."""
        zone = schedule.time_zone
        duration = schedule.meeting_duration
        window_end = day + window.end

        candidates: List[Slot] = []
        slot_local = day + window.start

        while slot_local + duration <= window_end:
            start = timezones.local_to_instant(slot_local, zone, tz_offset)
            if start is not None:
                end = start + duration
                if timezones.offset_millis(start, zone) == timezones.offset_millis(end - 1, zone):
                    candidates.append(Slot(start=start, end=end))
                else:
                    logger.debug("Dropping slot at %s crossing a DST transition in %s", start, zone)
            slot_local += schedule.step

        return candidates


def group_by_day(slots: Iterable[Slot], time_zone: str) -> Dict[Timestamp, List[Slot]]:
    """
    Bucket slots by the local civil day of their start.

    Keys are the absolute instants of each day's local midnight.
    """
    timezones = TimezoneOffset()
    grouped: Dict[Timestamp, List[Slot]] = {}
    for slot in sorted(slots):
        grouped.setdefault(timezones.local_midnight(slot.start, time_zone), []).append(slot)
    return grouped
