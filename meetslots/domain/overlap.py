"""
Busy/free decisions for candidate slots.

A slot ``[start, end)`` is busy when an occurrence contains it, or when an
occurrence starts or ends strictly inside it. Touching boundaries are free,
so back-to-back meetings can be booked.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from .models import DAY_MS, Occurrence, Timestamp
from .timezone import TimezoneOffset


class OverlapChecker:
    """
    Decides whether a candidate slot conflicts with existing occurrences.

    All-day occurrences are widened to the whole local civil day they start
    on, in their own zone when they carry one, else with the caller's
    fallback offset.
    """

    def __init__(self, timezones: Optional[TimezoneOffset] = None):
        self.timezones = timezones or TimezoneOffset()

    def is_busy(
        self,
        occurrences: Iterable[Occurrence],
        slot_start: Timestamp,
        slot_end: Timestamp,
        fallback_tz_offset: int,
        exclude_event_id: Optional[str] = None,
    ) -> bool:
        """Return True on the first occurrence overlapping the slot."""
        for occurrence in occurrences:
            if exclude_event_id is not None and occurrence.event_id == exclude_event_id:
                continue
            if self._overlaps(occurrence, slot_start, slot_end, fallback_tz_offset):
                return True
        return False

    def find_conflicts(
        self,
        occurrences: Iterable[Occurrence],
        slot_start: Timestamp,
        slot_end: Timestamp,
        fallback_tz_offset: int,
        exclude_event_id: Optional[str] = None,
    ) -> List[Occurrence]:
        """Return every occurrence overlapping the slot."""
        return [
            occurrence
            for occurrence in occurrences
            if (exclude_event_id is None or occurrence.event_id != exclude_event_id)
            and self._overlaps(occurrence, slot_start, slot_end, fallback_tz_offset)
        ]

    def normalize(self, occurrence: Occurrence, fallback_tz_offset: int) -> Tuple[Timestamp, Timestamp]:
        """
        Return the effective ``(date, due_date)`` of an occurrence.

        Timed occurrences are returned unchanged. All-day occurrences cover
        local midnight of their start date up to the last millisecond before
        the next local midnight (23 or 25 hours on DST transition days).
        """
        if not occurrence.all_day:
            return occurrence.date, occurrence.due_date

        if occurrence.time_zone is not None:
            date = self.timezones.local_midnight(occurrence.date, occurrence.time_zone)
            due_date = self.timezones.next_local_midnight(occurrence.date, occurrence.time_zone) - 1
            return date, due_date

        local = occurrence.date + fallback_tz_offset
        date = local - local % DAY_MS - fallback_tz_offset
        return date, date + DAY_MS - 1

    def _overlaps(
        self,
        occurrence: Occurrence,
        slot_start: Timestamp,
        slot_end: Timestamp,
        fallback_tz_offset: int,
    ) -> bool:
        date, due_date = self.normalize(occurrence, fallback_tz_offset)
        return (
            (date <= slot_start and due_date >= slot_end)
            or slot_start < date < slot_end
            or slot_start < due_date < slot_end
        )
