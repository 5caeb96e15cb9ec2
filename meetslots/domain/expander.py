"""
Expansion of raw calendar events into concrete occurrences.

Recurring series are expanded with ``dateutil.rrule`` on timezone-aware
datetimes in the event's own zone, so an occurrence keeps its wall-clock
time while its absolute instant follows the zone's DST rules.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from dateutil.rrule import DAILY, MONTHLY, WEEKLY, YEARLY, rrule, rruleset, rrulestr

from .exceptions import InvalidTimezone, MalformedRecurrenceRule
from .models import DAY_MS, EventRecord, Frequency, Occurrence, RecurrenceRule, Timestamp
from .timezone import TimezoneOffset

logger = logging.getLogger(__name__)

DEFAULT_ZONE = "UTC"

_FREQUENCIES = {
    Frequency.DAILY: DAILY,
    Frequency.WEEKLY: WEEKLY,
    Frequency.MONTHLY: MONTHLY,
    Frequency.YEARLY: YEARLY,
}


class EventExpander:
    """
    Turns raw event records into the occurrences overlapping a query window.

    Single events pass through unchanged. Recurring definitions are expanded
    per their rule, with exceptions removed, additions included and
    overrides applied. A definition whose rule cannot be built is skipped
    and reported in ``warnings``; the remaining events are still expanded.

    ``max_occurrences_per_rule`` is off by default. When set, a series with
    more occurrences in the query window is reported the same way as a
    malformed one, so no busy occurrence is ever dropped silently.
    """

    def __init__(
        self,
        participants: Optional[Iterable[str]] = None,
        max_occurrences_per_rule: Optional[int] = None,
        timezones: Optional[TimezoneOffset] = None,
    ):
        self.participants = frozenset(participants) if participants is not None else None
        self.max_occurrences_per_rule = max_occurrences_per_rule
        self.timezones = timezones or TimezoneOffset()
        self.warnings: List[Tuple[str, str]] = []

    def expand(
        self,
        raw_events: Iterable[EventRecord],
        window_start: Timestamp,
        window_end: Timestamp,
    ) -> List[Occurrence]:
        """
        Expand events into occurrences overlapping ``[window_start, window_end]``.

        The window is widened by one day before ``window_start`` so that
        all-day and multi-day events whose UTC start precedes the window are
        still seen.
        """
        self.warnings = []
        buffered_start = window_start - DAY_MS
        occurrences: List[Occurrence] = []

        for event in raw_events:
            if self.participants is not None and not event.has_any_participant(self.participants):
                continue

            if not event.is_recurring:
                if _in_window(event.date, event.due_date, buffered_start, window_end):
                    occurrences.append(event.to_occurrence())
                continue

            try:
                expanded = self._expand_recurring(event, buffered_start, window_end)
            except MalformedRecurrenceRule as exc:
                logger.warning("Skipping recurring event %s: %s", event.event_id, exc)
                self.warnings.append((event.event_id, str(exc)))
                continue

            occurrences.extend(expanded)

        occurrences.sort(key=lambda o: (o.date, o.due_date))
        logger.debug(
            "Expanded %d occurrence(s) in window %s-%s", len(occurrences), window_start, window_end
        )
        return occurrences

    def _expand_recurring(
        self,
        event: EventRecord,
        window_start: Timestamp,
        window_end: Timestamp,
    ) -> List[Occurrence]:
        rule = event.recurrence
        zone_id = event.time_zone or DEFAULT_ZONE
        try:
            tz = self.timezones.zone(zone_id)
        except InvalidTimezone as exc:
            raise MalformedRecurrenceRule(f"unknown timezone '{zone_id}'") from exc

        dtstart = datetime.fromtimestamp(event.date / 1000, tz=tz)
        rule_set = build_rule_set(rule, dtstart)

        duration = event.duration
        # Occurrences starting up to one duration before the window still reach into it
        search_start = datetime.fromtimestamp((window_start - max(duration, 0)) / 1000, tz=tz)
        search_end = datetime.fromtimestamp(window_end / 1000, tz=tz)

        occurrences: List[Occurrence] = []
        seen: Set[Timestamp] = set()
        limit = self.max_occurrences_per_rule

        for count, start_dt in enumerate(_iter_between(rule_set, search_start, search_end), start=1):
            # An oversized series fails as a whole, it is never truncated
            if limit is not None and count > limit:
                raise MalformedRecurrenceRule(
                    f"more than {limit} occurrences in the query window"
                )

            original_start = _to_millis(start_dt)
            if original_start in seen or original_start in rule.exceptions:
                continue
            seen.add(original_start)

            override = rule.overrides.get(original_start)
            if override is not None:
                if override.cancelled:
                    continue
                date, due_date = override.date, override.due_date
            else:
                date, due_date = original_start, original_start + duration

            if _in_window(date, due_date, window_start, window_end):
                occurrences.append(
                    Occurrence(
                        date=date,
                        due_date=due_date,
                        all_day=event.all_day,
                        time_zone=event.time_zone,
                        event_id=event.event_id,
                    )
                )

        # Moved instances may land in the window although their original start does not
        for original_start, override in rule.overrides.items():
            if original_start in seen or override.cancelled:
                continue
            if original_start in rule.exceptions:
                continue
            if _in_window(override.date, override.due_date, window_start, window_end):
                occurrences.append(
                    Occurrence(
                        date=override.date,
                        due_date=override.due_date,
                        all_day=event.all_day,
                        time_zone=event.time_zone,
                        event_id=event.event_id,
                    )
                )

        return occurrences


def build_rule_set(rule: RecurrenceRule, dtstart: datetime) -> rruleset:
    """
    Build the dateutil rule set for a recurrence descriptor.

    Raises:
        MalformedRecurrenceRule: If the descriptor cannot be turned into a rule
    """
    rule_set = rruleset()
    tz = dtstart.tzinfo

    try:
        if rule.rrule:
            rule_set = rrulestr(rule.rrule, dtstart=dtstart, forceset=True)
        else:
            rule_set.rrule(_build_rrule(rule, dtstart))

        for extra in rule.additions:
            rule_set.rdate(datetime.fromtimestamp(extra / 1000, tz=tz))
    except (ValueError, TypeError, OverflowError, KeyError) as exc:
        raise MalformedRecurrenceRule(f"invalid recurrence rule: {exc}") from exc

    return rule_set


def _build_rrule(rule: RecurrenceRule, dtstart: datetime) -> rrule:
    if rule.frequency is None:
        raise MalformedRecurrenceRule("recurrence rule has neither a frequency nor an RRULE")

    if isinstance(rule.frequency, Frequency):
        raw_frequency = rule.frequency.value
    else:
        raw_frequency = str(rule.frequency).upper()

    try:
        frequency = Frequency(raw_frequency)
    except ValueError as exc:
        raise MalformedRecurrenceRule(f"unknown frequency '{rule.frequency}'") from exc

    if rule.interval < 1:
        raise MalformedRecurrenceRule(f"interval must be at least 1, got {rule.interval}")
    if rule.count is not None and rule.count < 1:
        raise MalformedRecurrenceRule(f"count must be at least 1, got {rule.count}")
    if any(not 0 <= day <= 6 for day in rule.by_weekday):
        raise MalformedRecurrenceRule(f"by_weekday must hold values 0-6, got {rule.by_weekday}")

    until = None
    if rule.until is not None:
        until = datetime.fromtimestamp(rule.until / 1000, tz=dtstart.tzinfo)

    # dateutil numbers weekdays from Monday=0, the model from Sunday=0
    by_weekday = tuple((day - 1) % 7 for day in rule.by_weekday) or None

    return rrule(
        _FREQUENCIES[frequency],
        dtstart=dtstart,
        interval=rule.interval,
        count=rule.count,
        until=until,
        byweekday=by_weekday,
    )


def _iter_between(rule_set: rruleset, start: datetime, end: datetime) -> Iterator[datetime]:
    """Lazily yield rule starts in ``[start, end]``."""
    try:
        for moment in rule_set.xafter(start, inc=True):
            if moment > end:
                return
            yield moment
    except (ValueError, TypeError, OverflowError) as exc:
        raise MalformedRecurrenceRule(str(exc)) from exc


def _in_window(date: Timestamp, due_date: Timestamp, start: Timestamp, end: Timestamp) -> bool:
    return date <= end and due_date >= start


def _to_millis(moment: datetime) -> Timestamp:
    return round(moment.timestamp() * 1000)
