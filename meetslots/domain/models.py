"""
Domain models for schedules, calendar events and bookable slots.

All instants are epoch milliseconds. Durations and window offsets are
milliseconds as well, so the engine never mixes units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple, Union

import pendulum

from .exceptions import InvalidPeriod, InvalidScheduleConfig

Timestamp = int

MINUTE_MS = 60_000
HOUR_MS = 3_600_000
DAY_MS = 86_400_000

# Sunday first, matching the host-local week of the availability template
WEEKDAY_NAMES = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)

GERMAN_WEEKDAY_NAMES = {
    "sunday": "Sonntag",
    "monday": "Montag",
    "tuesday": "Dienstag",
    "wednesday": "Mittwoch",
    "thursday": "Donnerstag",
    "friday": "Freitag",
    "saturday": "Samstag",
}


def weekday_index(value: Union[int, str]) -> int:
    """Resolve a weekday name or number (0=Sunday) to its index."""
    if isinstance(value, int):
        index = value
    elif value.strip().isdigit():
        index = int(value.strip())
    else:
        key = value.strip().lower()
        matches = [i for i, name in enumerate(WEEKDAY_NAMES) if name.startswith(key[:3])]
        if len(key) < 3 or not matches:
            raise InvalidScheduleConfig(f"Unknown weekday: '{value}'")
        index = matches[0]

    if not 0 <= index <= 6:
        raise InvalidScheduleConfig(f"Weekday must be between 0 and 6, got {index}")
    return index


def _parse_clock(text: str) -> int:
    """Parse ``HH:MM`` into milliseconds after midnight (``24:00`` allowed)."""
    try:
        hours_str, minutes_str = text.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except ValueError as exc:
        raise InvalidScheduleConfig(f"Invalid clock time '{text}', expected HH:MM") from exc

    if not 0 <= minutes <= 59 or not 0 <= hours <= 24 or (hours == 24 and minutes):
        raise InvalidScheduleConfig(f"Invalid clock time '{text}'")
    return hours * HOUR_MS + minutes * MINUTE_MS


def _format_clock(offset: int) -> str:
    return f"{offset // HOUR_MS:02d}:{offset % HOUR_MS // MINUTE_MS:02d}"


@dataclass(frozen=True)
class TimeWindow:
    """
    One availability window within a civil day.

    Invariant: 0 <= start < end <= 24h, both offsets from local midnight.
    """
    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start < self.end <= DAY_MS:
            raise InvalidScheduleConfig(
                f"Availability window {self.start}-{self.end} must satisfy 0 <= start < end <= {DAY_MS}"
            )

    @classmethod
    def parse(cls, text: str) -> "TimeWindow":
        """Build a window from ``"09:00-17:00"``."""
        try:
            start_str, end_str = text.split("-")
        except ValueError as exc:
            raise InvalidScheduleConfig(
                f"Invalid availability window '{text}', expected HH:MM-HH:MM"
            ) from exc
        return cls(start=_parse_clock(start_str), end=_parse_clock(end_str))

    def __str__(self) -> str:
        return f"{_format_clock(self.start)}-{_format_clock(self.end)}"


@dataclass(frozen=True)
class AvailabilityTemplate:
    """
    Weekly availability: weekday (0=Sunday .. 6=Saturday) to ordered windows.

    A weekday that is missing or maps to no windows is unavailable.
    """
    windows: Mapping[int, Tuple[TimeWindow, ...]] = field(default_factory=dict)

    def __post_init__(self):
        normalized: Dict[int, Tuple[TimeWindow, ...]] = {}
        for weekday, day_windows in self.windows.items():
            index = weekday_index(weekday)
            ordered = tuple(sorted(day_windows, key=lambda w: w.start))
            for previous, current in zip(ordered, ordered[1:]):
                if current.start < previous.end:
                    raise InvalidScheduleConfig(
                        f"Overlapping availability windows on {WEEKDAY_NAMES[index]}: "
                        f"{previous} and {current}"
                    )
            if ordered:
                normalized[index] = ordered
        object.__setattr__(self, "windows", normalized)

    @classmethod
    def from_weekday_names(
        cls,
        mapping: Mapping[Union[int, str], Sequence[Union[str, TimeWindow]]],
    ) -> "AvailabilityTemplate":
        """
        Build a template from ``{"monday": ["09:00-12:00", "13:00-17:00"]}``.

        Keys may also be weekday numbers, values may be ``TimeWindow`` objects.
        """
        windows: Dict[int, Tuple[TimeWindow, ...]] = {}
        for weekday, day_windows in mapping.items():
            windows[weekday_index(weekday)] = tuple(
                w if isinstance(w, TimeWindow) else TimeWindow.parse(w)
                for w in day_windows or ()
            )
        return cls(windows=windows)

    def for_weekday(self, weekday: int) -> Tuple[TimeWindow, ...]:
        return self.windows.get(weekday, ())


@dataclass(frozen=True)
class ScheduleConfig:
    """
    A host's bookable schedule.

    Invariant: meeting_duration > 0 and meeting_interval >= 0.
    """
    time_zone: str
    meeting_duration: int
    meeting_interval: int
    availability: AvailabilityTemplate
    schedule_id: str = ""
    title: str = ""
    owner: str = ""

    def __post_init__(self):
        if self.meeting_duration <= 0:
            raise InvalidScheduleConfig(
                f"meeting_duration must be greater than zero, got {self.meeting_duration}"
            )
        if self.meeting_interval < 0:
            raise InvalidScheduleConfig(
                f"meeting_interval must not be negative, got {self.meeting_interval}"
            )
        if not isinstance(self.availability, AvailabilityTemplate):
            raise InvalidScheduleConfig("availability must be an AvailabilityTemplate")

    @property
    def step(self) -> int:
        """Distance between two consecutive slot starts."""
        return self.meeting_duration + self.meeting_interval


class Frequency(str, Enum):
    """Recurrence frequencies understood by the expander."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


@dataclass(frozen=True)
class OccurrenceOverride:
    """A modified (or cancelled) instance of a recurring series."""
    date: Timestamp
    due_date: Timestamp
    cancelled: bool = False


@dataclass(frozen=True)
class RecurrenceRule:
    """
    Recurrence descriptor of a recurring event.

    Either ``frequency`` (plus interval/count/until/by_weekday) or a raw
    RFC 5545 ``rrule`` string describes the series. The descriptor is not
    validated on construction: a broken rule only surfaces when the
    expander builds it, so that one bad series can be skipped on its own.

    ``exceptions`` and ``overrides`` are keyed by the original start instant
    of an occurrence, ``additions`` are extra start instants.
    """
    frequency: Union[Frequency, str, None] = None
    interval: int = 1
    count: Optional[int] = None
    until: Optional[Timestamp] = None
    by_weekday: Tuple[int, ...] = ()  # 0=Sunday, 6=Saturday
    rrule: Optional[str] = None
    exceptions: FrozenSet[Timestamp] = frozenset()
    additions: FrozenSet[Timestamp] = frozenset()
    overrides: Mapping[Timestamp, OccurrenceOverride] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "exceptions", frozenset(self.exceptions))
        object.__setattr__(self, "additions", frozenset(self.additions))
        object.__setattr__(self, "by_weekday", tuple(self.by_weekday))


@dataclass(frozen=True)
class EventRecord:
    """
    A raw calendar event as supplied by the calendar store.

    Records carrying a ``recurrence`` are recurring-event definitions whose
    ``date``/``due_date`` describe the first occurrence.
    """
    event_id: str
    date: Timestamp
    due_date: Timestamp
    all_day: bool = False
    time_zone: Optional[str] = None
    participants: FrozenSet[str] = frozenset()
    recurrence: Optional[RecurrenceRule] = None
    title: str = ""

    def __post_init__(self):
        object.__setattr__(self, "participants", frozenset(self.participants))

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @property
    def duration(self) -> int:
        return self.due_date - self.date

    def has_any_participant(self, participants: Iterable[str]) -> bool:
        return not self.participants.isdisjoint(participants)

    def to_occurrence(self) -> "Occurrence":
        return Occurrence(
            date=self.date,
            due_date=self.due_date,
            all_day=self.all_day,
            time_zone=self.time_zone,
            event_id=self.event_id,
        )


@dataclass(frozen=True)
class Occurrence:
    """One concrete, non-recurring instance of an event."""
    date: Timestamp
    due_date: Timestamp
    all_day: bool = False
    time_zone: Optional[str] = None
    event_id: str = ""


@dataclass(frozen=True, order=True)
class Slot:
    """
    A bookable interval ``[start, end)``.

    Invariant: start must be before end.
    """
    start: Timestamp
    end: Timestamp

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Slot start {self.start} must be before end {self.end}")

    @property
    def duration(self) -> int:
        return self.end - self.start

    def format_display(self, time_zone: str) -> str:
        """
        Format the slot for display.
        Format: Wochentag, DD.MM.YYYY | HH:MM – HH:MM Uhr
        """
        start = pendulum.from_timestamp(self.start / 1000, tz=time_zone)
        end = pendulum.from_timestamp(self.end / 1000, tz=time_zone)

        weekday = GERMAN_WEEKDAY_NAMES[WEEKDAY_NAMES[(start.isoweekday()) % 7]]
        date_str = start.format("DD.MM.YYYY")
        time_str = f"{start.format('HH:mm')} – {end.format('HH:mm')} Uhr"
        minutes = self.duration // MINUTE_MS

        return f"{weekday}, {date_str} | {time_str} ({minutes} Min.)"


@dataclass(frozen=True)
class Period:
    """
    A query window ``[start, end]``.

    Invariant: end >= start.
    """
    start: Timestamp
    end: Timestamp

    def __post_init__(self):
        if self.end < self.start:
            raise InvalidPeriod(f"Period end {self.end} is before its start {self.start}")

    @classmethod
    def from_days(cls, start: Timestamp, days: int) -> "Period":
        if days < 0:
            raise InvalidPeriod(f"Period length must not be negative, got {days} days")
        return cls(start=start, end=start + days * DAY_MS)
