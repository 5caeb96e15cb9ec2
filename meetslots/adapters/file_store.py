"""
File-backed calendar store.

Loads schedules and events from a JSON or YAML data file into memory and
writes the state back on ``save()``. Useful for the CLI and for tests, without
any external calendar backend.

Data file layout::

    {
      "schedules": [
        {"id": "intro", "title": "Intro call", "owner": "host@example.com",
         "timeZone": "Europe/Berlin", "meetingDuration": 1800000, "meetingInterval": 0,
         "availability": {"1": [{"start": 32400000, "end": 61200000}]}}
      ],
      "events": [
        {"eventId": "standup", "date": 1732521600000, "dueDate": 1732523400000,
         "allDay": false, "timeZone": "Europe/Berlin", "participants": ["host@example.com"],
         "rules": [{"freq": "WEEKLY", "interval": 1, "byDay": ["MO"]}], "exdate": []},
        {"recurringEventId": "standup", "originalStartTime": 1733126400000,
         "isCancelled": true, "date": 1733126400000, "dueDate": 1733128200000}
      ]
    }

Timestamps may be epoch milliseconds or ISO 8601 strings.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pendulum
import yaml

from ..domain.exceptions import EventNotFound, InvalidScheduleConfig, StoreError
from ..domain.models import (
    AvailabilityTemplate,
    EventRecord,
    Frequency,
    OccurrenceOverride,
    RecurrenceRule,
    ScheduleConfig,
    Timestamp,
    TimeWindow,
)

logger = logging.getLogger(__name__)

_DAY_CODES = {"SU": 0, "MO": 1, "TU": 2, "WE": 3, "TH": 4, "FR": 5, "SA": 6}
_CODES_BY_DAY = {index: code for code, index in _DAY_CODES.items()}


class FileCalendarStore:
    """
    In-memory calendar store seeded from a data file.

    Implements ``CalendarStoreProtocol``. Schedules passed in explicitly (for
    example from the YAML configuration) take precedence over schedules of
    the same id found in the data file.
    """

    def __init__(self, data_file: Path, schedules: Iterable[ScheduleConfig] = ()):
        self.data_file = Path(data_file)
        self._schedules: Dict[str, ScheduleConfig] = {}
        self._events: Dict[str, EventRecord] = {}
        self._raw_schedules: List[Dict[str, Any]] = []
        self._raw_events: Dict[str, Dict[str, Any]] = {}
        self._instances: List[Dict[str, Any]] = []
        self._load()

        for schedule in schedules:
            self._schedules[schedule.schedule_id] = schedule

    def _load(self) -> None:
        """Load the data file; a missing file starts an empty calendar."""
        if not self.data_file.exists():
            logger.info("Data file %s not found, starting with an empty calendar", self.data_file)
            return

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                if self._is_yaml:
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise StoreError(f"Could not read data file {self.data_file}: {exc}") from exc

        if not isinstance(data, dict):
            raise StoreError("Data file must contain a mapping at the root level.")

        for raw in data.get("schedules", []):
            try:
                schedule = parse_schedule(raw)
            except (KeyError, TypeError, ValueError, InvalidScheduleConfig) as exc:
                raise StoreError(f"Invalid schedule entry {raw!r}: {exc}") from exc
            self._schedules[schedule.schedule_id] = schedule
            self._raw_schedules.append(raw)

        raw_events = data.get("events", [])
        instances = [raw for raw in raw_events if "recurringEventId" in raw]
        for raw in raw_events:
            if "recurringEventId" in raw:
                continue
            try:
                event = parse_event(raw, instances)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping invalid event %r: %s", raw.get("eventId"), exc)
                continue
            self._events[event.event_id] = event
            self._raw_events[event.event_id] = raw

        self._instances = instances
        logger.debug(
            "Loaded %d schedule(s) and %d event(s) from %s",
            len(self._schedules),
            len(self._events),
            self.data_file,
        )

    @property
    def _is_yaml(self) -> bool:
        return self.data_file.suffix.lower() in (".yaml", ".yml")

    async def get_schedule(self, schedule_id: str) -> Optional[ScheduleConfig]:
        return self._schedules.get(schedule_id)

    async def get_events(self, start: Timestamp, end: Timestamp) -> List[EventRecord]:
        """Single events touching ``[start, end]`` plus every recurring definition."""
        return [
            event
            for event in self._events.values()
            if event.is_recurring or (event.date <= end and event.due_date >= start)
        ]

    async def get_event(self, event_id: str) -> Optional[EventRecord]:
        return self._events.get(event_id)

    async def create_event(self, event: EventRecord) -> EventRecord:
        if event.event_id in self._events:
            raise StoreError(f"Event {event.event_id} already exists")
        self._events[event.event_id] = event
        return event

    async def update_event(self, event: EventRecord) -> EventRecord:
        if event.event_id not in self._events:
            raise EventNotFound(f"Event not found for {event.event_id}")
        self._events[event.event_id] = event
        return event

    async def delete_event(self, event_id: str) -> EventRecord:
        event = self._events.pop(event_id, None)
        if event is None:
            raise EventNotFound(f"Event not found for {event_id}")
        self._raw_events.pop(event_id, None)
        return event

    def list_schedules(self) -> List[ScheduleConfig]:
        return list(self._schedules.values())

    def save(self) -> None:
        """Write schedules and events back to the data file."""
        events: List[Dict[str, Any]] = []
        for event_id, event in self._events.items():
            raw = self._raw_events.get(event_id)
            if raw is not None and event.is_recurring:
                # Recurring definitions keep their rules; only mutable fields are refreshed
                raw = dict(raw, date=event.date, dueDate=event.due_date,
                           participants=sorted(event.participants))
                events.append(raw)
            else:
                events.append(event_to_mapping(event))
        live_ids = set(self._events)
        events.extend(raw for raw in self._instances if raw["recurringEventId"] in live_ids)

        data = {"schedules": self._raw_schedules, "events": events}
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.data_file, "w", encoding="utf-8") as f:
                if self._is_yaml:
                    yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
                else:
                    json.dump(data, f, indent=2)
        except OSError as exc:
            raise StoreError(f"Could not save data file {self.data_file}: {exc}") from exc


def to_millis(value: Any) -> Timestamp:
    """Accept epoch milliseconds or an ISO 8601 string."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        # YAML hands out datetime objects for unquoted timestamps; naive ones are UTC
        return int(pendulum.instance(value).timestamp() * 1000)
    parsed = pendulum.parse(str(value))
    if not isinstance(parsed, pendulum.DateTime):
        raise ValueError(f"Could not parse datetime: {value}")
    return int(parsed.timestamp() * 1000)


def parse_schedule(raw: Mapping[str, Any]) -> ScheduleConfig:
    """Build a ``ScheduleConfig`` from its data-file mapping."""
    windows: Dict[Any, List[TimeWindow]] = {}
    for weekday, day_windows in (raw.get("availability") or {}).items():
        windows[weekday] = [
            TimeWindow.parse(w) if isinstance(w, str) else TimeWindow(start=int(w["start"]), end=int(w["end"]))
            for w in day_windows or []
        ]

    return ScheduleConfig(
        schedule_id=str(raw["id"]),
        title=raw.get("title", ""),
        owner=raw.get("owner", ""),
        time_zone=raw.get("timeZone", "UTC"),
        meeting_duration=int(raw.get("meetingDuration", 0)),
        meeting_interval=int(raw.get("meetingInterval", 0)),
        availability=AvailabilityTemplate.from_weekday_names(windows),
    )


def parse_event(raw: Mapping[str, Any], instances: Iterable[Mapping[str, Any]] = ()) -> EventRecord:
    """
    Build an ``EventRecord`` from its data-file mapping.

    Instances (entries carrying ``recurringEventId``) of this event become
    overrides of its recurrence rule.
    """
    event_id = str(raw["eventId"])
    recurrence = None

    if raw.get("rules") or raw.get("rrule"):
        recurrence = _parse_recurrence(raw, [i for i in instances if i.get("recurringEventId") == event_id])

    return EventRecord(
        event_id=event_id,
        date=to_millis(raw["date"]),
        due_date=to_millis(raw["dueDate"]),
        all_day=bool(raw.get("allDay", False)),
        time_zone=raw.get("timeZone"),
        participants=frozenset(raw.get("participants", [])),
        recurrence=recurrence,
        title=raw.get("title", ""),
    )


def _parse_recurrence(raw: Mapping[str, Any], instances: List[Mapping[str, Any]]) -> RecurrenceRule:
    overrides = {
        to_millis(instance["originalStartTime"]): OccurrenceOverride(
            date=to_millis(instance.get("date", instance["originalStartTime"])),
            due_date=to_millis(instance.get("dueDate", instance["originalStartTime"])),
            cancelled=bool(instance.get("isCancelled", False)),
        )
        for instance in instances
    }
    common = dict(
        exceptions=frozenset(to_millis(d) for d in raw.get("exdate", [])),
        additions=frozenset(to_millis(d) for d in raw.get("rdate", [])),
        overrides=overrides,
    )

    if raw.get("rrule"):
        return RecurrenceRule(rrule=str(raw["rrule"]), **common)

    rules = raw["rules"]
    if len(rules) > 1:
        logger.warning("Event %s has %d rules, only the first one is used", raw.get("eventId"), len(rules))
    rule = rules[0]

    return RecurrenceRule(
        frequency=rule.get("freq"),
        interval=int(rule.get("interval", 1)),
        count=rule.get("count"),
        until=to_millis(rule["endDate"]) if rule.get("endDate") is not None else None,
        # Unknown day codes map to -1, which the expander rejects as malformed
        by_weekday=tuple(_DAY_CODES.get(str(code).upper()[-2:], -1) for code in rule.get("byDay", [])),
        **common,
    )


def event_to_mapping(event: EventRecord) -> Dict[str, Any]:
    """Serialise a single event to its data-file mapping."""
    data: Dict[str, Any] = {
        "eventId": event.event_id,
        "date": event.date,
        "dueDate": event.due_date,
        "allDay": event.all_day,
        "participants": sorted(event.participants),
    }
    if event.time_zone:
        data["timeZone"] = event.time_zone
    if event.title:
        data["title"] = event.title

    rule = event.recurrence
    if rule is not None:
        if rule.rrule:
            data["rrule"] = rule.rrule
        else:
            frequency = rule.frequency.value if isinstance(rule.frequency, Frequency) else rule.frequency
            entry: Dict[str, Any] = {"freq": frequency, "interval": rule.interval}
            if rule.count is not None:
                entry["count"] = rule.count
            if rule.until is not None:
                entry["endDate"] = rule.until
            if rule.by_weekday:
                entry["byDay"] = [_CODES_BY_DAY.get(day, str(day)) for day in rule.by_weekday]
            data["rules"] = [entry]
        if rule.exceptions:
            data["exdate"] = sorted(rule.exceptions)
        if rule.additions:
            data["rdate"] = sorted(rule.additions)
    return data
