"""
Tests for the file-backed calendar store.
"""

import asyncio
import json

import pendulum
import pytest

from meetslots.adapters.file_store import FileCalendarStore, parse_event, to_millis
from meetslots.domain.exceptions import EventNotFound, StoreError
from meetslots.domain.models import HOUR_MS, MINUTE_MS, EventRecord


def _ms(text: str, tz: str = "UTC") -> int:
    return int(pendulum.parse(text, tz=tz).timestamp() * 1000)


DATA = {
    "schedules": [
        {
            "id": "intro",
            "title": "Intro call",
            "owner": "host@example.com",
            "timeZone": "Europe/Berlin",
            "meetingDuration": 30 * MINUTE_MS,
            "meetingInterval": 0,
            "availability": {
                "1": [{"start": 9 * HOUR_MS, "end": 17 * HOUR_MS}],
                "friday": ["09:00-12:00"],
            },
        }
    ],
    "events": [
        {
            "eventId": "standup",
            "date": "2024-11-04T09:00:00+01:00",
            "dueDate": "2024-11-04T09:15:00+01:00",
            "timeZone": "Europe/Berlin",
            "participants": ["host@example.com"],
            "rules": [{"freq": "WEEKLY", "interval": 1, "byDay": ["MO", "WE"]}],
            "exdate": ["2024-11-06T09:00:00+01:00"],
        },
        {
            "recurringEventId": "standup",
            "originalStartTime": "2024-11-11T09:00:00+01:00",
            "isCancelled": True,
        },
        {
            "eventId": "lunch",
            "date": _ms("2024-11-25 12:00"),
            "dueDate": _ms("2024-11-25 13:00"),
            "participants": ["host@example.com", "guest@example.com"],
        },
        {"eventId": "broken", "date": "not a date", "dueDate": 0},
    ],
}


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "calendar.json"
    path.write_text(json.dumps(DATA), encoding="utf-8")
    return path


class TestFileCalendarStore:
    """Tests for FileCalendarStore."""

    def test_loads_schedules(self, data_file):
        store = FileCalendarStore(data_file)

        schedule = asyncio.run(store.get_schedule("intro"))

        assert schedule.time_zone == "Europe/Berlin"
        assert schedule.meeting_duration == 30 * MINUTE_MS
        assert [str(w) for w in schedule.availability.for_weekday(1)] == ["09:00-17:00"]
        assert [str(w) for w in schedule.availability.for_weekday(5)] == ["09:00-12:00"]

    def test_loads_recurring_event_with_overrides(self, data_file):
        store = FileCalendarStore(data_file)

        standup = asyncio.run(store.get_event("standup"))
        rule = standup.recurrence

        assert rule.frequency == "WEEKLY"
        assert rule.by_weekday == (1, 3)
        assert rule.exceptions == {_ms("2024-11-06T08:00:00")}
        assert rule.overrides[_ms("2024-11-11T08:00:00")].cancelled

    def test_invalid_event_is_skipped(self, data_file):
        store = FileCalendarStore(data_file)

        assert asyncio.run(store.get_event("broken")) is None

    def test_get_events_filters_single_events(self, data_file):
        store = FileCalendarStore(data_file)

        events = asyncio.run(store.get_events(_ms("2024-11-26 00:00"), _ms("2024-11-27 00:00")))

        assert [e.event_id for e in events] == ["standup"]

    def test_configured_schedules_take_precedence(self, data_file):
        store = FileCalendarStore(data_file)
        configured = asyncio.run(store.get_schedule("intro"))
        replacement = configured.__class__(
            schedule_id="intro",
            time_zone="UTC",
            meeting_duration=HOUR_MS,
            meeting_interval=0,
            availability=configured.availability,
        )

        store = FileCalendarStore(data_file, schedules=[replacement])

        assert asyncio.run(store.get_schedule("intro")).time_zone == "UTC"

    def test_missing_file_starts_empty(self, tmp_path):
        store = FileCalendarStore(tmp_path / "missing.json")

        assert store.list_schedules() == []
        assert asyncio.run(store.get_events(0, _ms("2030-01-01 00:00"))) == []

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "calendar.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StoreError):
            FileCalendarStore(path)

    def test_invalid_schedule(self, tmp_path):
        path = tmp_path / "calendar.json"
        path.write_text(json.dumps({"schedules": [{"id": "x", "meetingDuration": 0}]}), encoding="utf-8")

        with pytest.raises(StoreError):
            FileCalendarStore(path)

    def test_create_update_delete(self, data_file):
        store = FileCalendarStore(data_file)
        event = EventRecord(event_id="new", date=0, due_date=HOUR_MS)

        asyncio.run(store.create_event(event))
        with pytest.raises(StoreError):
            asyncio.run(store.create_event(event))

        asyncio.run(store.delete_event("new"))
        with pytest.raises(EventNotFound):
            asyncio.run(store.update_event(event))
        with pytest.raises(EventNotFound):
            asyncio.run(store.delete_event("new"))

    def test_save_and_reload(self, data_file):
        store = FileCalendarStore(data_file)
        booked = EventRecord(
            event_id="booked",
            date=_ms("2024-11-25 10:00"),
            due_date=_ms("2024-11-25 10:30"),
            time_zone="Europe/Berlin",
            participants=frozenset({"host@example.com", "guest@example.com"}),
            title="Intro call",
        )
        asyncio.run(store.create_event(booked))
        asyncio.run(store.delete_event("lunch"))

        store.save()
        reloaded = FileCalendarStore(data_file)

        assert asyncio.run(reloaded.get_event("booked")) == booked
        assert asyncio.run(reloaded.get_event("lunch")) is None
        standup = asyncio.run(reloaded.get_event("standup"))
        assert standup.recurrence.overrides[_ms("2024-11-11T08:00:00")].cancelled
        assert [s.schedule_id for s in reloaded.list_schedules()] == ["intro"]

    def test_yaml_data_file(self, tmp_path):
        path = tmp_path / "calendar.yaml"
        path.write_text(
            "events:\n"
            "  - eventId: offsite\n"
            "    date: 2024-11-25T00:00:00Z\n"
            "    dueDate: 2024-11-25T00:00:00Z\n"
            "    allDay: true\n"
            "    rrule: FREQ=DAILY;COUNT=2\n",
            encoding="utf-8",
        )

        store = FileCalendarStore(path)
        event = asyncio.run(store.get_event("offsite"))

        assert event.all_day
        assert event.date == _ms("2024-11-25 00:00")
        assert event.recurrence.rrule == "FREQ=DAILY;COUNT=2"


class TestParsing:
    """Tests for data-file parsing helpers."""

    def test_to_millis(self):
        assert to_millis(1_700_000_000_000) == 1_700_000_000_000
        assert to_millis("2024-11-25T10:00:00Z") == _ms("2024-11-25 10:00")
        assert to_millis(pendulum.datetime(2024, 11, 25, 10)) == _ms("2024-11-25 10:00")

    def test_to_millis_rejects_garbage(self):
        with pytest.raises(ValueError):
            to_millis(True)

    def test_unknown_day_code_is_kept_for_the_expander(self):
        event = parse_event(
            {
                "eventId": "odd",
                "date": 0,
                "dueDate": HOUR_MS,
                "rules": [{"freq": "weekly", "byDay": ["XX"]}],
            }
        )

        assert event.recurrence.frequency == "weekly"
        assert event.recurrence.by_weekday == (-1,)

    def test_single_event_has_no_recurrence(self):
        event = parse_event({"eventId": "one", "date": 0, "dueDate": HOUR_MS})

        assert not event.is_recurring
        assert event.recurrence is None
