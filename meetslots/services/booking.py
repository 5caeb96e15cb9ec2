"""
Application services for listing, booking, rescheduling and cancelling slots.

The service coordinates fetching schedules and events via a calendar store
adapter and delegates every busy/free decision to the domain-level engine.
This keeps the CLI thin and improves testability by allowing the store
dependency to be replaced via a simple protocol.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from typing import Callable, Dict, List, Optional, Protocol

from ..domain.exceptions import EventNotFound, ScheduleNotFound, SlotBusy
from ..domain.expander import EventExpander
from ..domain.models import DAY_MS, EventRecord, Occurrence, Period, ScheduleConfig, Slot, Timestamp
from ..domain.overlap import OverlapChecker
from ..domain.slot_generator import SlotGenerator
from ..domain.timezone import TimezoneOffset

logger = logging.getLogger(__name__)


class CalendarStoreProtocol(Protocol):
    """Protocol describing the calendar store behaviour needed by the service."""

    async def get_schedule(self, schedule_id: str) -> Optional[ScheduleConfig]:
        """Return the schedule or None."""

    async def get_events(self, start: Timestamp, end: Timestamp) -> List[EventRecord]:
        """Return single events touching the window plus all recurring definitions."""

    async def get_event(self, event_id: str) -> Optional[EventRecord]:
        """Return one event or None."""

    async def create_event(self, event: EventRecord) -> EventRecord:
        """Persist a new event."""

    async def update_event(self, event: EventRecord) -> EventRecord:
        """Replace an existing event."""

    async def delete_event(self, event_id: str) -> EventRecord:
        """Remove an event and return it."""


class BookingService:
    """
    Orchestrates calendar retrieval and the slot engine.

    Booking, rescheduling and cancelling run under one lock per host calendar
    (the participant whose events are checked, else the schedule owner), so
    schedules sharing a host are serialised together. The busy check is
    re-run inside the lock right before the write. This
    serialises check-then-act within the process; across processes the store
    has to enforce its own uniqueness guarantees.
    """

    def __init__(
        self,
        store: CalendarStoreProtocol,
        slot_generator: Optional[SlotGenerator] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._store = store
        self._slot_generator = slot_generator or SlotGenerator()
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._locks: Dict[str, asyncio.Lock] = {}

    async def list_timeslots(
        self,
        schedule_id: str,
        *,
        period_start: Timestamp,
        period_days: int,
        client_now: Timestamp,
        participant: Optional[str] = None,
    ) -> List[Slot]:
        """
        Return the free slots of a schedule for ``period_days`` days.

        The period start is clamped to ``client_now``; slots starting before
        it are never offered.

        Raises:
            ScheduleNotFound: If the schedule does not exist
            InvalidPeriod: If ``period_days`` is negative
        """
        schedule = await self._require_schedule(schedule_id)

        requested = Period.from_days(period_start, period_days)
        start = max(requested.start, client_now)
        if start > requested.end:
            return []
        period = Period(start=start, end=requested.end)

        events = await self._store.get_events(period.start - DAY_MS, period.end + DAY_MS)
        slots = self._slot_generator.generate_from_events(
            schedule,
            events,
            period,
            not_before=client_now,
            participants=self._participant_filter(schedule, participant),
        )
        logger.info("Found %d free slot(s) for schedule %s", len(slots), schedule_id)
        return slots

    async def check_slot(
        self,
        schedule_id: str,
        slot: Slot,
        *,
        participant: Optional[str] = None,
        exclude_event_id: Optional[str] = None,
    ) -> bool:
        """Return True when the slot is busy."""
        schedule = await self._require_schedule(schedule_id)
        conflicts = await self._find_conflicts(schedule, slot, participant, exclude_event_id)
        return bool(conflicts)

    async def book(
        self,
        schedule_id: str,
        slot: Slot,
        *,
        guest: str,
        participant: Optional[str] = None,
        subject: str = "",
    ) -> EventRecord:
        """
        Create a meeting in a free slot.

        Raises:
            ScheduleNotFound: If the schedule does not exist
            SlotBusy: If the slot conflicts with an existing occurrence
        """
        schedule = await self._require_schedule(schedule_id)
        async with self._lock_for(schedule, participant):
            conflicts = await self._find_conflicts(schedule, slot, participant, None)
            if conflicts:
                raise SlotBusy("Slot is already busy", conflicts)

            host = participant or schedule.owner
            title = f"{schedule.title} ({guest})" if schedule.title else guest
            event = EventRecord(
                event_id=self._id_factory(),
                date=slot.start,
                due_date=slot.end,
                all_day=False,
                time_zone=schedule.time_zone,
                participants=frozenset(p for p in (host, guest) if p),
                title=subject or title,
            )
            created = await self._store.create_event(event)

        logger.info("Booked event %s for %s in schedule %s", created.event_id, guest, schedule_id)
        return created

    async def reschedule(
        self,
        schedule_id: str,
        event_id: str,
        slot: Slot,
        *,
        guest: str,
        participant: Optional[str] = None,
    ) -> EventRecord:
        """
        Move an existing meeting to another slot.

        The event being moved never conflicts with itself.
        """
        schedule = await self._require_schedule(schedule_id)
        async with self._lock_for(schedule, participant):
            event = await self._require_guest_event(event_id, guest)

            conflicts = await self._find_conflicts(schedule, slot, participant, event_id)
            if conflicts:
                raise SlotBusy("Slot is already busy", conflicts)

            updated = await self._store.update_event(
                dataclasses.replace(event, date=slot.start, due_date=slot.end)
            )

        logger.info("Rescheduled event %s to %s-%s", event_id, slot.start, slot.end)
        return updated

    async def cancel(self, schedule_id: str, event_id: str, *, guest: str) -> EventRecord:
        """
        Cancel a guest's meeting.

        A meeting with only host and guest is deleted. With more participants
        only the guest is removed from it.
        """
        schedule = await self._require_schedule(schedule_id)
        async with self._lock_for(schedule, None):
            event = await self._require_guest_event(event_id, guest)

            if len(event.participants) <= 2:
                result = await self._store.delete_event(event_id)
                logger.info("Deleted event %s cancelled by %s", event_id, guest)
            else:
                result = await self._store.update_event(
                    dataclasses.replace(event, participants=event.participants - {guest})
                )
                logger.info("Removed %s from event %s", guest, event_id)

        return result

    async def _find_conflicts(
        self,
        schedule: ScheduleConfig,
        slot: Slot,
        participant: Optional[str],
        exclude_event_id: Optional[str],
    ) -> List[Occurrence]:
        events = await self._store.get_events(slot.start - DAY_MS, slot.end + DAY_MS)

        timezones = TimezoneOffset()
        expander = EventExpander(
            participants=self._participant_filter(schedule, participant),
            timezones=timezones,
        )
        occurrences = expander.expand(events, slot.start, slot.end)
        tz_offset = timezones.offset_millis(slot.start, schedule.time_zone)

        return OverlapChecker(timezones).find_conflicts(
            occurrences,
            slot.start,
            slot.end,
            tz_offset,
            exclude_event_id=exclude_event_id,
        )

    async def _require_schedule(self, schedule_id: str) -> ScheduleConfig:
        schedule = await self._store.get_schedule(schedule_id)
        if schedule is None:
            raise ScheduleNotFound(f"Schedule not found for {schedule_id}")
        return schedule

    async def _require_guest_event(self, event_id: str, guest: str) -> EventRecord:
        event = await self._store.get_event(event_id)
        if event is None:
            raise EventNotFound(f"Event not found for {event_id}")
        if guest not in event.participants:
            raise EventNotFound(f"Guest {guest} does not take part in event {event_id}")
        return event

    def _lock_for(self, schedule: ScheduleConfig, participant: Optional[str]) -> asyncio.Lock:
        """One lock per host calendar, shared by every schedule reading it."""
        key = participant or schedule.owner or f"schedule:{schedule.schedule_id}"
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @staticmethod
    def _participant_filter(
        schedule: ScheduleConfig,
        participant: Optional[str],
    ) -> Optional[List[str]]:
        """Events are filtered to the host (or an explicit participant) when known."""
        host = participant or schedule.owner
        return [host] if host else None
