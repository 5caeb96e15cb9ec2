"""
Timezone offset arithmetic on epoch-millisecond instants.

Offsets are always looked up through the IANA rules of the zone at the
instant in question, never assumed constant, so DST transitions are honoured.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple, Union
from zoneinfo import ZoneInfoNotFoundError

import pendulum
from pendulum import FixedTimezone, Timezone

from .exceptions import InvalidTimezone
from .models import DAY_MS, Timestamp

logger = logging.getLogger(__name__)

_ONE_MS = timedelta(milliseconds=1)


class TimezoneOffset:
    """
    Resolves UTC offsets (in milliseconds) for IANA zone ids.

    Lookups are memoised per ``(zone_id, instant)``. Create one resolver per
    computation: the memo is not meant to outlive a single call.
    """

    def __init__(self) -> None:
        self._zones: Dict[str, Union[Timezone, FixedTimezone]] = {}
        self._offsets: Dict[Tuple[str, Timestamp], int] = {}

    def zone(self, zone_id: str) -> Union[Timezone, FixedTimezone]:
        """Return the pendulum timezone for ``zone_id``."""
        cached = self._zones.get(zone_id)
        if cached is not None:
            return cached

        if not isinstance(zone_id, str) or not zone_id.strip():
            raise InvalidTimezone(str(zone_id))

        try:
            tz = pendulum.timezone(zone_id)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise InvalidTimezone(zone_id) from exc

        self._zones[zone_id] = tz
        return tz

    def validate_zone(self, zone_id: str) -> None:
        """Fail fast with ``InvalidTimezone`` for an unknown zone."""
        self.zone(zone_id)

    def offset_millis(self, instant: Timestamp, zone_id: str) -> int:
        """Signed offset such that ``local = instant + offset``."""
        key = (zone_id, instant)
        cached = self._offsets.get(key)
        if cached is not None:
            return cached

        tz = self.zone(zone_id)
        moment = datetime.fromtimestamp(instant / 1000, tz=tz)
        offset = moment.utcoffset() // _ONE_MS

        self._offsets[key] = offset
        return offset

    def local_to_instant(
        self,
        local: Timestamp,
        zone_id: str,
        hint_offset: Optional[int] = None,
    ) -> Optional[Timestamp]:
        """
        Convert a local-shifted wall time back to an absolute instant.

        Returns None when the wall time falls into a spring-forward gap.
        A wall time repeated by a fall-back transition resolves to its
        earlier instant.
        """
        if hint_offset is None:
            hint_offset = self.offset_millis(local, zone_id)

        first = self.offset_millis(local - hint_offset, zone_id)
        second = self.offset_millis(local - first, zone_id)
        # Offsets in effect a day either side cover both readings of a repeated hour
        before = self.offset_millis(local - DAY_MS, zone_id)
        after = self.offset_millis(local + DAY_MS, zone_id)

        candidates = [
            local - offset
            for offset in {hint_offset, first, second, before, after}
            if self.offset_millis(local - offset, zone_id) == offset
        ]
        if not candidates:
            logger.debug("Local time %s does not exist in %s", local, zone_id)
            return None
        return min(candidates)

    def local_midnight(self, instant: Timestamp, zone_id: str) -> Timestamp:
        """Absolute instant of the local midnight starting the civil day of ``instant``."""
        tz = self.zone(zone_id)
        day_start = pendulum.from_timestamp(instant / 1000, tz=tz).start_of("day")
        return int(day_start.timestamp() * 1000)

    def next_local_midnight(self, instant: Timestamp, zone_id: str) -> Timestamp:
        """Absolute instant of the local midnight ending the civil day of ``instant``."""
        tz = self.zone(zone_id)
        day_start = pendulum.from_timestamp(instant / 1000, tz=tz).start_of("day")
        return int(day_start.add(days=1).timestamp() * 1000)


def offset_millis(instant: Timestamp, zone_id: str) -> int:
    """Pure, one-shot offset lookup."""
    return TimezoneOffset().offset_millis(instant, zone_id)
