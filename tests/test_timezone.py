"""
Tests for timezone offset arithmetic.
"""

import pendulum
import pytest

from meetslots.domain.exceptions import InvalidTimezone
from meetslots.domain.models import HOUR_MS
from meetslots.domain.timezone import TimezoneOffset, offset_millis


def _ms(text: str, tz: str = "UTC") -> int:
    return int(pendulum.parse(text, tz=tz).timestamp() * 1000)


class TestOffsetMillis:
    """Tests for offset lookups."""

    def test_utc_has_zero_offset(self):
        assert offset_millis(_ms("2024-06-01T12:00:00"), "UTC") == 0

    def test_berlin_winter_and_summer(self):
        """Test that the offset follows the zone's DST rules."""
        assert offset_millis(_ms("2024-01-15T12:00:00"), "Europe/Berlin") == 1 * HOUR_MS
        assert offset_millis(_ms("2024-07-15T12:00:00"), "Europe/Berlin") == 2 * HOUR_MS

    def test_negative_offset(self):
        assert offset_millis(_ms("2024-01-15T12:00:00"), "America/New_York") == -5 * HOUR_MS

    def test_offset_changes_exactly_at_transition(self):
        """Berlin springs forward at 01:00 UTC on 2024-03-31."""
        transition = _ms("2024-03-31T01:00:00")

        assert offset_millis(transition - 1, "Europe/Berlin") == 1 * HOUR_MS
        assert offset_millis(transition, "Europe/Berlin") == 2 * HOUR_MS

    @pytest.mark.parametrize("zone_id", ["Mars/Olympus_Mons", "", "Not A Zone"])
    def test_unknown_zone_raises_error(self, zone_id):
        with pytest.raises(InvalidTimezone):
            offset_millis(0, zone_id)


class TestLocalToInstant:
    """Tests for converting local wall times back to instants."""

    def test_regular_time(self):
        timezones = TimezoneOffset()
        local = _ms("2024-11-25T09:00:00")  # wall clock expressed on the UTC axis

        assert timezones.local_to_instant(local, "Europe/Berlin") == _ms("2024-11-25T08:00:00")

    def test_spring_forward_gap_returns_none(self):
        """02:30 does not exist in Berlin on 2024-03-31."""
        timezones = TimezoneOffset()
        local = _ms("2024-03-31T02:30:00")

        assert timezones.local_to_instant(local, "Europe/Berlin", hint_offset=HOUR_MS) is None

    def test_fall_back_resolves_to_earlier_instant(self):
        """02:30 happens twice in Berlin on 2024-10-27; the CEST one wins."""
        timezones = TimezoneOffset()
        local = _ms("2024-10-27T02:30:00")

        for hint in (HOUR_MS, 2 * HOUR_MS, None):
            assert timezones.local_to_instant(local, "Europe/Berlin", hint_offset=hint) == _ms(
                "2024-10-27T00:30:00"
            )

    def test_local_midnights_on_short_day(self):
        """The spring-forward day in Berlin is 23 hours long."""
        timezones = TimezoneOffset()
        noon = _ms("2024-03-31 12:00", "Europe/Berlin")

        start = timezones.local_midnight(noon, "Europe/Berlin")
        end = timezones.next_local_midnight(noon, "Europe/Berlin")

        assert start == _ms("2024-03-31 00:00", "Europe/Berlin")
        assert end - start == 23 * HOUR_MS
