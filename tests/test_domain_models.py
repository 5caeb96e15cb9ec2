"""
Tests for domain models.
"""

import pendulum
import pytest

from meetslots.domain.exceptions import InvalidPeriod, InvalidScheduleConfig
from meetslots.domain.models import (
    DAY_MS,
    HOUR_MS,
    MINUTE_MS,
    AvailabilityTemplate,
    Period,
    ScheduleConfig,
    Slot,
    TimeWindow,
    weekday_index,
)


def _ms(text: str, tz: str = "UTC") -> int:
    return int(pendulum.parse(text, tz=tz).timestamp() * 1000)


class TestTimeWindow:
    """Tests for TimeWindow model."""

    def test_parse_window(self):
        """Test parsing a HH:MM-HH:MM window."""
        window = TimeWindow.parse("09:30-17:00")

        assert window.start == 9 * HOUR_MS + 30 * MINUTE_MS
        assert window.end == 17 * HOUR_MS
        assert str(window) == "09:30-17:00"

    def test_end_of_day_allowed(self):
        """A window may close at 24:00."""
        window = TimeWindow.parse("20:00-24:00")

        assert window.end == DAY_MS

    @pytest.mark.parametrize("text", ["17:00-09:00", "09:00-09:00", "9-17", "09:00-25:00", "09:61-10:00"])
    def test_invalid_window_raises_error(self, text):
        """Test that malformed windows are rejected."""
        with pytest.raises(InvalidScheduleConfig):
            TimeWindow.parse(text)


class TestAvailabilityTemplate:
    """Tests for AvailabilityTemplate model."""

    def test_from_weekday_names(self):
        """Weekday names map to Sunday-first indices and windows are sorted."""
        template = AvailabilityTemplate.from_weekday_names(
            {"monday": ["13:00-17:00", "09:00-12:00"], "sun": ["10:00-11:00"]}
        )

        assert [str(w) for w in template.for_weekday(1)] == ["09:00-12:00", "13:00-17:00"]
        assert [str(w) for w in template.for_weekday(0)] == ["10:00-11:00"]
        assert template.for_weekday(2) == ()

    def test_empty_day_is_unavailable(self):
        """An empty window list marks the day unavailable."""
        template = AvailabilityTemplate.from_weekday_names({"friday": []})

        assert template.for_weekday(5) == ()
        assert template.windows == {}

    def test_overlapping_windows_rejected(self):
        """Overlapping windows on one day are a configuration error."""
        with pytest.raises(InvalidScheduleConfig, match="Overlapping"):
            AvailabilityTemplate.from_weekday_names({"monday": ["09:00-12:00", "11:00-13:00"]})

    def test_unknown_weekday_rejected(self):
        """Unknown weekday names are rejected."""
        with pytest.raises(InvalidScheduleConfig):
            AvailabilityTemplate.from_weekday_names({"funday": ["09:00-12:00"]})

    def test_weekday_index(self):
        """Weekday names and numbers resolve to 0=Sunday indices."""
        assert weekday_index("Sunday") == 0
        assert weekday_index("thu") == 4
        assert weekday_index("6") == 6
        assert weekday_index(3) == 3


class TestScheduleConfig:
    """Tests for ScheduleConfig model."""

    def test_step(self):
        """Slots start every duration + interval."""
        schedule = ScheduleConfig(
            time_zone="UTC",
            meeting_duration=30 * MINUTE_MS,
            meeting_interval=15 * MINUTE_MS,
            availability=AvailabilityTemplate(),
        )

        assert schedule.step == 45 * MINUTE_MS

    def test_non_positive_duration_rejected(self):
        with pytest.raises(InvalidScheduleConfig, match="meeting_duration"):
            ScheduleConfig(
                time_zone="UTC",
                meeting_duration=0,
                meeting_interval=0,
                availability=AvailabilityTemplate(),
            )

    def test_negative_interval_rejected(self):
        with pytest.raises(InvalidScheduleConfig, match="meeting_interval"):
            ScheduleConfig(
                time_zone="UTC",
                meeting_duration=MINUTE_MS,
                meeting_interval=-1,
                availability=AvailabilityTemplate(),
            )


class TestSlotAndPeriod:
    """Tests for Slot and Period models."""

    def test_slot_equality_by_value(self):
        """Slots are values: equal bounds mean equal slots."""
        assert Slot(start=0, end=10) == Slot(start=0, end=10)
        assert len({Slot(start=0, end=10), Slot(start=0, end=10)}) == 1

    def test_invalid_slot_raises_error(self):
        with pytest.raises(ValueError, match="must be before end"):
            Slot(start=10, end=10)

    def test_format_display(self):
        """Test German display format in the given zone."""
        slot = Slot(
            start=_ms("2024-11-25 09:00", "Europe/Berlin"),
            end=_ms("2024-11-25 09:30", "Europe/Berlin"),
        )

        assert slot.format_display("Europe/Berlin") == "Montag, 25.11.2024 | 09:00 – 09:30 Uhr (30 Min.)"

    def test_period_from_days(self):
        period = Period.from_days(1_000, 2)

        assert period.end == 1_000 + 2 * DAY_MS

    def test_period_end_before_start_rejected(self):
        with pytest.raises(InvalidPeriod):
            Period(start=10, end=5)
