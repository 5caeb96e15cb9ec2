"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import InvalidScheduleConfig, InvalidTimezone
from .domain.models import MINUTE_MS, AvailabilityTemplate, ScheduleConfig, TimeWindow, weekday_index
from .domain.timezone import TimezoneOffset

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class DefaultsConfig(BaseModel):
    """Default settings for schedules and searches."""
    period_days: int = 7
    duration_minutes: int = 30
    interval_minutes: int = 0

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure meeting duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    @field_validator("interval_minutes")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        """Ensure the gap between meetings is not negative."""
        if value < 0:
            raise ValueError("interval_minutes must not be negative")
        return value

    @field_validator("period_days")
    @classmethod
    def validate_period_days(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("period_days must be greater than zero")
        return value


class ScheduleSettings(BaseModel):
    """A bookable schedule as written in the config file."""
    id: str
    title: str = ""
    owner: str = ""  # Host participant id, used to filter the host's events
    timezone: Optional[str] = None  # Falls back to the global timezone
    duration_minutes: Optional[int] = None
    interval_minutes: Optional[int] = None
    availability: Dict[str, List[str]] = Field(default_factory=dict)  # {"monday": ["09:00-17:00"]}

    @field_validator("availability")
    @classmethod
    def validate_availability(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        """Ensure weekday names and windows are well-formed."""
        try:
            AvailabilityTemplate.from_weekday_names(value)
        except InvalidScheduleConfig as exc:
            raise ValueError(str(exc)) from exc
        return value

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            _check_timezone(value)
        return value

    def to_schedule_config(self, defaults: DefaultsConfig, default_timezone: str) -> ScheduleConfig:
        """Build the domain schedule, filling gaps from the defaults."""
        duration = self.duration_minutes if self.duration_minutes is not None else defaults.duration_minutes
        interval = self.interval_minutes if self.interval_minutes is not None else defaults.interval_minutes

        return ScheduleConfig(
            schedule_id=self.id,
            title=self.title,
            owner=self.owner,
            time_zone=self.timezone or default_timezone,
            meeting_duration=duration * MINUTE_MS,
            meeting_interval=interval * MINUTE_MS,
            availability=AvailabilityTemplate.from_weekday_names(self.availability),
        )

    def describe_availability(self) -> Dict[int, str]:
        """Weekday index to a readable window list, e.g. ``{1: "09:00-12:00, 13:00-17:00"}``."""
        described: Dict[int, str] = {}
        for weekday, windows in self.availability.items():
            described[weekday_index(weekday)] = ", ".join(str(TimeWindow.parse(w)) for w in windows)
        return described


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Berlin"
    data_file: Path = Path("calendar.json")
    log_level: str = "INFO"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    schedules: List[ScheduleSettings] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the default timezone is a known IANA zone."""
        _check_timezone(value)
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept the standard logging level names, case-insensitively."""
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def validate_unique_schedules(self) -> "AppConfig":
        """Ensure schedule ids are unique."""
        seen: set[str] = set()
        for schedule in self.schedules:
            if schedule.id in seen:
                raise ValueError(f"Duplicate schedule id detected: {schedule.id}")
            seen.add(schedule.id)
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)
        if not config.data_file.is_absolute():
            config.data_file = config_path.parent / config.data_file
        return config

    def schedule_configs(self) -> List[ScheduleConfig]:
        """All configured schedules as domain objects."""
        return [s.to_schedule_config(self.defaults, self.timezone) for s in self.schedules]


def _check_timezone(value: str) -> None:
    try:
        TimezoneOffset().validate_zone(value)
    except InvalidTimezone as exc:
        raise ValueError(str(exc)) from exc


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
