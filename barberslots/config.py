"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from pathlib import Path

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import TimeOfDay, WorkingHours
from .domain.slot_calculator import SlotCalculator


class SchedulingConfig(BaseModel):
    """Working hours and slot generation settings."""
    open_hour: int = 9
    open_minute: int = 0
    close_hour: int = 18
    close_minute: int = 0
    step_minutes: int = 15
    default_duration_minutes: int = 60

    @field_validator("open_hour", "close_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("open_minute", "close_minute")
    @classmethod
    def validate_minute(cls, v: int) -> int:
        if not 0 <= v <= 59:
            raise ValueError(f"Minute must be between 0 and 59, got {v}")
        return v

    @field_validator("step_minutes", "default_duration_minutes")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @model_validator(mode="after")
    def validate_hours_order(self) -> "SchedulingConfig":
        """Ensure the shop opens before it closes."""
        if (self.close_hour, self.close_minute) <= (self.open_hour, self.open_minute):
            raise ValueError("closing time must be later than opening time")
        return self

    def get_open_time(self) -> TimeOfDay:
        return TimeOfDay.from_hm(self.open_hour, self.open_minute)

    def get_close_time(self) -> TimeOfDay:
        return TimeOfDay.from_hm(self.close_hour, self.close_minute)

    def get_working_hours(self) -> WorkingHours:
        return WorkingHours(
            open_time=self.get_open_time(),
            close_time=self.get_close_time(),
            step_minutes=self.step_minutes,
        )

    def build_slot_calculator(self) -> SlotCalculator:
        return SlotCalculator(
            working_hours=self.get_working_hours(),
            default_duration_minutes=self.default_duration_minutes,
        )


class AppConfig(BaseModel):
    """Application configuration."""
    database_url: str = "sqlite+aiosqlite:///barberslots.db"
    timezone: str = "Europe/Berlin"  # All dates and times are local to the shop
    log_level: str = "WARNING"
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

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

        return cls(**data)


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
