"""
Tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from barberslots.config import AppConfig, SchedulingConfig


class TestSchedulingConfig:
    """Tests for SchedulingConfig."""

    def test_defaults(self):
        """Test the default shop day is 9:00 to 18:00 in 15-minute steps."""
        scheduling = SchedulingConfig()
        working_hours = scheduling.get_working_hours()

        assert working_hours.open_time.format() == "9:00 AM"
        assert working_hours.close_time.format() == "6:00 PM"
        assert working_hours.step_minutes == 15
        assert scheduling.build_slot_calculator().default_duration_minutes == 60

    def test_invalid_hour(self):
        with pytest.raises(ValidationError, match="Hour must be between 0 and 23"):
            SchedulingConfig(open_hour=24)

    def test_invalid_minute(self):
        with pytest.raises(ValidationError):
            SchedulingConfig(close_minute=60)

    def test_close_must_follow_open(self):
        with pytest.raises(ValidationError, match="closing time must be later"):
            SchedulingConfig(open_hour=18, close_hour=9)

    def test_non_positive_step(self):
        with pytest.raises(ValidationError):
            SchedulingConfig(step_minutes=0)


class TestAppConfig:
    """Tests for AppConfig."""

    def test_defaults(self):
        config = AppConfig()

        assert config.database_url.startswith("sqlite+aiosqlite://")
        assert config.timezone == "Europe/Berlin"
        assert config.log_level == "WARNING"

    def test_log_level_normalised(self):
        assert AppConfig(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValidationError, match="Unknown log level"):
            AppConfig(log_level="chatty")

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError, match="Unknown timezone"):
            AppConfig(timezone="Mars/Olympus_Mons")

    def test_load_from_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "database_url: sqlite+aiosqlite:///shop.db\n"
            "timezone: Europe/Vienna\n"
            "scheduling:\n"
            "  open_hour: 10\n"
            "  close_hour: 19\n"
            "  step_minutes: 30\n",
            encoding="utf-8",
        )

        config = AppConfig.load_from_yaml(config_file)

        assert config.database_url == "sqlite+aiosqlite:///shop.db"
        assert config.timezone == "Europe/Vienna"
        assert config.scheduling.get_open_time().format() == "10:00 AM"
        assert config.scheduling.step_minutes == 30
        assert config.scheduling.default_duration_minutes == 60

    def test_empty_yaml_gives_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("", encoding="utf-8")

        assert AppConfig.load_from_yaml(config_file) == AppConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_non_mapping_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError, match="mapping at the root level"):
            AppConfig.load_from_yaml(config_file)

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("scheduling: [unclosed\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.load_from_yaml(config_file)
