import pytest

from lms_calendar.settings import get_settings


@pytest.fixture
def env(monkeypatch):
    for name in ["PERSISTENCE_BACKEND", "CALENDAR_TIMEZONE", "CALENDAR_MAX_SCAN_DAYS", "LOG_LEVEL"]:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, env):
        s = get_settings()
        assert s.persistence_backend == "memory"
        assert s.calendar_timezone == "UTC"
        assert s.max_scan_days == 365
        assert s.log_level == "INFO"

    def test_unknown_log_level_falls_back_to_info(self, env):
        env.setenv("LOG_LEVEL", "VERBOSE")
        assert get_settings().log_level == "INFO"

    def test_log_level_is_case_insensitive(self, env):
        env.setenv("LOG_LEVEL", " debug ")
        assert get_settings().log_level == "DEBUG"

    def test_unknown_timezone_falls_back_to_utc(self, env):
        env.setenv("CALENDAR_TIMEZONE", "Mars/Olympus")
        assert get_settings().calendar_timezone == "UTC"

    def test_invalid_scan_cap_uses_default(self, env):
        env.setenv("CALENDAR_MAX_SCAN_DAYS", "0")
        assert get_settings().max_scan_days == 365
        env.setenv("CALENDAR_MAX_SCAN_DAYS", "many")
        assert get_settings().max_scan_days == 365
