from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/calendar.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - CALENDAR_TIMEZONE: IANA zone used to bucket instants into calendar days (default 'UTC')
    - CALENDAR_MAX_SCAN_DAYS: upper bound on days scanned per recurring task (default 365)
    - CALENDAR_TASK_PADDING_DAYS: days added on both sides of the window when querying tasks (default 7)
    - LOG_LEVEL: logging level name (default 'INFO')
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    calendar_timezone: str
    max_scan_days: int
    task_padding_days: int
    log_level: str

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.calendar_timezone)


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: str, default: int, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


def _parse_log_level(name: str) -> str:
    level = name.strip().upper()
    if level not in logging.getLevelNamesMapping():
        return "INFO"
    return level


def _parse_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return "UTC"
    return name


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/calendar.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        calendar_timezone=_parse_timezone(_get_env("CALENDAR_TIMEZONE", "UTC").strip()),
        max_scan_days=_parse_int(_get_env("CALENDAR_MAX_SCAN_DAYS", "365"), 365, minimum=1),
        task_padding_days=_parse_int(_get_env("CALENDAR_TASK_PADDING_DAYS", "7"), 7),
        log_level=_parse_log_level(_get_env("LOG_LEVEL", "INFO")),
    )
