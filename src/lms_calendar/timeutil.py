"""
Timezone policy for the calendar.

Records are stored as UTC instants (ISO8601 strings). Calendar days are always
local dates in the viewer's zone. The conversion between the two happens here
and nowhere else:

- ``parse_timestamp`` turns a stored value into an aware datetime; naive values
  are interpreted in the zone passed by the caller.
- ``day_start``/``day_end`` turn a local date back into UTC instants for store
  queries.
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone, tzinfo
from typing import Any, Callable, Optional

from .errors import DateParseError

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: the current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def parse_timestamp(value: Any, tz: tzinfo = timezone.utc) -> datetime:
    """
    Normalize a stored date value into an aware datetime expressed in ``tz``.

    Accepts datetime, date, or ISO8601 strings ('2025-09-01',
    '2025-09-01T09:00', '2025-09-01T09:00:00Z'). Dates and naive values are
    taken to be local to ``tz``.

    Raises:
        DateParseError: the value is empty or cannot be parsed.
    """
    if value is None:
        raise DateParseError("missing date value")

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            raise DateParseError("empty date string")
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError as e:
            raise DateParseError(f"invalid date string: {value!r}") from e
    else:
        raise DateParseError(f"unsupported date type: {type(value).__name__}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    try:
        return parsed.astimezone(tz)
    except (OverflowError, ValueError) as e:
        raise DateParseError(f"date out of range: {value!r}") from e


def parse_optional_timestamp(value: Any, tz: tzinfo = timezone.utc) -> Optional[datetime]:
    """Like ``parse_timestamp`` but returns None for missing or malformed values."""
    if value is None or value == "":
        return None
    try:
        return parse_timestamp(value, tz)
    except DateParseError:
        return None


def to_utc_iso(value: datetime) -> str:
    """Serialize an instant as a UTC ISO8601 string. Naive values are assumed UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def day_start(day: date, tz: tzinfo) -> datetime:
    """Local midnight of ``day`` as an aware datetime in UTC."""
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def day_end(day: date, tz: tzinfo) -> datetime:
    """Last representable instant of local ``day`` as an aware datetime in UTC."""
    return datetime.combine(day, time.max, tzinfo=tz).astimezone(timezone.utc)


def local_today(clock: Clock, tz: tzinfo) -> date:
    return clock().astimezone(tz).date()
