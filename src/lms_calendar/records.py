from __future__ import annotations

import logging
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator, model_validator

from .errors import DateParseError
from .timeutil import parse_timestamp

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    ASSIGNMENT = "assignment"
    TASK = "task"
    EXAM = "exam"
    MEETING = "meeting"
    REMINDER = "reminder"


class RecurrenceKind(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"


class Weekday(str, Enum):
    """Weekday names as stored in ``recurrence_days``, Sunday first."""

    SUN = "sun"
    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"

    @classmethod
    def of(cls, day: date) -> "Weekday":
        # date.weekday() is Monday=0 .. Sunday=6
        return _PY_WEEKDAYS[day.weekday()]

    @classmethod
    def parse(cls, value: Any) -> Optional["Weekday"]:
        """Accept 'mon', 'Monday', 'MON'; return None for anything else."""
        key = str(value).strip().lower()[:3]
        try:
            return cls(key)
        except ValueError:
            return None


_PY_WEEKDAYS = (
    Weekday.MON,
    Weekday.TUE,
    Weekday.WED,
    Weekday.THU,
    Weekday.FRI,
    Weekday.SAT,
    Weekday.SUN,
)

RecordId = Union[int, str]


def _context_tz(info: ValidationInfo) -> tzinfo:
    context = info.context or {}
    return context.get("tz") or timezone.utc


def _lenient_timestamp(value: Any, info: ValidationInfo) -> Optional[datetime]:
    if value is None or value == "":
        return None
    try:
        return parse_timestamp(value, _context_tz(info))
    except DateParseError as e:
        logger.debug("Treating %s as absent: %s", info.field_name, e)
        return None


# PUBLIC_INTERFACE
class Task(BaseModel):
    """
    A task normalized for expansion.

    Dates are aware datetimes in the viewer's zone, so ``.date()`` is the local
    calendar day. Malformed dates are treated as absent. ``recurrence_type`` is
    None when the stored kind is not recognized; such tasks never expand.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[RecordId] = None
    title: str = ""
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    status: Optional[str] = None
    recurrence_type: Optional[RecurrenceKind] = RecurrenceKind.NONE
    recurrence_days: Tuple[Weekday, ...] = ()

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("start_date", "due_date", mode="before")
    @classmethod
    def _dates(cls, v: Any, info: ValidationInfo) -> Optional[datetime]:
        return _lenient_timestamp(v, info)

    @field_validator("recurrence_type", mode="before")
    @classmethod
    def _recurrence_type(cls, v: Any) -> Optional[RecurrenceKind]:
        if v is None or v == "":
            return RecurrenceKind.NONE
        if isinstance(v, RecurrenceKind):
            return v
        try:
            return RecurrenceKind(str(v).strip().lower())
        except ValueError:
            logger.warning("Unknown recurrence_type %r; task will not expand", v)
            return None

    @field_validator("recurrence_days", mode="before")
    @classmethod
    def _recurrence_days(cls, v: Any) -> Tuple[Weekday, ...]:
        if not v:
            return ()
        if isinstance(v, str):
            v = v.split(",")
        elif not isinstance(v, (list, tuple, set, frozenset)):
            logger.warning("Ignoring recurrence_days of type %s", type(v).__name__)
            return ()
        days = []
        for item in v:
            wd = item if isinstance(item, Weekday) else Weekday.parse(item)
            if wd is None:
                logger.warning("Dropping unknown weekday %r from recurrence_days", item)
                continue
            if wd not in days:
                days.append(wd)
        return tuple(days)

    @property
    def start_day(self) -> Optional[date]:
        return self.start_date.date() if self.start_date else None

    @property
    def due_day(self) -> Optional[date]:
        return self.due_date.date() if self.due_date else None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    def is_overdue(self, now: datetime) -> bool:
        return self.due_date is not None and self.due_date < now and not self.is_completed


# PUBLIC_INTERFACE
class Event(BaseModel):
    """
    A calendar event normalized for day bucketing.

    ``end_date`` falls back to ``start_date``. ``course_id`` is the string
    'private' for events without a course.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[RecordId] = None
    title: str = ""
    description: Optional[str] = None
    event_type: EventType = EventType.REMINDER
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    all_day: bool = False
    visibility: str = "private"
    course_id: str = "private"
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("event_type", mode="before")
    @classmethod
    def _event_type(cls, v: Any) -> EventType:
        try:
            return EventType(str(v).strip().lower())
        except ValueError:
            return EventType.REMINDER

    @field_validator("start_date", "end_date", "created_at", "updated_at", mode="before")
    @classmethod
    def _dates(cls, v: Any, info: ValidationInfo) -> Optional[datetime]:
        return _lenient_timestamp(v, info)

    @field_validator("all_day", mode="before")
    @classmethod
    def _all_day(cls, v: Any) -> bool:
        return bool(v)

    @field_validator("visibility", mode="before")
    @classmethod
    def _visibility(cls, v: Any) -> str:
        return str(v) if v else "private"

    @field_validator("course_id", "created_by", mode="before")
    @classmethod
    def _stringify(cls, v: Any, info: ValidationInfo) -> Optional[str]:
        if v is None or v == "":
            return "private" if info.field_name == "course_id" else None
        return str(v)

    @model_validator(mode="after")
    def _default_end(self) -> "Event":
        if self.end_date is None:
            self.end_date = self.start_date
        return self

    def occurs_on(self, day: date) -> bool:
        """True when ``day`` is the local date of the start or of the end (not the days between)."""
        if self.start_date is None:
            return False
        end = self.end_date or self.start_date
        return self.start_date.date() == day or end.date() == day

    def days(self) -> Tuple[date, ...]:
        if self.start_date is None:
            return ()
        end = self.end_date or self.start_date
        if end.date() == self.start_date.date():
            return (self.start_date.date(),)
        return (self.start_date.date(), end.date())

    def matches(self, search: str) -> bool:
        return _matches(self.title, self.description, search)


def _matches(title: str, description: Optional[str], search: str) -> bool:
    q = search.strip().lower()
    if not q:
        return True
    return q in (title or "").lower() or q in (description or "").lower()


def task_matches(task: Task, search: str) -> bool:
    return _matches(task.title, task.description, search)


# PUBLIC_INTERFACE
def normalize_task(raw: Mapping[str, Any], tz: tzinfo = timezone.utc) -> Optional[Task]:
    """
    Normalize a raw task record. Returns None (with a warning) for records that
    cannot be read at all; bad dates alone never cause a rejection.
    """
    try:
        return Task.model_validate(dict(raw), context={"tz": tz})
    except ValidationError as e:
        logger.warning("Skipping unreadable task record %r: %s", raw.get("id"), e)
        return None


# PUBLIC_INTERFACE
def normalize_event(raw: Mapping[str, Any], tz: tzinfo = timezone.utc) -> Optional[Event]:
    """Normalize a raw event record, or return None (with a warning) if it is unreadable."""
    try:
        return Event.model_validate(dict(raw), context={"tz": tz})
    except ValidationError as e:
        logger.warning("Skipping unreadable event record %r: %s", raw.get("id"), e)
        return None
