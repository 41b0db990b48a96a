from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .records import EventType, RecordId

DateInput = Union[date, datetime, str]


def _parse_datetime_input(value: Optional[DateInput]) -> Optional[datetime]:
    """
    Internal helper to normalize incoming date input into a datetime (naive allowed).
    - If value is a string, attempt to parse via datetime.fromisoformat; date-only strings become 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - If value is a datetime, return as-is.
    Naive results are interpreted in the viewer's zone when stored.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, 0, 0, 0)

    if isinstance(value, str):
        s = value.strip()
        try:
            return datetime.fromisoformat(s)
        except ValueError as e:
            raise ValueError(
                "Invalid date format. Use ISO8601 date or datetime string (e.g., '2025-09-10' or '2025-09-10T09:00:00')."
            ) from e

    raise ValueError("Invalid type for date; expected date, datetime, or ISO8601 string.")


def _clean_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


# PUBLIC_INTERFACE
class EventCreate(BaseModel):
    """
    Schema for creating a calendar event.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Midterm review",
                "description": "Chapters 1-4",
                "event_type": "exam",
                "start_date": "2025-09-10T09:00:00",
                "end_date": "2025-09-10T10:00:00",
                "all_day": False,
                "visibility": "private",
                "course_id": "private",
            }
        }
    )

    title: str = Field(..., description="Short title for the event", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional free-text description")
    event_type: EventType = Field(default=EventType.REMINDER, description="Event category")
    start_date: Optional[datetime] = Field(default=None, description="Start; defaults to now")
    end_date: Optional[datetime] = Field(default=None, description="End; defaults to the start")
    all_day: bool = Field(default=False, description="Whole-day event flag")
    visibility: str = Field(default="private", description="'private' or a course visibility")
    course_id: Optional[str] = Field(default=None, description="Owning course, or 'private'")

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        if v is None:
            raise ValueError("title is required")
        return _clean_title(str(v))  # type: ignore[return-value]

    @field_validator("description", mode="before")
    @classmethod
    def blank_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        s = str(v).strip()
        return s or None

    @field_validator("event_type", mode="before")
    @classmethod
    def default_event_type(cls, v: Optional[str]) -> EventType:
        """
        Unrecognized categories fall back to 'reminder'.
        """
        try:
            return EventType(str(v).strip().lower())
        except ValueError:
            return EventType.REMINDER

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_dates(cls, v: Optional[DateInput]) -> Optional[datetime]:
        return _parse_datetime_input(v)


# PUBLIC_INTERFACE
class EventUpdate(BaseModel):
    """
    Schema for updating an existing event.
    All fields are optional; only provided fields will be updated.
    """

    title: Optional[str] = Field(default=None, description="Short title for the event", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional free-text description")
    event_type: Optional[EventType] = Field(default=None, description="Event category")
    start_date: Optional[datetime] = Field(default=None, description="New start")
    end_date: Optional[datetime] = Field(default=None, description="New end")
    all_day: Optional[bool] = Field(default=None, description="Whole-day event flag")
    visibility: Optional[str] = Field(default=None, description="'private' or a course visibility")
    course_id: Optional[str] = Field(default=None, description="Owning course, or 'private'")

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        """
        If title is provided, strip whitespace and enforce 1..200 length.
        """
        return _clean_title(None if v is None else str(v))

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_dates(cls, v: Optional[DateInput]) -> Optional[datetime]:
        return _parse_datetime_input(v)


# PUBLIC_INTERFACE
class EventOut(BaseModel):
    """
    Schema returned by the API for a calendar event.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[RecordId] = Field(default=None, description="Unique identifier of the event")
    title: str = Field(..., description="Event title")
    description: Optional[str] = Field(default=None, description="Optional description")
    event_type: EventType = Field(..., description="Event category")
    start_date: Optional[datetime] = Field(default=None, description="Start in the viewer's zone")
    end_date: Optional[datetime] = Field(default=None, description="End in the viewer's zone")
    all_day: bool = Field(default=False, description="Whole-day event flag")
    visibility: str = Field(default="private", description="Visibility")
    course_id: str = Field(default="private", description="Owning course or 'private'")
    created_by: Optional[str] = Field(default=None, description="Creator identifier")


# PUBLIC_INTERFACE
class OccurrenceOut(BaseModel):
    """
    One task occurrence on a concrete day.
    """

    task_id: Optional[RecordId] = Field(default=None, description="Identifier of the expanded task")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(default=None, description="Task description")
    start_date: Optional[datetime] = Field(default=None, description="Task start")
    due_date: Optional[datetime] = Field(default=None, description="Task due date")
    status: Optional[str] = Field(default=None, description="Task status")
    recurrence_type: Optional[str] = Field(default=None, description="Recurrence kind; null when unrecognized")
    recurrence_days: List[str] = Field(default_factory=list, description="Weekdays for weekly recurrence")
    occurrence_date: date = Field(..., description="Local calendar day of this occurrence")
    is_overdue: bool = Field(..., description="Task due before now and not completed")

    @classmethod
    def from_occurrence(cls, occ) -> "OccurrenceOut":
        task = occ.task
        return cls(
            task_id=task.id,
            title=task.title,
            description=task.description,
            start_date=task.start_date,
            due_date=task.due_date,
            status=task.status,
            recurrence_type=task.recurrence_type.value if task.recurrence_type else None,
            recurrence_days=[d.value for d in task.recurrence_days],
            occurrence_date=occ.occurrence_date,
            is_overdue=occ.is_overdue,
        )


# PUBLIC_INTERFACE
class AgendaItemOut(BaseModel):
    """An agenda row: either an event or a task occurrence."""

    kind: Literal["event", "task"]
    event: Optional[EventOut] = None
    task: Optional[OccurrenceOut] = None


# PUBLIC_INTERFACE
class DayBucketOut(BaseModel):
    """Grid cell summary for one day."""

    day: date
    is_today: bool
    is_selected: bool
    event_count: int
    task_count: int
    has_overdue: bool
    more: int = Field(..., description="Items beyond the first three")
    events: List[EventOut] = Field(default_factory=list, description="Up to three events")
    tasks: List[OccurrenceOut] = Field(default_factory=list, description="Up to three task occurrences")


# PUBLIC_INTERFACE
class WindowOut(BaseModel):
    start: date
    end: date
    view: str


# PUBLIC_INTERFACE
class CalendarViewOut(BaseModel):
    """
    Everything a client needs to render the grid and the agenda for one window.
    """

    window: WindowOut
    reference_date: date
    selected_date: date
    prev_date: date
    next_date: date
    today: date
    days: List[DayBucketOut]
    agenda: List[AgendaItemOut]
    upcoming: List[OccurrenceOut]
