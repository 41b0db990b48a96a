from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict

# Store collection names.
EVENTS = "calendar_events"
TASKS = "student_tasks"

# Raw store records are plain dicts; dates are ISO8601 strings as returned by
# the backend. Normalized views live in ``records``.
Record = Dict[str, Any]


# PUBLIC_INTERFACE
class EventEntity(TypedDict, total=False):
    """
    Raw calendar event row as held by a store backend.

    Fields:
    - id: Unique integer identifier assigned by the store
    - title: Short title
    - description: Optional free text
    - event_type: assignment | task | exam | meeting | reminder
    - start_date: Start instant (ISO8601, UTC)
    - end_date: Optional end instant (ISO8601, UTC)
    - all_day: Whether the event spans whole days
    - visibility: 'private' or a course visibility such as 'public'
    - course_id: Optional owning course reference
    - created_by: Creator identifier
    - created_at / updated_at: Store-managed timestamps
    """

    id: int
    title: str
    description: Optional[str]
    event_type: str
    start_date: str
    end_date: Optional[str]
    all_day: bool
    visibility: str
    course_id: Optional[str]
    created_by: Optional[str]
    created_at: str
    updated_at: str


# PUBLIC_INTERFACE
class TaskEntity(TypedDict, total=False):
    """
    Raw student task row as held by a store backend.

    recurrence_type is one of none, daily, weekly, monthly, weekdays, weekends;
    recurrence_days is only consulted for weekly recurrence.
    """

    id: int
    title: str
    description: Optional[str]
    start_date: Optional[str]
    due_date: Optional[str]
    status: Optional[str]
    recurrence_type: Optional[str]
    recurrence_days: Optional[List[str]]
    created_at: str
    updated_at: str
