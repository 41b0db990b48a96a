from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status

from ..controller import CalendarController, DayBucket
from ..records import Event
from ..schemas import (
    AgendaItemOut,
    CalendarViewOut,
    DayBucketOut,
    EventCreate,
    EventOut,
    EventUpdate,
    OccurrenceOut,
    WindowOut,
)
from ..settings import get_settings
from ..store import Store, get_store
from ..timeutil import Clock, utc_now
from ..window import ViewMode

router = APIRouter(
    prefix="/api/v1/calendar",
    tags=["calendar"],
)


def _get_store(store: Store = Depends(get_store)) -> Store:
    """
    Dependency wrapper for the store to keep signatures clean.
    """
    return store


# PUBLIC_INTERFACE
def get_clock() -> Clock:
    """Clock dependency; tests override it to pin 'now'."""
    return utc_now


# PUBLIC_INTERFACE
def get_controller(
    store: Store = Depends(_get_store),
    clock: Clock = Depends(get_clock),
    user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> CalendarController:
    """
    Build a controller for one request. The caller identity is taken as given;
    authentication happens upstream.
    """
    return CalendarController.from_settings(store, get_settings(), clock=clock, user_id=user_id)


def _bucket_out(bucket: DayBucket, today: date, selected: date) -> DayBucketOut:
    return DayBucketOut(
        day=bucket.day,
        is_today=bucket.day == today,
        is_selected=bucket.day == selected,
        event_count=bucket.event_count,
        task_count=bucket.task_count,
        has_overdue=bucket.has_overdue,
        more=bucket.more,
        events=[EventOut.model_validate(e) for e in bucket.events[:3]],
        tasks=[OccurrenceOut.from_occurrence(o) for o in bucket.occurrences[:3]],
    )


def _agenda_out(controller: CalendarController) -> List[AgendaItemOut]:
    items = []
    for item in controller.agenda():
        if isinstance(item, Event):
            items.append(AgendaItemOut(kind="event", event=EventOut.model_validate(item)))
        else:
            items.append(AgendaItemOut(kind="task", task=OccurrenceOut.from_occurrence(item)))
    return items


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=CalendarViewOut,
    summary="Calendar window",
    description=(
        "Return the grid and agenda for the window around a reference date.\n\n"
        "Query parameters:\n"
        "- date: reference date (defaults to today in the calendar zone)\n"
        "- view: month or week\n"
        "- selected: day whose agenda is returned (defaults to the reference date)\n"
        "- course: 'all', 'private', or a course id (events only)\n"
        "- q: search text for title/description\n\n"
        "prev_date and next_date give the reference dates for navigation."
    ),
    responses={
        200: {"description": "Window loaded"},
        502: {"description": "Store failure"},
    },
)
async def get_calendar(
    ref: Optional[date] = Query(None, alias="date", description="Reference date"),
    view: ViewMode = Query(ViewMode.MONTH, description="month or week"),
    selected: Optional[date] = Query(None, description="Selected day for the agenda"),
    course: str = Query("all", description="Course filter: all, private, or a course id"),
    q: Optional[str] = Query(None, description="Search text for title/description"),
    controller: CalendarController = Depends(get_controller),
) -> CalendarViewOut:
    """
    Load one calendar window.
    """
    controller.view_mode = view
    controller.reference_date = ref or controller.today()
    controller.select_day(selected or controller.reference_date)
    controller.set_filters(course=course, search=(q or "").strip())
    await controller.fetch_window()

    window = controller.window
    today = controller.today()
    return CalendarViewOut(
        window=WindowOut(start=window.start, end=window.end, view=controller.view_mode.value),
        reference_date=controller.reference_date,
        selected_date=controller.selected_date,
        prev_date=controller.prev_date(),
        next_date=controller.next_date(),
        today=today,
        days=[_bucket_out(b, today, controller.selected_date) for b in controller.day_index().values()],
        agenda=_agenda_out(controller),
        upcoming=[OccurrenceOut.from_occurrence(o) for o in controller.upcoming()],
    )


# PUBLIC_INTERFACE
@router.post(
    "/events",
    response_model=EventOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create event",
    description="Create a calendar event. X-User-Id, when sent, is recorded as the creator.",
    responses={
        201: {"description": "Event created"},
        422: {"description": "Validation error"},
    },
)
async def create_event(
    payload: EventCreate, controller: CalendarController = Depends(get_controller)
) -> EventOut:
    """
    Create a calendar event.
    """
    created = await controller.create_event(payload)
    return EventOut.model_validate(created)


# PUBLIC_INTERFACE
@router.patch(
    "/events/{event_id}",
    response_model=EventOut,
    summary="Update event",
    description="Partially update fields of a calendar event.",
    responses={
        200: {"description": "Event updated"},
        404: {"description": "Event not found"},
    },
)
async def update_event(
    event_id: int, payload: EventUpdate, controller: CalendarController = Depends(get_controller)
) -> EventOut:
    """
    Partial update of a calendar event.
    """
    updated = await controller.update_event(event_id, payload)
    return EventOut.model_validate(updated)


# PUBLIC_INTERFACE
@router.delete(
    "/events/{event_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete event",
    description="Delete a calendar event by ID.",
    responses={
        204: {"description": "Event deleted"},
        404: {"description": "Event not found"},
    },
)
async def delete_event(event_id: int, controller: CalendarController = Depends(get_controller)) -> None:
    """
    Delete an event. Returns 204 on success, 404 if not found.
    """
    await controller.delete_event(event_id)
    return None
