from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, TypeVar, Union

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ValidationError

from .errors import CalendarValidationError, StoreError
from .models import EVENTS, TASKS, EventEntity, Record
from .notify import LoggingNotifier, Notifier
from .records import Event, Task, normalize_event, normalize_task, task_matches
from .recurrence import MAX_SCAN_DAYS, Occurrence, expand_all
from .schemas import EventCreate, EventUpdate
from .settings import Settings
from .store import Ordering, Store, gte, lte
from .timeutil import Clock, local_today, to_utc_iso, utc_now
from .window import ViewMode, Window, compute_window, shift

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

PREVIEW_SIZE = 3
TASK_PADDING_DAYS = 7

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


def _start_key(event: Event) -> datetime:
    return event.start_date or _EPOCH


@dataclass
class DayBucket:
    """Events and task occurrences that land on one grid day."""

    day: date
    events: List[Event] = field(default_factory=list)
    occurrences: List[Occurrence] = field(default_factory=list)

    @property
    def event_count(self) -> int:
        return len(self.events)

    @property
    def task_count(self) -> int:
        return len(self.occurrences)

    @property
    def has_overdue(self) -> bool:
        return any(o.is_overdue for o in self.occurrences)

    @property
    def more(self) -> int:
        return max(self.event_count + self.task_count - PREVIEW_SIZE, 0)


AgendaItem = Union[Event, Occurrence]


# PUBLIC_INTERFACE
class CalendarController:
    """
    Owns the calendar view state: which window is shown, the events and tasks
    fetched for it, and the occurrences derived from those tasks.

    Window-affecting actions (view toggle, navigation, today) re-fetch; day
    selection and filters are derived from already-fetched data. A fetch is
    tagged with the window it was issued for and its results are dropped if
    the controller has moved to another window by the time they arrive.
    """

    def __init__(
        self,
        store: Store,
        *,
        tz: tzinfo = timezone.utc,
        clock: Clock = utc_now,
        notifier: Optional[Notifier] = None,
        user_id: Optional[str] = None,
        view_mode: ViewMode = ViewMode.MONTH,
        reference_date: Optional[date] = None,
        max_scan_days: int = MAX_SCAN_DAYS,
        task_padding_days: int = TASK_PADDING_DAYS,
    ) -> None:
        self._store = store
        self._tz = tz
        self._clock = clock
        self._notifier = notifier or LoggingNotifier()
        self.user_id = user_id
        self.max_scan_days = max_scan_days
        self.task_padding_days = task_padding_days

        self.view_mode = ViewMode(view_mode)
        self.reference_date = reference_date or self.today()
        self.selected_date = self.reference_date
        self.course = "all"
        self.search = ""

        self.events: List[Event] = []
        self.tasks: List[Task] = []
        self.occurrences: List[Occurrence] = []
        self.loaded_window: Optional[Window] = None
        self.status = LoadState.IDLE
        self.error: Optional[str] = None

    @classmethod
    def from_settings(cls, store: Store, settings: Settings, **kwargs: Any) -> "CalendarController":
        kwargs.setdefault("tz", settings.tz)
        kwargs.setdefault("max_scan_days", settings.max_scan_days)
        kwargs.setdefault("task_padding_days", settings.task_padding_days)
        return cls(store, **kwargs)

    # -- clock --------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock().astimezone(self._tz)

    def today(self) -> date:
        return local_today(self._clock, self._tz)

    # -- navigation ---------------------------------------------------------

    @property
    def window(self) -> Window:
        return compute_window(self.reference_date, self.view_mode)

    def prev_date(self) -> date:
        return shift(self.reference_date, self.view_mode, -1)

    def next_date(self) -> date:
        return shift(self.reference_date, self.view_mode, 1)

    async def set_view_mode(self, mode: Union[ViewMode, str]) -> bool:
        self.view_mode = ViewMode(mode)
        return await self.fetch_window()

    async def navigate(self, step: int) -> bool:
        """Move by ``step`` months (month view) or weeks (week view). The selected day is kept."""
        self.reference_date = shift(self.reference_date, self.view_mode, step)
        return await self.fetch_window()

    async def go_today(self) -> bool:
        self.reference_date = self.today()
        self.selected_date = self.reference_date
        return await self.fetch_window()

    def select_day(self, day: date) -> None:
        self.selected_date = day

    def set_filters(self, course: Optional[str] = None, search: Optional[str] = None) -> None:
        """
        course: 'all', 'private', or a course id; applies to events only.
        search: case-insensitive substring of title or description.
        """
        if course is not None:
            self.course = str(course) or "all"
        if search is not None:
            self.search = search

    # -- fetching -----------------------------------------------------------

    async def fetch_window(self) -> bool:
        """
        Load events and tasks for the current window and expand the tasks.

        Returns False when the results were discarded because the window
        changed while the fetch was in flight.

        Raises:
            StoreError: the store failed; previously loaded data is kept.
        """
        window = self.window
        tasks_window = window.widened(self.task_padding_days)
        self.status = LoadState.LOADING
        logger.debug("Fetching %s (tasks %s)", window, tasks_window)

        try:
            raw_events, raw_tasks = await asyncio.gather(
                run_in_threadpool(
                    self._store.query,
                    EVENTS,
                    [
                        gte("start_date", window.start_instant(self._tz)),
                        lte("start_date", window.end_instant(self._tz)),
                    ],
                    Ordering("start_date"),
                ),
                run_in_threadpool(
                    self._store.query,
                    TASKS,
                    [
                        gte("due_date", tasks_window.start_instant(self._tz)),
                        lte("due_date", tasks_window.end_instant(self._tz)),
                    ],
                    Ordering("due_date"),
                ),
            )
        except StoreError as e:
            if window != self.window:
                logger.debug("Ignoring failure of stale fetch for %s: %s", window, e)
                return False
            logger.warning("Failed to load calendar window %s: %s", window, e)
            self.status = LoadState.ERROR
            self.error = "Failed to load calendar data"
            self._notifier.error(self.error)
            raise

        if window != self.window:
            logger.debug("Discarding stale results for %s", window)
            return False

        self.events = [e for e in (normalize_event(r, self._tz) for r in raw_events) if e is not None]
        self.tasks = [t for t in (normalize_task(r, self._tz) for r in raw_tasks) if t is not None]
        self.occurrences = expand_all(
            self.tasks,
            window.start,
            window.end,
            now=self.now(),
            max_scan_days=self.max_scan_days,
        )
        self.loaded_window = window
        self.status = LoadState.READY
        self.error = None
        logger.debug(
            "Loaded %d events, %d tasks, %d occurrences for %s",
            len(self.events),
            len(self.tasks),
            len(self.occurrences),
            window,
        )
        return True

    async def refresh(self) -> bool:
        return await self.fetch_window()

    # -- derived views ------------------------------------------------------

    def filtered_events(self) -> List[Event]:
        return [
            e
            for e in self.events
            if (self.course == "all" or e.course_id == self.course) and e.matches(self.search)
        ]

    def filtered_occurrences(self) -> List[Occurrence]:
        return [o for o in self.occurrences if task_matches(o.task, self.search)]

    def day_index(self) -> Dict[date, DayBucket]:
        """One bucket per day of the window; events appear on their start and end days."""
        window = self.window
        buckets = {d: DayBucket(d) for d in window.days()}
        for event in sorted(self.filtered_events(), key=_start_key):
            for d in event.days():
                if d in buckets:
                    buckets[d].events.append(event)
        for occ in self.filtered_occurrences():
            bucket = buckets.get(occ.occurrence_date)
            if bucket is not None:
                bucket.occurrences.append(occ)
        return buckets

    def agenda(self, day: Optional[date] = None) -> List[AgendaItem]:
        """Events of the day sorted by start, followed by the day's task occurrences."""
        day = day or self.selected_date
        events = sorted((e for e in self.filtered_events() if e.occurs_on(day)), key=_start_key)
        occurrences = [o for o in self.filtered_occurrences() if o.occurrence_date == day]
        return [*events, *occurrences]

    def upcoming(self, limit: int = 6) -> List[Occurrence]:
        return self.filtered_occurrences()[: max(limit, 0)]

    # -- mutations ----------------------------------------------------------

    async def create_event(self, draft: Union[EventCreate, Mapping[str, Any]]) -> Event:
        payload = self._validate(EventCreate, draft)
        start = payload.start_date or self.now()
        record: EventEntity = {
            "title": payload.title,
            "description": payload.description,
            "event_type": payload.event_type.value,
            "start_date": self._instant(start),
            "end_date": self._instant(payload.end_date or start),
            "all_day": payload.all_day,
            "visibility": payload.visibility or "private",
            "course_id": _course_ref(payload.course_id),
            "created_by": self.user_id,
        }
        raw = await self._call("create", self._store.insert, EVENTS, record)
        event = self._normalized(raw, "create")
        self.events = [event, *self.events]
        logger.info("Created event %s", event.id)
        self._notifier.success("Event created")
        return event

    async def update_event(self, event_id: Any, changes: Union[EventUpdate, Mapping[str, Any]]) -> Event:
        payload = self._validate(EventUpdate, changes)
        patch: Record = {}
        for key, value in payload.model_dump(exclude_unset=True).items():
            if key in ("title", "all_day") and value is None:
                continue
            if key in ("start_date", "end_date") and value is not None:
                value = self._instant(value)
            elif key == "event_type" and value is not None:
                value = value.value
            elif key == "course_id":
                value = _course_ref(value)
            patch[key] = value

        raw = await self._call("update", self._store.update, EVENTS, event_id, patch)
        event = self._normalized(raw, "update")
        self.events = [event if e.id == event_id else e for e in self.events]
        logger.info("Updated event %s", event_id)
        self._notifier.success("Event updated")
        return event

    async def delete_event(self, event_id: Any) -> None:
        await self._call("delete", self._store.delete, EVENTS, event_id)
        self.events = [e for e in self.events if e.id != event_id]
        logger.info("Deleted event %s", event_id)
        self._notifier.success("Event deleted")

    # -- helpers ------------------------------------------------------------

    def _instant(self, value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=self._tz)
        return to_utc_iso(value)

    def _validate(self, model: Type[M], data: Union[M, Mapping[str, Any]]) -> M:
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(dict(data))
        except ValidationError as e:
            fields = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
            message = "Please add a title" if "title" in fields else "Invalid event details"
            self._notifier.error(message)
            raise CalendarValidationError(
                message, detail=e.errors(include_url=False, include_context=False)
            ) from e

    async def _call(self, action: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            result = await run_in_threadpool(fn, *args)
        except StoreError as e:
            logger.warning("Event %s failed: %s", action, e)
            self._notifier.error(_failure_message(action, e))
            raise
        if result is None or result is False:
            err = StoreError("Event not found", not_found=True)
            self._notifier.error(_failure_message(action, err))
            raise err
        return result

    def _normalized(self, raw: Record, action: str) -> Event:
        event = normalize_event(raw, self._tz)
        if event is None:
            err = StoreError("store returned an unreadable event record")
            self._notifier.error(_failure_message(action, err))
            raise err
        return event


def _course_ref(course_id: Optional[str]) -> Optional[str]:
    if not course_id or course_id == "private":
        return None
    return course_id


def _failure_message(action: str, err: StoreError) -> str:
    if err.not_found:
        return "Event not found"
    if err.permission_denied or "row-level security" in err.message:
        return f"Unable to {action} event due to database permissions."
    return f"Failed to {action} event"
