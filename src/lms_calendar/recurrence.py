"""
Expansion of tasks into dated occurrences inside a calendar window.

Everything here is pure: the same task, window and ``now`` always give the
same occurrences. Windows are inclusive ranges of local calendar dates.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from .records import RecurrenceKind, Task, Weekday

# Upper bound on days scanned for one recurring task. Tasks without a due date
# would otherwise be scanned forever.
MAX_SCAN_DAYS = 365

_WEEKENDS = {Weekday.SAT, Weekday.SUN}


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Occurrence:
    """One task placed on one concrete local calendar day."""

    task: Task
    occurrence_date: date
    is_overdue: bool

    @property
    def id(self):
        return self.task.id

    @property
    def title(self) -> str:
        return self.task.title


def _daterange(start: date, end: date) -> Iterable[date]:
    for i in range((end - start).days + 1):
        yield start + timedelta(days=i)


def occurs_on(task: Task, day: date, today: date) -> bool:
    """Whether a recurring task's pattern selects ``day``. ``today`` backs monthly tasks without a start."""
    kind = task.recurrence_type
    start = task.start_day
    if kind is RecurrenceKind.DAILY:
        return True
    if kind is RecurrenceKind.WEEKLY:
        if task.recurrence_days:
            return Weekday.of(day) in task.recurrence_days
        if start is not None:
            return day.weekday() == start.weekday()
        return True
    if kind is RecurrenceKind.MONTHLY:
        anchor = start if start is not None else today
        return day.day == anchor.day
    if kind is RecurrenceKind.WEEKDAYS:
        return Weekday.of(day) not in _WEEKENDS
    if kind is RecurrenceKind.WEEKENDS:
        return Weekday.of(day) in _WEEKENDS
    return False


# PUBLIC_INTERFACE
def expand(
    task: Optional[Task],
    window_start: date,
    window_end: date,
    *,
    now: datetime,
    max_scan_days: int = MAX_SCAN_DAYS,
) -> List[Occurrence]:
    """
    Enumerate the occurrences of ``task`` that fall inside ``[window_start, window_end]``.

    - recurrence 'none': one occurrence for every day from start (or due) to due
      (or start); a due day before the start day collapses to the start day.
    - recurring: days are scanned from max(start, window_start) up to the
      earlier of window_end and ``max_scan_days`` later, and kept when the
      recurrence pattern selects them and, if the task has both dates, when
      they lie between start and due (unless start and due fall on the same day).

    ``now`` should be expressed in the viewer's zone; its date is "today" for
    monthly tasks without a start date.

    Overdue is decided once for the task, from its due date and status, so every
    occurrence of an overdue recurring task is flagged, future ones included.
    That is existing behavior kept for compatibility and still awaiting a
    product decision.
    """
    if task is None or task.recurrence_type is None or window_end < window_start:
        return []

    overdue = task.is_overdue(now)
    t_start, t_due = task.start_day, task.due_day

    if task.recurrence_type is RecurrenceKind.NONE:
        if t_start is None and t_due is None:
            return []
        s = t_start or t_due
        e = t_due or s
        if e < s:
            e = s
        first, last = max(s, window_start), min(e, window_end)
        if first > last:
            return []
        return [Occurrence(task, d, overdue) for d in _daterange(first, last)]

    scan_from = max(t_start or window_start, window_start)
    if scan_from > window_end:
        return []
    scan_to = scan_from + timedelta(days=min((window_end - scan_from).days, max(max_scan_days, 0)))

    # A start and due on the same day anchor the series instead of bounding it.
    bounded = t_start is not None and t_due is not None and t_due != t_start
    today = now.date()
    occurrences = []
    for d in _daterange(scan_from, scan_to):
        if not occurs_on(task, d, today):
            continue
        if bounded and not (t_start <= d <= t_due):
            continue
        occurrences.append(Occurrence(task, d, overdue))
    return occurrences


# PUBLIC_INTERFACE
def expand_all(
    tasks: Iterable[Optional[Task]],
    window_start: date,
    window_end: date,
    *,
    now: datetime,
    max_scan_days: int = MAX_SCAN_DAYS,
) -> List[Occurrence]:
    """Expand every task and flatten the results, keeping task order."""
    out: List[Occurrence] = []
    for task in tasks:
        out.extend(expand(task, window_start, window_end, now=now, max_scan_days=max_scan_days))
    return out
