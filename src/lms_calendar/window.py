from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum
from typing import List

from dateutil.relativedelta import relativedelta

from .timeutil import day_end, day_start


class ViewMode(str, Enum):
    MONTH = "month"
    WEEK = "week"


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Window:
    """Inclusive range of local calendar dates shown by the calendar grid."""

    start: date
    end: date

    def days(self) -> List[date]:
        return [self.start + timedelta(days=i) for i in range((self.end - self.start).days + 1)]

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def widened(self, days: int) -> "Window":
        return Window(self.start - timedelta(days=days), self.end + timedelta(days=days))

    def start_instant(self, tz: tzinfo) -> datetime:
        return day_start(self.start, tz)

    def end_instant(self, tz: tzinfo) -> datetime:
        return day_end(self.end, tz)


def week_start(day: date) -> date:
    """Sunday on or before ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_end(day: date) -> date:
    """Saturday on or after ``day``."""
    return week_start(day) + timedelta(days=6)


# PUBLIC_INTERFACE
def compute_window(reference: date, mode: ViewMode) -> Window:
    """
    Month view: the Sunday-start weeks covering the month of ``reference``.
    Week view: the Sunday to Saturday week containing ``reference``.
    """
    if ViewMode(mode) is ViewMode.MONTH:
        first = reference.replace(day=1)
        last = first + relativedelta(months=1, days=-1)
        return Window(week_start(first), week_end(last))
    return Window(week_start(reference), week_end(reference))


def shift(reference: date, mode: ViewMode, step: int) -> date:
    """Move by ``step`` calendar months (day clamped to month length) or by ``step`` weeks."""
    if ViewMode(mode) is ViewMode.MONTH:
        return reference + relativedelta(months=step)
    return reference + timedelta(days=7 * step)
