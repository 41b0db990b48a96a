"""
LMS calendar backend package.

The occurrence expander and window controller are importable without the web
app; the FastAPI application lives in ``lms_calendar.main``.
"""

from .controller import CalendarController, LoadState
from .recurrence import MAX_SCAN_DAYS, Occurrence, expand, expand_all
from .window import ViewMode, Window, compute_window

__all__ = [
    "CalendarController",
    "LoadState",
    "MAX_SCAN_DAYS",
    "Occurrence",
    "ViewMode",
    "Window",
    "compute_window",
    "expand",
    "expand_all",
]
