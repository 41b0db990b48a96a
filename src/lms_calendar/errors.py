from __future__ import annotations

from typing import Optional


class CalendarError(Exception):
    """Base class for errors raised by the calendar core."""


# PUBLIC_INTERFACE
class CalendarValidationError(CalendarError):
    """
    A mutation payload was rejected before reaching the store, e.g. an empty
    event title.
    """

    def __init__(self, message: str, detail: Optional[list] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or []


# PUBLIC_INTERFACE
class StoreError(CalendarError):
    """
    A store round-trip failed (backend, permission, or missing record).

    Controller state is left at its last-known-good value when this is raised.
    """

    def __init__(
        self,
        message: str,
        *,
        permission_denied: bool = False,
        not_found: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.permission_denied = permission_denied
        self.not_found = not_found


class DateParseError(CalendarError, ValueError):
    """A stored date field could not be parsed. Recovered by treating the field as absent."""
