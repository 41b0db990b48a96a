from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from functools import lru_cache
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import DateParseError, StoreError
from .models import Record
from .settings import get_settings
from .timeutil import parse_timestamp, to_utc_iso

_OPS = {"eq", "gte", "lte"}


@dataclass(frozen=True)
class Filter:
    """
    A single predicate on a named field.

    op is one of eq, gte, lte. Range comparisons against a datetime compare
    instants; stored values that are missing or unparseable never match.
    """
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPS:
            raise ValueError(f"unsupported filter op: {self.op!r}")


@dataclass(frozen=True)
class Ordering:
    field: str
    ascending: bool = True


def eq(field: str, value: Any) -> Filter:
    return Filter(field, "eq", value)


def gte(field: str, value: Any) -> Filter:
    return Filter(field, "gte", value)


def lte(field: str, value: Any) -> Filter:
    return Filter(field, "lte", value)


# PUBLIC_INTERFACE
class Store(ABC):
    """Abstract contract for the persistent record store backing the calendar."""

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        ordering: Optional[Ordering] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Record]:
        """Return copies of the records in ``collection`` matching every filter, ordered and sliced."""

    @abstractmethod
    def insert(self, collection: str, record: Record) -> Record:
        """Insert and return the stored record, with id and timestamps assigned."""

    @abstractmethod
    def update(self, collection: str, record_id: Any, changes: Record) -> Optional[Record]:
        """Merge ``changes`` into an existing record. Return the updated record or None if not found."""

    @abstractmethod
    def delete(self, collection: str, record_id: Any) -> bool:
        """Delete a record by id. Return True if deleted, False if not found."""


def serialize_record(record: Record) -> Record:
    out: Record = {}
    for key, value in record.items():
        if isinstance(value, datetime):
            out[key] = to_utc_iso(value)
        elif isinstance(value, date):
            out[key] = value.isoformat()
        elif isinstance(value, tuple):
            out[key] = list(value)
        else:
            out[key] = value
    return out


def _as_instant(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return parse_timestamp(value, timezone.utc)
    except DateParseError:
        return None


def _matches(record: Record, flt: Filter) -> bool:
    current = record.get(flt.field)
    if flt.op == "eq":
        return current == flt.value
    if current is None:
        return False
    if isinstance(flt.value, (datetime, date)):
        left, right = _as_instant(current), _as_instant(flt.value)
        if left is None or right is None:
            return False
    else:
        left, right = current, flt.value
    try:
        return left >= right if flt.op == "gte" else left <= right
    except TypeError:
        return False


def _sort_key(value: Any) -> Tuple:
    instant = _as_instant(value) if isinstance(value, (str, datetime, date)) else None
    if instant is not None:
        return (0, 0, instant.timestamp(), "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, 1, float(value), "")
    if value is None:
        return (1, 0, 0.0, "")
    return (0, 2, 0.0, str(value))


def apply_query(
    records: Iterable[Record],
    filters: Sequence[Filter] = (),
    ordering: Optional[Ordering] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Record]:
    """Filter, order and slice records in Python. Shared by the store backends."""
    items = [r for r in records if all(_matches(r, f) for f in filters)]
    if ordering is not None:
        # Missing values sort last in both directions.
        present = [r for r in items if r.get(ordering.field) is not None]
        missing = [r for r in items if r.get(ordering.field) is None]
        present.sort(key=lambda r: _sort_key(r.get(ordering.field)), reverse=not ordering.ascending)
        items = present + missing
    start = max(offset, 0)
    end = None if limit is None else start + max(limit, 0)
    return [dict(r) for r in items[start:end]]


class InMemoryStore(Store):
    """
    Thread-safe in-memory store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._collections: Dict[str, Dict[int, Record]] = {}
        self._next_id = 1

    def _now(self) -> str:
        return to_utc_iso(datetime.now(timezone.utc))

    def _allocate_id(self) -> int:
        with self._lock:
            i = self._next_id
            self._next_id += 1
            return i

    def _items(self, collection: str) -> Dict[int, Record]:
        return self._collections.setdefault(collection, {})

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        ordering: Optional[Ordering] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Record]:
        with self._lock:
            return apply_query(list(self._items(collection).values()), filters, ordering, limit, offset)

    def insert(self, collection: str, record: Record) -> Record:
        now = self._now()
        entity = serialize_record(record)
        entity.setdefault("created_at", now)
        entity["updated_at"] = now
        with self._lock:
            if entity.get("id") is None:
                entity["id"] = self._allocate_id()
            elif entity["id"] in self._items(collection):
                raise StoreError(f"duplicate id {entity['id']!r} in {collection}")
            self._items(collection)[entity["id"]] = entity
            return dict(entity)

    def update(self, collection: str, record_id: Any, changes: Record) -> Optional[Record]:
        with self._lock:
            existing = self._items(collection).get(record_id)
            if existing is None:
                return None
            updated = dict(existing)
            updated.update(serialize_record({k: v for k, v in changes.items() if k != "id"}))
            updated["updated_at"] = self._now()
            self._items(collection)[record_id] = updated
            return dict(updated)

    def delete(self, collection: str, record_id: Any) -> bool:
        with self._lock:
            return self._items(collection).pop(record_id, None) is not None


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_store() -> Store:
    """
    Return the configured store, shared for the life of the process.
    - memory: InMemoryStore
    - sqlite: SQLiteStore at SQLITE_DB_PATH
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteStore

        return SQLiteStore(settings.sqlite_db_path)
    return InMemoryStore()
