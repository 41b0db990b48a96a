from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generator, List, Optional, Sequence

from .errors import StoreError
from .models import Record
from .store import Filter, Ordering, Store, apply_query, serialize_record
from .timeutil import to_utc_iso


@dataclass(frozen=True)
class _Cols:
    table: str = "records"
    id: str = "id"
    collection: str = "collection"
    data: str = "data"


_COLS = _Cols()


class SQLiteStore(Store):
    """
    Lightweight SQLite store implementing the Store interface.

    Every collection shares one table; each record is kept as a JSON document.
    Collection selection and id lookup happen in SQL, filters and ordering in
    Python via ``apply_query``.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open store: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_COLS.collection} TEXT NOT NULL,
                    {_COLS.data} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_collection ON {_COLS.table}({_COLS.collection})"
            )

    def _row_to_record(self, row: sqlite3.Row) -> Record:
        record = json.loads(row[_COLS.data])
        record["id"] = int(row[_COLS.id])
        return record

    def _select(self, conn: sqlite3.Connection, collection: str, record_id: Any) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_COLS.table} WHERE {_COLS.collection} = ? AND {_COLS.id} = ?",
            (collection, record_id),
        ).fetchone()

    def _now(self) -> str:
        return to_utc_iso(datetime.now(timezone.utc))

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        ordering: Optional[Ordering] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Record]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_COLS.table} WHERE {_COLS.collection} = ? ORDER BY {_COLS.id}",
                (collection,),
            ).fetchall()
        return apply_query([self._row_to_record(r) for r in rows], filters, ordering, limit, offset)

    def insert(self, collection: str, record: Record) -> Record:
        now = self._now()
        data = serialize_record({k: v for k, v in record.items() if k != "id"})
        data.setdefault("created_at", now)
        data["updated_at"] = now
        with self._conn() as conn:
            cur = conn.execute(
                f"INSERT INTO {_COLS.table} ({_COLS.collection}, {_COLS.data}) VALUES (?, ?)",
                (collection, json.dumps(data)),
            )
            row = self._select(conn, collection, cur.lastrowid)
            assert row is not None
            return self._row_to_record(row)

    def update(self, collection: str, record_id: Any, changes: Record) -> Optional[Record]:
        with self._conn() as conn:
            row = self._select(conn, collection, record_id)
            if not row:
                return None
            current = self._row_to_record(row)
            current.update(serialize_record({k: v for k, v in changes.items() if k != "id"}))
            current["updated_at"] = self._now()
            data = {k: v for k, v in current.items() if k != "id"}
            conn.execute(
                f"UPDATE {_COLS.table} SET {_COLS.data} = ? WHERE {_COLS.id} = ?",
                (json.dumps(data), record_id),
            )
            row2 = self._select(conn, collection, record_id)
            assert row2 is not None
            return self._row_to_record(row2)

    def delete(self, collection: str, record_id: Any) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_COLS.table} WHERE {_COLS.collection} = ? AND {_COLS.id} = ?",
                (collection, record_id),
            )
            return cur.rowcount > 0
