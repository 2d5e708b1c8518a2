"""In-memory stand-in for the Supabase tables used by the messaging code."""

from __future__ import annotations

import threading
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from inbox.core.errors import StoreError


DEFAULTS = {
    "conversations": {"is_group": False, "last_message_at": None},
    "conversation_participants": {"last_read_at": None},
    "messages": {"media_url": None, "media_type": "text"},
    "profiles": {"display_name": None, "avatar_url": None},
}


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


class MemoryStore:
    def __init__(
        self,
        select_delay: float = 0.0,
        max_rows: Optional[int] = None,
        clock_offset: timedelta = timedelta(0),
    ) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            "conversations": [],
            "conversation_participants": [],
            "messages": [],
            "profiles": [],
        }
        self.calls: list[tuple[str, str]] = []
        self.fail_on: dict[tuple[str, str], StoreError] = {}
        self.select_delay = select_delay
        # Mirrors PostgREST db-max-rows: selects without a limit are silently truncated
        self.max_rows = max_rows
        # Shifts the store clock away from the service clock
        self.clock_offset = clock_offset
        self._lock = threading.RLock()
        self._last_ts: Optional[datetime] = None

    # helpers for tests

    def now(self) -> str:
        with self._lock:
            current = datetime.now(timezone.utc) + self.clock_offset
            if self._last_ts is not None and current <= self._last_ts:
                current = self._last_ts + timedelta(microseconds=1)
            self._last_ts = current
            return current.isoformat()

    def fail(self, action: str, table: str, message: str = "boom", code: str = "XX000") -> None:
        self.fail_on[(action, table)] = StoreError(message, store_code=code, hint="try again")

    def writes(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] not in ("select", "count")]

    def row_count(self, table: str) -> int:
        return len(self.tables[table])

    # DataStore

    def _check(self, action: str, table: str) -> None:
        self.calls.append((action, table))
        error = self.fail_on.get((action, table))
        if error is not None:
            raise error

    @staticmethod
    def _matches(row, eq, in_) -> bool:
        for column, value in (eq or {}).items():
            if row.get(column) != value:
                return False
        for column, values in (in_ or {}).items():
            if row.get(column) not in list(values):
                return False
        return True

    @staticmethod
    def _project(row: dict[str, Any], columns: str) -> dict[str, Any]:
        if columns.strip() == "*":
            return dict(row)
        names = [name.strip() for name in columns.split(",") if name.strip()]
        return {name: row.get(name) for name in names}

    def select(
        self,
        table: str,
        columns: str = "*",
        eq: Optional[dict[str, Any]] = None,
        in_: Optional[dict[str, Iterable[Any]]] = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        if self.select_delay:
            time.sleep(self.select_delay)
        with self._lock:
            self._check("select", table)
            rows = [r for r in self.tables[table] if self._matches(r, eq, in_)]
            if order:
                present = [r for r in rows if r.get(order) is not None]
                missing = [r for r in rows if r.get(order) is None]
                present.sort(key=lambda r: r[order], reverse=desc)
                # Postgres puts NULLs first on DESC, last on ASC
                rows = missing + present if desc else present + missing
            if limit is not None:
                rows = rows[:limit]
            elif self.max_rows is not None:
                rows = rows[: self.max_rows]
            return [self._project(r, columns) for r in rows]

    def insert(self, table: str, rows) -> list[dict[str, Any]]:
        with self._lock:
            self._check("insert", table)
            batch = rows if isinstance(rows, list) else [rows]
            inserted = []
            for row in batch:
                stored = {**DEFAULTS.get(table, {}), **row}
                stored.setdefault("id", str(uuid.uuid4()))
                stored.setdefault("created_at", self.now())
                self.tables[table].append(stored)
                inserted.append(dict(stored))
            return inserted

    def update(self, table, values, eq=None, in_=None) -> list[dict[str, Any]]:
        with self._lock:
            self._check("update", table)
            updated = []
            for row in self.tables[table]:
                if self._matches(row, eq, in_):
                    row.update(values)
                    updated.append(dict(row))
            return updated

    def delete(self, table, eq) -> list[dict[str, Any]]:
        with self._lock:
            self._check("delete", table)
            kept, removed = [], []
            for row in self.tables[table]:
                (removed if self._matches(row, eq, None) else kept).append(row)
            self.tables[table] = kept
            return removed

    def count(self, table, eq=None, neq=None, gt=None) -> int:
        with self._lock:
            self._check("count", table)
            total = 0
            for row in self.tables[table]:
                if not self._matches(row, eq, None):
                    continue
                if any(row.get(column) == value for column, value in (neq or {}).items()):
                    continue
                if any(
                    row.get(column) is None or _comparable(row[column]) <= _comparable(value)
                    for column, value in (gt or {}).items()
                ):
                    continue
                total += 1
            return total
