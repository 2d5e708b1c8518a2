import logging
from typing import Any, Iterable, Optional, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from inbox.core.errors import StoreError


logger = logging.getLogger(__name__)

Row = dict[str, Any]


class DataStore(Protocol):
    """
    The slice of the remote table API the messaging code relies on.

    `eq`, `neq` and `gt` map column -> value, `in_` maps column -> iterable of values.
    Unbounded selects are capped by the store (`db-max-rows`), so callers that
    need a total use `count` and callers that need one row pass `limit`.
    Every method raises `StoreError` when the store rejects the request.
    """

    def select(
        self,
        table: str,
        columns: str = "*",
        eq: Optional[dict[str, Any]] = None,
        in_: Optional[dict[str, Iterable[Any]]] = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> list[Row]: ...

    def insert(self, table: str, rows: Row | list[Row]) -> list[Row]: ...

    def update(
        self,
        table: str,
        values: Row,
        eq: Optional[dict[str, Any]] = None,
        in_: Optional[dict[str, Iterable[Any]]] = None,
    ) -> list[Row]: ...

    def delete(self, table: str, eq: dict[str, Any]) -> list[Row]: ...

    def count(
        self,
        table: str,
        eq: Optional[dict[str, Any]] = None,
        neq: Optional[dict[str, Any]] = None,
        gt: Optional[dict[str, Any]] = None,
    ) -> int: ...


def _has_empty_in(in_: Optional[dict[str, Iterable[Any]]]) -> bool:
    return any(len(values) == 0 for values in (in_ or {}).values())


def _normalize_in(in_: Optional[dict[str, Iterable[Any]]]) -> dict[str, list[Any]]:
    return {column: list(values) for column, values in (in_ or {}).items()}


class SupabaseStore:
    """DataStore backed by the supabase client's PostgREST query builder."""

    def __init__(self, client: Client):
        self.client = client

    def _apply_filters(self, query, eq, in_):
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        for column, values in (in_ or {}).items():
            query = query.in_(column, values)
        return query

    def _run(self, action: str, table: str, query):
        try:
            response = query.execute()
        except APIError as error:
            logger.error(
                f"supabase_error action={action} table={table} "
                f"code={error.code} message={error.message}"
            )
            raise StoreError(
                error.message or f"Failed to {action} {table}",
                store_code=error.code,
                details=error.details,
                hint=error.hint,
            ) from error
        except httpx.HTTPError as error:
            logger.error(f"supabase_transport_error action={action} table={table} error={error}")
            raise StoreError(f"Could not reach the data store: {error}") from error

        return response

    def _execute(self, action: str, table: str, query) -> list[Row]:
        return list(self._run(action, table, query).data or [])

    def select(self, table, columns="*", eq=None, in_=None, order=None, desc=False, limit=None):
        in_ = _normalize_in(in_)
        # PostgREST rejects `in.()`, and an empty set can't match anything anyway
        if _has_empty_in(in_):
            return []

        query = self._apply_filters(self.client.table(table).select(columns), eq, in_)
        if order:
            query = query.order(order, desc=desc)
        if limit is not None:
            query = query.limit(limit)

        return self._execute("select", table, query)

    def insert(self, table, rows):
        return self._execute("insert", table, self.client.table(table).insert(rows))

    def update(self, table, values, eq=None, in_=None):
        in_ = _normalize_in(in_)
        if _has_empty_in(in_):
            return []

        query = self._apply_filters(self.client.table(table).update(values), eq, in_)
        return self._execute("update", table, query)

    def delete(self, table, eq):
        if not eq:
            raise ValueError("Refusing to delete without a filter.")

        query = self._apply_filters(self.client.table(table).delete(), eq, None)
        return self._execute("delete", table, query)

    def count(self, table, eq=None, neq=None, gt=None):
        query = self._apply_filters(
            self.client.table(table).select("id", count="exact", head=True), eq, None
        )
        for column, value in (neq or {}).items():
            query = query.neq(column, value)
        for column, value in (gt or {}).items():
            query = query.gt(column, value)

        return self._run("count", table, query).count or 0
