from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Sequence

from datastore.common.errors import ColumnAccessError, DriverError, ErrorCode, QueryError, ResultSetError
from datastore.common.logger import DataStoreLogger
from datastore.query.statements import StatementKind, count_query, has_outer_limit, is_count_query

from .pager import Pager
from .row import ColumnId, Row, build_index


class ResultSet:
    """
    Outcome of one executed statement.

    Iterating with ``next()`` moves the set through the rows; the set itself
    then answers column lookups for the current row, like a ``Row`` does.
    A failed statement still produces a ResultSet: it is falsy and
    ``error()`` returns the driver's message.
    """

    def __init__(
        self,
        *,
        sql: str,
        binds: Sequence[Any],
        kind: StatementKind,
        logger: DataStoreLogger,
        cursor: Any = None,
        handle: Any = None,
        executed_sql: Optional[str] = None,
        error: Optional[str] = None,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        name: Optional[str] = None,
        server: Optional[str] = None,
    ):
        self.sql = sql
        self.binds = list(binds)
        self.kind = kind
        self.logger = logger
        self.executed_sql = executed_sql or sql
        self.page = page
        self.per_page = per_page
        self.name = name
        self.server = server
        self._cursor = cursor
        self._handle = handle
        self._error = error
        self._total_rows: Optional[int] = None
        self._first_value: Any = None
        self._fetched = 0
        self._current: Optional[Row] = None
        self._exhausted = False
        self._closed = False

        self._fields: List[str] = cursor.field_names() if cursor is not None else []
        self._index = build_index(self._fields)

    @property
    def paginated(self) -> bool:
        return self.page is not None and self.per_page is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def error(self) -> Optional[str]:
        """The driver's error message, or None when the statement succeeded."""
        return self._error

    def __bool__(self) -> bool:
        return not self._error

    def query_error(self) -> Optional[QueryError]:
        """Structured form of the failure, for callers that report errors upstream."""
        if not self._error:
            return None
        return QueryError(message=self._error, query_name=self.name, server=self.server, sql=self.executed_sql)

    def _require_cursor(self) -> Any:
        if self._error:
            raise ResultSetError(f"Statement failed: {self._error}", ErrorCode.RESULT_UNAVAILABLE)
        if self._closed:
            raise ResultSetError("Result set is closed", ErrorCode.RESULT_UNAVAILABLE)
        return self._cursor

    def _fetch_row(self) -> Optional[Row]:
        if self._error or self._closed or self._cursor is None:
            return None
        values = self._cursor.fetch_row()
        if values is None:
            self._exhausted = True
            self._release()
            return None
        if self._fetched == 0 and values:
            self._first_value = values[0]
        self._fetched += 1
        return Row(self._fields, values, self._index)

    def _release(self) -> None:
        """Ends the implicit transaction a read left open outside an explicit one."""
        if self._handle is not None and not self._handle.closed:
            self._handle.commit_if_autocommit()

    def next(self) -> bool:
        """Advances to the next row. Returns False once the rows are exhausted."""
        row = self._fetch_row()
        if row is None:
            return False
        self._current = row
        return True

    def next_hashref(self) -> Optional[Dict[str, Any]]:
        """Advances and returns the new current row as a dict, or None when exhausted."""
        if self.next():
            return self._current.hashref()
        return None

    def all(self) -> List[Row]:
        """
        Fetches every remaining row.

        Raises:
            DriverError: If the driver fails while fetching.
        """
        if self._error or self._closed or self._cursor is None:
            return []
        try:
            rows = self._cursor.fetch_all()
        except DriverError as e:
            self.logger.fail(
                DriverError(f"Encountered error when retrieving complete result set: {e.message}", ErrorCode.DB_FETCH_ERROR),
                query=self,
            )
        if rows and self._fetched == 0 and rows[0]:
            self._first_value = rows[0][0]
        self._fetched += len(rows)
        self._exhausted = True
        self._release()
        return [Row(self._fields, values, self._index) for values in rows]

    def __iter__(self) -> Iterator[Row]:
        while True:
            row = self._fetch_row()
            if row is None:
                return
            yield row

    def count(self) -> int:
        """
        Number of rows affected or selected.

        For writes this is the driver's affected-row count. For selects it is
        the total number of rows the unpaged query matches; the count is
        computed at most once.

        Raises:
            ResultSetError: If the statement failed or the set is closed.
            DriverError: If the counting query fails.
        """
        cursor = self._require_cursor()
        if self.kind is not StatementKind.SELECT:
            return cursor.rowcount

        if self._total_rows is not None:
            return self._total_rows

        if is_count_query(self.sql) and not self.paginated:
            if self._fetched == 0:
                self.next()
            self._total_rows = int(self._first_value or 0)
            return self._total_rows

        if has_outer_limit(self.sql):
            self.logger.warn(
                "Getting result set row count for a query that appears to have used a LIMIT clause",
                query=self,
            )

        statement = self._handle.prepare(count_query(self.sql))
        counter = self._handle.execute(statement, self.binds)
        try:
            row = counter.fetch_row()
        finally:
            counter.close()
            if self._exhausted:
                self._release()
        if row is None:
            self.logger.fail(DriverError("Row count query returned no rows", ErrorCode.DB_FETCH_ERROR), query=self)
        self._total_rows = int(row[0])
        return self._total_rows

    def pager(self) -> Pager:
        """
        Page metadata for a paginated select.

        Raises:
            ResultSetError: If the query was not run with pagination.
        """
        if not self.paginated:
            raise ResultSetError("Pager requested for a query that was not paginated", ErrorCode.RESULT_UNAVAILABLE)
        return Pager(total_entries=self.count(), entries_per_page=self.per_page, current_page=self.page)

    # current-row access

    def _row(self) -> Row:
        if self._current is None:
            raise ResultSetError("No current row; call next() first", ErrorCode.RESULT_UNAVAILABLE)
        return self._current

    @property
    def row(self) -> Optional[Row]:
        return self._current

    def columns(self) -> List[str]:
        return list(self._fields)

    def col(self, column: ColumnId) -> Any:
        return self._row().col(column)

    def hashref(self) -> Dict[str, Any]:
        return self._row().hashref()

    def __getitem__(self, column: ColumnId) -> Any:
        return self._row()[column]

    def __setitem__(self, column: ColumnId, value: Any) -> None:
        self._row()[column] = value

    def __delitem__(self, column: ColumnId) -> None:
        raise ColumnAccessError("Cannot delete columns from result set rows", ErrorCode.COLUMN_DELETE_FORBIDDEN)

    def __contains__(self, column: object) -> bool:
        return isinstance(column, str) and column in self._index

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or self._current is None:
            raise AttributeError(name)
        return getattr(self._row(), name)

    def close(self) -> None:
        """Releases the cursor, and the connection when this set owns it."""
        if self._closed:
            return
        self._closed = True
        if self._cursor is not None:
            self._cursor.close()
        self._release()
        if self._handle is not None and self._handle.owned:
            self._handle.close()

    def __enter__(self) -> "ResultSet":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = f"error={self._error!r}" if self._error else f"kind={self.kind.value}"
        return f"<ResultSet {state} name={self.name!r}>"
