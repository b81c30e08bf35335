from __future__ import annotations

import time
from typing import Any, Mapping, Optional, Sequence, Union

from datastore.common.errors import DriverError, PlaceholderError
from datastore.common.logger import DataStoreLogger, query_context, random_query_name
from datastore.query.placeholders import PlaceholderExpander
from datastore.query.statements import StatementKind, classify_statement, paginate
from datastore.results.result_set import ResultSet

from .connections import ConnectionManager
from .contracts import QueryOptions
from .router import ServerRouter


class _PendingQuery:
    """Query context for log lines written before a ResultSet exists."""

    def __init__(self, name: str, sql: str, binds: Sequence[Any]):
        self.name = name
        self.sql = sql
        self.binds = binds


class QueryExecutor:
    """
    Runs one statement end to end.

    Placeholder, configuration and connection problems raise. Errors the
    driver reports for the statement itself are returned as a falsy
    ResultSet instead, so callers can branch on ``if not res:``.
    """

    def __init__(
        self,
        connections: ConnectionManager,
        router: ServerRouter,
        logger: DataStoreLogger,
        expander: Optional[PlaceholderExpander] = None,
    ):
        self.connections = connections
        self.router = router
        self.logger = logger
        self.expander = expander or PlaceholderExpander()

    def execute(
        self,
        options: Union[QueryOptions, Mapping[str, Any], None],
        sql: str,
        binds: Sequence[Any] = (),
    ) -> ResultSet:
        """
        Executes ``sql`` with ``binds`` according to ``options``.

        Args:
            options: Pagination, server and name options.
            sql: SQL template with ``?``/``???`` markers.
            binds: One bind per marker.

        Returns:
            ResultSet: The result, falsy if the driver reported an error.

        Raises:
            PlaceholderError: If the binds do not fit the template.
            ConfigurationError: If the options or requested server are invalid.
            ConnectionFailedError: If the server cannot be reached.
        """
        options = QueryOptions.coerce(options)
        name = options.name or random_query_name()

        with query_context(name):
            kind = classify_statement(sql)
            pending = _PendingQuery(name, sql, list(binds))
            try:
                expanded = self.expander.expand(sql, binds)
            except PlaceholderError as e:
                self.logger.fail(e, query=pending)

            server, _ = self.router.select(options, kind, in_transaction=self.connections.in_transaction)
            handle = self.connections.get(server)

            page = per_page = None
            executed_sql = expanded.sql
            if options.paginated:
                if kind is StatementKind.SELECT:
                    page, per_page = options.effective_page, options.effective_per_page
                    executed_sql = paginate(expanded.sql, page, per_page, dialect=handle.dialect_name)
                else:
                    self.logger.warn(f"Ignoring pagination for a non-select ({kind.value}) statement", query=pending)

            context = _PendingQuery(name, executed_sql, expanded.binds)
            self.logger.debug(f"Executing {kind.value} on server '{server}'", query=context)

            started = time.perf_counter()
            try:
                statement = handle.prepare(executed_sql)
                cursor = handle.execute(statement, expanded.binds)
                if kind.is_write and not self.connections.in_transaction:
                    cursor.buffer()
                    handle.commit_if_autocommit()
            except DriverError as e:
                handle.recover()
                self.logger.error(f"Statement failed: {e.message}", query=context)
                if handle.owned:
                    handle.close()
                return ResultSet(
                    sql=expanded.sql,
                    binds=expanded.binds,
                    kind=kind,
                    logger=self.logger,
                    executed_sql=executed_sql,
                    error=e.message,
                    name=name,
                    server=server,
                )

            self.logger.info(
                f"{kind.value} on '{server}' finished in {(time.perf_counter() - started) * 1000:.1f}ms",
                query=context,
            )
            return ResultSet(
                sql=expanded.sql,
                binds=expanded.binds,
                kind=kind,
                logger=self.logger,
                cursor=cursor,
                handle=handle,
                executed_sql=executed_sql,
                page=page,
                per_page=per_page,
                name=name,
                server=server,
            )
