from __future__ import annotations

import dataclasses
import weakref
from collections import OrderedDict, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import URL, Connection, CursorResult, Engine
from sqlalchemy.pool import NullPool

from datastore.common.errors import (
    ConfigurationError,
    ConnectionFailedError,
    DriverError,
    ErrorCode,
    TransactionError,
)
from datastore.common.logger import DataStoreLogger
from datastore.configs.models import PRIMARY, DatastoreConfig, ServerEndpoint
from datastore.query.placeholders import driver_params, render_paramstyle

# DBI-style driver names used in datastore configs
_DRIVER_ALIASES = {
    "pg": "postgresql",
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "sqlite": "sqlite",
    "mysql": "mysql",
    "mariadb": "mariadb",
    "mssql": "mssql",
    "sqlserver": "mssql",
    "oracle": "oracle",
}


def normalize_driver(driver: str) -> str:
    """Maps a configured driver name onto a SQLAlchemy dialect name."""
    if "+" in driver:
        return driver
    return _DRIVER_ALIASES.get(driver.lower(), driver.lower())


def build_url(endpoint: ServerEndpoint) -> URL:
    """Builds the SQLAlchemy URL for an endpoint."""
    password = endpoint.password.get_secret_value() if endpoint.password is not None else None
    return URL.create(
        normalize_driver(endpoint.driver),
        username=endpoint.user,
        password=password,
        host=endpoint.host,
        port=endpoint.port,
        database=endpoint.database,
        query={k: str(v) for k, v in endpoint.options.items()},
    )


def driver_message(exc: Exception) -> str:
    """The driver's own message for a SQLAlchemy error, without the SQL echo."""
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


class Cursor:
    """Driver-boundary view of an executed statement."""

    def __init__(self, result: CursorResult):
        self._result = result
        self._buffer: Optional[Deque[Tuple[Any, ...]]] = None
        self._closed = False
        self.returns_rows: bool = result.returns_rows
        self.rowcount: int = result.rowcount
        self._fields: List[str] = list(result.keys()) if self.returns_rows else []

    def field_names(self) -> List[str]:
        return list(self._fields)

    def fetch_row(self) -> Optional[Tuple[Any, ...]]:
        """Returns the next row, or None at the end."""
        if self._buffer is not None:
            return self._buffer.popleft() if self._buffer else None
        if not self.returns_rows or self._closed:
            return None
        try:
            row = self._result.fetchone()
        except sa_exc.SQLAlchemyError as e:
            raise DriverError(driver_message(e), ErrorCode.DB_FETCH_ERROR) from e
        return tuple(row) if row is not None else None

    def fetch_all(self) -> List[Tuple[Any, ...]]:
        """Returns every remaining row."""
        if self._buffer is not None:
            rows = list(self._buffer)
            self._buffer.clear()
            return rows
        if not self.returns_rows or self._closed:
            return []
        try:
            return [tuple(row) for row in self._result.fetchall()]
        except sa_exc.SQLAlchemyError as e:
            raise DriverError(driver_message(e), ErrorCode.DB_FETCH_ERROR) from e

    def buffer(self) -> None:
        """Pulls all remaining rows into memory so the driver cursor can be released."""
        if self._buffer is None:
            rows = self.fetch_all()
            self._buffer = deque(rows)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._result.close()


@dataclasses.dataclass(frozen=True)
class PreparedStatement:
    """An expanded statement rendered for the driver's paramstyle."""
    sql: str
    driver_sql: str
    paramstyle: str


class ConnectionHandle:
    """A live connection to one server plus its prepared-statement cache."""

    def __init__(
        self,
        server: str,
        connection: Connection,
        logger: DataStoreLogger,
        cache_statements: bool = True,
        auto_commit: bool = True,
        owned: bool = False,
        statement_cache_size: int = 256,
    ):
        self.server = server
        self.connection = connection
        self.logger = logger
        self.cache_statements = cache_statements
        self.auto_commit = auto_commit
        # owned handles are closed by the result set that used them
        self.owned = owned
        self.statement_cache_size = statement_cache_size
        self._statements: "OrderedDict[str, PreparedStatement]" = OrderedDict()
        self._transaction = None

    @property
    def dialect_name(self) -> str:
        return self.connection.dialect.name

    @property
    def paramstyle(self) -> str:
        return self.connection.dialect.paramstyle

    @property
    def closed(self) -> bool:
        return self.connection.closed

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def prepare(self, sql: str) -> PreparedStatement:
        """Renders ``sql`` for the driver, reusing the cached statement when enabled."""
        cached = self._statements.get(sql)
        if cached is not None:
            self._statements.move_to_end(sql)
            return cached
        statement = PreparedStatement(sql=sql, driver_sql=render_paramstyle(sql, self.paramstyle), paramstyle=self.paramstyle)
        if self.cache_statements:
            self._statements[sql] = statement
            # least recently used statements go first
            while len(self._statements) > self.statement_cache_size:
                self._statements.popitem(last=False)
        return statement

    def execute(self, statement: PreparedStatement, binds: Sequence[Any] = ()) -> Cursor:
        """Executes a prepared statement.

        Raises:
            DriverError: If the driver reports an error.
        """
        params = driver_params(binds, statement.paramstyle)
        try:
            result = self.connection.exec_driver_sql(statement.driver_sql, params)
        except sa_exc.SQLAlchemyError as e:
            raise DriverError(driver_message(e), ErrorCode.DB_EXECUTION_ERROR) from e
        return Cursor(result)

    def commit_if_autocommit(self) -> None:
        """Commits the implicit transaction when running outside an explicit one."""
        if self.auto_commit and not self.in_transaction and self.connection.in_transaction():
            try:
                self.connection.commit()
            except sa_exc.SQLAlchemyError as e:
                raise DriverError(driver_message(e), ErrorCode.DB_EXECUTION_ERROR) from e

    def recover(self) -> None:
        """Rolls back the implicit transaction left behind by a failed statement."""
        if not self.in_transaction and self.connection.in_transaction():
            try:
                self.connection.rollback()
            except sa_exc.SQLAlchemyError as e:
                self.logger.warn(f"Rollback after failed statement on '{self.server}' failed: {driver_message(e)}")

    def begin(self) -> None:
        if self.in_transaction:
            raise TransactionError("Nested transactions are not supported")
        if self.connection.in_transaction():
            # adopt the implicit transaction opened by an earlier statement
            self._transaction = self.connection.get_transaction()
        else:
            self._transaction = self.connection.begin()

    def commit(self) -> None:
        if not self.in_transaction:
            raise TransactionError("No transaction in progress to commit")
        transaction, self._transaction = self._transaction, None
        try:
            transaction.commit()
        except sa_exc.SQLAlchemyError as e:
            raise DriverError(driver_message(e), ErrorCode.DB_EXECUTION_ERROR) from e

    def rollback(self) -> None:
        if not self.in_transaction:
            raise TransactionError("No transaction in progress to roll back")
        transaction, self._transaction = self._transaction, None
        try:
            transaction.rollback()
        except sa_exc.SQLAlchemyError as e:
            raise DriverError(driver_message(e), ErrorCode.DB_EXECUTION_ERROR) from e

    def close(self) -> None:
        self._statements.clear()
        self._transaction = None
        if not self.connection.closed:
            self.connection.close()


class ConnectionManager:
    """
    Owns the live connections of one datastore.

    Engines are created lazily per server. With ``cache_connection`` a single
    handle per server is reused for the life of the manager; otherwise every
    ``get`` opens a fresh connection that the caller is responsible for
    closing. An open transaction pins the primary handle.
    """

    def __init__(
        self,
        config: DatastoreConfig,
        logger: Optional[DataStoreLogger] = None,
        engine_factory: Callable[..., Engine] = create_engine,
    ):
        self.config = config
        self.logger = logger or DataStoreLogger(config.name)
        self._engine_factory = engine_factory
        self._engines: Dict[str, Engine] = {}
        self._handles: Dict[str, ConnectionHandle] = {}
        self._pinned: Optional[ConnectionHandle] = None
        self._retired: List[ConnectionHandle] = []
        # uncached handles handed out to result sets
        self._owned: "weakref.WeakSet[ConnectionHandle]" = weakref.WeakSet()

    @property
    def in_transaction(self) -> bool:
        return self._pinned is not None and self._pinned.in_transaction

    def engine(self, server: str) -> Engine:
        """Returns (creating on first use) the engine for ``server``."""
        if server in self._engines:
            return self._engines[server]

        endpoint = self.config.endpoint(server)
        if endpoint is None:
            self.logger.fail(ConfigurationError(
                f"Unknown server '{server}' for datastore '{self.config.name}'", ErrorCode.UNKNOWN_SERVER
            ))

        kwargs: Dict[str, Any] = {}
        if not self.config.cache_connection:
            kwargs["poolclass"] = NullPool
        try:
            engine = self._engine_factory(build_url(endpoint), **kwargs)
        except (sa_exc.ArgumentError, sa_exc.NoSuchModuleError, ImportError) as e:
            self.logger.fail(ConfigurationError(
                f"Malformed endpoint '{server}' for datastore '{self.config.name}': {e}"
            ))
        self._engines[server] = engine
        return engine

    def get(self, server: str) -> ConnectionHandle:
        """Returns a connection handle for ``server``."""
        if server == PRIMARY and self._pinned is not None and not self._pinned.closed:
            return self._pinned

        if self.config.cache_connection:
            cached = self._handles.get(server)
            if cached is not None and not cached.closed:
                return cached

        handle = self._connect(server)
        if self.config.cache_connection:
            self._handles[server] = handle
        return handle

    def _connect(self, server: str) -> ConnectionHandle:
        engine = self.engine(server)
        try:
            connection = engine.connect()
        except sa_exc.SQLAlchemyError as e:
            self.logger.fail(ConnectionFailedError(
                f"Failed to connect to server '{server}' of datastore '{self.config.name}': {driver_message(e)}"
            ))

        handle = ConnectionHandle(
            server=server,
            connection=connection,
            logger=self.logger,
            cache_statements=self.config.cache_statements,
            auto_commit=self.config.auto_commit,
            owned=not self.config.cache_connection,
        )
        self.logger.debug(f"Connected to server '{server}' ({handle.dialect_name})")
        self._apply_schemas(handle, self.config.endpoint(server))
        if handle.owned:
            self._owned.add(handle)
        return handle

    def _apply_schemas(self, handle: ConnectionHandle, endpoint: ServerEndpoint) -> None:
        if not endpoint.schemas:
            return
        if handle.dialect_name != "postgresql":
            self.logger.debug(f"Ignoring schemas {list(endpoint.schemas)} for dialect '{handle.dialect_name}'")
            return

        preparer = handle.connection.dialect.identifier_preparer
        search_path = ", ".join(preparer.quote(schema) for schema in endpoint.schemas)
        try:
            handle.connection.exec_driver_sql(f"SET search_path TO {search_path}")
            handle.connection.commit()
        except sa_exc.SQLAlchemyError as e:
            handle.close()
            self.logger.fail(ConnectionFailedError(
                f"Failed to set schemas on server '{handle.server}': {driver_message(e)}"
            ))

    def begin(self) -> None:
        if self.in_transaction:
            self.logger.fail(TransactionError("Nested transactions are not supported"))
        handle = self.get(PRIMARY)
        handle.begin()
        handle.owned = False
        self._pinned = handle

    def commit(self) -> None:
        if not self.in_transaction:
            self.logger.fail(TransactionError("No transaction in progress to commit"))
        try:
            self._pinned.commit()
        finally:
            self._release_pin()

    def rollback(self) -> None:
        if not self.in_transaction:
            self.logger.fail(TransactionError("No transaction in progress to roll back"))
        try:
            self._pinned.rollback()
        finally:
            self._release_pin()

    def _release_pin(self) -> None:
        if not self.config.cache_connection and self._pinned is not None:
            # result sets from the transaction may still be reading from it
            self._retired.append(self._pinned)
        self._pinned = None

    def close(self) -> None:
        """Closes every handle and disposes every engine."""
        handles = list(self._handles.values()) + self._retired + list(self._owned)
        if self._pinned is not None:
            handles.append(self._pinned)
        for handle in handles:
            handle.close()
        for engine in self._engines.values():
            engine.dispose()
        self._handles.clear()
        self._retired.clear()
        self._owned.clear()
        self._pinned = None
        self._engines.clear()
