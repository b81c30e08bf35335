from __future__ import annotations

import random
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

from datastore.common.logger import DataStoreLogger
from datastore.configs.manager import ConfigManager
from datastore.configs.models import DatastoreConfig
from datastore.execution.connections import ConnectionManager
from datastore.execution.contracts import QueryOptions
from datastore.execution.executor import QueryExecutor
from datastore.execution.router import ServerRouter
from datastore.query.placeholders import PlaceholderExpander
from datastore.results.result_set import ResultSet


class DataStore:
    """
    Entry point for running SQL against a configured datastore.

    Example:
        >>> with DataStore("orders") as db:
        ...     res = db.do("select * from orders where id in ???", [1, 2, 3])
        ...     while res.next():
        ...         print(res["id"], res["status"])

    Args:
        store: Datastore name, an inline definition, a ``DatastoreConfig``,
            or None to pick the store from the calling package.
        logger: Optional logger; built from the store's logging settings otherwise.
        config_manager: Optional config source; defaults to the file search.
        rng: Optional random source for picking readers.
    """

    def __init__(
        self,
        store: Union[str, Mapping[str, Any], DatastoreConfig, None] = None,
        *,
        logger: Optional[DataStoreLogger] = None,
        config_manager: Optional[ConfigManager] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config_manager = config_manager or ConfigManager()
        self.config: DatastoreConfig = self.config_manager.resolve(store)
        self.logger = logger or DataStoreLogger.from_config(self.config.name, self.config.logging)

        self.connections = ConnectionManager(self.config, self.logger)
        self.router = ServerRouter(self.config, self.logger, rng=rng)
        self.executor = QueryExecutor(self.connections, self.router, self.logger, PlaceholderExpander())
        self.logger.debug(f"Datastore '{self.config.name}' ready with servers {self.config.server_names()}")

    @property
    def name(self) -> str:
        return self.config.name

    def do(
        self,
        sql: str,
        *binds: Any,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        server: Optional[str] = None,
        name: Optional[str] = None,
    ) -> ResultSet:
        """
        Runs ``sql`` with one bind per ``?``/``???`` marker.

        Args:
            sql: SQL template.
            *binds: Bind values in marker order. Lists, dicts and lists of
                dicts expand ``???`` markers.
            page: 1-indexed page of a select to return.
            per_page: Rows per page.
            server: ``"primary"`` or a reader name to run a select against.
            name: Label for the query in log output.

        Returns:
            ResultSet: Falsy if the database reported an error.
        """
        options = {
            key: value
            for key, value in (("page", page), ("per_page", per_page), ("server", server), ("name", name))
            if value is not None
        }
        return self.executor.execute(options, sql, binds)

    def execute(
        self,
        options: Union[QueryOptions, Mapping[str, Any], None],
        sql: str,
        binds: Sequence[Any] = (),
    ) -> ResultSet:
        return self.executor.execute(options, sql, binds)

    @property
    def in_transaction(self) -> bool:
        return self.connections.in_transaction

    def begin(self) -> None:
        """Starts a transaction on the primary. Nested transactions are not supported."""
        self.connections.begin()

    def commit(self) -> None:
        self.connections.commit()

    def rollback(self) -> None:
        self.connections.rollback()

    @contextmanager
    def transaction(self) -> Iterator["DataStore"]:
        """Commits when the block finishes, rolls back and re-raises when it fails."""
        self.begin()
        try:
            yield self
        except BaseException:
            if self.in_transaction:
                self.rollback()
            raise
        else:
            self.commit()

    def close(self) -> None:
        self.connections.close()

    def __enter__(self) -> "DataStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<DataStore name={self.config.name!r}>"
