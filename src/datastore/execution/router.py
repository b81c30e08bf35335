from __future__ import annotations

import random
from typing import Optional, Tuple

from datastore.common.errors import ConfigurationError, ErrorCode
from datastore.common.logger import DataStoreLogger
from datastore.configs.models import PRIMARY, RANDOM_READER, DatastoreConfig, ServerEndpoint
from datastore.query.statements import StatementKind

from .contracts import QueryOptions


class ServerRouter:
    """Chooses which configured server handles a statement.

    Writes, and anything issued inside a transaction, always go to the
    primary. Reads go to the requested server, else the default reader, else
    a uniformly random reader, else the primary.
    """

    def __init__(
        self,
        config: DatastoreConfig,
        logger: Optional[DataStoreLogger] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.logger = logger or DataStoreLogger(config.name)
        self._rng = rng or random.Random()

    def select(
        self,
        options: QueryOptions,
        kind: StatementKind,
        in_transaction: bool = False,
    ) -> Tuple[str, ServerEndpoint]:
        """
        Returns the server name and endpoint for a statement.

        Raises:
            ConfigurationError: If ``options.server`` names an unknown server.
        """
        requested = options.server
        if requested is not None and self.config.endpoint(requested) is None:
            self.logger.fail(ConfigurationError(
                f"Unknown server '{requested}' for datastore '{self.config.name}'. "
                f"Available: {self.config.server_names()}",
                ErrorCode.UNKNOWN_SERVER,
            ))

        if kind.is_write or in_transaction:
            return PRIMARY, self.config.primary

        if requested is not None:
            return requested, self.config.endpoint(requested)

        default_reader = self.config.default_reader
        if default_reader is not None and default_reader != RANDOM_READER:
            return default_reader, self.config.readers[default_reader]

        if self.config.readers:
            name = self._rng.choice(sorted(self.config.readers))
            return name, self.config.readers[name]

        return PRIMARY, self.config.primary
