"""Convenience layer over SQLAlchemy connections: placeholder expansion,
primary/reader routing and paginated result sets."""
from datastore.common.errors import (
    ColumnAccessError,
    ConfigurationError,
    ConnectionFailedError,
    CriticalError,
    DataStoreError,
    DriverError,
    ErrorCode,
    PlaceholderError,
    ResultSetError,
    TransactionError,
)
from datastore.common.logger import DataStoreLogger, configure_logging
from datastore.configs import ConfigManager, DatastoreConfig, ServerEndpoint
from datastore.datastore import DataStore
from datastore.execution.contracts import QueryOptions
from datastore.query.placeholders import InsertRows, ListExpand, Scalar, SetClause
from datastore.results import Pager, ResultSet, Row

__version__ = "0.1.0"

__all__ = [
    "ColumnAccessError",
    "ConfigManager",
    "ConfigurationError",
    "ConnectionFailedError",
    "configure_logging",
    "CriticalError",
    "DataStore",
    "DataStoreError",
    "DataStoreLogger",
    "DatastoreConfig",
    "DriverError",
    "ErrorCode",
    "InsertRows",
    "ListExpand",
    "Pager",
    "PlaceholderError",
    "QueryOptions",
    "ResultSet",
    "ResultSetError",
    "Row",
    "Scalar",
    "ServerEndpoint",
    "SetClause",
    "TransactionError",
]
