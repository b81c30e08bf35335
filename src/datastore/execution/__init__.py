from .connections import ConnectionHandle, ConnectionManager, Cursor, PreparedStatement, build_url, normalize_driver
from .contracts import QueryOptions
from .executor import QueryExecutor
from .router import ServerRouter

__all__ = [
    "ConnectionHandle",
    "ConnectionManager",
    "Cursor",
    "PreparedStatement",
    "QueryExecutor",
    "QueryOptions",
    "ServerRouter",
    "build_url",
    "normalize_driver",
]
