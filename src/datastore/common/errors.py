from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class ErrorSeverity(str, Enum):
    """Severity levels for datastore errors."""
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorCode(str, Enum):
    """Standardized error codes for datastore failures."""
    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"
    CONFIG_INVALID = "CONFIG_INVALID"
    UNKNOWN_DATASTORE = "UNKNOWN_DATASTORE"
    UNKNOWN_SERVER = "UNKNOWN_SERVER"
    MISSING_SECRET = "MISSING_SECRET"
    INVALID_OPTIONS = "INVALID_OPTIONS"
    PLACEHOLDER_MISMATCH = "PLACEHOLDER_MISMATCH"
    EMPTY_LIST_EXPANSION = "EMPTY_LIST_EXPANSION"
    EMPTY_SET_CLAUSE = "EMPTY_SET_CLAUSE"
    EMPTY_INSERT_ROWS = "EMPTY_INSERT_ROWS"
    INCONSISTENT_INSERT_ROWS = "INCONSISTENT_INSERT_ROWS"
    INVALID_BIND_TYPE = "INVALID_BIND_TYPE"
    INVALID_COLUMN_NAME = "INVALID_COLUMN_NAME"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    DB_EXECUTION_ERROR = "DB_EXECUTION_ERROR"
    DB_FETCH_ERROR = "DB_FETCH_ERROR"
    INVALID_COLUMN = "INVALID_COLUMN"
    COLUMN_DELETE_FORBIDDEN = "COLUMN_DELETE_FORBIDDEN"
    TRANSACTION_STATE = "TRANSACTION_STATE"
    RESULT_UNAVAILABLE = "RESULT_UNAVAILABLE"
    CRITICAL_LOGGED = "CRITICAL_LOGGED"


SAFE_ERROR_MESSAGES = {
    ErrorCode.DB_EXECUTION_ERROR: "The database reported an error while executing the query.",
    ErrorCode.DB_FETCH_ERROR: "The database reported an error while retrieving results.",
    ErrorCode.CONNECTION_FAILED: "Could not connect to the database server.",
}


class DataStoreError(Exception):
    """Base class for every error raised by datastore."""

    error_code: ErrorCode = ErrorCode.CONFIG_INVALID
    severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code


class ConfigurationError(DataStoreError, ValueError):
    """Unknown datastore or server, malformed endpoint, unreadable config source."""
    error_code = ErrorCode.CONFIG_INVALID


class ConnectionFailedError(DataStoreError):
    """The driver could not establish a connection."""
    error_code = ErrorCode.CONNECTION_FAILED


class PlaceholderError(DataStoreError, ValueError):
    """Placeholder input that cannot be expanded; raised before any SQL is sent."""
    error_code = ErrorCode.PLACEHOLDER_MISMATCH


class DriverError(DataStoreError):
    """SQL execution or fetch failure reported by the underlying client."""
    error_code = ErrorCode.DB_EXECUTION_ERROR


class ColumnAccessError(DataStoreError, KeyError):
    """Access to an undefined column, or any attempt to delete a column."""
    error_code = ErrorCode.INVALID_COLUMN

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.message


class TransactionError(DataStoreError):
    """Transaction calls made in the wrong state (nested begin, commit without begin)."""
    error_code = ErrorCode.TRANSACTION_STATE


class ResultSetError(DataStoreError):
    """A result set operation that is unavailable for this result set."""
    error_code = ErrorCode.RESULT_UNAVAILABLE


class CriticalError(DataStoreError):
    """Raised after a CRITICAL log entry has been written."""
    error_code = ErrorCode.CRITICAL_LOGGED
    severity = ErrorSeverity.CRITICAL


class QueryError(BaseModel):
    """Represents a driver error captured on a result set.

    Attributes:
        error_code (ErrorCode): The standardized error code.
        message (str): The driver's error message.
        severity (ErrorSeverity): The severity of the error.
        query_name (Optional[str]): Name of the query that failed.
        server (Optional[str]): Server the query was routed to.
        sql (Optional[str]): The SQL text sent to the driver.
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    error_code: ErrorCode = ErrorCode.DB_EXECUTION_ERROR
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    query_name: Optional[str] = None
    server: Optional[str] = None
    sql: Optional[str] = None

    @property
    def safe_message(self) -> str:
        """Returns a message with driver details stripped, safe to show end users."""
        return SAFE_ERROR_MESSAGES.get(self.error_code, self.message)
