import logging
import json
import re
import time
import traceback
import uuid
import contextvars
from contextlib import contextmanager
from typing import Any, Dict, List, NoReturn, Optional, Protocol, Sequence

from datastore.common.errors import CriticalError, DataStoreError
from datastore.common.settings import settings

_query_name_ctx = contextvars.ContextVar("query_name", default=None)

LEVEL_ORDER = ("CRITICAL", "ERROR", "WARN", "INFO", "DEBUG")

_STDLIB_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_BANNER = "=" * 72


class QueryContext(Protocol):
    """Anything carrying a query's SQL, binds and name (result sets, expanded queries)."""

    @property
    def name(self) -> Optional[str]: ...

    @property
    def sql(self) -> str: ...

    @property
    def binds(self) -> Sequence[Any]: ...


class QueryContextFilter(logging.Filter):
    """Injects the current query name from a contextvar into the log record."""
    def filter(self, record):
        record.query_name = _query_name_ctx.get()
        return True


@contextmanager
def query_context(name: str):
    """Context manager to set the query name for the current context."""
    token = _query_name_ctx.set(name)
    try:
        yield
    finally:
        _query_name_ctx.reset(token)


class JsonFormatter(logging.Formatter):
    """Formatter that outputs JSON strings after parsing the LogRecord."""

    def format(self, record: logging.LogRecord) -> str:
        """Formats the log record as a JSON string.

        Args:
           record (logging.LogRecord): The log record to format.

        Returns:
            str: The JSON-formatted log string.
        """
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "process": record.process,
            "message": record.getMessage(),
        }

        if getattr(record, "query_name", None):
            log_record["query_name"] = record.query_name

        standard_attrs = {
            "args", "asctime", "created", "exc_info", "exc_text", "filename",
            "funcName", "levelname", "levelno", "lineno", "module",
            "msecs", "message", "msg", "name", "pathname", "process",
            "processName", "relativeCreated", "stack_info", "thread", "threadName",
            "taskName", "query_name"
        }

        for key, value in record.__dict__.items():
            if key not in standard_attrs and not key.startswith("_"):
                log_record[key] = value

        return json.dumps(log_record, default=str)


def configure_logging(level: str = "INFO", json_format: Optional[bool] = None):
    """Configures the root logger.

    Call this once from the application's entry point; the library never
    configures handlers on import.

    Args:
        level (str): The logging level (default: INFO).
        json_format (bool): Whether to use JSON formatting (default: DATASTORE_LOG_JSON).
    """
    if json_format is None:
        json_format = settings.log_json

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.addFilter(QueryContextFilter())

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        formatter = logging.Formatter(
            "[%(asctime)s] [%(process)d] %(name)s - %(message)s"
        )
        handler.setFormatter(formatter)

    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Gets a named logger.

    Args:
        name (str): The name of the logger.

    Returns:
        logging.Logger: The logger instance.
    """
    return logging.getLogger(name)


def condense_name(name: str) -> str:
    """Collapses whitespace runs (including newlines) in a query name to single spaces."""
    return re.sub(r"\s+", " ", name).strip()


def random_query_name() -> str:
    """Returns a generated query name so related log lines can be grouped."""
    return f"DS{int(time.time())}-{uuid.uuid4().hex[:6]}"


class DataStoreLogger:
    """Severity-filtered logger handed explicitly to every datastore component.

    Severities are numbered from 0 (CRITICAL, most severe) to 4 (DEBUG).
    A message is written only when its severity number is less than or equal
    to the logger's current level. Writing a CRITICAL message aborts the
    operation in progress by raising ``CriticalError``.
    """

    def __init__(
        self,
        datastore: str = "-",
        level: str = "CRITICAL",
        trace: bool = False,
        show_sql: bool = False,
        show_vars: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        self.datastore = datastore
        self._logger = logger or get_logger(f"datastore.{datastore}")
        self._levels: Dict[str, int] = {name: idx for idx, name in enumerate(LEVEL_ORDER)}
        self._level = "CRITICAL"
        self._trace = bool(trace)
        self._show_sql = bool(show_sql)
        self._show_vars = bool(show_vars)
        self.level = level

    @classmethod
    def from_config(cls, datastore: str, config: Any) -> "DataStoreLogger":
        """Builds a logger from a ``LoggingConfig``."""
        return cls(
            datastore=datastore,
            level=config.level,
            trace=config.trace,
            show_sql=config.show_sql,
            show_vars=config.show_vars,
        )

    @property
    def level(self) -> str:
        return self._level

    @level.setter
    def level(self, value: str) -> None:
        name = str(value).upper()
        if name == "WARNING":
            name = "WARN"
        # invalid names leave the current level unchanged
        if name not in self._levels:
            return
        self._level = name

    def severity(self, level: Optional[str] = None) -> Optional[int]:
        """Numeric severity of ``level``, or of the current level when omitted."""
        if level is None:
            return self._levels[self._level]
        return self._levels.get(str(level).upper())

    def trace(self, value: Optional[bool] = None) -> bool:
        if value is not None:
            self._trace = bool(value)
        return self._trace

    def show_sql(self, value: Optional[bool] = None) -> bool:
        if value is not None:
            self._show_sql = bool(value)
        return self._show_sql

    def show_vars(self, value: Optional[bool] = None) -> bool:
        if value is not None:
            self._show_vars = bool(value)
        return self._show_vars

    def log(self, level: str, *messages: Any, query: Optional[QueryContext] = None) -> bool:
        """Writes ``messages`` at ``level``.

        Args:
            level: One of CRITICAL, ERROR, WARN, INFO, DEBUG.
            *messages: Lines to log; blank entries are dropped.
            query: Optional query context used for the query name and, with
                ``show_sql``/``show_vars``, the SQL and bind listing.

        Returns:
            True if anything was written, False otherwise.

        Raises:
            ValueError: If ``level`` is not a known level name.
            CriticalError: After writing a CRITICAL entry.
        """
        level = str(level or "ERROR").upper()
        if level == "WARNING":
            level = "WARN"
        severity = self.severity(level)
        if severity is None:
            raise ValueError(f"Invalid logging level specified: {level}")

        if severity > self.severity():
            return False

        lines: List[str] = [str(m) for m in messages if m is not None and re.search(r"\w", str(m))]
        if not lines and not self._trace:
            return False

        query_name = getattr(query, "name", None) or _query_name_ctx.get() or random_query_name()

        if self._show_sql and query is not None:
            lines.extend(["SQL QUERY", _BANNER])
            lines.extend(str(query.sql).splitlines())
            if self._show_vars:
                lines.extend(["BIND VARIABLES", _BANNER, repr(list(query.binds))])

        if self._trace:
            lines.extend(["STACK TRACE", _BANNER])
            for idx, frame in enumerate(reversed(traceback.extract_stack()[:-1])):
                lines.append(f"  {{{idx}}} {frame.filename},{frame.lineno}  {frame.name}")

        prefix = f"[{level}] [{self.datastore}] [{query_name}]"
        # filtering is by this instance's level; the shared stdlib logger level is left alone
        fn, lno, func, _ = self._logger.findCaller()
        record = self._logger.makeRecord(
            self._logger.name,
            _STDLIB_LEVELS[level],
            fn,
            lno,
            "\n".join(f"{prefix} {line}" for line in lines),
            None,
            None,
            func=func,
            extra={"datastore": self.datastore, "ds_query": query_name},
        )
        self._logger.handle(record)

        if severity == 0:
            raise CriticalError("See log for details.")
        return True

    def critical(self, *messages: Any, query: Optional[QueryContext] = None) -> NoReturn:
        self.log("CRITICAL", *messages, query=query)
        # log() always raises for CRITICAL when the entry is written; an empty
        # message list still has to abort
        raise CriticalError("See log for details.")

    def error(self, *messages: Any, query: Optional[QueryContext] = None) -> bool:
        return self.log("ERROR", *messages, query=query)

    def warn(self, *messages: Any, query: Optional[QueryContext] = None) -> bool:
        return self.log("WARN", *messages, query=query)

    def info(self, *messages: Any, query: Optional[QueryContext] = None) -> bool:
        return self.log("INFO", *messages, query=query)

    def debug(self, *messages: Any, query: Optional[QueryContext] = None) -> bool:
        return self.log("DEBUG", *messages, query=query)

    def fail(self, exc: DataStoreError, query: Optional[QueryContext] = None) -> NoReturn:
        """Logs ``exc`` at ERROR and raises it."""
        self.log("ERROR", exc.message, query=query)
        raise exc
