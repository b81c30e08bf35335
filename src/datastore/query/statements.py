from __future__ import annotations

import re
from enum import Enum

_LEADING_NOISE_RE = re.compile(r"^(?:\s+|--[^\n]*(?:\n|$)|/\*.*?\*/|\()*", re.S)
_KEYWORD_RE = re.compile(r"[A-Za-z]+")
_COUNT_RE = re.compile(r"^\s*select\s+count\(\s*\*\s*\)", re.I)
# a LIMIT (literal or bound) with no closing paren after it is taken to be outside any subquery
_OUTER_LIMIT_RE = re.compile(r"\slimit\s+(?:\d+|\?)(?!.*\))", re.I | re.S)
_TRAILING_RE = re.compile(r"[\s;]+$")

_OFFSET_FETCH_DIALECTS = {"mssql", "oracle"}


class StatementKind(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    OTHER = "other"

    @property
    def is_write(self) -> bool:
        """Everything but a plain select is routed as a write."""
        return self is not StatementKind.SELECT


def classify_statement(sql: str) -> StatementKind:
    """Classifies ``sql`` by its leading keyword, skipping whitespace, comments and parens."""
    body = _LEADING_NOISE_RE.sub("", sql, count=1)
    match = _KEYWORD_RE.match(body)
    if not match:
        return StatementKind.OTHER
    try:
        return StatementKind(match.group(0).lower())
    except ValueError:
        return StatementKind.OTHER


def is_count_query(sql: str) -> bool:
    """True when ``sql`` starts with ``select count(*)``."""
    return _COUNT_RE.match(sql) is not None


def has_outer_limit(sql: str) -> bool:
    """True when ``sql`` appears to carry a LIMIT clause outside any subquery."""
    return _OUTER_LIMIT_RE.search(sql) is not None


def strip_terminator(sql: str) -> str:
    """Removes trailing whitespace and semicolons."""
    return _TRAILING_RE.sub("", sql)


def count_query(sql: str) -> str:
    """Wraps ``sql`` in a derived-table row count."""
    # the closing paren goes on its own line so a trailing -- comment cannot swallow it
    return f"select count(*) from (\n{strip_terminator(sql)}\n) derived"


def page_offset(page: int, per_page: int) -> int:
    return (page - 1) * per_page


def paginate(sql: str, page: int, per_page: int, dialect: str = "default") -> str:
    """
    Restricts a select to one page of rows.

    Args:
        sql: The expanded select statement.
        page: 1-indexed page number.
        per_page: Rows per page.
        dialect: SQLAlchemy dialect name; mssql and oracle get
            ``OFFSET ... FETCH`` instead of ``LIMIT ... OFFSET``.

    Returns:
        The paged SQL.
    """
    body = strip_terminator(sql)
    offset = page_offset(page, per_page)

    if has_outer_limit(body):
        # the caller's own LIMIT has to apply before paging
        body = f"select * from (\n{body}\n) paged"

    if dialect in _OFFSET_FETCH_DIALECTS:
        return f"{body}\noffset {offset} rows fetch next {per_page} rows only"
    return f"{body}\nlimit {per_page} offset {offset}"
