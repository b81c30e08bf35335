"""
Placeholder expansion.

A SQL template may use two kinds of markers:

* ``?``   binds one scalar value.
* ``???`` expands one container bind. What it becomes depends only on the
  runtime type of the bind, never on the surrounding SQL:

  - a list of values      -> ``(?,?,?)``                   (IN lists)
  - a mapping             -> ``col1 = ?, col2 = ?``       (UPDATE ... SET)
  - a list of mappings    -> ``(col1,col2) values (?,?),(?,?)`` (INSERT)

Markers inside quoted literals, quoted identifiers and comments are left
untouched. The expander does not otherwise look at the SQL.
"""
from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from datastore.common.errors import ErrorCode, PlaceholderError


@dataclasses.dataclass(frozen=True)
class Scalar:
    """A single value bound to a ``?`` marker."""
    value: Any


@dataclasses.dataclass(frozen=True)
class ListExpand:
    """Values expanded into a parenthesized ``(?,?,...)`` group."""
    values: Tuple[Any, ...]

    def __init__(self, values: Sequence[Any]):
        object.__setattr__(self, "values", tuple(values))


@dataclasses.dataclass(frozen=True)
class SetClause:
    """Column/value pairs expanded into ``col = ?, ...`` in insertion order."""
    columns: Tuple[Tuple[str, Any], ...]

    def __init__(self, columns: Mapping):
        object.__setattr__(self, "columns", tuple(columns.items()))


@dataclasses.dataclass(frozen=True)
class InsertRows:
    """Rows expanded into ``(cols) values (?,...),(?,...)``."""
    rows: Tuple[Mapping, ...]

    def __init__(self, rows: Sequence[Mapping]):
        object.__setattr__(self, "rows", tuple(rows))

    def column_names(self) -> List[str]:
        """Column order of the first row, after checking every row has the same keys."""
        if not self.rows:
            raise PlaceholderError("Cannot expand an empty list of insert rows", ErrorCode.EMPTY_INSERT_ROWS)

        columns = list(self.rows[0].keys())
        expected = set(columns)
        for idx, row in enumerate(self.rows[1:], start=1):
            if set(row.keys()) != expected:
                missing = sorted(map(str, expected - set(row.keys())))
                extra = sorted(map(str, set(row.keys()) - expected))
                raise PlaceholderError(
                    f"Insert row {idx} does not match the columns of the first row "
                    f"(missing: {missing}, unexpected: {extra})",
                    ErrorCode.INCONSISTENT_INSERT_ROWS,
                )
        return columns


BindPlaceholder = Union[Scalar, ListExpand, SetClause, InsertRows]


def coerce_bind(value: Any) -> BindPlaceholder:
    """Maps a plain Python value onto a bind variant by its runtime type."""
    if isinstance(value, (Scalar, ListExpand, SetClause, InsertRows)):
        return value
    if isinstance(value, (str, bytes, bytearray)):
        return Scalar(value)
    if isinstance(value, Mapping):
        return SetClause(value)
    if isinstance(value, (list, tuple)):
        mappings = [isinstance(item, Mapping) for item in value]
        if value and all(mappings):
            return InsertRows(value)
        if any(mappings):
            raise PlaceholderError(
                "A list bind may not mix mappings with plain values", ErrorCode.INVALID_BIND_TYPE
            )
        return ListExpand(value)
    return Scalar(value)


class TokenKind(str, Enum):
    TEXT = "text"
    SCALAR = "?"
    EXPAND = "???"


class Token(NamedTuple):
    kind: TokenKind
    text: str


class ExpandedQuery(NamedTuple):
    """Driver-ready SQL using ``?`` markers, plus the flattened bind values."""
    sql: str
    binds: List[Any]


def tokenize(sql: str) -> List[Token]:
    """Splits ``sql`` into text runs and ``?``/``???`` markers.

    Quoted strings ('...'), quoted identifiers ("...") and comments
    (``-- ...`` and ``/* ... */``) are consumed as text, so markers inside
    them are not recognized. Doubled quotes inside a literal fall out of the
    scan naturally: the literal closes and immediately reopens.
    """
    tokens: List[Token] = []
    buf: List[str] = []
    i, n = 0, len(sql)

    def flush():
        if buf:
            tokens.append(Token(TokenKind.TEXT, "".join(buf)))
            buf.clear()

    while i < n:
        ch = sql[i]
        if ch in ("'", '"'):
            end = sql.find(ch, i + 1)
            end = n if end == -1 else end + 1
            buf.append(sql[i:end])
            i = end
        elif ch == "-" and sql.startswith("--", i):
            end = sql.find("\n", i)
            end = n if end == -1 else end
            buf.append(sql[i:end])
            i = end
        elif ch == "/" and sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = n if end == -1 else end + 2
            buf.append(sql[i:end])
            i = end
        elif ch == "?":
            flush()
            if sql.startswith("???", i):
                tokens.append(Token(TokenKind.EXPAND, "???"))
                i += 3
            else:
                tokens.append(Token(TokenKind.SCALAR, "?"))
                i += 1
        else:
            buf.append(ch)
            i += 1
    flush()
    return tokens


class PlaceholderExpander:
    """Rewrites ``?``/``???`` templates into positional SQL and a flat bind list."""

    def expand(self, sql: str, binds: Sequence[Any] = ()) -> ExpandedQuery:
        """
        Expands the placeholders in ``sql``.

        Args:
            sql: The SQL template.
            binds: One bind per marker, in marker order. Plain values are
                coerced with ``coerce_bind``.

        Returns:
            ExpandedQuery with the rewritten SQL and flattened binds.

        Raises:
            PlaceholderError: On a marker/bind count mismatch, a bind of the
                wrong kind for its marker, or an empty/inconsistent expansion.
        """
        tokens = tokenize(sql)
        markers = sum(1 for t in tokens if t.kind is not TokenKind.TEXT)
        if markers != len(binds):
            raise PlaceholderError(
                f"Query has {markers} placeholder(s) but {len(binds)} bind value(s) were supplied",
                ErrorCode.PLACEHOLDER_MISMATCH,
            )

        parts: List[str] = []
        flat: List[Any] = []
        position = 0
        for token in tokens:
            if token.kind is TokenKind.TEXT:
                parts.append(token.text)
                continue

            bind = coerce_bind(binds[position])
            position += 1
            if token.kind is TokenKind.SCALAR:
                if not isinstance(bind, Scalar):
                    raise PlaceholderError(
                        f"Placeholder {position} is '?' but its bind is a {type(bind).__name__}; use '???'",
                        ErrorCode.INVALID_BIND_TYPE,
                    )
                parts.append("?")
                flat.append(bind.value)
            else:
                parts.append(self._expand_container(bind, position, flat))

        return ExpandedQuery("".join(parts), flat)

    def _expand_container(self, bind: BindPlaceholder, position: int, flat: List[Any]) -> str:
        if isinstance(bind, ListExpand):
            if not bind.values:
                raise PlaceholderError(
                    f"Placeholder {position} expands an empty list", ErrorCode.EMPTY_LIST_EXPANSION
                )
            flat.extend(bind.values)
            return "(" + ",".join("?" * len(bind.values)) + ")"

        if isinstance(bind, SetClause):
            if not bind.columns:
                raise PlaceholderError(
                    f"Placeholder {position} expands an empty set clause", ErrorCode.EMPTY_SET_CLAUSE
                )
            fragments = []
            for column, value in bind.columns:
                fragments.append(f"{_column_name(column)} = ?")
                flat.append(value)
            return ", ".join(fragments)

        if isinstance(bind, InsertRows):
            columns = bind.column_names()
            names = [_column_name(c) for c in columns]
            group = "(" + ",".join("?" * len(columns)) + ")"
            for row in bind.rows:
                flat.extend(row[c] for c in columns)
            return "(" + ",".join(names) + ") values " + ",".join([group] * len(bind.rows))

        raise PlaceholderError(
            f"Placeholder {position} is '???' but its bind is a scalar; use '?'",
            ErrorCode.INVALID_BIND_TYPE,
        )


def _column_name(column: Any) -> str:
    if not isinstance(column, str) or not column.strip():
        raise PlaceholderError(
            f"Column names must be non-empty strings, got {column!r}", ErrorCode.INVALID_COLUMN_NAME
        )
    return column


_PARAMSTYLES = ("qmark", "format", "pyformat", "numeric", "named")

DriverParams = Optional[Union[Tuple[Any, ...], Dict[str, Any]]]


def render_paramstyle(sql: str, paramstyle: str = "qmark") -> str:
    """Rewrites the ``?`` markers of an expanded statement for a DB-API paramstyle.

    Statements without markers are returned unchanged, so drivers using the
    ``format`` styles never see doubled ``%`` characters in parameterless SQL.
    """
    if paramstyle not in _PARAMSTYLES:
        raise PlaceholderError(f"Unsupported driver paramstyle: {paramstyle}", ErrorCode.INVALID_BIND_TYPE)

    tokens = tokenize(sql)
    if paramstyle == "qmark" or all(t.kind is TokenKind.TEXT for t in tokens):
        return sql

    percent = paramstyle in ("format", "pyformat")
    parts: List[str] = []
    index = 0
    for token in tokens:
        if token.kind is TokenKind.TEXT:
            parts.append(token.text.replace("%", "%%") if percent else token.text)
            continue
        if token.kind is TokenKind.EXPAND:
            raise PlaceholderError("Statement still contains an unexpanded '???' marker")
        index += 1
        if percent:
            parts.append("%s")
        elif paramstyle == "numeric":
            parts.append(f":{index}")
        else:
            parts.append(f":p{index}")
    return "".join(parts)


def driver_params(binds: Sequence[Any], paramstyle: str = "qmark") -> DriverParams:
    """Packs flat bind values the way the driver's paramstyle expects them."""
    if not binds:
        return None
    if paramstyle == "named":
        return {f"p{i}": value for i, value in enumerate(binds, start=1)}
    return tuple(binds)


def convert_paramstyle(sql: str, binds: Sequence[Any], paramstyle: str = "qmark") -> Tuple[str, DriverParams]:
    """Returns the driver statement and parameters for an expanded query."""
    if not binds:
        return sql, None
    return render_paramstyle(sql, paramstyle), driver_params(binds, paramstyle)
