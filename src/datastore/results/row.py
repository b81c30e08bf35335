from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from datastore.common.errors import ColumnAccessError, ErrorCode

ColumnId = Union[int, str]


def build_index(fields: Sequence[str]) -> Dict[str, int]:
    """Maps column names to positions; the first of a duplicated name wins."""
    index: Dict[str, int] = {}
    for position, name in enumerate(fields):
        index.setdefault(name, position)
    return index


class Row:
    """
    One result row, addressable by column name or by position.

    The column set is fixed when the row is built. Values can be
    overwritten in memory, but columns can never be added or removed.
    """

    __slots__ = ("_fields", "_index", "_values")

    def __init__(self, fields: Sequence[str], values: Sequence[Any], index: Optional[Mapping[str, int]] = None):
        object.__setattr__(self, "_fields", list(fields))
        object.__setattr__(self, "_index", dict(index) if index is not None else build_index(fields))
        object.__setattr__(self, "_values", list(values))

    def _position(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise ColumnAccessError(f"Invalid column name specified: {name}", ErrorCode.INVALID_COLUMN) from None

    def by_name(self, name: str) -> Any:
        return self._values[self._position(name)]

    def by_index(self, position: int) -> Any:
        try:
            return self._values[position]
        except IndexError:
            raise ColumnAccessError(f"Invalid column index specified: {position}", ErrorCode.INVALID_COLUMN) from None

    def col(self, column: ColumnId) -> Any:
        """Integers (or digit strings) select by position, anything else by name."""
        if isinstance(column, int) or (isinstance(column, str) and column.isdigit() and column not in self._index):
            return self.by_index(int(column))
        return self.by_name(column)

    def get(self, column: ColumnId, default: Any = None) -> Any:
        if not self.exists(column):
            return default
        return self.col(column)

    def set(self, column: ColumnId, value: Any) -> None:
        if isinstance(column, int):
            self.by_index(column)
            self._values[column] = value
        else:
            self._values[self._position(column)] = value

    def exists(self, column: ColumnId) -> bool:
        if isinstance(column, int):
            return -len(self._values) <= column < len(self._values)
        return column in self._index

    def columns(self) -> List[str]:
        return list(self._fields)

    def values(self) -> List[Any]:
        return list(self._values)

    def hashref(self) -> Dict[str, Any]:
        """Snapshot of the row as a plain name to value dict."""
        return {name: self._values[self._index[name]] for name in self._fields}

    as_dict = hashref

    def __getitem__(self, column: ColumnId) -> Any:
        return self.col(column)

    def __setitem__(self, column: ColumnId, value: Any) -> None:
        self.set(column, value)

    def __delitem__(self, column: ColumnId) -> None:
        raise ColumnAccessError("Cannot delete columns from result set rows", ErrorCode.COLUMN_DELETE_FORBIDDEN)

    def __contains__(self, column: object) -> bool:
        return isinstance(column, str) and column in self._index

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._values))

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        index = object.__getattribute__(self, "_index")
        if name not in index:
            raise ColumnAccessError(f"No such method (or column): {name}", ErrorCode.INVALID_COLUMN)
        return object.__getattribute__(self, "_values")[index[name]]

    def __setattr__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __delattr__(self, name: str) -> None:
        self.__delitem__(name)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._fields == other._fields and self._values == other._values
        return NotImplemented

    __hash__ = None

    def __str__(self) -> str:
        return "Result::Row:" + "||".join("" if v is None else str(v) for v in self._values)

    def __repr__(self) -> str:
        return f"Row({self.hashref()!r})"
