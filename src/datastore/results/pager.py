from __future__ import annotations

import math
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")


class Pager:
    """Page arithmetic for a result set split into fixed-size pages.

    Args:
        total_entries: Total number of rows across all pages.
        entries_per_page: Rows per page, at least 1.
        current_page: Requested page; clamped to ``[first_page, last_page]``.
    """

    def __init__(self, total_entries: int = 0, entries_per_page: int = 10, current_page: int = 1):
        if entries_per_page < 1:
            raise ValueError("entries_per_page must be at least 1")
        self.total_entries = max(int(total_entries or 0), 0)
        self.entries_per_page = int(entries_per_page)
        self._current_page = int(current_page or 1)

    @property
    def first_page(self) -> int:
        return 1

    @property
    def last_page(self) -> int:
        return max(math.ceil(self.total_entries / self.entries_per_page), 1)

    @property
    def current_page(self) -> int:
        return min(max(self._current_page, self.first_page), self.last_page)

    @current_page.setter
    def current_page(self, value: int) -> None:
        self._current_page = int(value)

    @property
    def previous_page(self) -> Optional[int]:
        return self.current_page - 1 if self.current_page > self.first_page else None

    @property
    def next_page(self) -> Optional[int]:
        return self.current_page + 1 if self.current_page < self.last_page else None

    @property
    def skipped(self) -> int:
        """Rows on the pages before the current one."""
        return (self.current_page - 1) * self.entries_per_page

    @property
    def first(self) -> int:
        """1-based number of the first row on this page, 0 when there are no rows."""
        if self.total_entries == 0:
            return 0
        return self.skipped + 1

    @property
    def last(self) -> int:
        """1-based number of the last row on this page."""
        if self.current_page == self.last_page:
            return self.total_entries
        return self.current_page * self.entries_per_page

    @property
    def entries_on_this_page(self) -> int:
        if self.total_entries == 0:
            return 0
        return self.last - self.first + 1

    def splice(self, items: Sequence[T]) -> List[T]:
        """Returns the slice of ``items`` that falls on the current page."""
        return list(items[self.skipped:self.skipped + self.entries_per_page])

    def __repr__(self) -> str:
        return (
            f"Pager(total_entries={self.total_entries}, entries_per_page={self.entries_per_page}, "
            f"current_page={self.current_page})"
        )
