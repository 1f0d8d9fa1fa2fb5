"""
core/filters.py -- Paging and sorting contract shared by every list query.

Filters is the client-side paging state; MetaData is what a list operation
returns alongside its page. The store computes the total match count in the
same statement as the page (a windowed COUNT(*) OVER ()), and
calculate_metadata() turns that single number into page metadata.

Sorting: `sort` is a column name from the entity's safelist. A leading "-"
requests descending order ("-created_at"). Every query appends `id ASC` as
a tie-break so pages stay stable when the sort column has duplicates.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from core.validator import Validator

MAX_PAGE = 10_000_000


@dataclass
class Filters:
    page: int = 1
    page_size: int = 20
    sort: str = "id"
    sort_safelist: tuple[str, ...] = ("id", "-id")

    def sort_column(self) -> str:
        """Return the bare column name for ORDER BY.

        Filters must have passed validate_filters() first. An unsafelisted
        value reaching this point is a programming error, not bad input.
        """
        if self.sort not in self.sort_safelist:
            raise RuntimeError(f"unsafe sort parameter: {self.sort!r}")
        return self.sort.lstrip("-")

    def sort_descending(self) -> bool:
        return self.sort.startswith("-")

    @property
    def limit(self) -> int:
        return self.page_size

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class MetaData:
    page: int = 0
    page_size: int = 0
    total_pages: int = 0
    total_records: int = 0


EMPTY_METADATA = MetaData()


def sort_safelist(*columns: str) -> tuple[str, ...]:
    """Build a safelist accepting each column ascending and descending."""
    return tuple(columns) + tuple(f"-{c}" for c in columns)


def validate_filters(v: Validator, f: Filters, max_page_size: int) -> None:
    v.check(f.page > 0, "page", "must be greater than zero")
    v.check(f.page <= MAX_PAGE, "page", f"must be a maximum of {MAX_PAGE}")
    v.check(f.page_size > 0, "page_size", "must be greater than zero")
    v.check(f.page_size <= max_page_size, "page_size", f"must be a maximum of {max_page_size}")
    v.check(f.sort in f.sort_safelist, "sort", "invalid sort value")


def calculate_metadata(total_records: int, page: int, page_size: int) -> MetaData:
    """Compute page metadata from the windowed total.

    Zero matching records is a valid outcome: all fields are zero.
    """
    if total_records == 0:
        return EMPTY_METADATA
    return MetaData(
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total_records / page_size),
        total_records=total_records,
    )


@dataclass
class Page:
    """One window of a list query."""

    items: list = field(default_factory=list)
    metadata: MetaData = EMPTY_METADATA
