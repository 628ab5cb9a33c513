"""Pinned-first sorting and pagination for the process table."""

import locale
import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from neotop.models import Process


class SortDirection(Enum):
    """Sort directions for a column."""

    ASC = "asc"
    DESC = "desc"

    def reversed(self) -> "SortDirection":
        """Return the opposite direction."""
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


STRING_FIELDS = frozenset({"name", "command", "user", "status", "root"})
NUMERIC_FIELDS = frozenset(
    {
        "pid",
        "ppid",
        "cpu_usage",
        "memory_usage",
        "virtual_memory",
        "start_time",
        "run_time",
        "threads",
        "session_id",
    }
)
SORTABLE_FIELDS = STRING_FIELDS | NUMERIC_FIELDS


@dataclass(slots=True, frozen=True)
class SortConfig:
    """Column and direction the table is ordered by."""

    field: str = "cpu_usage"
    direction: SortDirection = SortDirection.DESC

    def __post_init__(self) -> None:
        if self.field not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort by {self.field!r}")

    @property
    def descending(self) -> bool:
        """Whether the direction is descending."""
        return self.direction is SortDirection.DESC


@dataclass(slots=True, frozen=True)
class Page:
    """One page of the derived table."""

    rows: list[Process] = field(default_factory=list)
    page: int = 1
    total_pages: int = 1
    total_results: int = 0


def _sort_key(field_name: str) -> Callable[[Process], Any]:
    """Build the key function for a sortable field."""
    if field_name in STRING_FIELDS:
        return lambda p: locale.strxfrm(getattr(p, field_name).casefold())

    # Missing optional values go after every real value when ascending
    def numeric_key(p: Process) -> tuple[bool, float]:
        value = getattr(p, field_name)
        return (value is None, 0 if value is None else value)

    return numeric_key


def sort_processes(
    processes: Iterable[Process],
    sort_config: SortConfig,
    pinned: frozenset[str] | set[str] = frozenset(),
) -> list[Process]:
    """
    Return a new list ordered with pinned commands first, then by the sort field.

    Both passes use Python's stable sort, so rows that tie keep their input
    order. The input is not modified.
    """
    ordered = sorted(
        processes,
        key=_sort_key(sort_config.field),
        reverse=sort_config.descending,
    )
    if not pinned:
        return ordered

    # Membership memo lives only for this call and this pin set
    pin_memo: dict[str, bool] = {}

    def unpinned(process: Process) -> bool:
        command = process.command
        if command not in pin_memo:
            pin_memo[command] = command in pinned
        return not pin_memo[command]

    return sorted(ordered, key=unpinned)


def paginate(items: Sequence[Process], page: int, per_page: int) -> Page:
    """
    Slice one 1-indexed page out of ``items``.

    Out-of-range pages are clamped to the nearest valid page.
    """
    total_results = len(items)
    total_pages = max(1, math.ceil(total_results / per_page))
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page
    return Page(
        rows=list(items[start : start + per_page]),
        page=page,
        total_pages=total_pages,
        total_results=total_results,
    )
