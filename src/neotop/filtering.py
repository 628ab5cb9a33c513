"""Search and status filtering for the process table."""

import logging
import re
from collections.abc import Iterable
from functools import lru_cache

from neotop.models import Process, normalize_status

logger = logging.getLogger(__name__)

ALL_STATUSES = "all"


def split_terms(search_term: str) -> list[str]:
    """Split a comma-separated search expression into trimmed terms."""
    return [term.strip() for term in search_term.split(",")]


@lru_cache(maxsize=None)
def compile_term(term: str) -> re.Pattern[str] | None:
    """
    Compile a search term as a case-insensitive regex.

    Cached per term text for the life of the process. Invalid patterns are
    cached as None.
    """
    try:
        return re.compile(term, re.IGNORECASE)
    except re.error as exc:
        logger.debug("Search term %r is not a valid regex: %s", term, exc)
        return None


def clear_pattern_cache() -> None:
    """Forget all compiled search terms."""
    compile_term.cache_clear()


def term_matches(process: Process, term: str) -> bool:
    """
    Check a single search term against a process.

    Substring checks on name, command and pid run before the regex on name.
    """
    needle = term.lower()
    if needle in process.name.lower() or needle in process.command.lower():
        return True
    if term in str(process.pid):
        return True

    pattern = compile_term(term)
    return pattern is not None and pattern.search(process.name) is not None


def matches_search(process: Process, search_term: str) -> bool:
    """True if any comma-separated term matches; a blank search matches all."""
    if not search_term.strip():
        return True
    return any(term_matches(process, term) for term in split_terms(search_term))


def matches_status(process: Process, status_filter: str) -> bool:
    """True if the process status equals the filter, or the filter is 'all'."""
    if status_filter.strip().lower() == ALL_STATUSES:
        return True
    return normalize_status(process.status) == normalize_status(status_filter)


def filter_processes(
    processes: Iterable[Process],
    search_term: str = "",
    status_filter: str = ALL_STATUSES,
) -> list[Process]:
    """Return the processes matching both the search and the status filter, in order."""
    return [
        process
        for process in processes
        if matches_status(process, status_filter) and matches_search(process, search_term)
    ]
