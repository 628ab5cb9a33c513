"""Snapshot fetcher: reads the backend without overlapping requests."""

import asyncio
import logging

from neotop.errors import BackendError, FetchError
from neotop.models import Snapshot
from neotop.monitor import ProcessBackend

logger = logging.getLogger(__name__)


class SnapshotFetcher:
    """
    Reads ``(processes, stats)`` from a backend on a worker thread.

    At most one fetch is in flight at a time. Each successful fetch is numbered
    with a generation that increases by one per snapshot.
    """

    def __init__(self, backend: ProcessBackend) -> None:
        self._backend = backend
        self._in_flight = False
        self._generation = 0

    @property
    def in_flight(self) -> bool:
        """Whether a fetch is currently outstanding."""
        return self._in_flight

    @property
    def generation(self) -> int:
        """Generation of the most recent successful fetch (0 before any)."""
        return self._generation

    async def fetch(self) -> Snapshot | None:
        """
        Fetch a new snapshot.

        Returns:
            The snapshot, or None if another fetch is already in flight.

        Raises:
            FetchError: If the backend fails.
        """
        if self._in_flight:
            logger.debug("Fetch skipped, generation %d still in flight", self._generation + 1)
            return None

        self._in_flight = True
        try:
            processes, stats = await asyncio.to_thread(self._backend.get_processes)
        except BackendError as exc:
            raise FetchError(str(exc)) from exc
        finally:
            self._in_flight = False

        self._generation += 1
        return Snapshot(processes=tuple(processes), stats=stats, generation=self._generation)
