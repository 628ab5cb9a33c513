"""Periodic refresh task for a process store."""

import asyncio
import contextlib
import logging

from neotop.store import ProcessStore

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """
    Refreshes a store on its configured cadence.

    Runs as an asyncio task on the caller's event loop. The interval is re-read
    from the store config every cycle, and frozen stores are skipped by
    ``ProcessStore.refresh``.
    """

    def __init__(self, store: ProcessStore) -> None:
        self._store = store
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Check if the refresh task is running."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the refresh task."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._task = asyncio.get_running_loop().create_task(
            self._refresh_loop(), name="RefreshScheduler"
        )

    async def stop(self) -> None:
        """Stop the refresh task, letting an in-flight refresh finish."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _refresh_loop(self) -> None:
        """Main loop: refresh, then wait for the interval or a stop request."""
        while not self._stop_event.is_set():
            try:
                await self._store.refresh()
            except Exception:
                logger.exception("Refresh cycle failed")

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._store.config.refresh_interval,
                )
