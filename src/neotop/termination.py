"""Process termination through the backend."""

import asyncio
import logging

from neotop.errors import BackendError, KillError
from neotop.monitor import ProcessBackend

logger = logging.getLogger(__name__)


class ProcessTerminator:
    """Sends kill requests to the backend and turns refusals into ``KillError``."""

    def __init__(self, backend: ProcessBackend) -> None:
        self._backend = backend

    async def kill(self, pid: int) -> bool:
        """
        Kill ``pid``.

        Only a ``True`` answer from the backend counts as success; the call is
        never retried.

        Raises:
            KillError: If the backend returned False or could not be reached.
        """
        logger.info("Killing pid %d", pid)
        try:
            killed = await asyncio.to_thread(self._backend.kill_process, pid)
        except BackendError as exc:
            raise KillError(pid, str(exc)) from exc

        if not killed:
            raise KillError(pid)
        logger.info("Killed pid %d", pid)
        return True
