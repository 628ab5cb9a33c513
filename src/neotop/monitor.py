"""psutil-backed process backend for neotop."""

import logging
import os
import time
from dataclasses import dataclass
from typing import Protocol

import psutil

from neotop.errors import BackendError
from neotop.models import Process, SystemStats

logger = logging.getLogger(__name__)

# psutil status strings -> single-letter status codes
PSUTIL_STATUS_CODES: dict[str, str] = {
    psutil.STATUS_RUNNING: "R",
    psutil.STATUS_SLEEPING: "S",
    psutil.STATUS_DISK_SLEEP: "D",
    psutil.STATUS_IDLE: "I",
    psutil.STATUS_ZOMBIE: "Z",
    psutil.STATUS_STOPPED: "T",
    psutil.STATUS_TRACING_STOP: "T",
    psutil.STATUS_DEAD: "X",
}


class ProcessBackend(Protocol):
    """The two calls the process table makes to the operating system."""

    def get_processes(self) -> tuple[list[Process], SystemStats]:
        """Return the current process list and system statistics."""
        ...

    def kill_process(self, pid: int) -> bool:
        """Terminate ``pid``; ``False`` if it was attempted and did not succeed."""
        ...


@dataclass(slots=True, frozen=True)
class _StaticInfo:
    """Per-process fields that never change over a process lifetime."""

    name: str
    command: str
    user: str


class PsutilBackend:
    """
    Process backend that reads the local machine through psutil.

    Handles NoSuchProcess, AccessDenied and ZombieProcess errors per process by
    skipping the process. Failures reading system-wide counters raise
    ``BackendError``.
    """

    # Attributes to fetch per process; io_counters is missing on macOS
    ATTRS = [
        attr
        for attr in (
            "pid",
            "ppid",
            "name",
            "cmdline",
            "username",
            "status",
            "cpu_percent",
            "memory_info",
            "io_counters",
            "create_time",
            "environ",
            "num_threads",
        )
        if hasattr(psutil.Process, attr)
    ]

    def __init__(self) -> None:
        """Initialize the backend and prime the CPU and network counters."""
        self._static_cache: dict[tuple[int, float], _StaticInfo] = {}
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent(percpu=True)
        self._last_network = self._read_network_totals()

    def get_processes(self) -> tuple[list[Process], SystemStats]:
        """
        Collect a snapshot of processes and system statistics.

        Raises:
            BackendError: If system-wide counters cannot be read.
        """
        try:
            stats = self._collect_stats()
            processes = self._collect_processes()
        except (psutil.Error, OSError) as exc:
            raise BackendError(f"Failed to read process list: {exc}") from exc
        return processes, stats

    def kill_process(self, pid: int) -> bool:
        """
        Send SIGKILL to ``pid``.

        Returns ``False`` if the process does not exist or permission is denied.

        Raises:
            BackendError: On any other psutil failure, or when psutil refuses
                to signal the pid (pid 0).
        """
        try:
            psutil.Process(pid).kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
            logger.info("Kill of pid %d refused: %s", pid, exc)
            return False
        except (psutil.Error, ValueError) as exc:
            raise BackendError(f"Failed to deliver kill to pid {pid}: {exc}") from exc
        return True

    def _collect_stats(self) -> SystemStats:
        """Collect system-wide statistics."""
        # Non-blocking, uses previous call's data
        cpu_percents = psutil.cpu_percent(percpu=True)
        mem = psutil.virtual_memory()
        disk = psutil.disk_usage("/")
        rx_rate, tx_rate = self._network_rates()

        return SystemStats(
            cpu_usage=cpu_percents,
            memory_total=mem.total,
            memory_used=mem.used,
            memory_free=mem.available,
            memory_cached=getattr(mem, "cached", 0),
            uptime=int(time.time() - psutil.boot_time()),
            load_avg=psutil.getloadavg(),
            network_rx_bytes=rx_rate,
            network_tx_bytes=tx_rate,
            disk_total_bytes=disk.total,
            disk_used_bytes=disk.used,
            disk_free_bytes=disk.free,
        )

    def _read_network_totals(self) -> tuple[float, int, int]:
        """Return (timestamp, bytes received, bytes sent) across all interfaces."""
        counters = psutil.net_io_counters()
        if counters is None:
            return time.monotonic(), 0, 0
        return time.monotonic(), counters.bytes_recv, counters.bytes_sent

    def _network_rates(self) -> tuple[int, int]:
        """Bytes per second received and sent since the previous collection."""
        previous_time, previous_rx, previous_tx = self._last_network
        now, rx, tx = self._read_network_totals()
        self._last_network = (now, rx, tx)

        elapsed = now - previous_time
        if elapsed <= 0:
            return 0, 0
        # Counters can wrap or reset when interfaces go away
        rx_rate = max(0, rx - previous_rx) / elapsed
        tx_rate = max(0, tx - previous_tx) / elapsed
        return int(rx_rate), int(tx_rate)

    def _collect_processes(self) -> list[Process]:
        """
        Collect snapshots of all running processes.

        Uses psutil.process_iter() with oneshot() context manager for efficiency.
        """
        processes: list[Process] = []
        seen: set[tuple[int, float]] = set()
        now = time.time()

        for proc in psutil.process_iter(attrs=self.ATTRS):
            try:
                with proc.oneshot():
                    info = proc.info
                    pid = info.get("pid", 0)
                    create_time = info.get("create_time") or 0.0
                    key = (pid, create_time)
                    seen.add(key)

                    static = self._static_cache.get(key)
                    if static is None:
                        static = self._read_static_info(info)
                        self._static_cache[key] = static

                    mem_info = info.get("memory_info")
                    io = info.get("io_counters")
                    start_time = int(create_time)

                    processes.append(
                        Process(
                            pid=pid,
                            ppid=info.get("ppid") or 0,
                            name=static.name,
                            command=static.command,
                            user=static.user,
                            status=PSUTIL_STATUS_CODES.get(info.get("status"), "Unknown"),
                            cpu_usage=info.get("cpu_percent") or 0.0,
                            memory_usage=mem_info.rss if mem_info else 0,
                            virtual_memory=mem_info.vms if mem_info else 0,
                            disk_usage=(io.read_bytes, io.write_bytes) if io else (0, 0),
                            start_time=start_time,
                            run_time=max(0, int(now) - start_time) if start_time > 0 else 0,
                            environ=tuple(
                                f"{name}={value}"
                                for name, value in (info.get("environ") or {}).items()
                            ),
                            root=_read_root(pid),
                            threads=info.get("num_threads"),
                            session_id=_read_session_id(pid),
                        )
                    )

            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                # Process died mid-poll or is not readable
                continue

        # Drop cache entries for processes that have exited
        for key in self._static_cache.keys() - seen:
            del self._static_cache[key]

        return processes

    @staticmethod
    def _read_static_info(info: dict) -> _StaticInfo:
        """Build the static fields from a process_iter info dict."""
        name = info.get("name") or ""
        cmdline = info.get("cmdline") or []
        return _StaticInfo(
            name=name,
            command=" ".join(cmdline) if cmdline else name,
            user=info.get("username") or "-",
        )


def _read_root(pid: int) -> str:
    """Return the root directory of ``pid`` or an empty string if unreadable."""
    try:
        return os.readlink(f"/proc/{pid}/root")
    except OSError:
        return ""


def _read_session_id(pid: int) -> int | None:
    """Return the session id of ``pid`` where the platform exposes it."""
    getsid = getattr(os, "getsid", None)
    if getsid is None:
        return None
    try:
        return getsid(pid)
    except OSError:
        return None
