"""Data models for neotop."""

from dataclasses import dataclass

STATUS_LABELS: dict[str, str] = {
    "R": "Running",
    "S": "Sleeping",
    "D": "Disk Sleep",
    "I": "Idle",
    "Z": "Zombie",
    "T": "Stopped",
    "X": "Dead",
}
UNKNOWN_STATUS = "Unknown"


def status_label(code: str) -> str:
    """Return the human-readable label for a status code."""
    return STATUS_LABELS.get(code, UNKNOWN_STATUS)


def normalize_status(value: str) -> str:
    """
    Map a status code or label to its lowercase label.

    ``"R"``, ``"r"``, ``"running"`` and ``"Running"`` all normalize to
    ``"running"``. Values that are neither a known code nor a label are
    lowercased as-is.
    """
    value = value.strip()
    code = value.upper()
    if code in STATUS_LABELS:
        return STATUS_LABELS[code].lower()
    return value.lower()


@dataclass(slots=True, frozen=True)
class Process:
    """Immutable snapshot of a process state."""

    pid: int
    ppid: int
    name: str
    command: str
    user: str
    status: str  # 'R', 'S', 'Z', 'D', etc.
    cpu_usage: float  # 0.0 - 100.0 * core_count
    memory_usage: int  # Resident bytes
    virtual_memory: int  # Bytes
    disk_usage: tuple[int, int]  # (read_bytes, written_bytes)
    start_time: int  # Epoch seconds
    run_time: int  # Seconds since start
    environ: tuple[str, ...] = ()
    root: str = ""
    threads: int | None = None
    session_id: int | None = None


@dataclass(slots=True, frozen=True)
class SystemStats:
    """Snapshot of overall system state."""

    cpu_usage: list[float]
    memory_total: int
    memory_used: int
    memory_free: int
    memory_cached: int
    uptime: int
    load_avg: tuple[float, float, float]
    network_rx_bytes: int  # Bytes per second since the previous collection
    network_tx_bytes: int
    disk_total_bytes: int
    disk_used_bytes: int
    disk_free_bytes: int


@dataclass(slots=True, frozen=True)
class Snapshot:
    """One refresh cycle: the process list and system stats read together."""

    processes: tuple[Process, ...]
    stats: SystemStats
    generation: int
