"""Tests for the psutil backend."""

import multiprocessing
import os
import time

import psutil
import pytest

from neotop.errors import BackendError
from neotop.models import Process, SystemStats
from neotop.monitor import PSUTIL_STATUS_CODES, PsutilBackend


def dummy_worker(duration: float = 30.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


class TestPsutilBackend:
    """Tests for PsutilBackend against the local machine."""

    def test_get_processes_returns_snapshot(self):
        backend = PsutilBackend()
        processes, stats = backend.get_processes()

        assert isinstance(processes, list)
        assert len(processes) > 0
        assert isinstance(stats, SystemStats)
        assert stats.memory_total > 0
        assert len(stats.cpu_usage) == psutil.cpu_count()
        assert len(stats.load_avg) == 3

    def test_processes_have_required_fields(self):
        processes, _ = PsutilBackend().get_processes()

        for proc in processes[:5]:
            assert isinstance(proc, Process)
            assert isinstance(proc.pid, int)
            assert isinstance(proc.name, str)
            assert isinstance(proc.command, str)
            assert isinstance(proc.user, str)
            assert isinstance(proc.status, str)
            assert isinstance(proc.cpu_usage, float)
            assert isinstance(proc.memory_usage, int)
            assert len(proc.disk_usage) == 2
            assert proc.run_time >= 0

    def test_own_process_is_listed(self):
        processes, _ = PsutilBackend().get_processes()
        own = [p for p in processes if p.pid == os.getpid()]

        assert len(own) == 1
        assert own[0].command
        assert own[0].status in set(PSUTIL_STATUS_CODES.values()) | {"Unknown"}

    def test_static_cache_tracks_live_processes(self):
        backend = PsutilBackend()
        backend.get_processes()
        processes, _ = backend.get_processes()

        cached_pids = {pid for pid, _create_time in backend._static_cache}
        assert cached_pids == {p.pid for p in processes}

    def test_kill_missing_process_returns_false(self):
        backend = PsutilBackend()
        # Find a pid that is not in use
        pid = max(psutil.pids()) + 10000
        assert backend.kill_process(pid) is False

    def test_kill_dummy_process(self):
        p = multiprocessing.Process(target=dummy_worker, args=(30.0,))
        p.start()
        try:
            assert PsutilBackend().kill_process(p.pid) is True
            p.join(timeout=5.0)
            assert not p.is_alive()
        finally:
            if p.is_alive():
                p.terminate()
                p.join(timeout=1.0)

    def test_system_failure_raises_backend_error(self, monkeypatch):
        backend = PsutilBackend()

        def broken(*args, **kwargs):
            raise OSError("proc not mounted")

        monkeypatch.setattr(psutil, "virtual_memory", broken)
        with pytest.raises(BackendError, match="proc not mounted"):
            backend.get_processes()

    def test_refused_signal_raises_backend_error(self, monkeypatch):
        backend = PsutilBackend()

        class RefusingProcess:
            def __init__(self, pid):
                self.pid = pid

            def kill(self):
                raise ValueError("preventing process from killing all processes")

        monkeypatch.setattr(psutil, "Process", RefusingProcess)
        with pytest.raises(BackendError, match="pid 0"):
            backend.kill_process(0)

    def test_network_rates_are_non_negative(self):
        backend = PsutilBackend()
        time.sleep(0.05)
        _, stats = backend.get_processes()
        assert stats.network_rx_bytes >= 0
        assert stats.network_tx_bytes >= 0
