"""Tests for the snapshot fetcher and process terminator."""

import asyncio
import threading

import pytest

from neotop.errors import BackendError, FetchError, KillError
from neotop.fetcher import SnapshotFetcher
from neotop.termination import ProcessTerminator
from fakes import FakeBackend, make_process


class TestSnapshotFetcher:
    """Tests for SnapshotFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_returns_snapshot(self):
        backend = FakeBackend([make_process(1), make_process(2)])
        fetcher = SnapshotFetcher(backend)

        snapshot = await fetcher.fetch()

        assert [p.pid for p in snapshot.processes] == [1, 2]
        assert isinstance(snapshot.processes, tuple)
        assert snapshot.stats is backend.stats
        assert snapshot.generation == 1
        assert not fetcher.in_flight

    @pytest.mark.asyncio
    async def test_generation_increases(self):
        fetcher = SnapshotFetcher(FakeBackend())
        first = await fetcher.fetch()
        second = await fetcher.fetch()
        assert (first.generation, second.generation) == (1, 2)
        assert fetcher.generation == 2

    @pytest.mark.asyncio
    async def test_backend_error_becomes_fetch_error(self):
        backend = FakeBackend()
        backend.fetch_error = BackendError("permission denied")
        fetcher = SnapshotFetcher(backend)

        with pytest.raises(FetchError, match="permission denied"):
            await fetcher.fetch()

        assert not fetcher.in_flight
        assert fetcher.generation == 0

    @pytest.mark.asyncio
    async def test_only_one_fetch_in_flight(self):
        backend = FakeBackend([make_process(1)])
        backend.gate = threading.Event()
        fetcher = SnapshotFetcher(backend)

        first = asyncio.create_task(fetcher.fetch())
        await asyncio.sleep(0)
        assert fetcher.in_flight

        assert await fetcher.fetch() is None

        backend.gate.set()
        snapshot = await first
        assert snapshot is not None
        assert backend.fetch_calls == 1


class TestProcessTerminator:
    """Tests for ProcessTerminator."""

    @pytest.mark.asyncio
    async def test_successful_kill(self):
        backend = FakeBackend([make_process(5)])
        assert await ProcessTerminator(backend).kill(5) is True
        assert backend.killed == [5]

    @pytest.mark.asyncio
    async def test_false_result_raises_kill_error(self):
        backend = FakeBackend([make_process(5)], kill_result=False)

        with pytest.raises(KillError) as excinfo:
            await ProcessTerminator(backend).kill(5)

        assert excinfo.value.pid == 5
        assert str(excinfo.value) == "Failed to kill process 5"

    @pytest.mark.asyncio
    async def test_backend_error_becomes_kill_error(self):
        backend = FakeBackend()
        backend.kill_error = BackendError("channel closed")

        with pytest.raises(KillError, match="channel closed"):
            await ProcessTerminator(backend).kill(9)

        assert backend.killed == [9]
