"""Verification Test: Chaos Monkey - process churn while the table refreshes.

Processes are spawned and terminated at random while a store refreshes from
the real psutil backend. Refreshes must keep succeeding, dead processes must
drop out of the table, and a selected process that dies must resolve to None.
"""

import asyncio
import multiprocessing
import random
import time

import pytest

from neotop.monitor import PsutilBackend
from neotop.store import KillState, ProcessStore


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


def spawn(count: int, duration: float = 60.0) -> list[multiprocessing.Process]:
    processes = []
    for _ in range(count):
        p = multiprocessing.Process(target=dummy_worker, args=(duration,))
        p.start()
        processes.append(p)
    return processes


def reap(processes: list[multiprocessing.Process]) -> None:
    for p in processes:
        if p.is_alive():
            p.terminate()
    for p in processes:
        p.join(timeout=1.0)


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    @pytest.mark.asyncio
    async def test_refresh_survives_process_termination(self):
        """Refreshing never fails while processes die between and during polls."""
        processes = spawn(30)
        store = ProcessStore.from_backend(PsutilBackend())

        try:
            assert await store.get_processes()

            for p in random.sample(processes, 15):
                p.terminate()
                assert await store.get_processes()
                assert store.state.error is None

            alive = {p.pid for p in processes if p.is_alive()}
            listed = {proc.pid for proc in store.state.processes}
            assert alive <= listed
        finally:
            reap(processes)

    @pytest.mark.asyncio
    async def test_selected_process_resolves_to_none_after_exit(self):
        processes = spawn(1)
        store = ProcessStore.from_backend(PsutilBackend())

        try:
            await store.get_processes()
            target = next(p for p in store.state.processes if p.pid == processes[0].pid)
            store.show_process_details(target)

            processes[0].terminate()
            processes[0].join(timeout=2.0)
            await store.get_processes()

            assert store.state.selected_process is None
            assert store.state.selected_process_pid == target.pid
        finally:
            reap(processes)

    @pytest.mark.asyncio
    async def test_confirmed_kill_removes_process(self):
        processes = spawn(1)
        store = ProcessStore.from_backend(PsutilBackend())

        try:
            await store.get_processes()
            target = next(p for p in store.state.processes if p.pid == processes[0].pid)

            store.confirm_kill_process(target)
            assert await store.handle_confirm_kill()
            processes[0].join(timeout=2.0)
            await store.get_processes()

            assert store.state.kill_state is KillState.IDLE
            assert target.pid not in {p.pid for p in store.state.processes}
        finally:
            reap(processes)

    @pytest.mark.asyncio
    async def test_rapid_churn(self):
        """Creating and killing processes continuously while refreshing."""
        processes = []
        store = ProcessStore.from_backend(PsutilBackend())
        deadline = time.monotonic() + 2.0

        try:
            while time.monotonic() < deadline:
                processes.extend(spawn(3, duration=10.0))
                alive = [p for p in processes if p.is_alive()]
                if len(alive) > 6:
                    for p in random.sample(alive, 2):
                        p.terminate()
                assert await store.get_processes()
                await asyncio.sleep(0.05)

            assert store.state.error is None
        finally:
            reap(processes)
