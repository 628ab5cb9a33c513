"""Process table store: snapshot, view state and the kill confirmation workflow."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from neotop.config import AppConfig
from neotop.errors import FetchError, KillError
from neotop.fetcher import SnapshotFetcher
from neotop.filtering import filter_processes
from neotop.models import Process, Snapshot, SystemStats
from neotop.monitor import ProcessBackend
from neotop.sorting import Page, SortConfig, SortDirection, paginate, sort_processes
from neotop.termination import ProcessTerminator

logger = logging.getLogger(__name__)

Listener = Callable[["StoreState"], None]


class KillState(Enum):
    """Stages of the confirm-then-kill workflow."""

    IDLE = "idle"
    CONFIRM_PENDING = "confirm_pending"
    KILLING = "killing"


@dataclass(slots=True, frozen=True)
class StoreState:
    """Everything the process table shows, replaced wholesale on each update."""

    processes: tuple[Process, ...] = ()
    system_stats: SystemStats | None = None
    error: str | None = None
    is_loading: bool = True
    search_term: str = ""
    status_filter: str = "all"
    current_page: int = 1
    pinned: frozenset[str] = frozenset()
    sort_config: SortConfig = field(default_factory=SortConfig)
    selected_process_pid: int | None = None
    selected_process: Process | None = None
    show_info_modal: bool = False
    show_confirm_modal: bool = False
    process_to_kill: Process | None = None
    is_killing: bool = False
    is_frozen: bool = False
    generation: int = 0

    @property
    def kill_state(self) -> KillState:
        """Current stage of the kill workflow."""
        if self.is_killing:
            return KillState.KILLING
        if self.process_to_kill is not None:
            return KillState.CONFIRM_PENDING
        return KillState.IDLE


def derive_view(state: StoreState, items_per_page: int) -> Page:
    """Filter, sort and paginate one state into the visible page."""
    matching = filter_processes(state.processes, state.search_term, state.status_filter)
    ordered = sort_processes(matching, state.sort_config, state.pinned)
    return paginate(ordered, state.current_page, items_per_page)


class ProcessStore:
    """
    Owns the current snapshot and the table's view state.

    All mutations replace the immutable ``StoreState`` and notify subscribers.
    Fetching and killing go through the injected fetcher and terminator, so
    several independent stores can coexist.
    """

    def __init__(
        self,
        fetcher: SnapshotFetcher,
        terminator: ProcessTerminator,
        config: AppConfig | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._terminator = terminator
        self._config = config or AppConfig()
        self._state = StoreState(status_filter=self._config.default_status_filter)
        self._listeners: list[Listener] = []
        self._refetch_requested = False

    @classmethod
    def from_backend(
        cls, backend: ProcessBackend, config: AppConfig | None = None
    ) -> "ProcessStore":
        """Build a store whose fetcher and terminator share one backend."""
        return cls(SnapshotFetcher(backend), ProcessTerminator(backend), config)

    @property
    def state(self) -> StoreState:
        """The current state."""
        return self._state

    @property
    def config(self) -> AppConfig:
        """The current configuration."""
        return self._config

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener`` with the new state after every update.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes: Any) -> None:
        """Replace the state and notify listeners."""
        self._state = replace(self._state, **changes)
        state = self._state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Store listener %r failed", listener)

    def view(self) -> Page:
        """The visible page for the current state."""
        return derive_view(self._state, self._config.items_per_page)

    # Snapshot

    async def get_processes(self) -> bool:
        """
        Fetch a snapshot and apply it.

        If a fetch is already in flight, one follow-up fetch is queued behind it
        and this call returns immediately.

        Returns:
            True if at least one snapshot was applied by this call.
        """
        if self._fetcher.in_flight:
            logger.debug("Refresh requested while fetching, queueing a follow-up")
            self._refetch_requested = True
            return False

        applied = False
        self._refetch_requested = True
        while self._refetch_requested:
            self._refetch_requested = False
            try:
                snapshot = await self._fetcher.fetch()
            except FetchError as exc:
                logger.warning("Process refresh failed: %s", exc)
                self._update(error=str(exc), is_loading=False)
                continue
            if snapshot is not None:
                self._apply_snapshot(snapshot)
                applied = True
        return applied

    async def refresh(self) -> bool:
        """Scheduled refresh; skipped while the table is frozen."""
        if self._state.is_frozen:
            return False
        return await self.get_processes()

    def _apply_snapshot(self, snapshot: Snapshot) -> None:
        state = self._state
        selected = state.selected_process
        if state.selected_process_pid is not None:
            selected = next(
                (p for p in snapshot.processes if p.pid == state.selected_process_pid),
                None,
            )
        self._update(
            processes=snapshot.processes,
            system_stats=snapshot.stats,
            error=None,
            is_loading=False,
            selected_process=selected,
            generation=snapshot.generation,
        )

    def set_is_loading(self, is_loading: bool) -> None:
        """Mark whether a snapshot is being loaded."""
        self._update(is_loading=is_loading)

    def set_is_frozen(self, is_frozen: bool) -> None:
        """Pause or resume scheduled refreshes."""
        self._update(is_frozen=is_frozen)

    def clear_error(self) -> None:
        """Drop the last recorded error."""
        self._update(error=None)

    # Table view

    def toggle_sort(self, field_name: str) -> None:
        """Sort by ``field_name``; flip the direction if it is already the sort field."""
        current = self._state.sort_config
        if current.field == field_name:
            direction = current.direction.reversed()
        else:
            direction = SortDirection.DESC
        self._update(sort_config=SortConfig(field_name, direction))

    def toggle_pin(self, command: str) -> None:
        """Pin ``command`` to the top of the table, or unpin it."""
        pinned = set(self._state.pinned)
        if command in pinned:
            pinned.remove(command)
        else:
            pinned.add(command)
        self._update(pinned=frozenset(pinned))

    def is_pinned(self, command: str) -> bool:
        """Whether ``command`` is pinned."""
        return command in self._state.pinned

    def set_search_term(self, search_term: str) -> None:
        """Filter by ``search_term`` and go back to the first page."""
        self._update(search_term=search_term, current_page=1)

    def set_status_filter(self, status_filter: str) -> None:
        """Filter by status and go back to the first page."""
        self._update(status_filter=status_filter, current_page=1)

    def set_current_page(self, page: int) -> None:
        """Move to ``page``, clamped to the pages the current view has."""
        total_pages = self.view().total_pages
        self._update(current_page=min(max(1, page), total_pages))

    def update_config(self, **changes: Any) -> None:
        """
        Replace configuration values.

        Raises:
            ConfigError: If a value is outside its allowed set.
        """
        self._config = self._config.replace(**changes)
        self.set_current_page(self._state.current_page)

    # Details

    def show_process_details(self, process: Process) -> None:
        """Select ``process`` and open its details."""
        self._update(
            selected_process_pid=process.pid,
            selected_process=process,
            show_info_modal=True,
        )

    def close_process_details(self) -> None:
        """Clear the selection and close the details."""
        self._update(
            selected_process_pid=None,
            selected_process=None,
            show_info_modal=False,
        )

    # Kill workflow

    def confirm_kill_process(self, process: Process) -> None:
        """Ask for confirmation before killing ``process``."""
        if self._state.kill_state is not KillState.IDLE:
            logger.debug("Ignoring kill request for pid %d, workflow busy", process.pid)
            return
        self._update(process_to_kill=process, show_confirm_modal=True)

    def close_confirm_kill(self) -> None:
        """Cancel a pending kill."""
        if self._state.kill_state is KillState.KILLING:
            return
        self._update(process_to_kill=None, show_confirm_modal=False)

    async def handle_confirm_kill(self) -> bool:
        """
        Kill the process awaiting confirmation.

        The workflow always returns to idle in a single update, whether the
        kill succeeds, is refused or raises.

        Returns:
            True if the process was killed.
        """
        state = self._state
        if state.kill_state is not KillState.CONFIRM_PENDING:
            return False

        self._update(is_killing=True)
        try:
            return await self._kill(state.process_to_kill.pid)
        finally:
            self._update(is_killing=False, process_to_kill=None, show_confirm_modal=False)

    async def kill_process(self, pid: int) -> bool:
        """
        Kill ``pid`` and refresh immediately on success.

        Failures are recorded in ``state.error``; the process is not assumed gone.
        """
        self._update(is_killing=True)
        try:
            return await self._kill(pid)
        finally:
            self._update(is_killing=False)

    async def _kill(self, pid: int) -> bool:
        try:
            await self._terminator.kill(pid)
        except KillError as exc:
            logger.warning("Kill failed: %s", exc)
            self._update(error=str(exc))
            return False
        except Exception as exc:
            logger.exception("Unexpected error killing pid %d", pid)
            self._update(error=str(exc) or f"Failed to kill process {pid}")
            return False

        await self.get_processes()
        return True
