"""neotop - Main Textual application."""

import locale
import logging
import os

from textual import work
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.css.query import NoMatches
from textual.screen import ModalScreen, Screen
from textual.widgets import Button, DataTable, Footer, Input, Label, Static

from neotop.config import STATUS_FILTER_OPTIONS, AppConfig, configure_logging
from neotop.models import Process, SystemStats, status_label
from neotop.monitor import ProcessBackend, PsutilBackend
from neotop.scheduler import RefreshScheduler
from neotop.sorting import Page
from neotop.store import ProcessStore, StoreState, derive_view

logger = logging.getLogger(__name__)

# Fields cycled by the sort key, in order
SORT_CYCLE = ("cpu_usage", "memory_usage", "pid", "user", "name", "run_time")


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_percentage(value: float) -> str:
    """Format a percentage with one decimal."""
    return f"{value:.1f}%"


def format_uptime(seconds: float) -> str:
    """Format uptime as days, hours and minutes."""
    seconds = int(seconds)
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    return f"{days}d {hours}h {minutes}m"


def format_run_time(seconds: int) -> str:
    """Format a process run time as hours, minutes and seconds."""
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours}h {minutes}m {seconds % 60}s"


class HeaderStats(Static):
    """Header widget showing CPU, memory, network and disk statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._stats: SystemStats | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    def update_stats(self, stats: SystemStats) -> None:
        """Update the statistics from a system stats snapshot."""
        self._stats = stats
        try:
            self.query_one("#cpu-info", Static).update(self._get_cpu_info())
            self.query_one("#mem-info", Static).update(self._get_mem_info())
        except NoMatches:
            pass  # Widget not mounted yet

    def _get_cpu_info(self) -> str:
        """Get CPU info display."""
        if self._stats is None or not self._stats.cpu_usage:
            return "Loading CPU info..."
        lines = []
        for i, usage in enumerate(self._stats.cpu_usage):
            bar_len = min(int(usage / 5), 20)
            bar = "[green]█[/green]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)
            lines.append(f"CPU{i:<2} \\[{bar}] {usage:5.1f}%")
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        """Get memory, load, network and disk display."""
        stats = self._stats
        if stats is None or stats.memory_total == 0:
            return "Loading memory info..."

        mem_percent = stats.memory_used / stats.memory_total * 100
        mem_bar_len = min(int(mem_percent / 5), 20)
        mem_bar = "[cyan]█[/cyan]" * mem_bar_len + "[dim]░[/dim]" * (20 - mem_bar_len)
        load = stats.load_avg

        return (
            f"Mem\\[{mem_bar}] {format_bytes(stats.memory_used)}/{format_bytes(stats.memory_total)}\n"
            f"Load average: {load[0]:.2f} {load[1]:.2f} {load[2]:.2f}\n"
            f"Uptime: {format_uptime(stats.uptime)}\n"
            f"Net: ↓{format_bytes(stats.network_rx_bytes)}/s ↑{format_bytes(stats.network_tx_bytes)}/s\n"
            f"Disk: {format_bytes(stats.disk_used_bytes)}/{format_bytes(stats.disk_total_bytes)}"
        )


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._rows: list[Process] = []

    @property
    def rows(self) -> list[Process]:
        """Processes on the visible page, in display order."""
        return self._rows

    @property
    def current_process(self) -> Process | None:
        """The process under the cursor."""
        try:
            table = self.query_one("#process-table", DataTable)
        except NoMatches:
            return None
        if 0 <= table.cursor_row < len(self._rows):
            return self._rows[table.cursor_row]
        return None

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("", key="pin", width=2)
        table.add_column("PID", key="pid", width=8)
        table.add_column("USER", key="user", width=10)
        table.add_column("S", key="status", width=9)
        table.add_column("CPU%", key="cpu", width=7)
        table.add_column("RES", key="rss", width=8)
        table.add_column("VIRT", key="virt", width=8)
        table.add_column("TIME", key="run_time", width=12)
        table.add_column("Name", key="name", width=20)
        table.add_column("Command", key="command")

    def update_page(self, page: Page, pinned: frozenset[str]) -> None:
        """Replace the rows with one page, keeping the cursor on the same pid."""
        table = self.query_one("#process-table", DataTable)
        selected = self.current_process

        table.clear()
        self._rows = list(page.rows)
        for proc in self._rows:
            table.add_row(
                "*" if proc.command in pinned else "",
                str(proc.pid),
                proc.user[:10],
                status_label(proc.status),
                f"{proc.cpu_usage:5.1f}",
                format_bytes(proc.memory_usage),
                format_bytes(proc.virtual_memory),
                format_run_time(proc.run_time),
                proc.name[:20],
                proc.command[:80],
                key=str(proc.pid),
            )

        if selected is not None:
            for index, proc in enumerate(self._rows):
                if proc.pid == selected.pid:
                    table.move_cursor(row=index)
                    break


class ConfirmKillScreen(ModalScreen[bool]):
    """Asks the user to confirm killing a process."""

    DEFAULT_CSS = """
    ConfirmKillScreen {
        align: center middle;
    }

    #confirm-dialog {
        width: 60;
        height: auto;
        padding: 1 2;
        border: thick $error;
        background: $surface;
    }
    """

    BINDINGS = [
        ("y", "confirm", "Kill"),
        ("escape,n", "cancel", "Cancel"),
    ]

    def __init__(self, process: Process) -> None:
        super().__init__()
        self._process = process

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm-dialog"):
            yield Label(f"Kill {self._process.name} (PID {self._process.pid})?")
            with Horizontal():
                yield Button("Kill", variant="error", id="confirm")
                yield Button("Cancel", variant="primary", id="cancel")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class ProcessInfoScreen(ModalScreen[None]):
    """Details of the selected process, kept current across refreshes."""

    DEFAULT_CSS = """
    ProcessInfoScreen {
        align: center middle;
    }

    #process-info {
        width: 80%;
        height: auto;
        max-height: 80%;
        padding: 1 2;
        border: thick $primary;
        background: $surface;
    }
    """

    BINDINGS = [("escape,i", "close", "Close")]

    def __init__(self, process: Process | None) -> None:
        super().__init__()
        self._process = process

    def compose(self) -> ComposeResult:
        yield Static(self._describe(), id="process-info")

    def update_process(self, process: Process | None) -> None:
        """Show the newest copy of the process, or that it has exited."""
        self._process = process
        try:
            self.query_one("#process-info", Static).update(self._describe())
        except NoMatches:
            pass

    def _describe(self) -> str:
        proc = self._process
        if proc is None:
            return "The process has exited."
        return (
            f"[b]{proc.name}[/b] (PID {proc.pid}, parent {proc.ppid})\n"
            f"User: {proc.user}\n"
            f"Status: {status_label(proc.status)}\n"
            f"CPU: {format_percentage(proc.cpu_usage)}\n"
            f"Memory: {format_bytes(proc.memory_usage)} resident, "
            f"{format_bytes(proc.virtual_memory)} virtual\n"
            f"Disk: {format_bytes(proc.disk_usage[0])} read, "
            f"{format_bytes(proc.disk_usage[1])} written\n"
            f"Threads: {proc.threads if proc.threads is not None else '-'}\n"
            f"Session: {proc.session_id if proc.session_id is not None else '-'}\n"
            f"Run time: {format_run_time(proc.run_time)}\n"
            f"Root: {proc.root or '-'}\n"
            f"Command: {proc.command}\n"
            f"Environment: {len(proc.environ)} variables"
        )

    def action_close(self) -> None:
        self.dismiss(None)


class NeotopApp(App):
    """Main neotop application."""

    TITLE = "neotop"
    SUB_TITLE = "Process Table"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }

    #status-line {
        height: 1;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("r", "reverse_sort", "Reverse"),
        ("slash", "search", "Search"),
        ("escape", "focus_table", "Table"),
        ("s", "cycle_status", "Status"),
        ("p", "pin", "Pin"),
        ("k", "kill", "Kill"),
        ("i", "details", "Details"),
        ("space", "toggle_freeze", "Freeze"),
        ("n", "next_page", "Next"),
        ("b", "previous_page", "Prev"),
    ]

    def __init__(
        self,
        backend: ProcessBackend | None = None,
        config: AppConfig | None = None,
    ) -> None:
        """Initialize the NeotopApp."""
        super().__init__()
        self._store = ProcessStore.from_backend(backend or PsutilBackend(), config)
        self._scheduler = RefreshScheduler(self._store)
        self._main_screen: Screen | None = None
        self._info_screen: ProcessInfoScreen | None = None
        self._unsubscribe = None

    @property
    def store(self) -> ProcessStore:
        """The process store behind the table."""
        return self._store

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield Input(placeholder="Search: name, command, pid or regex; comma for OR", id="search")
        yield ProcessTable()
        yield Static(id="status-line")
        yield Footer()

    def on_mount(self) -> None:
        """Subscribe to the store and start refreshing."""
        self._main_screen = self.screen
        self._unsubscribe = self._store.subscribe(self._render_state)
        self._render_state(self._store.state)
        self._scheduler.start()
        self._main_screen.query_one("#process-table", DataTable).focus()

    async def on_unmount(self) -> None:
        """Stop refreshing when the app shuts down."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self._scheduler.stop()

    def _render_state(self, state: StoreState) -> None:
        """Push one store state into the widgets."""
        page = derive_view(state, self._store.config.items_per_page)
        screen = self._main_screen
        if screen is None:
            return
        try:
            if state.system_stats is not None:
                screen.query_one("#header-stats", HeaderStats).update_stats(state.system_stats)
            screen.query_one(ProcessTable).update_page(page, state.pinned)
            screen.query_one("#status-line", Static).update(self._status_text(state, page))
        except NoMatches:
            return  # Not composed yet or already torn down

        if self._info_screen is not None:
            self._info_screen.update_process(state.selected_process)

    def _status_text(self, state: StoreState, page: Page) -> str:
        sort = state.sort_config
        arrow = "↓" if sort.descending else "↑"
        parts = [
            f"Page {page.page}/{page.total_pages}",
            f"{page.total_results} processes",
            f"sort {sort.field} {arrow}",
            f"status {state.status_filter}",
        ]
        if state.is_frozen:
            parts.append("[b]FROZEN[/b]")
        if state.is_loading:
            parts.append("loading...")
        if state.error:
            parts.append(f"[red]{state.error}[/red]")
        return " | ".join(parts)

    def _current_process(self) -> Process | None:
        return self._main_screen.query_one(ProcessTable).current_process

    def action_sort(self) -> None:
        """Cycle to the next sort field."""
        current = self._store.state.sort_config.field
        if current in SORT_CYCLE:
            next_field = SORT_CYCLE[(SORT_CYCLE.index(current) + 1) % len(SORT_CYCLE)]
        else:
            next_field = SORT_CYCLE[0]
        self._store.toggle_sort(next_field)
        self.notify(f"Sort: {next_field.upper()}")

    def action_reverse_sort(self) -> None:
        """Flip the direction of the current sort field."""
        self._store.toggle_sort(self._store.state.sort_config.field)

    def action_search(self) -> None:
        self._main_screen.query_one("#search", Input).focus()

    def action_focus_table(self) -> None:
        self._main_screen.query_one("#process-table", DataTable).focus()

    def action_cycle_status(self) -> None:
        """Cycle the status filter."""
        current = self._store.state.status_filter
        index = STATUS_FILTER_OPTIONS.index(current) if current in STATUS_FILTER_OPTIONS else -1
        status_filter = STATUS_FILTER_OPTIONS[(index + 1) % len(STATUS_FILTER_OPTIONS)]
        self._store.set_status_filter(status_filter)
        self.notify(f"Status: {status_filter}")

    def action_pin(self) -> None:
        process = self._current_process()
        if process is not None:
            self._store.toggle_pin(process.command)

    def action_kill(self) -> None:
        """Ask for confirmation, then kill the process under the cursor."""
        process = self._current_process()
        if process is None:
            return
        self._store.confirm_kill_process(process)
        if self._store.state.process_to_kill is process:
            self.push_screen(ConfirmKillScreen(process), self._on_kill_confirmed)

    def _on_kill_confirmed(self, confirmed: bool | None) -> None:
        if confirmed:
            self._run_kill()
        else:
            self._store.close_confirm_kill()

    @work(exclusive=True, group="kill")
    async def _run_kill(self) -> None:
        target = self._store.state.process_to_kill
        if target is None:
            return
        if await self._store.handle_confirm_kill():
            self.notify(f"Killed process {target.pid}")
        else:
            self.notify(self._store.state.error or f"Could not kill {target.pid}", severity="error")

    def action_details(self) -> None:
        process = self._current_process()
        if process is not None:
            self._show_details(process)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self.action_details()

    def _show_details(self, process: Process) -> None:
        self._store.show_process_details(process)
        self._info_screen = ProcessInfoScreen(process)
        self.push_screen(self._info_screen, self._on_details_closed)

    def _on_details_closed(self, _result: None) -> None:
        self._info_screen = None
        self._store.close_process_details()

    def action_toggle_freeze(self) -> None:
        frozen = not self._store.state.is_frozen
        self._store.set_is_frozen(frozen)
        self.notify("Frozen" if frozen else "Live")

    def action_next_page(self) -> None:
        self._store.set_current_page(self._store.view().page + 1)

    def action_previous_page(self) -> None:
        self._store.set_current_page(self._store.view().page - 1)

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "search":
            self._store.set_search_term(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.action_focus_table()

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        await self._scheduler.stop()
        self.exit()


def main() -> None:
    """Entry point for neotop application."""
    configure_logging(
        os.environ.get("NEOTOP_LOG_FILE"),
        os.environ.get("NEOTOP_LOG_LEVEL", "INFO"),
    )
    try:
        # Name and user sorting collate with the user's locale
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as exc:
        logger.warning("Unsupported locale, sorting by code point: %s", exc)
    app = NeotopApp()
    app.run()


if __name__ == "__main__":
    main()
