"""TUI dashboard that shows each host's result as it arrives."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker

from .aggregator import result_text
from .engine import EngineRunner, EvalOptions
from .executor import Dispatcher, HostResult, HostStatus
from .registry import HostRegistry
from .renderers import styled_result

STATUS_ICONS = {
    HostStatus.PENDING: ("○", "dim"),
    HostStatus.STARTING: ("◔", "yellow"),
    HostStatus.RUNNING: ("◑", "yellow"),
    HostStatus.DONE: ("●", "green"),
    HostStatus.FAILED: ("✗", "red"),
}


class HostPanel(Static):
    """A panel displaying the result of a single host."""

    status: reactive[HostStatus] = reactive(HostStatus.PENDING)

    def __init__(self, host_name: str, host_type: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.host_name = host_name
        self.host_type = host_type

    def compose(self) -> ComposeResult:
        yield Label(self._get_header(), classes="host-header")
        yield RichLog(highlight=False, markup=False, wrap=True, auto_scroll=True)

    def _get_header(self) -> str:
        icon, color = STATUS_ICONS.get(self.status, ("?", "white"))
        return f"[{color}]{icon}[/] [{color}][bold]{self.host_name}[/bold][/] [dim]{self.host_type}[/]"

    def watch_status(self, status: HostStatus) -> None:
        """Update header when status changes."""
        if not self.is_mounted:
            return
        self.query_one(".host-header", Label).update(self._get_header())

    def show_result(self, result: HostResult) -> None:
        self.query_one(RichLog).write(styled_result(result_text(result), color=True))


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        return f"Progress: {self.completed}/{self.total} hosts complete | {status} | Press 'q' to quit"


class HostStatusChange(Message):
    def __init__(self, host_name: str, status: HostStatus) -> None:
        super().__init__()
        self.host_name = host_name
        self.status = status


class HostFinished(Message):
    def __init__(self, result: HostResult) -> None:
        super().__init__()
        self.result = result


class Dashboard(App):
    """Live view of one run across all selected hosts."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1;
    }

    HostPanel {
        border: solid $primary;
        height: 100%;
        min-height: 6;
    }

    HostPanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    HostPanel RichLog {
        height: 1fr;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(
        self,
        registry: HostRegistry,
        runner: EngineRunner,
        names: Sequence[str],
        source: str,
        options: EvalOptions,
        log_dir: Path | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.registry = registry
        self.runner = runner
        self.names = list(names)
        self.source = source
        self.options = options
        self.log_dir = log_dir
        self.panels: dict[str, HostPanel] = {}
        self.results: list[HostResult] = []
        self.dispatcher: Dispatcher | None = None
        self._worker: Worker | None = None
        self._quit_early = False

    @property
    def finished(self) -> bool:
        """True when every selected host produced a result before the app exited."""
        return not self._quit_early and len(self.results) == len(self.names)

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        for index, name in enumerate(self.names):
            host_type = self.registry.hosts[name].type if name in self.registry else "unknown"
            panel = HostPanel(name, host_type, id=f"panel-{index}")
            self.panels[name] = panel
            yield panel

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start the run when the app mounts."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.names)

        self.dispatcher = Dispatcher(
            self.registry,
            self.runner,
            on_status=self._on_status,
            on_result=self._on_result,
            log_dir=self.log_dir,
        )
        self._worker = self.run_worker(self._run_dispatch(), exclusive=True, thread=True)

    async def _run_dispatch(self) -> None:
        if self.dispatcher:
            self.results = await self.dispatcher.run(self.names, self.source, self.options)

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker == self._worker and event.state == event.worker.state.SUCCESS:
            self.query_one("#status-bar", StatusBar).running = False

    def _on_status(self, host_name: str, status: HostStatus) -> None:
        # Called from the worker thread
        self.post_message(HostStatusChange(host_name, status))

    def _on_result(self, result: HostResult) -> None:
        self.post_message(HostFinished(result))

    def on_host_status_change(self, message: HostStatusChange) -> None:
        if message.host_name in self.panels:
            self.panels[message.host_name].status = message.status

    def on_host_finished(self, message: HostFinished) -> None:
        if message.result.host_name in self.panels:
            self.panels[message.result.host_name].show_result(message.result)
        self.query_one("#status-bar", StatusBar).completed += 1

    async def action_quit(self) -> None:
        """Quit the application."""
        if self._worker and self._worker.is_running:
            self._quit_early = True
            self._worker.cancel()
        self.exit()
