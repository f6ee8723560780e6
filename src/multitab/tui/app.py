"""Main Textual application for the multitab TUI."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rich.markup import escape
from rich.text import Text

from textual import events, work
from textual.app import App, ComposeResult
from textual.widgets import Static

from multitab.control.controller import Action, TabController, TabView
from multitab.control.keys import Command, KeyEvent
from multitab.pty.session import SpawnError
from multitab.session.wire import EventType, Wire, WireEvent

if TYPE_CHECKING:
    import asyncio

    from multitab.config import KeyBindingConfig
    from multitab.pty.manager import PTYManager

logger = logging.getLogger(__name__)

# Rows taken by the tab bar, the terminal border and the status bar
CHROME_ROWS = 4
# Columns taken by the terminal border
CHROME_COLS = 2


class TUILogHandler(logging.Handler):
    """Logging handler that captures the last log message for the status bar.

    Writing to stderr would corrupt the Textual display, so the most recent
    record is kept and shown in the status bar instead.
    """

    def __init__(self, app: MultitabApp) -> None:
        super().__init__()
        self._app = app
        self.last_message: str = ""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.last_message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        try:
            self._app.call_from_thread(self._app.refresh_status)
        except RuntimeError:
            # Already on the app's thread
            self._app.call_later(self._app.refresh_status)


class TerminalView(Static, can_focus=True):
    """Shows the active tab's output and takes every key press.

    Keys are stopped here so that no Textual binding sees them: the
    controller decides what each one means.
    """

    def __init__(self, controller: TabController, **kwargs) -> None:
        super().__init__(**kwargs)
        self._controller = controller

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        action = self._controller.handle_key(KeyEvent(key=event.key, character=event.character))
        if action is not Action.IGNORED:
            self.app.dismiss_inline_error()
            self.app.refresh_all()

    def on_paste(self, event: events.Paste) -> None:
        event.stop()
        self._controller.send_text(event.text)


def render_tab_bar(tabs: list[TabView], activity: set[str], hint: str) -> str:
    """Rich markup for the tab strip."""
    parts = ["[dim]Tabs:[/dim]"]
    for tab in tabs:
        label = escape(f" {tab.index + 1}:{tab.name}{'*' if tab.id in activity else ''} ")
        if tab.active:
            parts.append(f"[bold reverse green]{label}[/bold reverse green]")
        elif tab.exited:
            parts.append(f"[red]{label}[/red]")
        else:
            parts.append(f"[grey62]{label}[/grey62]")
    parts.append(f"[dim]{escape(hint)}[/dim]")
    return " ".join(parts)


class MultitabApp(App, inherit_bindings=False):
    """multitab TUI — several shells, one tab each."""

    TITLE = "multitab"
    ENABLE_COMMAND_PALETTE = False
    CSS = """
    #tab-bar {
        dock: top;
        height: 1;
        background: $surface;
        padding: 0 1;
    }

    #terminal {
        height: 1fr;
        border: solid $success;
        overflow: hidden;
    }

    #terminal.error {
        border: solid $error;
        color: $error;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        background: $surface;
        color: $text-muted;
        padding: 0 1;
    }
    """

    def __init__(
        self,
        manager: PTYManager,
        wire: Wire,
        keys: KeyBindingConfig | None = None,
        cols: int = 80,
        rows: int = 24,
    ) -> None:
        super().__init__()
        self.wire = wire
        self.controller = TabController(
            manager,
            wire=wire,
            keys=keys,
            cols=cols,
            rows=rows,
            on_quit=self._on_controller_quit,
        )
        self._queue: asyncio.Queue[WireEvent | None] | None = None
        self._log_handler: TUILogHandler | None = None
        self._inline_error: str | None = None
        self._activity: set[str] = set()
        self._exiting = False

    def compose(self) -> ComposeResult:
        yield Static(id="tab-bar")
        yield TerminalView(self.controller, id="terminal")
        yield Static(id="status-bar")

    def on_mount(self) -> None:
        self._install_log_handler()
        self._queue = self.wire.subscribe()
        self._listen_wire()

        self._push_size(self.size.width, self.size.height)
        try:
            self.controller.start()
        except SpawnError as e:
            logger.error("Could not start the first shell: %s", e)
            self._exiting = True
            self.exit(return_code=1, message=f"Error: {e}")
            return

        self.query_one(TerminalView).focus()
        self.refresh_all()

    def on_unmount(self) -> None:
        self._exiting = True
        self.controller.quit()
        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)

    def _install_log_handler(self) -> None:
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        self._log_handler = TUILogHandler(self)
        self._log_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(self._log_handler)

    def _on_controller_quit(self) -> None:
        if self._exiting:
            return
        self._exiting = True
        self.exit()

    # --- Size ---

    def on_resize(self, event: events.Resize) -> None:
        self._push_size(event.size.width, event.size.height)
        self.refresh_all()

    def _push_size(self, width: int, height: int) -> None:
        self.controller.resize(max(1, width - CHROME_COLS), max(1, height - CHROME_ROWS))

    # --- Wire event loop ---

    @work(exclusive=True)
    async def _listen_wire(self) -> None:
        queue = self._queue
        assert queue is not None, "_listen_wire called before subscribing"
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                self._handle_event(event)
        finally:
            self.wire.unsubscribe(queue)

    def _handle_event(self, event: WireEvent) -> None:
        handlers = {
            EventType.DATA: self._on_data,
            EventType.EXIT: self._on_exit,
            EventType.ERROR: self._on_error,
        }
        handler = handlers.get(event.type)
        if handler:
            handler(event.data)

    def _on_data(self, data: dict) -> None:
        session_id = data["session_id"]
        if session_id == self.controller.active_id:
            self.refresh_terminal()
        elif session_id not in self._activity:
            self._activity.add(session_id)
            self.refresh_tab_bar()

    def _on_exit(self, data: dict) -> None:
        logger.info(
            "%s exited (code=%s signal=%s)",
            data["session_id"],
            data["exit_code"],
            data["signal"],
        )
        self.refresh_all()

    def _on_error(self, data: dict) -> None:
        session_id = data.get("session_id")
        if session_id is None or session_id == self.controller.active_id:
            self._inline_error = data["error"]
        self.notify(data["error"], severity="error")
        self.refresh_all()

    # --- Rendering ---

    @property
    def inline_error(self) -> str | None:
        """The error shown in place of the terminal, until the next key press."""
        return self._inline_error

    def dismiss_inline_error(self) -> None:
        self._inline_error = None

    def refresh_all(self) -> None:
        if self.controller.active_id is not None:
            self._activity.discard(self.controller.active_id)
        self.refresh_tab_bar()
        self.refresh_terminal()
        self.refresh_status()

    def refresh_tab_bar(self) -> None:
        try:
            bar = self.query_one("#tab-bar", Static)
        except Exception:
            return
        keymap = self.controller.keymap
        hint = " | ".join(
            f"{keymap.binding_for(cmd)}:{label}"
            for cmd, label in (
                (Command.NEW_TAB, "new"),
                (Command.CLOSE_TAB, "close"),
                (Command.NEXT_TAB, "next"),
                (Command.PREV_TAB, "prev"),
                (Command.QUIT, "quit"),
            )
        )
        bar.update(render_tab_bar(self.controller.snapshot(visible_rows=0), self._activity, hint))

    def refresh_terminal(self) -> None:
        try:
            view = self.query_one(TerminalView)
        except Exception:
            return
        if self._inline_error:
            view.add_class("error")
            view.update(f"[bold]✖ {escape(self._inline_error)}[/bold]")
            return
        view.remove_class("error")
        session = self.controller.active_session
        if session is None:
            view.update("")
            return
        _, rows = self.controller.size
        view.update(Text.from_ansi("\n".join(session.buffer.read_tail(rows))))

    def refresh_status(self) -> None:
        try:
            status = self.query_one("#status-bar", Static)
        except Exception:
            return
        tabs = self.controller.snapshot(visible_rows=0)
        active = next((t for t in tabs if t.active), None)
        parts: list[str] = []
        if active is not None:
            parts.append(f"[bold]{escape(active.name)}[/bold]")
            parts.append(f"Session {active.index + 1}/{len(tabs)}")
            parts.append(f"{active.cols}×{active.rows}")
            if active.exited:
                parts.append(f"[yellow]exited ({active.exit_code})[/yellow]")
        last_log = self._log_handler.last_message if self._log_handler else ""
        if last_log:
            if len(last_log) > 80:
                last_log = last_log[:77] + "..."
            parts.append(f"[dim]{escape(last_log)}[/dim]")
        status.update(" | ".join(parts))
