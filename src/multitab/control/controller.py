"""Tab controller — routes input to multiplexer commands or the active shell."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from multitab.control.keys import Command, KeyEvent, KeyMap, translate
from multitab.pty.session import SpawnError

if TYPE_CHECKING:
    from multitab.config import KeyBindingConfig
    from multitab.pty.manager import PTYManager, Session
    from multitab.session.wire import Wire

logger = logging.getLogger(__name__)


class Action(enum.Enum):
    """What the controller did with an input event."""

    QUIT = "quit"
    NEW_TAB = "new_tab"
    CLOSE_TAB = "close_tab"
    NEXT_TAB = "next_tab"
    PREV_TAB = "prev_tab"
    WRITE = "write"
    DROPPED = "dropped"
    IGNORED = "ignored"  # Arrived after shutdown


class Direction(enum.Enum):
    NEXT = "next"
    PREV = "prev"


@dataclass(frozen=True)
class TabView:
    """Read-only view of one tab for the presentation layer."""

    id: str
    name: str
    index: int
    active: bool
    exited: bool
    exit_code: int | None
    cols: int
    rows: int
    lines: list[str]


class TabController:
    """The single authority over which tab is active and where input goes.

    Every input event is handled to completion before the next one, on the
    event loop thread. For each key event, in order:

    1. quit: kill every session and shut down
    2. new tab: spawn ``Shell <n>`` and make it active
    3. close tab: close the active one; closing the last one quits,
       otherwise the last remaining tab (in creation order) becomes active
    4. next / previous: cycle through tabs in creation order
    5. anything else is written to the active shell, translated to
       control sequences where needed, or dropped if it carries nothing

    Resizes go to the active session, and again to whichever session
    becomes active, so a background tab catches up with the window size
    the moment it is shown.
    """

    def __init__(
        self,
        manager: PTYManager,
        wire: Wire | None = None,
        keys: KeyBindingConfig | None = None,
        cols: int = 80,
        rows: int = 24,
        on_quit: Callable[[], None] | None = None,
    ) -> None:
        self.manager = manager
        self._wire = wire
        self._keymap = KeyMap(keys)
        self._cols = cols
        self._rows = rows
        self._on_quit = on_quit
        self._active_id: str | None = None
        self._closed = False

    # --- Read model ---

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active_session(self) -> Session | None:
        if self._active_id is None:
            return None
        return self.manager.get(self._active_id)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def size(self) -> tuple[int, int]:
        return self._cols, self._rows

    @property
    def keymap(self) -> KeyMap:
        return self._keymap

    def snapshot(self, visible_rows: int | None = None) -> list[TabView]:
        """Every tab in creation order, with the tail of its output."""
        rows = visible_rows if visible_rows is not None else self._rows
        return [
            TabView(
                id=s.id,
                name=s.name,
                index=i,
                active=s.id == self._active_id,
                exited=s.exited,
                exit_code=s.exit_code,
                cols=s.cols,
                rows=s.rows,
                lines=s.buffer.read_tail(rows),
            )
            for i, s in enumerate(self.manager.list_sessions())
        ]

    # --- Lifecycle ---

    def start(self) -> Session:
        """Create the first tab.

        Raises:
            SpawnError: the default shell could not be started. Unlike
                later tabs, this is fatal to the program.
        """
        session = self.manager.create(cols=self._cols, rows=self._rows)
        self._active_id = session.id
        return session

    def quit(self) -> None:
        """Kill every session and shut down. Only the first call has any effect."""
        if self._closed:
            return
        self._closed = True
        self._active_id = None
        self.manager.close()
        if self._wire:
            self._wire.close()
        logger.info("Shutting down")
        if self._on_quit is not None:
            self._on_quit()

    # --- Commands ---

    def create_tab(self, name: str | None = None) -> Session | None:
        """Open a new tab and make it active.

        A shell that fails to start is reported on the wire and the active
        tab is left unchanged.
        """
        if self._closed:
            return None
        try:
            session = self.manager.create(name=name, cols=self._cols, rows=self._rows)
        except SpawnError as e:
            logger.warning("New tab failed: %s", e)
            if self._wire:
                self._wire.send_error(str(e))
            return None
        self._activate(session.id)
        return session

    def close_tab(self, session_id: str | None = None) -> None:
        """Close a tab (the active one by default).

        Closing the last tab quits. When the active tab is closed, the last
        remaining tab in creation order becomes active.
        """
        if self._closed:
            return
        session_id = session_id or self._active_id
        if session_id is None or session_id not in self.manager:
            return

        self.manager.destroy(session_id)
        remaining = self.manager.list_sessions()
        if not remaining:
            self.quit()
            return
        if session_id == self._active_id:
            self._activate(remaining[-1].id)

    def switch_tab(self, direction: Direction) -> None:
        """Activate the next or previous tab, wrapping around."""
        if self._closed:
            return
        sessions = self.manager.list_sessions()
        if len(sessions) <= 1:
            return
        ids = [s.id for s in sessions]
        idx = ids.index(self._active_id) if self._active_id in ids else 0
        step = 1 if direction is Direction.NEXT else -1
        self._activate(ids[(idx + step) % len(ids)])

    def _activate(self, session_id: str) -> None:
        self._active_id = session_id
        self.manager.resize(session_id, self._cols, self._rows)

    # --- Input ---

    def handle_key(self, event: KeyEvent) -> Action:
        """Classify one key event and act on it."""
        if self._closed:
            return Action.IGNORED

        command = self._keymap.command(event)
        if command is Command.QUIT:
            self.quit()
            return Action.QUIT
        if command is Command.NEW_TAB:
            self.create_tab()
            return Action.NEW_TAB
        if command is Command.CLOSE_TAB:
            self.close_tab()
            return Action.CLOSE_TAB
        if command is Command.NEXT_TAB:
            self.switch_tab(Direction.NEXT)
            return Action.NEXT_TAB
        if command is Command.PREV_TAB:
            self.switch_tab(Direction.PREV)
            return Action.PREV_TAB

        payload = translate(event)
        if payload is None:
            logger.debug("Dropping key %r", event.key)
            return Action.DROPPED
        return self.send_text(payload)

    def send_text(self, text: str) -> Action:
        """Write text to the active shell unchanged (typed or pasted)."""
        if self._closed:
            return Action.IGNORED
        if not text or self._active_id is None:
            return Action.DROPPED
        self.manager.write(self._active_id, text)
        return Action.WRITE

    def resize(self, cols: int, rows: int) -> None:
        """Record the new window size and pass it to the active tab."""
        if cols <= 0 or rows <= 0:
            return
        self._cols = cols
        self._rows = rows
        if self._active_id is not None and not self._closed:
            self.manager.resize(self._active_id, cols, rows)
