"""Key classification — multiplexer commands vs. terminal payload.

Key names follow Textual's naming (``"enter"``, ``"ctrl+left"``,
``"ctrl+a"``), so the UI can forward its key events untouched.
"""

from __future__ import annotations

import enum
import string
from dataclasses import dataclass

from multitab.config import KeyBindingConfig


class Command(enum.Enum):
    QUIT = "quit"
    NEW_TAB = "new_tab"
    CLOSE_TAB = "close_tab"
    NEXT_TAB = "next_tab"
    PREV_TAB = "prev_tab"


@dataclass(frozen=True)
class KeyEvent:
    """A raw key press as reported by the UI.

    ``key`` is the key name; ``character`` is the text it produced, if
    any. A paste arrives as a single event whose character holds the
    whole text.
    """

    key: str
    character: str | None = None


# Named keys -> the bytes a VT100/xterm sends for them.
CONTROL_SEQUENCES: dict[str, str] = {
    "enter": "\r",
    "tab": "\t",
    "shift+tab": "\x1b[Z",
    "backspace": "\x7f",
    "delete": "\x1b[3~",
    "insert": "\x1b[2~",
    "escape": "\x1b",
    "up": "\x1b[A",
    "down": "\x1b[B",
    "right": "\x1b[C",
    "left": "\x1b[D",
    "home": "\x1b[H",
    "end": "\x1b[F",
    "pageup": "\x1b[5~",
    "pagedown": "\x1b[6~",
    "ctrl+@": "\x00",
    "ctrl+space": "\x00",
    "ctrl+[": "\x1b",
    "ctrl+backslash": "\x1c",
    "ctrl+\\": "\x1c",
    "ctrl+]": "\x1d",
    "ctrl+right_square_bracket": "\x1d",
    "ctrl+^": "\x1e",
    "ctrl+_": "\x1f",
    "ctrl+underscore": "\x1f",
}

for _i, _letter in enumerate(string.ascii_lowercase, start=1):
    CONTROL_SEQUENCES[f"ctrl+{_letter}"] = chr(_i)


class KeyMap:
    """Decides what a key event means."""

    def __init__(self, bindings: KeyBindingConfig | None = None) -> None:
        bindings = bindings or KeyBindingConfig()
        self._commands: dict[str, Command] = {
            bindings.quit: Command.QUIT,
            bindings.new_tab: Command.NEW_TAB,
            bindings.close_tab: Command.CLOSE_TAB,
            bindings.next_tab: Command.NEXT_TAB,
            bindings.prev_tab: Command.PREV_TAB,
        }

    def command(self, event: KeyEvent) -> Command | None:
        """The multiplexer command bound to this key, if any."""
        return self._commands.get(event.key)

    def binding_for(self, command: Command) -> str:
        for key, bound in self._commands.items():
            if bound is command:
                return key
        raise KeyError(command)


def translate(event: KeyEvent) -> str | None:
    """Turn a payload key event into the text to write to the shell.

    Named control keys map to their control sequences; anything else that
    carries text is passed through as-is. Returns None when the event has
    nothing to send (e.g. a bare modifier or an unknown function key).
    """
    sequence = CONTROL_SEQUENCES.get(event.key)
    if sequence is not None:
        return sequence
    if event.character:
        return event.character
    return None
