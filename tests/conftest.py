"""Shared fixtures: an in-memory stand-in for a PTY handle."""

from __future__ import annotations

from typing import Callable

import pytest

from multitab.control.controller import TabController
from multitab.pty.manager import PTYManager
from multitab.pty.session import SpawnError
from multitab.session.wire import Wire


class FakeHandle:
    """Records what the manager does to it; tests drive its callbacks."""

    def __init__(self, shell: str, cols: int, rows: int, cwd: str, env: dict, term: str) -> None:
        self.shell = shell
        self.cols = cols
        self.rows = rows
        self.cwd = cwd
        self.env = env
        self.term = term
        self.written: list[str] = []
        self.resizes: list[tuple[int, int]] = []
        self.kill_count = 0
        self._on_data: Callable[[str], None] | None = None
        self._on_exit: Callable[[int | None, int | None], None] | None = None
        self._on_error: Callable[[str, OSError], None] | None = None

    def set_on_data(self, callback) -> None:
        self._on_data = callback

    def set_on_exit(self, callback) -> None:
        self._on_exit = callback

    def set_on_error(self, callback) -> None:
        self._on_error = callback

    def write(self, data: str) -> None:
        self.written.append(data)

    def resize(self, cols: int, rows: int) -> None:
        self.resizes.append((cols, rows))
        self.cols = cols
        self.rows = rows

    def kill(self) -> None:
        self.kill_count += 1

    # Test drivers

    def emit_data(self, chunk: str) -> None:
        assert self._on_data is not None
        self._on_data(chunk)

    def emit_exit(self, exit_code: int | None, sig: int | None = None) -> None:
        assert self._on_exit is not None
        self._on_exit(exit_code, sig)

    def emit_error(self, operation: str, error: OSError) -> None:
        assert self._on_error is not None
        self._on_error(operation, error)


class FakeSpawner:
    """Creates FakeHandles; shells listed in ``broken`` fail to spawn."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.broken: set[str] = set()

    def __call__(self, shell: str, cols: int = 80, rows: int = 24, cwd=None, env=None, term="xterm-256color"):
        if shell in self.broken:
            raise SpawnError(shell, FileNotFoundError(2, "No such file or directory"))
        handle = FakeHandle(shell, cols, rows, cwd, env or {}, term)
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def wire() -> Wire:
    return Wire()


@pytest.fixture
def manager(wire: Wire, spawner: FakeSpawner) -> PTYManager:
    return PTYManager(wire=wire, spawner=spawner, shell="/bin/fake-sh", cwd="/tmp")


@pytest.fixture
def quit_calls() -> list[int]:
    return []


@pytest.fixture
def controller(manager: PTYManager, wire: Wire, quit_calls: list[int]) -> TabController:
    return TabController(
        manager,
        wire=wire,
        cols=80,
        rows=20,
        on_quit=lambda: quit_calls.append(1),
    )
