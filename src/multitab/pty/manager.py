"""PTY Manager — the registry of live shell sessions."""

from __future__ import annotations

import itertools
import logging
import os
import signal as signal_module
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Protocol

from multitab.pty.buffer import DEFAULT_CEILING, DEFAULT_FLOOR, OutputBuffer
from multitab.pty.session import default_shell, spawn

if TYPE_CHECKING:
    from multitab.session.wire import Wire

logger = logging.getLogger(__name__)


class Handle(Protocol):
    """What the manager needs from a pseudo-terminal handle."""

    def set_on_data(self, callback: Callable[[str], None]) -> None: ...

    def set_on_exit(self, callback: Callable[[int | None, int | None], None]) -> None: ...

    def set_on_error(self, callback: Callable[[str, OSError], None]) -> None: ...

    def write(self, data: str) -> None: ...

    def resize(self, cols: int, rows: int) -> None: ...

    def kill(self) -> None: ...


Spawner = Callable[..., Handle]


class RegistryClosedError(RuntimeError):
    """Raised by ``create`` once the manager has been shut down."""


def exit_notice(exit_code: int | None, sig: int | None) -> str:
    """The line appended to a tab's output when its shell goes away."""
    if sig is not None:
        try:
            name = signal_module.Signals(sig).name
        except ValueError:
            name = str(sig)
        return f"\r\n[process killed by signal {name}]\r\n"
    return f"\r\n[process exited with code {exit_code}]\r\n"


@dataclass
class Session:
    """One tab: a shell, its pseudo-terminal and its retained output."""

    id: str
    name: str
    seq: int
    handle: Handle
    buffer: OutputBuffer
    shell: str
    cols: int
    rows: int
    exited: bool = field(default=False)
    exit_code: int | None = field(default=None)
    exit_signal: int | None = field(default=None)


class PTYManager:
    """Owns every shell session for the lifetime of the program.

    - Ids are ``tab-<n>`` with ``n`` taken from a counter that only moves
      forward, so an id is never handed out twice, even after a close or
      a failed spawn.
    - Output from a handle is appended to its session's buffer, then the
      chunk alone is forwarded on the wire.
    - A session is removed from the registry before its handle is killed.
      Any notification that arrives afterwards finds no session and is
      dropped, so nothing downstream sees a closed tab again.
    - All of this runs on the event loop thread; there are no locks.
    """

    def __init__(
        self,
        wire: Wire | None = None,
        spawner: Spawner = spawn,
        shell: str | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        term: str = "xterm-256color",
        buffer_ceiling: int = DEFAULT_CEILING,
        buffer_floor: int = DEFAULT_FLOOR,
    ) -> None:
        self._sessions: dict[str, Session] = {}
        self._wire = wire
        self._spawner = spawner
        self._shell = shell
        self._cwd = cwd
        self._env = env or {}
        self._term = term
        self._buffer_ceiling = buffer_ceiling
        self._buffer_floor = buffer_floor
        self._counter = itertools.count(1)
        self._closed = False

    def default_shell(self) -> str:
        return self._shell or default_shell()

    def create(
        self,
        name: str | None = None,
        cols: int = 80,
        rows: int = 24,
        shell: str | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> Session:
        """Spawn a shell and register it as a new session.

        Args:
            name: Display label. Defaults to ``Shell <n>``.
            cols: Initial terminal width.
            rows: Initial terminal height.
            shell: Shell path, overriding the manager's default.
            cwd: Working directory, overriding the manager's default.
            env: Extra environment variables for this shell only.

        Returns:
            The new session.

        Raises:
            SpawnError: the shell could not be started; nothing is registered.
            RegistryClosedError: the manager has been closed.
        """
        if self._closed:
            raise RegistryClosedError("session manager is closed")

        seq = next(self._counter)
        session_id = f"tab-{seq}"
        shell_path = shell or self.default_shell()

        try:
            handle = self._spawner(
                shell_path,
                cols=cols,
                rows=rows,
                cwd=cwd or self._cwd or os.getcwd(),
                env={**self._env, **(env or {})},
                term=self._term,
            )
        except OSError as e:
            logger.warning("Could not start %s for %s: %s", shell_path, session_id, e)
            raise

        session = Session(
            id=session_id,
            name=name or f"Shell {seq}",
            seq=seq,
            handle=handle,
            buffer=OutputBuffer(self._buffer_ceiling, self._buffer_floor),
            shell=shell_path,
            cols=cols,
            rows=rows,
        )

        handle.set_on_data(lambda chunk: self._on_data(session_id, chunk))
        handle.set_on_exit(lambda code, sig: self._on_exit(session_id, code, sig))
        handle.set_on_error(lambda op, err: self._on_error(session_id, op, err))

        self._sessions[session_id] = session
        logger.info("Created session %s (%s) running %s", session_id, session.name, shell_path)
        return session

    # --- Handle notifications ---

    def _on_data(self, session_id: str, chunk: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        if session.buffer.append(chunk):
            logger.debug("Session %s buffer truncated to %d chars", session_id, len(session.buffer))
        if self._wire:
            self._wire.send_data(session_id, chunk)

    def _on_exit(self, session_id: str, exit_code: int | None, sig: int | None) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.exited = True
        session.exit_code = exit_code
        session.exit_signal = sig
        session.buffer.append(exit_notice(exit_code, sig))
        logger.info("Session %s exited (code=%s signal=%s)", session_id, exit_code, sig)
        if self._wire:
            self._wire.send_exit(session_id, exit_code, sig)

    def _on_error(self, session_id: str, operation: str, error: OSError) -> None:
        if session_id not in self._sessions:
            return
        if self._wire:
            self._wire.send_error(f"{operation} failed: {error}", session_id=session_id)

    # --- Lookup ---

    def get(self, session_id: str) -> Session | None:
        """Get a session by ID."""
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[Session]:
        """All live sessions, in creation order."""
        return list(self._sessions.values())

    def describe(self) -> list[dict[str, Any]]:
        """Summaries of all sessions, for logging and status output."""
        return [
            {
                "id": s.id,
                "name": s.name,
                "shell": s.shell,
                "size": f"{s.cols}x{s.rows}",
                "exited": s.exited,
                "exit_code": s.exit_code,
                "chars": len(s.buffer),
            }
            for s in self._sessions.values()
        ]

    # --- Routing ---

    def write(self, session_id: str, data: str) -> None:
        """Send input to a session. Unknown ids are ignored."""
        session = self._sessions.get(session_id)
        if session is None:
            logger.debug("Dropping write to unknown session %s", session_id)
            return
        session.handle.write(data)

    def resize(self, session_id: str, cols: int, rows: int) -> None:
        """Resize a session's terminal. Unknown ids are ignored."""
        session = self._sessions.get(session_id)
        if session is None:
            return
        if (session.cols, session.rows) == (cols, rows):
            return
        session.cols = cols
        session.rows = rows
        session.handle.resize(cols, rows)

    # --- Teardown ---

    def destroy(self, session_id: str) -> None:
        """Kill a session and remove it from tracking."""
        session = self._sessions.pop(session_id, None)
        if session:
            session.handle.kill()
            logger.info("Destroyed session %s (%s)", session_id, session.name)

    def destroy_all(self) -> None:
        """Kill all sessions."""
        for session_id in list(self._sessions.keys()):
            self.destroy(session_id)

    def close(self) -> None:
        """Kill all sessions and refuse new ones. Called on shutdown."""
        if self._closed:
            return
        self.destroy_all()
        self._closed = True
        logger.info("All PTY sessions cleaned up")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
