"""PTY handle — one shell process behind one pseudo-terminal.

POSIX only: relies on pty, termios and process groups.
"""

from __future__ import annotations

import asyncio
import codecs
import enum
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import sys
import termios
import threading
from dataclasses import dataclass, field
from typing import Callable, Mapping

logger = logging.getLogger(__name__)

READ_CHUNK = 4096
# Reads taken from the master after the child exits, before it is closed
DRAIN_LIMIT = 64

DataCallback = Callable[[str], None]
ExitCallback = Callable[[int | None, int | None], None]
ErrorCallback = Callable[[str, OSError], None]


class SpawnError(OSError):
    """The shell could not be started (missing binary, permissions, bad cwd)."""

    def __init__(self, shell: str, cause: Exception) -> None:
        errno = getattr(cause, "errno", None)
        reason = getattr(cause, "strerror", None) or str(cause)
        super().__init__(errno, f"cannot start {shell}: {reason}")
        self.shell = shell
        self.cause = cause

    def __str__(self) -> str:
        return self.strerror


class PTYStatus(enum.Enum):
    """Lifecycle states for a PTY handle."""

    RUNNING = "running"
    KILLING = "killing"  # Signal sent, waiting for the child to go away
    KILLED = "killed"  # Exited after kill()
    EXITED = "exited"  # Exited on its own


def default_shell(environ: Mapping[str, str] | None = None, platform: str | None = None) -> str:
    """Resolve the shell to run when none is given.

    ``$SHELL`` wins when set; otherwise bash, or PowerShell when asked
    about Windows. The pty layer itself only runs on POSIX.
    """
    environ = os.environ if environ is None else environ
    platform = platform or sys.platform
    shell = environ.get("SHELL")
    if shell:
        return shell
    return "powershell.exe" if platform == "win32" else "/bin/bash"


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is already the pty slave.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


@dataclass
class PTYHandle:
    """A shell process running behind a pseudo-terminal.

    The child gets its own session with the pty slave as its controlling
    terminal, so job control works and ``kill()`` can signal the whole
    process group.

    All notifications are delivered on the event loop that was running
    when ``start()`` was called:

    - data: the master fd is non-blocking and watched with
      ``loop.add_reader``; each read is decoded incrementally so a UTF-8
      sequence split across reads comes out whole.
    - exit: a waiter thread started with the child blocks in ``wait()``;
      when it returns, pending output is drained, the master is closed and
      the exit is reported back on the loop, exactly once, as
      ``(exit_code, signal)``. A background job still holding the slave
      does not delay it.
    - error: a failed write or resize on a live handle is passed to the
      error callback instead of being raised.

    ``write``, ``resize`` and ``kill`` never block the loop.
    """

    shell: str
    cols: int = 80
    rows: int = 24
    cwd: str = field(default_factory=os.getcwd)
    env: dict[str, str] = field(default_factory=dict)
    term: str = "xterm-256color"

    # Internal state
    _master_fd: int = field(default=-1, init=False)
    _proc: subprocess.Popen | None = field(default=None, init=False)
    _pgid: int = field(default=0, init=False)
    _loop: asyncio.AbstractEventLoop | None = field(default=None, init=False)
    _status: PTYStatus = field(default=PTYStatus.RUNNING, init=False)
    _decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace"),
        init=False,
    )
    _pending: bytes = field(default=b"", init=False)
    _reading: bool = field(default=False, init=False)
    _reaper: asyncio.Task | None = field(default=None, init=False)
    _child_exit: asyncio.Future | None = field(default=None, init=False)
    _exit_code: int | None = field(default=None, init=False)
    _exit_signal: int | None = field(default=None, init=False)
    _on_data: DataCallback | None = field(default=None, init=False)
    _on_exit: ExitCallback | None = field(default=None, init=False)
    _on_error: ErrorCallback | None = field(default=None, init=False)

    def set_on_data(self, callback: DataCallback) -> None:
        """Set the callback that receives each decoded output chunk."""
        self._on_data = callback

    def set_on_exit(self, callback: ExitCallback) -> None:
        """Set the callback invoked once the child has exited.

        The callback receives ``(exit_code, signal)``. Exactly one of them
        is set: ``signal`` when the child was terminated by a signal,
        ``exit_code`` otherwise. It also fires after ``kill()``.
        """
        self._on_exit = callback

    def set_on_error(self, callback: ErrorCallback) -> None:
        """Set the callback for I/O errors on a live handle.

        The callback receives ``(operation, error)`` where operation is
        ``"write"`` or ``"resize"``.
        """
        self._on_error = callback

    def start(self) -> None:
        """Spawn the shell in a new PTY with its own session.

        Must be called with an event loop running.

        Raises:
            SpawnError: the pty could not be allocated or the shell could
                not be executed.
        """
        self._loop = asyncio.get_running_loop()

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise SpawnError(self.shell, e) from e

        env = {**os.environ, **self.env}
        env["TERM"] = self.term

        try:
            _set_winsize(master_fd, self.cols, self.rows)
            self._proc = subprocess.Popen(
                [self.shell],
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
                env=env,
                cwd=self.cwd,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            raise SpawnError(self.shell, e) from e
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        self._master_fd = master_fd
        self._pgid = self._proc.pid  # Session leader
        self._status = PTYStatus.RUNNING

        os.set_blocking(master_fd, False)
        self._loop.add_reader(master_fd, self._on_readable)
        self._reading = True

        self._child_exit = self._loop.create_future()
        threading.Thread(
            target=self._wait_child,
            name=f"pty-wait-{self._proc.pid}",
            daemon=True,
        ).start()
        self._reaper = self._loop.create_task(self._reap())

        logger.info(
            "PTY started: pid=%d shell=%s size=%dx%d cwd=%s",
            self._proc.pid,
            self.shell,
            self.cols,
            self.rows,
            self.cwd,
        )

    # --- Reading ---

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master_fd, READ_CHUNK)
        except BlockingIOError:
            return
        except OSError:
            # EIO: every holder of the slave side has gone away
            data = b""

        if not data:
            # The reaper reports the exit once the child is gone
            self._stop_reading()
            return

        self._deliver(self._decoder.decode(data))

    def _deliver(self, text: str) -> None:
        if not text or self._on_data is None:
            return
        try:
            self._on_data(text)
        except Exception:
            logger.exception("Error in on_data callback for pid %s", self.pid)

    def _stop_reading(self) -> None:
        if self._reading and self._loop is not None:
            self._loop.remove_reader(self._master_fd)
            self._reading = False
        if self._pending and self._loop is not None:
            self._loop.remove_writer(self._master_fd)
            self._pending = b""

    def _drain(self) -> None:
        for _ in range(DRAIN_LIMIT):
            if not self._reading:
                return
            try:
                data = os.read(self._master_fd, READ_CHUNK)
            except OSError:
                return
            if not data:
                return
            self._deliver(self._decoder.decode(data))

    def _wait_child(self) -> None:
        """Runs in the waiter thread; one per child, so exits never queue."""
        assert self._proc is not None and self._child_exit is not None
        returncode = self._proc.wait()
        try:
            self._loop.call_soon_threadsafe(self._set_child_exit, returncode)
        except RuntimeError:
            logger.debug("Loop closed before pid %d was reported", self._proc.pid)

    def _set_child_exit(self, returncode: int) -> None:
        if self._child_exit is not None and not self._child_exit.done():
            self._child_exit.set_result(returncode)

    async def _reap(self) -> None:
        """Wait for the child to exit, then close the pty and report the exit."""
        assert self._proc is not None and self._child_exit is not None
        returncode = await self._child_exit

        self._drain()
        self._stop_reading()
        self._deliver(self._decoder.decode(b"", final=True))
        try:
            os.close(self._master_fd)
        except OSError:
            pass

        if returncode < 0:
            self._exit_signal = -returncode
        else:
            self._exit_code = returncode

        if self._status == PTYStatus.KILLING:
            self._status = PTYStatus.KILLED
        else:
            self._status = PTYStatus.EXITED
        logger.info(
            "PTY pid=%d %s (code=%s signal=%s)",
            self._proc.pid,
            self._status.value,
            self._exit_code,
            self._exit_signal,
        )

        if self._on_exit is not None:
            try:
                self._on_exit(self._exit_code, self._exit_signal)
            except Exception:
                logger.exception("Error in on_exit callback for pid %d", self._proc.pid)

    # --- Writing ---

    def write(self, data: str) -> None:
        """Send input to the shell.

        Never blocks: whatever the pty does not accept right away is queued
        and flushed when the fd becomes writable. Does nothing once the
        process has exited or been killed.
        """
        if not self.alive or not data:
            return
        payload = data.encode("utf-8")
        if self._pending:
            self._pending += payload
            return
        try:
            written = os.write(self._master_fd, payload)
        except BlockingIOError:
            written = 0
        except OSError as e:
            self._report_error("write", e)
            return
        if written < len(payload):
            self._pending = payload[written:]
            self._loop.add_writer(self._master_fd, self._flush_pending)

    def _flush_pending(self) -> None:
        if not self.alive:
            self._loop.remove_writer(self._master_fd)
            self._pending = b""
            return
        try:
            written = os.write(self._master_fd, self._pending)
        except BlockingIOError:
            return
        except OSError as e:
            self._loop.remove_writer(self._master_fd)
            self._pending = b""
            self._report_error("write", e)
            return
        self._pending = self._pending[written:]
        if not self._pending:
            self._loop.remove_writer(self._master_fd)

    def resize(self, cols: int, rows: int) -> None:
        """Resize the terminal; the kernel sends SIGWINCH to the foreground job."""
        if not self.alive:
            return
        try:
            _set_winsize(self._master_fd, cols, rows)
        except OSError as e:
            self._report_error("resize", e)
            return
        self.cols = cols
        self.rows = rows

    def _report_error(self, operation: str, error: OSError) -> None:
        logger.warning("PTY pid=%s %s failed: %s", self.pid, operation, error)
        if self._on_error is None:
            return
        try:
            self._on_error(operation, error)
        except Exception:
            logger.exception("Error in on_error callback for pid %s", self.pid)

    # --- Termination ---

    def kill(self, sig: int = signal.SIGHUP) -> None:
        """Signal the shell's process group to terminate.

        Idempotent, and does not wait: the exit callback reports when the
        child is actually gone.
        """
        if self._status != PTYStatus.RUNNING:
            return

        self._status = PTYStatus.KILLING
        try:
            os.killpg(self._pgid, sig)
            logger.info("Sent signal %d to PTY pgid=%d", sig, self._pgid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        except OSError as e:
            logger.warning("Error killing PTY pgid=%d: %s", self._pgid, e)

    @property
    def alive(self) -> bool:
        return self._status == PTYStatus.RUNNING

    @property
    def status(self) -> PTYStatus:
        return self._status

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def exit_signal(self) -> int | None:
        return self._exit_signal

    async def wait_closed(self) -> None:
        """Wait until the child has been reaped and the exit reported."""
        if self._reaper is not None:
            await self._reaper


def spawn(
    shell: str,
    cols: int = 80,
    rows: int = 24,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    term: str = "xterm-256color",
) -> PTYHandle:
    """Start ``shell`` behind a new pseudo-terminal and return its handle.

    Raises:
        SpawnError: if the shell could not be started.
    """
    handle = PTYHandle(
        shell=shell,
        cols=cols,
        rows=rows,
        cwd=cwd or os.getcwd(),
        env=env or {},
        term=term,
    )
    handle.start()
    return handle
