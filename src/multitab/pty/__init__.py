"""PTY process management — one shell per tab.

Every tab runs its shell behind its own pseudo-terminal, with process
group isolation, a bounded output buffer, and exit notification.
"""

from multitab.pty.buffer import OutputBuffer
from multitab.pty.manager import PTYManager, RegistryClosedError, Session
from multitab.pty.session import PTYHandle, PTYStatus, SpawnError, default_shell, spawn

__all__ = [
    "OutputBuffer",
    "PTYHandle",
    "PTYManager",
    "PTYStatus",
    "RegistryClosedError",
    "Session",
    "SpawnError",
    "default_shell",
    "spawn",
]
