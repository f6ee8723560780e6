"""Wire protocol — decouples the session manager from the UI.

Events flow from the PTY sessions to the UI. The UI subscribes to the
wire and renders events; it never mutates sessions through it. A
subscriber only sees events sent after it subscribed: to catch up on
earlier output, read the session's buffer.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    DATA = "data"
    EXIT = "exit"
    ERROR = "error"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def session_id(self) -> str | None:
        return self.data.get("session_id")


class Wire:
    """Async message bus: sessions -> UI subscribers.

    Broadcast to any number of subscribers. Each subscriber gets its own
    queue, so events for a session arrive in the order they were sent.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_data(self, session_id: str, chunk: str) -> None:
        """Forward an output chunk (not the whole buffer)."""
        self.send(
            WireEvent(
                type=EventType.DATA,
                data={"session_id": session_id, "chunk": chunk},
            )
        )

    def send_exit(
        self,
        session_id: str,
        exit_code: int | None,
        signal: int | None = None,
    ) -> None:
        """Notify subscribers that a session's shell exited."""
        self.send(
            WireEvent(
                type=EventType.EXIT,
                data={
                    "session_id": session_id,
                    "exit_code": exit_code,
                    "signal": signal,
                },
            )
        )

    def send_error(self, error: str, session_id: str | None = None) -> None:
        self.send(
            WireEvent(
                type=EventType.ERROR,
                data={"session_id": session_id, "error": error},
            )
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        if self._closed:
            return
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
