"""Bounded output buffer for PTY sessions."""

from __future__ import annotations

DEFAULT_CEILING = 50_000
DEFAULT_FLOOR = 40_000


class OutputBuffer:
    """Retained terminal output for one session.

    Output is kept verbatim (escape sequences included) so a view that
    attaches late can re-render it. When an append pushes the length past
    ``ceiling``, only the trailing ``floor`` characters are kept. The
    truncation happens once per append rather than per character, so a
    busy shell does not pay for a trim on every byte.

    The buffer is owned by the event loop thread; it does no locking.
    """

    def __init__(self, ceiling: int = DEFAULT_CEILING, floor: int = DEFAULT_FLOOR) -> None:
        if ceiling <= 0 or floor <= 0:
            raise ValueError("ceiling and floor must be positive")
        if floor > ceiling:
            raise ValueError(f"floor ({floor}) must not exceed ceiling ({ceiling})")
        self.ceiling = ceiling
        self.floor = floor
        self._text: str = ""
        self._total_chars: int = 0  # Total characters ever appended

    def append(self, chunk: str) -> bool:
        """Append a chunk of output.

        Returns True if the oldest content was evicted by this append.
        """
        if not chunk:
            return False
        self._text += chunk
        self._total_chars += len(chunk)
        if len(self._text) > self.ceiling:
            self._text = self._text[-self.floor :]
            return True
        return False

    @property
    def text(self) -> str:
        """Everything currently retained."""
        return self._text

    def read_tail(self, n: int = 100) -> list[str]:
        """Read the last N lines."""
        if n <= 0:
            return []
        lines = self._text.split("\n")
        return lines[-n:] if len(lines) > n else lines

    @property
    def total_chars(self) -> int:
        """Total number of characters ever appended."""
        return self._total_chars

    @property
    def evicted_chars(self) -> int:
        return self._total_chars - len(self._text)

    def clear(self) -> None:
        """Clear the buffer."""
        self._text = ""
        self._total_chars = 0

    def __len__(self) -> int:
        return len(self._text)
