"""Line framing for chunked text streams."""

from __future__ import annotations


class LineFramer:
    """Split an arbitrarily chunked text stream into complete lines.

    A trailing partial line stays buffered until a later chunk completes it.
    ``\\r\\n`` endings are accepted; the ``\\r`` is stripped.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[str]:
        """Append ``chunk`` and return every line it completed."""
        self._buffer += chunk
        lines: list[str] = []
        while (newline := self._buffer.find("\n")) != -1:
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            if line.endswith("\r"):
                line = line[:-1]
            lines.append(line)
        return lines

    def push_back(self, lines: list[str]) -> None:
        """Restore already-extracted lines to the front of the buffer."""
        if lines:
            self._buffer = "".join(f"{line}\n" for line in lines) + self._buffer

    @property
    def pending(self) -> str:
        return self._buffer

    def close(self) -> str:
        """Drop and return whatever partial data is still buffered."""
        residual, self._buffer = self._buffer, ""
        return residual
