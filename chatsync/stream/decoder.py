"""Server-sent event decoding for the reply stream.

The reply service speaks the OpenAI-compatible chat-completions SSE dialect:
``data: {json}`` lines carrying ``choices[0].delta.content`` fragments,
``:`` comment keepalives, blank separators and a literal ``data: [DONE]``
terminator.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from chatsync.stream.framer import LineFramer

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_TOKEN = "[DONE]"


@dataclass
class StreamEvent:
    """Outcome of decoding one framed line."""

    type: str  # fragment, terminator, skip, incomplete
    text: str = ""


_SKIP = StreamEvent(type="skip")
_TERMINATOR = StreamEvent(type="terminator")
_INCOMPLETE = StreamEvent(type="incomplete")


def _extract_fragment(record: Any) -> str | None:
    """Read ``choices[0].delta.content`` if every step has the right type."""
    if not isinstance(record, dict):
        return None
    choices = record.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


def decode_line(line: str) -> StreamEvent:
    """Classify one framed line.

    Never raises. A ``data:`` payload cut off mid-document comes back as
    ``incomplete`` so the caller can re-buffer it; JSON that is broken before
    its end can never complete and is skipped.
    """
    if line.startswith(":") or not line.strip():
        return _SKIP
    if not line.startswith(DATA_PREFIX):
        return _SKIP

    payload = line[len(DATA_PREFIX) :].strip()
    if not payload:
        return _SKIP
    if payload == DONE_TOKEN:
        return _TERMINATOR

    try:
        record = json.loads(payload)
    except json.JSONDecodeError as e:
        if e.pos >= len(payload):
            return _INCOMPLETE
        logger.debug("Skipping malformed event line: %r", line[:200])
        return _SKIP
    except (ValueError, RecursionError):
        logger.debug("Skipping undecodable event line (%d chars)", len(line))
        return _SKIP

    fragment = _extract_fragment(record)
    if fragment is None:
        return _SKIP
    return StreamEvent(type="fragment", text=fragment)


class ReplyAssembler:
    """Drive a LineFramer and decode_line over one reply stream.

    Owns the stream buffer for a single orchestrator run. A re-buffered
    line gets one more attempt on the next feed; if it comes back still
    incomplete it is skipped so later lines keep flowing.
    """

    def __init__(self) -> None:
        self._framer = LineFramer()
        self._retrying: str | None = None
        self.finished = False

    def feed(self, chunk: str) -> list[str]:
        """Feed a chunk and return the content fragments it completed."""
        if self.finished:
            return []

        fragments: list[str] = []
        lines = self._framer.feed(chunk)
        for index, line in enumerate(lines):
            retried, self._retrying = self._retrying, None
            event = decode_line(line)
            if event.type == "incomplete":
                if index == 0 and line == retried:
                    logger.debug("Skipping event line that never completed: %r", line[:200])
                    continue
                # Retry this line (and everything after it) on the next feed
                self._framer.push_back(lines[index:])
                self._retrying = line
                break
            if event.type == "terminator":
                self.finished = True
                break
            if event.type == "fragment":
                fragments.append(event.text)
        return fragments

    def close(self) -> None:
        """Discard any residual partial line."""
        residual = self._framer.close()
        if residual:
            logger.debug("Dropping %d undecodable trailing chars at stream end", len(residual))
