"""Shared test helpers: SSE bodies, bus settling, a fake reply service."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable

import httpx

TEST_USER = "user-1"


def sse(*contents: str, done: bool = True) -> str:
    """Render content fragments as a chat-completions SSE body."""
    lines = [
        f"data: {json.dumps({'choices': [{'delta': {'content': c}}]})}\n\n"
        for c in contents
    ]
    if done:
        lines.append("data: [DONE]\n")
    return "".join(lines)


async def settle(rounds: int = 5) -> None:
    """Let the event bus background task deliver queued notifications."""
    for _ in range(rounds):
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Fake reply service
# ---------------------------------------------------------------------------


class FakeReplyService:
    """httpx.MockTransport handler serving scripted replies.

    ``chunks`` are streamed one by one so tests control chunk boundaries.
    ``on_chunk`` runs (awaited) before each chunk is handed to the client.
    """

    def __init__(self) -> None:
        self.status_code = 200
        self.chunks: list[str] = []
        self.error_body: bytes = b""
        self.requests: list[dict] = []
        self.on_chunk: Callable[[int], object] | None = None

    def reply(self, *chunks: str) -> None:
        self.status_code = 200
        self.chunks = list(chunks)

    def fail(self, status_code: int, body: dict | bytes) -> None:
        self.status_code = status_code
        self.error_body = body if isinstance(body, bytes) else json.dumps(body).encode()

    async def _stream(self) -> AsyncIterator[bytes]:
        for index, chunk in enumerate(self.chunks):
            if self.on_chunk is not None:
                result = self.on_chunk(index)
                if asyncio.iscoroutine(result):
                    await result
            yield chunk.encode()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(
            {
                "path": request.url.path,
                "headers": dict(request.headers),
                "body": json.loads(request.content),
            }
        )
        if self.status_code != 200:
            return httpx.Response(self.status_code, content=self.error_body)
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=self._stream(),
        )


