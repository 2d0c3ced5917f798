"""HTTP client for the reply service.

Posts the conversation history and hands back the streamed response body as
incrementally decoded text chunks. Framing and SSE decoding happen upstream
in chatsync.stream.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from chatsync.config import Settings
from chatsync.errors import ServiceError, TransientNetworkError

logger = logging.getLogger(__name__)

FALLBACK_ERROR = "Failed to get response"


def _error_message(body: bytes) -> str:
    """Pull ``error`` out of a JSON error body, or fall back."""
    try:
        data: Any = json.loads(body)
    except ValueError:
        return FALLBACK_ERROR
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str) and error:
            return error
    return FALLBACK_ERROR


class ReplyClient:
    """Opens streamed replies from the reply service."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        settings = self._settings

        headers: dict[str, str] = {"content-type": "application/json"}
        if settings.reply_api_key:
            headers["authorization"] = f"Bearer {settings.reply_api_key}"
        else:
            logger.warning("REPLY_API_KEY is not set -- reply requests will be unauthenticated")

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        )

        self._http = httpx.AsyncClient(
            base_url=settings.reply_base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=self._transport,
        )
        logger.info("Reply client initialized (%s%s)", settings.reply_base_url, settings.reply_path)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    @asynccontextmanager
    async def open_stream(
        self,
        chat_id: str,
        messages: list[dict[str, str]],
    ) -> AsyncIterator[AsyncIterator[str]]:
        """Open a reply stream and yield an iterator over its text chunks.

        Raises ServiceError on a non-2xx status and TransientNetworkError on
        transport failures, both before any chunk is produced. Leaving the
        context closes the response even if it was not fully read.
        """
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        payload = {"messages": messages, "chatId": chat_id}
        try:
            async with self._http.stream("POST", self._settings.reply_path, json=payload) as response:
                if not response.is_success:
                    body = await response.aread()
                    message = _error_message(body)
                    logger.warning("Reply service error %d: %s", response.status_code, message)
                    raise ServiceError(message, status_code=response.status_code)

                yield self._chunks(response)
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Reply stream failed: {e}") from e

    @staticmethod
    async def _chunks(response: httpx.Response) -> AsyncIterator[str]:
        async for chunk in response.aiter_text():
            yield chunk
