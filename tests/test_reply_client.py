"""Tests for ReplyClient request shape and error mapping."""

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
import pytest

from chatsync.config import Settings
from chatsync.errors import ServiceError, TransientNetworkError
from chatsync.reply_client import FALLBACK_ERROR, ReplyClient

from tests.helpers import sse


@asynccontextmanager
async def _client_for(settings, handler):
    client = ReplyClient(settings, transport=httpx.MockTransport(handler))
    await client.start()
    try:
        yield client
    finally:
        await client.close()


async def _read_all(client: ReplyClient, chat_id: str = "chat-1") -> list[str]:
    async with client.open_stream(chat_id, [{"role": "user", "content": "hi"}]) as chunks:
        return [chunk async for chunk in chunks]


class TestOpenStream:
    @pytest.mark.asyncio
    async def test_request_shape(self, client, reply_service, settings):
        reply_service.reply(sse("ok"))
        await _read_all(client, "chat-42")

        request = reply_service.requests[0]
        assert request["path"] == settings.reply_path
        assert request["headers"]["authorization"] == "Bearer test-key"
        assert request["headers"]["content-type"] == "application/json"
        assert request["body"] == {
            "messages": [{"role": "user", "content": "hi"}],
            "chatId": "chat-42",
        }

    @pytest.mark.asyncio
    async def test_chunks_arrive_as_sent(self, client, reply_service):
        reply_service.reply("data: {\"cho", "ices\":[]}\n")
        assert await _read_all(client) == ["data: {\"cho", "ices\":[]}\n"]

    @pytest.mark.asyncio
    async def test_multibyte_split_across_chunks(self, settings):
        """A UTF-8 sequence split between network chunks decodes intact."""
        encoded = "ö".encode()

        async def handler(request: httpx.Request) -> httpx.Response:
            async def body():
                yield encoded[:1]
                yield encoded[1:]

            return httpx.Response(200, content=body())

        async with _client_for(settings, handler) as client:
            assert "".join(await _read_all(client)) == "ö"

    @pytest.mark.asyncio
    async def test_service_error_message_verbatim(self, client, reply_service):
        reply_service.fail(500, {"error": "rate limited"})
        with pytest.raises(ServiceError) as exc_info:
            await _read_all(client)
        assert str(exc_info.value) == "rate limited"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_service_error_without_body_uses_fallback(self, client, reply_service):
        reply_service.fail(502, b"<html>bad gateway</html>")
        with pytest.raises(ServiceError) as exc_info:
            await _read_all(client)
        assert str(exc_info.value) == FALLBACK_ERROR

    @pytest.mark.asyncio
    async def test_service_error_with_non_string_error(self, client, reply_service):
        reply_service.fail(400, {"error": {"code": 1}})
        with pytest.raises(ServiceError) as exc_info:
            await _read_all(client)
        assert str(exc_info.value) == FALLBACK_ERROR

    @pytest.mark.asyncio
    async def test_connect_failure_is_transient(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client_for(settings, handler) as client:
            with pytest.raises(TransientNetworkError):
                await _read_all(client)

    @pytest.mark.asyncio
    async def test_read_failure_mid_stream_is_transient(self, settings):
        async def handler(request: httpx.Request) -> httpx.Response:
            async def body():
                yield b"data: [DO"
                raise httpx.ReadError("connection reset", request=request)

            return httpx.Response(200, content=body())

        async with _client_for(settings, handler) as client:
            with pytest.raises(TransientNetworkError):
                await _read_all(client)

    @pytest.mark.asyncio
    async def test_requires_start(self, settings):
        client = ReplyClient(settings)
        with pytest.raises(RuntimeError):
            await _read_all(client)

    @pytest.mark.asyncio
    async def test_no_api_key_sends_no_authorization(self, reply_service):
        settings = Settings(database_url="sqlite+aiosqlite://", reply_base_url="http://reply.test", REPLY_API_KEY="")
        client = ReplyClient(settings, transport=httpx.MockTransport(reply_service))
        await client.start()
        try:
            reply_service.reply(sse("x"))
            await _read_all(client)
            assert "authorization" not in reply_service.requests[0]["headers"]
        finally:
            await client.close()
