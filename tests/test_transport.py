"""Tests for the Discord REST transport."""

import httpx
import pytest

from gamenight.core.errors import EditQuotaExceeded, TransportError
from gamenight.discord.transport import DiscordTransport, SentMessage

API = "https://discord.test/api/v10"


def _transport(handler, max_retries: int = 3) -> DiscordTransport:
    client = httpx.AsyncClient(base_url=API, transport=httpx.MockTransport(handler))
    return DiscordTransport(client, application_id="app-1", max_retries=max_retries)


class TestSend:
    async def test_send_returns_location(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "m-1", "channel_id": "c-1"})

        transport = _transport(handler)
        sent = await transport.send("c-1", {"content": "hi"})
        await transport.aclose()

        assert sent == SentMessage(message_id="m-1", channel_id="c-1")
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/v10/channels/c-1/messages"

    async def test_original_response_paths(self):
        paths: list[tuple[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append((request.method, request.url.path))
            return httpx.Response(200, json={"id": "m-7", "channel_id": "c-7"})

        transport = _transport(handler)
        assert (await transport.get_original("tok")).message_id == "m-7"
        await transport.edit_original("tok", {"content": "done"})
        await transport.aclose()

        expected = "/api/v10/webhooks/app-1/tok/messages/@original"
        assert paths == [("GET", expected), ("PATCH", expected)]


class TestErrors:
    async def test_edit_quota_is_recognized(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={
                    "code": 30046,
                    "message": "Maximum number of edits to messages older than 1 hour reached.",
                },
            )

        transport = _transport(handler)
        with pytest.raises(EditQuotaExceeded) as excinfo:
            await transport.edit("c-1", "m-1", {"content": "x"})
        await transport.aclose()
        assert excinfo.value.code == 30046

    async def test_other_errors_are_transport_errors(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"code": 10008, "message": "Unknown Message"})

        transport = _transport(handler)
        with pytest.raises(TransportError) as excinfo:
            await transport.delete("c-1", "m-1")
        await transport.aclose()
        assert not isinstance(excinfo.value, EditQuotaExceeded)
        assert excinfo.value.status == 404

    async def test_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        transport = _transport(handler)
        with pytest.raises(TransportError, match="send failed"):
            await transport.send("c-1", {"content": "x"})
        await transport.aclose()


class TestRateLimit:
    async def test_retries_after_429(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(429, json={"retry_after": 0, "global": False})
            return httpx.Response(200, json={"id": "m-1", "channel_id": "c-1"})

        transport = _transport(handler)
        sent = await transport.send("c-1", {"content": "x"})
        await transport.aclose()
        assert sent.message_id == "m-1"
        assert calls == 2

    async def test_gives_up_after_max_retries(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"retry_after": 0})

        transport = _transport(handler, max_retries=2)
        with pytest.raises(TransportError) as excinfo:
            await transport.edit("c-1", "m-1", {"content": "x"})
        await transport.aclose()
        assert excinfo.value.status == 429
