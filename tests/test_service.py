"""Tests for the HTTP chat service client."""

from __future__ import annotations

import json
import unittest

import httpx

from proxychat.exceptions import ApplicationError, TransportError
from proxychat.models import ChatRequest, HistoryItem
from proxychat.service import ChatServiceClient

ENDPOINT = "https://proxy.example.test/"


def _client(handler) -> tuple[ChatServiceClient, httpx.AsyncClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ChatServiceClient(ENDPOINT, client=http), http


def _request() -> ChatRequest:
    return ChatRequest(
        prompt="hello",
        model="gemini-2.0-flash",
        persona="counselor",
        history=[HistoryItem(role="model", content="Welcome!")],
    )


class ChatServiceClientTests(unittest.IsolatedAsyncioTestCase):
    """Validate request shape and error normalization."""

    async def test_send_posts_chat_payload_and_parses_reply(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "reply": "Hi there",
                    "modelUsed": "gemini-2.0-flash",
                    "imageUrl": "",
                    "username": "ann",
                    "extra": 1,
                },
            )

        service, http = _client(handler)
        reply = await service.send(_request())
        await http.aclose()

        self.assertEqual(seen[0]["action"], "chat")
        self.assertEqual(seen[0]["history"][0]["role"], "model")
        self.assertEqual(reply.text, "Hi there")
        self.assertEqual(reply.model_used, "gemini-2.0-flash")
        self.assertIsNone(reply.image_url)
        self.assertEqual(reply.username, "ann")

    async def test_error_field_on_success_status_is_application_error(self) -> None:
        service, http = _client(
            lambda _r: httpx.Response(200, json={"error": "Invalid access key."})
        )
        with self.assertRaises(ApplicationError) as ctx:
            await service.send(_request())
        await http.aclose()
        self.assertEqual(str(ctx.exception), "Invalid access key.")

    async def test_error_field_on_failure_status_keeps_status(self) -> None:
        service, http = _client(
            lambda _r: httpx.Response(403, json={"error": "Model is restricted."})
        )
        with self.assertRaises(ApplicationError) as ctx:
            await service.send(_request())
        await http.aclose()
        self.assertEqual(ctx.exception.status_code, 403)

    async def test_failure_status_without_body_is_transport_error(self) -> None:
        service, http = _client(lambda _r: httpx.Response(502, text="bad gateway"))
        with self.assertRaises(TransportError) as ctx:
            await service.send(_request())
        await http.aclose()
        self.assertIn("HTTP error! Status: 502", str(ctx.exception))

    async def test_non_object_body_is_transport_error(self) -> None:
        service, http = _client(lambda _r: httpx.Response(200, json=["nope"]))
        with self.assertRaises(TransportError):
            await service.send(_request())
        await http.aclose()

    async def test_network_failure_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        service, http = _client(handler)
        with self.assertLogs("proxychat.service", level="WARNING"):
            with self.assertRaises(TransportError) as ctx:
                await service.send(_request())
        await http.aclose()
        self.assertEqual(str(ctx.exception), "Could not reach the chat service.")

    async def test_timeout_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        service, http = _client(handler)
        with self.assertRaises(TransportError) as ctx:
            await service.send(_request())
        await http.aclose()
        self.assertIn("did not respond in time", str(ctx.exception))

    async def test_aclose_leaves_injected_client_open(self) -> None:
        service, http = _client(lambda _r: httpx.Response(200, json={}))
        await service.aclose()
        self.assertFalse(http.is_closed)
        await http.aclose()


if __name__ == "__main__":
    unittest.main()
