from __future__ import annotations

import time
import unittest
from types import SimpleNamespace

import httpx
import openai

from completion.gateway import AuthError
from completion.gateway import CompletionGateway
from completion.gateway import CompletionOptions
from completion.gateway import NetworkError
from completion.gateway import RateLimitError

_REQUEST = httpx.Request("POST", "https://api.example.test/v1/chat/completions")


def _status_error(cls, status: int):
    return cls("boom", response=httpx.Response(status, request=_REQUEST), body=None)


def _response(text: str | None, total_tokens: int | None = 42):
    usage = SimpleNamespace(total_tokens=total_tokens) if total_tokens is not None else None
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=usage,
    )


class _FakeClient:
    def __init__(self, result=None, exc: Exception | None = None, delay: float = 0.0):
        self.calls: list[dict] = []
        self.result = result
        self.exc = exc
        self.delay = delay
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.delay:
            time.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.result


class CompletionGatewayTests(unittest.IsolatedAsyncioTestCase):
    async def test_returns_text_and_total_tokens(self):
        client = _FakeClient(result=_response("Hello!", 37))
        gateway = CompletionGateway(
            client=client,
            model="test-model",
            options=CompletionOptions(max_tokens=120, temperature=0.5),
        )
        result = await gateway.complete("User: hi\nGate:")
        self.assertEqual((result.text, result.tokens_used), ("Hello!", 37))
        call = client.calls[0]
        self.assertEqual(call["model"], "test-model")
        self.assertEqual(call["max_tokens"], 120)
        self.assertEqual(call["temperature"], 0.5)
        self.assertEqual(call["messages"], [{"role": "user", "content": "User: hi\nGate:"}])

    async def test_per_call_options_override_defaults(self):
        client = _FakeClient(result=_response("ok"))
        gateway = CompletionGateway(client=client, model="m")
        await gateway.complete("p", CompletionOptions(max_tokens=5, temperature=0.0))
        self.assertEqual(client.calls[0]["max_tokens"], 5)

    async def test_missing_usage_counts_as_zero_tokens(self):
        gateway = CompletionGateway(client=_FakeClient(result=_response(None, None)), model="m")
        result = await gateway.complete("p")
        self.assertEqual((result.text, result.tokens_used), ("", 0))

    async def test_authentication_error_translates(self):
        client = _FakeClient(exc=_status_error(openai.AuthenticationError, 401))
        with self.assertRaises(AuthError):
            await CompletionGateway(client=client, model="m").complete("p")

    async def test_rate_limit_error_translates(self):
        client = _FakeClient(exc=_status_error(openai.RateLimitError, 429))
        with self.assertRaises(RateLimitError):
            await CompletionGateway(client=client, model="m").complete("p")

    async def test_connection_error_translates_to_network(self):
        client = _FakeClient(exc=openai.APIConnectionError(request=_REQUEST))
        with self.assertRaises(NetworkError):
            await CompletionGateway(client=client, model="m").complete("p")

    async def test_timeout_translates_to_network(self):
        client = _FakeClient(result=_response("late"), delay=0.3)
        gateway = CompletionGateway(client=client, model="m", timeout_seconds=0.05)
        with self.assertRaises(NetworkError):
            await gateway.complete("p")

    async def test_malformed_response_translates_to_network(self):
        gateway = CompletionGateway(client=_FakeClient(result=SimpleNamespace(choices=[])), model="m")
        with self.assertRaises(NetworkError):
            await gateway.complete("p")


if __name__ == "__main__":
    unittest.main()
