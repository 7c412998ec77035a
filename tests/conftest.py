"""Shared fixtures: a scripted fake of the avatar vendor and a mock LLM."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from core.api.http_client import RetryConfig, VendorHttpClient


class FakeVendor:
    """Scripted ``httpx.MockTransport`` handler.

    Responses are registered per ``(method, path)``; anything unregistered
    answers 200 with an empty JSON object. Every request is recorded.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, status=200, body=None, exc=None):
        self.routes[(method, path)] = (status, body, exc)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        is_json = request.headers.get("content-type", "").startswith("application/json")
        payload = json.loads(request.content) if is_json and request.content else None
        self.requests.append(
            SimpleNamespace(
                method=request.method,
                path=request.url.path,
                json=payload,
                headers=request.headers,
            )
        )
        status, body, exc = self.routes.get((request.method, request.url.path), (200, {}, None))
        if exc is not None:
            raise exc
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body or "")

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.path == path]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


STREAM_CREATED = {
    "id": "strm_1",
    "session_id": "AWSALB=sess123; AWSALBCORS=sess123; Path=/",
    "offer": {"type": "offer", "sdp": "v=0"},
    "ice_servers": [{"urls": "stun:stun.example.com"}],
}


class FakeClock:
    """Monotonic clock stand-in for the stream registry."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vendor():
    fake = FakeVendor()
    fake.on("POST", "/clips/streams", body=STREAM_CREATED)
    return fake


@pytest.fixture
def did_client(vendor):
    client = VendorHttpClient(
        "https://vendor.test",
        auth_header="Basic secret-key",
        retry=RetryConfig(max_attempts=2, backoff_base=0.0),
        transport=vendor.transport,
    )
    yield client
    client.close()


def make_completion(content, finish_reason="stop"):
    return SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(content=content),
                finish_reason=finish_reason,
            )
        ],
        model="test-model",
        usage=SimpleNamespace(total_tokens=42),
    )


@pytest.fixture
def llm_client():
    client = MagicMock()
    client.chat.completions.create.return_value = make_completion("Hello there!")
    return client
