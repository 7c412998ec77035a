"""Tests for core.api.http_client: retries, error mapping, log hygiene."""

import logging

import httpx
import pytest

from core.api.http_client import RetryConfig, VendorHttpClient
from exceptions.exceptions import TransientNetworkError, VendorError


def _client(handler, attempts=3):
    return VendorHttpClient(
        "https://vendor.test",
        auth_header="Basic top-secret",
        retry=RetryConfig(max_attempts=attempts, backoff_base=0.0),
        transport=httpx.MockTransport(handler),
    )


class TestPostJson:
    def test_returns_decoded_object(self):
        client = _client(lambda req: httpx.Response(201, json={"id": "abc"}))
        assert client.post_json("/clips/streams", {"a": 1}) == {"id": "abc"}

    def test_sends_auth_and_json_body(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = request.content
            return httpx.Response(200, json={})

        _client(handler).post_json("/x", {"k": "v"})
        assert seen["auth"] == "Basic top-secret"
        assert b'"k"' in seen["body"]

    def test_empty_body_is_empty_dict(self):
        client = _client(lambda req: httpx.Response(200))
        assert client.post_json("/x", {}) == {}

    def test_non_2xx_raises_vendor_error(self):
        client = _client(lambda req: httpx.Response(403, text="forbidden"))
        with pytest.raises(VendorError) as exc_info:
            client.post_json("/clips/streams", {})
        assert exc_info.value.status == 403
        assert exc_info.value.status_code == 502
        assert "forbidden" in exc_info.value.details

    def test_invalid_json_raises_vendor_error(self):
        client = _client(lambda req: httpx.Response(200, text="<html>"))
        with pytest.raises(VendorError):
            client.post_json("/x", {})

    def test_json_array_raises_vendor_error(self):
        client = _client(lambda req: httpx.Response(200, json=[1, 2]))
        with pytest.raises(VendorError):
            client.post_json("/x", {})


class TestSendStyle:
    def test_post_reports_success(self):
        assert _client(lambda req: httpx.Response(200)).post("/x", {}) is True

    def test_post_reports_rejection_without_raising(self):
        assert _client(lambda req: httpx.Response(400, text="bad")).post("/x", {}) is False

    def test_delete_sends_body(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = request.content
            return httpx.Response(200)

        assert _client(handler).delete("/clips/streams/s1", {"session_id": "abc"}) is True
        assert seen["method"] == "DELETE"
        assert b"abc" in seen["body"]


class TestRetries:
    def test_retries_5xx_then_succeeds(self):
        statuses = iter([503, 502, 200])
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(next(statuses), json={"ok": True})

        assert _client(handler).post_json("/x", {}) == {"ok": True}
        assert len(calls) == 3

    def test_5xx_after_last_attempt_is_returned(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="down")

        assert _client(handler, attempts=2).post("/x", {}) is False
        assert len(calls) == 2

    def test_4xx_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        _client(handler).post("/x", {})
        assert len(calls) == 1

    def test_transport_errors_raise_transient_network_error(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused")

        with pytest.raises(TransientNetworkError) as exc_info:
            _client(handler, attempts=3).post("/x", {})
        assert len(calls) == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.status_code == 503

    def test_transport_error_then_success(self):
        outcomes = iter([httpx.ReadTimeout("slow"), None])

        def handler(request):
            exc = next(outcomes)
            if exc is not None:
                raise exc
            return httpx.Response(200)

        assert _client(handler).post("/x", {}) is True


def test_auth_header_never_logged(caplog):
    caplog.set_level(logging.DEBUG)
    client = _client(lambda req: httpx.Response(500, text="boom"), attempts=2)
    client.post("/x", {"session_id": "abc"})
    assert caplog.records
    assert "top-secret" not in caplog.text
