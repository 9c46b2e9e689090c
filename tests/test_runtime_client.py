"""Tests for runtime/client.py module.

Uses respx to mock the Runtime API.
"""

import json
import os

import httpx
import pytest
import respx

from actor_deploy.runtime.client import (
    FUNCTION_SETTINGS,
    InvocationError,
    InvocationResponse,
    LambdaRuntimeClient,
    RuntimeSettingsError,
    TRACE_ID_ENV,
    load_function_settings,
)

ENDPOINT = "127.0.0.1:9001"
BASE = f"http://{ENDPOINT}/2018-06-01/runtime/invocation"


@pytest.fixture
def client():
    """Runtime client over a fresh httpx client."""
    runtime = LambdaRuntimeClient(ENDPOINT, client=httpx.Client())
    yield runtime
    runtime.close()


class TestLoadFunctionSettings:
    """Tests for load_function_settings."""

    def test_all_present(self):
        """Every setting is read."""
        env = {name: f"value-{i}" for i, name in enumerate(FUNCTION_SETTINGS)}
        env["UNRELATED"] = "x"
        settings = load_function_settings(env)
        assert set(settings) == set(FUNCTION_SETTINGS)

    def test_missing(self):
        """A missing setting is named in the error."""
        env = {name: "v" for name in FUNCTION_SETTINGS if name != "AWS_LAMBDA_RUNTIME_API"}
        with pytest.raises(RuntimeSettingsError) as exc_info:
            load_function_settings(env)
        assert exc_info.value.name == "AWS_LAMBDA_RUNTIME_API"


class TestLambdaRuntimeClient:
    """Tests for LambdaRuntimeClient."""

    @respx.mock
    def test_next_invocation(self, client):
        """Should return the body and request headers."""
        respx.get(f"{BASE}/next").mock(
            return_value=httpx.Response(
                200,
                content=b'{"path": "/helloworld"}',
                headers={
                    "Lambda-Runtime-Aws-Request-Id": "req-1",
                    "Lambda-Runtime-Trace-Id": "Root=1-abc",
                },
            )
        )

        event = client.next_invocation()

        assert event.body == b'{"path": "/helloworld"}'
        assert event.request_id == "req-1"
        assert event.trace_id == "Root=1-abc"

    @respx.mock
    def test_next_invocation_error(self, client):
        """A non-2xx reply yields no event."""
        respx.get(f"{BASE}/next").mock(return_value=httpx.Response(500))
        assert client.next_invocation() is None

    @respx.mock
    def test_send_response(self, client):
        """Should post the body to the request's response URL."""
        route = respx.post(f"{BASE}/req-1/response").mock(return_value=httpx.Response(202))

        client.send_response(InvocationResponse(body=b"Hello world", request_id="req-1"))

        assert route.called
        assert route.calls.last.request.content == b"Hello world"

    @respx.mock
    def test_send_error(self, client):
        """Should post the error message as JSON."""
        route = respx.post(f"{BASE}/req-1/error").mock(return_value=httpx.Response(202))

        client.send_error(InvocationError(message="boom", request_id="req-1"))

        assert json.loads(route.calls.last.request.content) == {"errorMessage": "boom"}

    @respx.mock
    def test_no_request_id(self, client):
        """Without a request id nothing is sent."""
        route = respx.post(url__startswith=BASE).mock(return_value=httpx.Response(202))

        client.send_response(InvocationResponse(body=b"x"))
        client.send_error(InvocationError(message="x"))

        assert not route.called

    @respx.mock
    def test_poll_once_success(self, client):
        """A handler result is posted as the response."""
        respx.get(f"{BASE}/next").mock(
            return_value=httpx.Response(
                200, content=b"ping", headers={"Lambda-Runtime-Aws-Request-Id": "req-2"}
            )
        )
        route = respx.post(f"{BASE}/req-2/response").mock(return_value=httpx.Response(202))

        assert client.poll_once(lambda event: event.body.upper()) is True
        assert route.calls.last.request.content == b"PING"

    @respx.mock
    def test_poll_once_handler_error(self, client):
        """A failing handler is reported as an invocation error."""
        respx.get(f"{BASE}/next").mock(
            return_value=httpx.Response(
                200, content=b"ping", headers={"Lambda-Runtime-Aws-Request-Id": "req-3"}
            )
        )
        route = respx.post(f"{BASE}/req-3/error").mock(return_value=httpx.Response(202))

        def handler(event):
            raise RuntimeError("actor trapped")

        assert client.poll_once(handler) is True
        assert json.loads(route.calls.last.request.content) == {"errorMessage": "actor trapped"}

    @respx.mock
    def test_poll_once_no_event(self, client):
        """No event means nothing was handled."""
        respx.get(f"{BASE}/next").mock(return_value=httpx.Response(404))
        assert client.poll_once(lambda event: b"") is False

    @respx.mock
    def test_poll_once_without_request_id(self, client):
        """An event without a request ID is not handed to the handler."""
        respx.get(f"{BASE}/next").mock(return_value=httpx.Response(200, content=b"ping"))
        calls = []

        assert client.poll_once(calls.append) is True
        assert calls == []
        assert len(respx.calls) == 1

    @respx.mock
    def test_poll_once_exports_trace_id(self, client, monkeypatch):
        """The trace ID is exported for the X-Ray SDK."""
        monkeypatch.setenv(TRACE_ID_ENV, "Root=previous")
        respx.get(f"{BASE}/next").mock(
            return_value=httpx.Response(
                200,
                content=b"ping",
                headers={
                    "Lambda-Runtime-Aws-Request-Id": "req-4",
                    "Lambda-Runtime-Trace-Id": "Root=1-5e1b4151-5ac6c58f",
                },
            )
        )
        respx.post(f"{BASE}/req-4/response").mock(return_value=httpx.Response(202))

        client.poll_once(lambda event: b"pong")
        assert os.environ[TRACE_ID_ENV] == "Root=1-5e1b4151-5ac6c58f"

    @respx.mock
    def test_poll_once_dispatches_request_once(self, client):
        """A repeated request ID gets an error instead of a second dispatch."""
        respx.get(f"{BASE}/next").mock(
            return_value=httpx.Response(
                200, content=b"ping", headers={"Lambda-Runtime-Aws-Request-Id": "req-5"}
            )
        )
        response = respx.post(f"{BASE}/req-5/response").mock(return_value=httpx.Response(202))
        error = respx.post(f"{BASE}/req-5/error").mock(return_value=httpx.Response(202))
        calls = []

        def handler(event):
            calls.append(event.request_id)
            return b"pong"

        assert client.poll_once(handler) is True
        assert client.poll_once(handler) is True

        assert calls == ["req-5"]
        assert response.call_count == 1
        assert json.loads(error.calls.last.request.content) == {
            "errorMessage": "Already dispatched: req-5"
        }
